"""
Canonical keys for files and tablet directories.

Paths reach the collector in two spellings:

    absolute  hdfs://host:6000/accumulo/tables/4/t-0/F000.rf
    relative  /4/t-0/F000.rf

Both decompose into the same ``PathKey(table_id="4", tablet_dir="t-0",
filename="F000.rf")``. Scheme, host, port and base directory play no part in
the key, so a relative candidate is struck by an absolute reference and the
other way around.
"""

from dataclasses import dataclass
from typing import List, Optional

from .errors import MalformedPathError

DEFAULT_TABLE_DIR = "tables"

# Number of segments in a key
DIRECTORY_SEGMENTS = 2
FILE_SEGMENTS = 3


@dataclass(frozen=True)
class PathKey:
    """Structured identity of a tablet directory or a file inside one."""

    table_id: str
    tablet_dir: str
    filename: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.filename is None

    @property
    def directory(self) -> "PathKey":
        """The tablet directory holding this key (itself for directories)."""
        if self.filename is None:
            return self
        return PathKey(self.table_id, self.tablet_dir)

    @property
    def relative(self) -> str:
        """Render as ``tableId/tabletDir[/filename]``."""
        if self.filename is None:
            return f"{self.table_id}/{self.tablet_dir}"
        return f"{self.table_id}/{self.tablet_dir}/{self.filename}"

    def storage_path(self, table_dir_name: str = DEFAULT_TABLE_DIR) -> str:
        """Location of this key relative to the volume's base directory."""
        return f"{table_dir_name}/{self.relative}"

    def __str__(self) -> str:
        return self.relative


class PathNormalizer:
    """Decomposes absolute and relative paths into ``PathKey`` values."""

    def __init__(self, table_dir_name: str = DEFAULT_TABLE_DIR):
        self.table_dir_name = table_dir_name

    def normalize(self, path: str, expected: Optional[int] = None) -> PathKey:
        """Canonicalize ``path``.

        Args:
            path: Absolute URI or ``/tableId/tabletDir[/file]`` path
            expected: ``DIRECTORY_SEGMENTS``, ``FILE_SEGMENTS`` or None to
                accept either shape

        Returns:
            The path's key

        Raises:
            MalformedPathError: If the path does not name a tablet directory
                or a file directly inside one, or has the wrong shape
        """
        if expected not in (None, DIRECTORY_SEGMENTS, FILE_SEGMENTS):
            raise ValueError(f"expected must be None, 2 or 3, not {expected!r}")

        tokens = self._tokens(path)

        if ":" in path:
            segments = self._strip_volume(path, tokens, expected)
        elif len(tokens) in (DIRECTORY_SEGMENTS, FILE_SEGMENTS):
            if expected is not None and len(tokens) != expected:
                raise MalformedPathError(
                    path, f"expected {expected} segments, found {len(tokens)}"
                )
            segments = tokens
        else:
            raise MalformedPathError(path)

        if len(segments) == FILE_SEGMENTS:
            return PathKey(segments[0], segments[1], segments[2])
        return PathKey(segments[0], segments[1])

    def _strip_volume(self, path: str, tokens: List[str], expected: Optional[int]) -> List[str]:
        """Drop scheme, authority and base directory from an absolute path."""
        if len(tokens) > FILE_SEGMENTS:
            if tokens[-4] == self.table_dir_name and expected in (None, FILE_SEGMENTS):
                return tokens[-3:]
            if tokens[-3] == self.table_dir_name and expected in (None, DIRECTORY_SEGMENTS):
                return tokens[-2:]
        raise MalformedPathError(
            path, f"no '{self.table_dir_name}/<tableId>/<tabletDir>' component"
        )

    @staticmethod
    def _tokens(path: str) -> List[str]:
        if path.startswith("../"):
            path = path[3:]
        # empty tokens come from leading, trailing or doubled slashes
        return [token for token in path.split("/") if token]


_default_normalizer = PathNormalizer()


def normalize(path: str, expected: Optional[int] = None) -> PathKey:
    """Canonicalize ``path`` using the default ``tables`` marker."""
    return _default_normalizer.normalize(path, expected)
