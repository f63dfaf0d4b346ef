"""
Sorted path logs kept as marker objects in a storage backend.

The candidate log and the blip set are both stored this way: one empty object
per path under a fixed prefix. The object name is the hex encoding of the
path's UTF-8 bytes, cut into ``SEGMENT_WIDTH`` character segments joined by
``/`` and closed with ``MARKER_SUFFIX``:

    gc/candidates/2f342f742d302f463030302e7266.m
    gc/candidates/68646673...3030/2f7461626c...6473.m     (long paths)

Hex encoding preserves byte order. Segments of a fixed width put every ``/``
at the same offset, and the suffix sorts before both ``/`` and any hex digit,
so listing object names in byte order lists paths in order. Segments keep each
name component well inside filesystem limits however long the path is.

Adding and removing a path never rewrites shared state, so the upstream
process appending candidates and the collector removing them do not need a
lock.
"""

from typing import Iterable, Iterator, List, Optional

from .logging_config import get_logger
from .storage_backend import StorageBackend

logger = get_logger(__name__)

CANDIDATES_PREFIX = "gc/candidates"
BLIPS_PREFIX = "gc/blips"

SEGMENT_WIDTH = 128
MARKER_SUFFIX = ".m"


def encode_marker(path: str) -> str:
    """Object name, relative to the log prefix, of the marker for ``path``."""
    digits = path.encode("utf-8").hex()
    segments = [digits[i:i + SEGMENT_WIDTH] for i in range(0, len(digits), SEGMENT_WIDTH)]
    return "/".join(segments) + MARKER_SUFFIX


def decode_marker(name: str) -> str:
    """Inverse of ``encode_marker``.

    Raises:
        ValueError: If ``name`` is not a marker name
    """
    if not name.endswith(MARKER_SUFFIX):
        raise ValueError(f"Not a marker name: {name!r}")

    segments = name[:-len(MARKER_SUFFIX)].split("/")
    if not segments[-1] or any(len(segment) != SEGMENT_WIDTH for segment in segments[:-1]):
        raise ValueError(f"Not a marker name: {name!r}")
    return bytes.fromhex("".join(segments)).decode("utf-8")


class MarkerLog:
    """A set of paths, listed in lexicographic order."""

    def __init__(self, storage: StorageBackend, prefix: str):
        self.storage = storage
        self.prefix = prefix.strip("/")

    def _marker_path(self, path: str) -> str:
        return f"{self.prefix}/{encode_marker(path)}"

    def add(self, path: str) -> None:
        if not path:
            raise ValueError("Cannot log an empty path")

        marker = self._marker_path(path)
        try:
            self.storage.write_file(marker, b"")
        except FileNotFoundError:
            # a concurrent remove pruned the segment directory
            self.storage.write_file(marker, b"")

    def add_all(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.add(path)

    def remove(self, path: str) -> None:
        """Drop ``path`` from the log. Removing an absent path is a no-op."""
        marker = self._marker_path(path)
        self.storage.delete_file(marker)

        # segment directories left empty, deepest first
        directory = marker.rsplit("/", 1)[0]
        while directory != self.prefix:
            if not self.storage.delete_dir_if_empty(directory):
                break
            directory = directory.rsplit("/", 1)[0]

    def contains(self, path: str) -> bool:
        return self.storage.exists(self._marker_path(path))

    def list(self) -> List[str]:
        """All paths in the log, sorted."""
        return self._scan(None, None)

    def page(self, after: str, limit: int) -> List[str]:
        """Up to ``limit`` paths strictly greater than ``after``.

        Only the markers returned are listed, so paging through the whole log
        lists each marker once.
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        return self._scan(after or None, limit)

    def _scan(self, after: Optional[str], limit: Optional[int]) -> List[str]:
        start = self._marker_path(after) if after else None
        paths: List[str] = []

        while limit is None or len(paths) < limit:
            wanted = None if limit is None else limit - len(paths)
            markers = self.storage.list_files(f"{self.prefix}/", start_after=start, limit=wanted)

            for marker in markers:
                try:
                    paths.append(decode_marker(marker[len(self.prefix) + 1:]))
                except ValueError:
                    logger.warning(f"Ignoring foreign object in {self.prefix}: {marker}")

            if wanted is None or len(markers) < wanted:
                break
            start = markers[-1]

        return paths

    def __iter__(self) -> Iterator[str]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self.list())
