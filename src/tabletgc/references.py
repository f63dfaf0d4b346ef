"""
Index of live file and directory references for one collection pass.
"""

from typing import Iterable, Optional, Set

from .errors import MalformedPathError
from .logging_config import get_logger
from .metadata import MetadataEntry
from .paths import DIRECTORY_SEGMENTS, FILE_SEGMENTS, PathKey, PathNormalizer

logger = get_logger(__name__)


class ReferenceIndex:
    """Keys of every file and tablet directory the metadata still points at.

    A file reference protects the file and the tablet directory holding it.
    A directory reference protects only the directory: files beneath it are
    deletable unless they are referenced themselves.
    """

    def __init__(self, normalizer: Optional[PathNormalizer] = None):
        self.normalizer = normalizer or PathNormalizer()
        self.file_keys: Set[PathKey] = set()
        self.dir_keys: Set[PathKey] = set()
        self.referenced_tables: Set[str] = set()
        self.entry_count = 0

    @classmethod
    def build(
        cls,
        entries: Iterable[MetadataEntry],
        normalizer: Optional[PathNormalizer] = None,
    ) -> "ReferenceIndex":
        """Consume a reference scan into a new index."""
        index = cls(normalizer)
        for entry in entries:
            index.add(entry)
        logger.debug(
            f"Indexed {index.entry_count} references: {len(index.file_keys)} files, "
            f"{len(index.dir_keys)} directories"
        )
        return index

    def add(self, entry: MetadataEntry) -> PathKey:
        """Index one metadata entry and return the key it protects.

        Raises:
            MalformedPathError: If the entry is not a file or directory
                reference, or its path cannot be decomposed
        """
        if entry.is_file_reference:
            key = self._file_key(entry)
            self.file_keys.add(key)
            self.dir_keys.add(key.directory)
        elif entry.is_directory_reference:
            key = self._directory_key(entry)
            self.dir_keys.add(key)
        else:
            raise MalformedPathError(
                f"{entry.row} {entry.family}:{entry.qualifier}",
                "unexpected column in reference scan",
            )

        self.referenced_tables.add(key.table_id)
        self.entry_count += 1
        return key

    def is_referenced(self, key: PathKey) -> bool:
        if key.is_directory:
            return key in self.dir_keys
        return key in self.file_keys

    def _file_key(self, entry: MetadataEntry) -> PathKey:
        path = entry.file_path
        if path.startswith("/"):
            # relative to the tablet's own table
            path = f"/{entry.table_id}{path}"
        elif ":" not in path and not path.startswith("../"):
            raise MalformedPathError(path, "file reference is neither absolute nor table relative")
        return self.normalizer.normalize(path, FILE_SEGMENTS)

    def _directory_key(self, entry: MetadataEntry) -> PathKey:
        directory = entry.value
        if ":" not in directory:
            if not directory.startswith("/"):
                raise MalformedPathError(directory, "directory reference is neither absolute nor table relative")
            directory = f"/{entry.table_id}{directory}"
        return self.normalizer.normalize(directory, DIRECTORY_SEGMENTS)
