from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

import pytest

from tabletgc import DeleteResult, GarbageCollectionEnvironment, MetadataEntry
from tabletgc.metadata import directory_reference, file_reference


@pytest.fixture(autouse=True)
def force_local_storage_by_default(monkeypatch):
    """
    Ensure that tests default to using local storage, even if the
    external environment is configured for S3.

    Tests that require S3 should explicitly set TABLETGC_STORAGE_TYPE='s3'.
    """
    monkeypatch.setenv("TABLETGC_STORAGE_TYPE", "local")


class InMemoryEnvironment(GarbageCollectionEnvironment):
    """Candidate log, metadata and filesystem held in plain collections."""

    def __init__(self, page_size: int = 3):
        self.page_size = page_size
        self.candidates: Set[str] = set()
        self.blips: List[str] = []
        self.references: Dict[Tuple[str, str, str], MetadataEntry] = {}
        self.table_ids: Set[str] = set()

        self.deletes: List[str] = []
        self.delete_batches: List[List[str]] = []
        self.table_dirs_to_delete: List[str] = []
        self.continue_points: List[str] = []
        self.candidates_stat = 0
        self.in_use_stat = 0

        # path -> number of upcoming delete attempts that fail
        self.failing_deletes: Dict[str, int] = {}
        # operation name -> exception raised when it is called
        self.broken: Dict[str, Exception] = {}

    def _check(self, operation: str) -> None:
        if operation in self.broken:
            raise self.broken[operation]

    def get_candidates(self, continue_point: str) -> List[str]:
        self._check("get_candidates")
        self.continue_points.append(continue_point)
        later = sorted(c for c in self.candidates if c > continue_point)
        return later[:self.page_size]

    def get_blip_iterator(self) -> Iterator[str]:
        self._check("get_blip_iterator")
        return iter(list(self.blips))

    def get_reference_iterator(self) -> Iterator[MetadataEntry]:
        self._check("get_reference_iterator")
        return iter([self.references[k] for k in sorted(self.references)])

    def get_table_ids(self) -> Set[str]:
        self._check("get_table_ids")
        return set(self.table_ids)

    def delete(self, paths: Sequence[str]) -> Optional[DeleteResult]:
        self._check("delete")
        self.delete_batches.append(list(paths))
        failed = []
        for path in paths:
            if self.failing_deletes.get(path, 0) > 0:
                self.failing_deletes[path] -= 1
                failed.append(path)
                continue
            self.deletes.append(path)
            self.candidates.discard(path)
        return DeleteResult(failed=failed)

    def delete_table_dir_if_empty(self, table_id: str) -> None:
        self._check("delete_table_dir_if_empty")
        self.table_dirs_to_delete.append(table_id)

    def increment_candidates_stat(self, count: int) -> None:
        self.candidates_stat += count

    def increment_in_use_stat(self, count: int) -> None:
        self.in_use_stat += count

    def _put(self, entry: MetadataEntry) -> None:
        self.references[(entry.row, entry.family, entry.qualifier)] = entry

    def _pop(self, entry: MetadataEntry) -> Optional[MetadataEntry]:
        return self.references.pop((entry.row, entry.family, entry.qualifier), None)

    def add_file_reference(self, table_id: str, end_row: Optional[str], path: str) -> None:
        self._put(file_reference(table_id, end_row, path))

    def remove_file_reference(self, table_id: str, end_row: Optional[str], path: str) -> None:
        self._pop(file_reference(table_id, end_row, path))

    def add_dir_reference(self, table_id: str, end_row: Optional[str], directory: str) -> None:
        self._put(directory_reference(table_id, end_row, directory))

    def remove_dir_reference(self, table_id: str, end_row: Optional[str]) -> None:
        self._pop(directory_reference(table_id, end_row, ""))

    def take_deletes(self) -> List[str]:
        """Return the paths deleted since the last call, sorted."""
        deleted = sorted(self.deletes)
        self.deletes.clear()
        return deleted


@pytest.fixture
def gce():
    return InMemoryEnvironment()


@pytest.fixture
def make_gce():
    return InMemoryEnvironment
