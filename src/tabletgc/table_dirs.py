"""
Tracks which dropped tables have been emptied by a pass.
"""

from typing import AbstractSet, List, Set

from .paths import PathKey


class TableDirectoryTracker:
    """Collects per-table evidence across every page of one pass.

    A table's root directory may be removed once the pass deleted one of its
    tablet directories, the table no longer exists, and nothing under it was
    kept: no candidate retained by a reference, a blip or a failed delete, and
    no live reference pointing into it.
    """

    def __init__(self, referenced_tables: AbstractSet[str] = frozenset()):
        self.referenced_tables = frozenset(referenced_tables)
        self.tables_with_deleted_dirs: Set[str] = set()
        self.tables_with_remaining: Set[str] = set()

    def record_deleted(self, key: PathKey) -> None:
        if key.is_directory:
            self.tables_with_deleted_dirs.add(key.table_id)

    def record_retained(self, key: PathKey) -> None:
        self.tables_with_remaining.add(key.table_id)

    def eligible(self, known_table_ids: AbstractSet[str]) -> List[str]:
        """Table ids whose root directory should be removed, sorted."""
        candidates = self.tables_with_deleted_dirs - set(known_table_ids)
        candidates -= self.tables_with_remaining
        candidates -= self.referenced_tables
        return sorted(candidates)
