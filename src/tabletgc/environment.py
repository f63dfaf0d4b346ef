"""
Collaborator interface a garbage collection pass runs against.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AbstractSet, Iterator, List, Sequence

from .metadata import MetadataEntry


@dataclass
class DeleteResult:
    """Outcome of one delete batch. Paths not listed in ``failed`` are gone."""

    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class GarbageCollectionEnvironment(ABC):
    """Everything a pass reads from or does to the outside world"""

    @abstractmethod
    def get_candidates(self, continue_point: str) -> List[str]:
        """Return the next sorted batch of candidates after ``continue_point``.

        An empty list means the candidate log is exhausted.
        """
        pass

    @abstractmethod
    def get_blip_iterator(self) -> Iterator[str]:
        """Iterate over the paths of bulk loads currently in progress"""
        pass

    @abstractmethod
    def get_reference_iterator(self) -> Iterator[MetadataEntry]:
        """Iterate over every file and directory reference in the metadata"""
        pass

    @abstractmethod
    def get_table_ids(self) -> AbstractSet[str]:
        """Return the ids of all tables that currently exist"""
        pass

    @abstractmethod
    def delete(self, paths: Sequence[str]) -> DeleteResult:
        """Remove confirmed candidates from storage and from the candidate log.

        Must be idempotent: a path that is already gone counts as deleted.
        Paths that could not be removed are reported in the result and must
        stay in the candidate log.
        """
        pass

    @abstractmethod
    def delete_table_dir_if_empty(self, table_id: str) -> None:
        """Remove a dropped table's root directory if nothing is left in it"""
        pass

    @abstractmethod
    def increment_candidates_stat(self, count: int) -> None:
        pass

    @abstractmethod
    def increment_in_use_stat(self, count: int) -> None:
        pass
