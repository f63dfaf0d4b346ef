"""
Garbage collection of unreferenced tablet files and directories.

One call to ``GarbageCollectionAlgorithm.collect`` is one pass:

1. take a single snapshot of references, bulk-load blips and table ids,
2. page through the candidate log in path order,
3. keep every candidate that is still referenced or under a blip,
4. delete the rest page by page,
5. ask for the root directory of each emptied, dropped table to be removed.

Nothing survives between passes: every snapshot is rebuilt from scratch, so a
pass never judges a candidate against a stale view of the metadata.
"""

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .blips import BlipGuard
from .config import GCConfig
from .environment import DeleteResult, GarbageCollectionEnvironment
from .errors import CollaboratorError, GarbageCollectionError
from .logging_config import get_logger
from .paths import PathKey, PathNormalizer
from .references import ReferenceIndex
from .table_dirs import TableDirectoryTracker

logger = get_logger(__name__)

T = TypeVar("T")


class CollectionState(Enum):
    """Phase a pass is in"""

    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    DELETING = "deleting"
    CLEANING_TABLE_DIRS = "cleaning_table_dirs"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CollectionStats:
    """Counters for one pass. Partially filled in if the pass failed."""

    candidates: int = 0
    in_use: int = 0
    deleted: int = 0
    errors: int = 0
    table_dirs: int = 0
    pages: int = 0
    started: float = 0.0
    finished: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GarbageCollectionAlgorithm:
    """Decides which candidates are garbage and has the environment delete them."""

    def __init__(
        self,
        config: Optional[GCConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or GCConfig()
        self.normalizer = PathNormalizer(self.config.table_dir_name)
        self.state = CollectionState.IDLE
        self.stats = CollectionStats()
        self._sleep = sleep

    def collect(self, env: GarbageCollectionEnvironment) -> CollectionStats:
        """Run one full pass against ``env``.

        Returns:
            Statistics for the pass

        Raises:
            MalformedPathError: If a candidate, blip or reference cannot be
                decomposed. Pages deleted before the error stay deleted.
            CollaboratorError: If an environment operation fails
        """
        self.stats = CollectionStats(started=time.time())
        self.state = CollectionState.FETCHING

        try:
            self._collect(env)
        except GarbageCollectionError as e:
            logger.error(f"Garbage collection pass failed while {self.state.value}: {e}")
            self.state = CollectionState.FAILED
            raise
        except Exception:
            logger.exception(f"Garbage collection pass failed while {self.state.value}")
            self.state = CollectionState.FAILED
            raise
        finally:
            self.stats.finished = time.time()

        self.state = CollectionState.DONE
        logger.info(
            f"Garbage collection pass complete: {self.stats.candidates} candidates, "
            f"{self.stats.in_use} in use, {self.stats.deleted} deleted, "
            f"{self.stats.errors} errors, {self.stats.table_dirs} table dirs"
        )
        return self.stats

    def _collect(self, env: GarbageCollectionEnvironment) -> None:
        references = self._call(
            "reference scan",
            lambda: ReferenceIndex.build(env.get_reference_iterator(), self.normalizer),
        )
        blips = self._call(
            "blip scan",
            lambda: BlipGuard.build(env.get_blip_iterator(), self.normalizer),
        )
        known_table_ids = set(self._call("get_table_ids", env.get_table_ids))
        tracker = TableDirectoryTracker(references.referenced_tables)

        last_candidate = ""
        while True:
            self.state = CollectionState.FETCHING
            page = self._call("get_candidates", lambda: env.get_candidates(last_candidate))
            if not page:
                break
            last_candidate = page[-1]

            self.stats.pages += 1
            self.stats.candidates += len(page)
            self._call("increment_candidates_stat", lambda: env.increment_candidates_stat(len(page)))

            self.state = CollectionState.RECONCILING
            confirmed = self._reconcile(page, references, blips, tracker)

            in_use = len(page) - sum(len(paths) for paths in confirmed.values())
            self.stats.in_use += in_use
            self._call("increment_in_use_stat", lambda: env.increment_in_use_stat(in_use))

            self.state = CollectionState.DELETING
            self._delete(env, confirmed, tracker)

        self.state = CollectionState.CLEANING_TABLE_DIRS
        for table_id in tracker.eligible(known_table_ids):
            logger.info(f"Removing directory of deleted table {table_id} if empty")
            self._call("delete_table_dir_if_empty", lambda: env.delete_table_dir_if_empty(table_id))
            self.stats.table_dirs += 1

    def _reconcile(
        self,
        page: Sequence[str],
        references: ReferenceIndex,
        blips: BlipGuard,
        tracker: TableDirectoryTracker,
    ) -> Dict[PathKey, List[str]]:
        """Map each deletable key to the literal candidate paths spelling it."""
        confirmed: Dict[PathKey, List[str]] = {}

        for path in page:
            key = self.normalizer.normalize(path)

            if references.is_referenced(key):
                logger.debug(f"Candidate still in use: {path}")
                tracker.record_retained(key)
            elif blips.is_protected(key):
                logger.debug(f"Candidate under a bulk load in progress: {path}")
                tracker.record_retained(key)
            else:
                confirmed.setdefault(key, []).append(path)

        return confirmed

    def _delete(
        self,
        env: GarbageCollectionEnvironment,
        confirmed: Dict[PathKey, List[str]],
        tracker: TableDirectoryTracker,
    ) -> None:
        paths = sorted(path for spellings in confirmed.values() for path in spellings)
        if not paths:
            return

        logger.debug(f"Deleting {len(paths)} confirmed candidates")
        failed = self._failed_paths(self._call("delete", lambda: env.delete(paths)))

        for delay in self.config.retry_policy.delays():
            if not failed:
                break
            logger.warning(f"Retrying {len(failed)} failed deletes in {delay:.2f}s")
            self._sleep(delay)
            retry = list(failed)
            failed = self._failed_paths(self._call("delete", lambda: env.delete(retry)))

        for path in failed:
            logger.warning(f"Could not delete {path}, leaving it for the next pass")

        failed_set = set(failed).intersection(paths)
        self.stats.deleted += len(paths) - len(failed_set)
        self.stats.errors += len(failed_set)

        for key, spellings in confirmed.items():
            if failed_set.intersection(spellings):
                tracker.record_retained(key)
            else:
                tracker.record_deleted(key)

    @staticmethod
    def _failed_paths(result: Optional[DeleteResult]) -> List[str]:
        if result is None:
            return []
        return sorted(set(result.failed))

    @staticmethod
    def _call(operation: str, fn: Callable[[], T]) -> T:
        """Run an environment operation, wrapping its failures."""
        try:
            return fn()
        except GarbageCollectionError:
            raise
        except Exception as e:
            raise CollaboratorError(operation, e) from e
