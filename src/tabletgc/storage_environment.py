"""
Garbage collection environment backed by a single storage volume.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, List, Optional, Sequence, Set

from .config import GCConfig
from .environment import DeleteResult, GarbageCollectionEnvironment
from .logging_config import get_logger
from .marker_log import BLIPS_PREFIX, CANDIDATES_PREFIX, MarkerLog
from .metadata import MetadataEntry
from .metadata_store import MetadataStore
from .paths import PathKey, PathNormalizer
from .storage_backend import StorageBackend

logger = get_logger(__name__)


class StorageGCEnvironment(GarbageCollectionEnvironment):
    """Runs passes against the candidate log, blips and metadata of one volume.

    Absolute candidates are resolved by key, so
    ``hdfs://nn:6000/accumulo/tables/4/t-0/F1.rf`` and ``/4/t-0/F1.rf`` both
    delete ``tables/4/t-0/F1.rf`` inside this backend whatever their host.
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[GCConfig] = None,
        candidates: Optional[MarkerLog] = None,
        blips: Optional[MarkerLog] = None,
        metadata: Optional[MetadataStore] = None,
    ):
        self.storage = storage
        self.config = config or GCConfig()
        self.normalizer = PathNormalizer(self.config.table_dir_name)
        self.candidates = candidates or MarkerLog(storage, CANDIDATES_PREFIX)
        self.blips = blips or MarkerLog(storage, BLIPS_PREFIX)
        self.metadata = metadata or MetadataStore(storage)

        self.candidates_seen = 0
        self.in_use = 0

    def get_candidates(self, continue_point: str) -> List[str]:
        return self.candidates.page(continue_point, self.config.candidate_batch_size)

    def get_blip_iterator(self) -> Iterator[str]:
        return iter(self.blips.list())

    def get_reference_iterator(self) -> Iterator[MetadataEntry]:
        return self.metadata.iter_references()

    def get_table_ids(self) -> Set[str]:
        return self.metadata.table_ids()

    def storage_path(self, key: PathKey) -> str:
        return key.storage_path(self.config.table_dir_name)

    def delete(self, paths: Sequence[str]) -> DeleteResult:
        """Delete each path and its candidate marker.

        Paths are removed concurrently. A path whose removal raised keeps its
        marker and is reported as failed; the rest of the batch goes ahead.
        """
        keys = [self.normalizer.normalize(path) for path in paths]

        if self.config.safe_mode:
            for path, key in zip(paths, keys):
                logger.info(f"SAFE MODE: would delete {path} ({self.storage_path(key)})")
            return DeleteResult()

        with ThreadPoolExecutor(max_workers=self.config.delete_threads) as pool:
            outcomes = list(pool.map(self._delete_one, paths, keys))

        failed = [path for path, ok in zip(paths, outcomes) if not ok]
        logger.info(f"Deleted {len(paths) - len(failed)} of {len(paths)} candidates")
        return DeleteResult(failed=failed)

    def _delete_one(self, path: str, key: PathKey) -> bool:
        target = self.storage_path(key)
        try:
            if key.is_directory:
                self.storage.delete_tree(target)
            else:
                self.storage.delete_file(target)
            self.candidates.remove(path)
        except Exception as e:
            logger.warning(f"Failed to delete {path} ({target}): {e}")
            return False

        logger.debug(f"Deleted {path} ({target})")
        return True

    def delete_table_dir_if_empty(self, table_id: str) -> None:
        table_dir = f"{self.config.table_dir_name}/{table_id}"

        if self.config.safe_mode:
            logger.info(f"SAFE MODE: would remove {table_dir} if empty")
            return

        if self.storage.delete_dir_if_empty(table_dir):
            logger.info(f"Removed directory of deleted table: {table_dir}")
        else:
            logger.info(f"Directory of deleted table is not empty yet: {table_dir}")

    def increment_candidates_stat(self, count: int) -> None:
        self.candidates_seen += count

    def increment_in_use_stat(self, count: int) -> None:
        self.in_use += count
