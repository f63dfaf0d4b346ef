"""
Collector configuration.

Read from environment variables:

    TABLETGC_CANDIDATE_BATCH_SIZE=1000  candidates fetched per page
    TABLETGC_TABLE_DIR=tables           directory holding table ids in a volume
    TABLETGC_DELETE_RETRIES=0           in-pass retries of failed deletes
    TABLETGC_DELETE_THREADS=4           concurrent deletes per batch (storage)
    TABLETGC_SAFE_MODE=false            log deletions without performing them

Storage settings (TABLETGC_STORAGE_TYPE, TABLETGC_S3_*) are read by
``storage_backend.create_storage_backend``, TABLETGC_LOG_LEVEL by
``logging_config``.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .paths import DEFAULT_TABLE_DIR
from .retry import BackoffPolicy

_TRUE_VALUES = ("true", "1", "yes")
_FALSE_VALUES = ("false", "0", "no", "")


@dataclass
class GCConfig:
    """Settings for one collector process"""

    candidate_batch_size: int = 1000
    table_dir_name: str = DEFAULT_TABLE_DIR
    delete_retries: int = 0
    retry_initial_delay: float = 0.1
    retry_max_delay: float = 5.0
    delete_threads: int = 4
    safe_mode: bool = False

    def __post_init__(self) -> None:
        if self.candidate_batch_size < 1:
            raise ValueError(f"candidate_batch_size must be positive, got {self.candidate_batch_size}")
        if self.delete_retries < 0:
            raise ValueError(f"delete_retries must not be negative, got {self.delete_retries}")
        if self.delete_threads < 1:
            raise ValueError(f"delete_threads must be positive, got {self.delete_threads}")
        if not self.table_dir_name or "/" in self.table_dir_name:
            raise ValueError(f"Invalid table directory name: {self.table_dir_name!r}")

    @property
    def retry_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_retries=self.delete_retries,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GCConfig":
        """Build a config from ``TABLETGC_*`` variables.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        return cls(
            candidate_batch_size=_int(env, "TABLETGC_CANDIDATE_BATCH_SIZE", defaults.candidate_batch_size),
            table_dir_name=env.get("TABLETGC_TABLE_DIR", defaults.table_dir_name),
            delete_retries=_int(env, "TABLETGC_DELETE_RETRIES", defaults.delete_retries),
            delete_threads=_int(env, "TABLETGC_DELETE_THREADS", defaults.delete_threads),
            safe_mode=_bool(env, "TABLETGC_SAFE_MODE", defaults.safe_mode),
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be true or false, got {raw!r}")
