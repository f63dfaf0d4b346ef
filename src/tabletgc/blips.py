"""
Bulk-load markers ("blips") observed at the start of a pass.
"""

from typing import FrozenSet, Iterable, Optional

from .logging_config import get_logger
from .paths import DIRECTORY_SEGMENTS, PathKey, PathNormalizer

logger = get_logger(__name__)


class BlipGuard:
    """Protects every bulk-load directory in flight, and all files under it.

    A blip is created before the bulk load writes its first file and removed
    after the load commits or aborts, so anything under an active blip may be
    mid-write whatever the references say.
    """

    def __init__(self, blip_dirs: Iterable[PathKey] = ()):
        self.blip_dirs: FrozenSet[PathKey] = frozenset(blip_dirs)

    @classmethod
    def build(
        cls,
        blip_paths: Iterable[str],
        normalizer: Optional[PathNormalizer] = None,
    ) -> "BlipGuard":
        """Normalize a blip scan; each blip must name a tablet directory."""
        normalizer = normalizer or PathNormalizer()
        guard = cls(normalizer.normalize(path, DIRECTORY_SEGMENTS) for path in blip_paths)
        if guard.blip_dirs:
            logger.debug(f"Bulk loads in progress under: {sorted(str(k) for k in guard.blip_dirs)}")
        return guard

    def is_protected(self, key: PathKey) -> bool:
        return key.directory in self.blip_dirs

    def __len__(self) -> int:
        return len(self.blip_dirs)
