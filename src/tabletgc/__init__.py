"""
tabletgc - garbage collection for tablet-based key-value storage

Confirms which candidate files and tablet directories are no longer referenced
by the metadata or protected by an in-flight bulk load, deletes them, and
removes the root directories of dropped tables once they are empty.

Supports both local filesystem and S3-compatible storage (AWS S3, MinIO, etc.)
"""

__version__ = "0.1.0"


from .algorithm import CollectionState, CollectionStats, GarbageCollectionAlgorithm
from .blips import BlipGuard
from .config import GCConfig
from .environment import DeleteResult, GarbageCollectionEnvironment
from .errors import CollaboratorError, GarbageCollectionError, MalformedPathError
from .metadata import MetadataEntry, directory_reference, file_reference
from .paths import PathKey, PathNormalizer, normalize
from .references import ReferenceIndex
from .storage_environment import StorageGCEnvironment
from .table_dirs import TableDirectoryTracker

__all__ = [
    "GarbageCollectionAlgorithm",
    "CollectionState",
    "CollectionStats",
    "GarbageCollectionEnvironment",
    "DeleteResult",
    "StorageGCEnvironment",
    "GCConfig",
    "PathKey",
    "PathNormalizer",
    "normalize",
    "ReferenceIndex",
    "BlipGuard",
    "TableDirectoryTracker",
    "MetadataEntry",
    "file_reference",
    "directory_reference",
    "GarbageCollectionError",
    "MalformedPathError",
    "CollaboratorError",
    "__version__",
]
