"""
Integration tests for the S3-compatible storage backend (MinIO, AWS S3, OVH)

These tests require S3 credentials to be set via environment variables:
- TABLETGC_S3_ENDPOINT=<your S3 endpoint>
- TABLETGC_S3_ACCESS_KEY=<your access key>
- TABLETGC_S3_SECRET_KEY=<your secret key>
- TABLETGC_S3_BUCKET=<your bucket>
- TABLETGC_S3_REGION=<your region>
"""

import os
import uuid

import pytest

from tabletgc import GarbageCollectionAlgorithm, GCConfig, StorageGCEnvironment
from tabletgc.metadata import file_reference
from tabletgc.storage_backend import create_storage_backend

# Store original env vars at module load time
_ORIGINAL_S3_ENV = {
    "TABLETGC_S3_ENDPOINT": os.getenv("TABLETGC_S3_ENDPOINT"),
    "TABLETGC_S3_ACCESS_KEY": os.getenv("TABLETGC_S3_ACCESS_KEY"),
    "TABLETGC_S3_SECRET_KEY": os.getenv("TABLETGC_S3_SECRET_KEY"),
    "TABLETGC_S3_BUCKET": os.getenv("TABLETGC_S3_BUCKET"),
    "TABLETGC_S3_REGION": os.getenv("TABLETGC_S3_REGION"),
}


def _s3_configured():
    return bool(_ORIGINAL_S3_ENV.get("TABLETGC_S3_BUCKET"))


pytestmark = pytest.mark.skipif(
    not _s3_configured(),
    reason="S3 credentials not configured (set TABLETGC_S3_* env vars)"
)


@pytest.fixture
def s3_storage(monkeypatch):
    """A fresh S3 volume under a unique prefix, emptied afterwards."""
    for key, value in _ORIGINAL_S3_ENV.items():
        if value is not None:
            monkeypatch.setenv(key, value)
    monkeypatch.setenv("TABLETGC_STORAGE_TYPE", "s3")

    storage = create_storage_backend(f"tabletgc-test-{uuid.uuid4().hex[:8]}")
    assert storage.__class__.__name__ == "S3StorageBackend"
    yield storage

    for path in storage.list_files(""):
        storage.delete_file(path)


def test_s3_files_and_trees(s3_storage):
    s3_storage.write_file("tables/4/t-0/F000.rf", b"rfile")
    s3_storage.write_file("tables/4/t-0/F001.rf", b"rfile")

    assert s3_storage.read_file("tables/4/t-0/F000.rf") == b"rfile"
    assert sorted(s3_storage.list_files("tables/4")) == ["tables/4/t-0/F000.rf", "tables/4/t-0/F001.rf"]
    assert s3_storage.delete_dir_if_empty("tables/4") is False

    s3_storage.delete_tree("tables/4/t-0")

    assert s3_storage.list_files("tables/4") == []
    assert s3_storage.delete_dir_if_empty("tables/4") is True


def test_s3_collection_pass(s3_storage):
    env = StorageGCEnvironment(s3_storage, GCConfig(candidate_batch_size=2))

    s3_storage.write_file("tables/4/t-0/F000.rf", b"rfile")
    s3_storage.write_file("tables/4/t-0/F001.rf", b"rfile")
    s3_storage.write_file("tables/5/t-0/F000.rf", b"rfile")
    env.candidates.add_all(["/4/t-0/F000.rf", "/4/t-0/F001.rf", "/5/t-0"])
    env.metadata.write_references([file_reference("4", None, "/t-0/F001.rf")])
    env.metadata.write_table_ids(["4"])

    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 2
    assert stats.table_dirs == 1
    assert not s3_storage.exists("tables/4/t-0/F000.rf")
    assert s3_storage.exists("tables/4/t-0/F001.rf")
    assert s3_storage.list_files("tables/5") == []
    assert env.candidates.list() == ["/4/t-0/F001.rf"]
