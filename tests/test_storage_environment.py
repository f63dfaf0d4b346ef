import os

import pytest

from tabletgc import GarbageCollectionAlgorithm, GCConfig, StorageGCEnvironment
from tabletgc.marker_log import CANDIDATES_PREFIX
from tabletgc.metadata import directory_reference, file_reference
from tabletgc.storage_backend import LocalStorageBackend


def make_volume(tmp_path, candidate_batch_size=2, **config):
    storage = LocalStorageBackend(str(tmp_path / "accumulo"))
    env = StorageGCEnvironment(storage, GCConfig(candidate_batch_size=candidate_batch_size, **config))
    return storage, env


def touch(storage, path):
    storage.write_file(path, b"rfile")


def test_end_to_end_on_local_volume(tmp_path):
    storage, env = make_volume(tmp_path)

    for path in ("tables/4/t0/F000.rf", "tables/4/t0/F001.rf", "tables/5/t0/F005.rf"):
        touch(storage, path)

    env.candidates.add_all([
        "hdfs://foo:6000/accumulo/tables/4/t0/F000.rf",
        "hdfs://foo.com:6000/accumulo/tables/4/t0/F001.rf",
        "hdfs://foo.com:6000/accumulo/tables/5/t0/F005.rf",
    ])
    references = [
        file_reference("4", None, "hdfs://foo.com:6000/accumulo/tables/4/t0/F000.rf"),
        file_reference("4", None, "hdfs://foo:6000/accumulo/tables/4/t0/F001.rf"),
        file_reference("4", None, "hdfs://foo.com:6000/accumulo/tables/4/t0/F002.rf"),
        file_reference("5", None, "hdfs://foo.com:6000/accumulo/tables/5/t0/F005.rf"),
    ]
    env.metadata.write_references(references)

    gca = GarbageCollectionAlgorithm(env.config)

    assert gca.collect(env).deleted == 0
    assert len(env.candidates) == 3

    env.metadata.write_references(references[1:])
    stats = gca.collect(env)

    assert stats.deleted == 1
    assert not storage.exists("tables/4/t0/F000.rf")
    assert storage.exists("tables/4/t0/F001.rf")
    assert env.candidates.list() == [
        "hdfs://foo.com:6000/accumulo/tables/4/t0/F001.rf",
        "hdfs://foo.com:6000/accumulo/tables/5/t0/F005.rf",
    ]
    assert env.candidates_seen == 6
    assert env.in_use == 5


def test_dropped_table_is_removed(tmp_path):
    storage, env = make_volume(tmp_path)

    touch(storage, "tables/5/t-0/F000.rf")
    touch(storage, "tables/5/t-1/F001.rf")
    touch(storage, "tables/4/t-0/F000.rf")
    env.candidates.add_all(["/5/t-0", "hdfs://foo:6000/accumulo/tables/5/t-1", "/4/t-0/F000.rf"])
    env.metadata.write_table_ids(["4"])
    env.metadata.write_references([directory_reference("4", None, "/t-0")])

    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 3
    assert stats.table_dirs == 1
    assert not storage.exists("tables/5")
    assert storage.exists("tables/4/t-0")
    assert not storage.exists("tables/4/t-0/F000.rf")
    assert len(env.candidates) == 0


def test_blips_protect_bulk_load_directories(tmp_path):
    storage, env = make_volume(tmp_path)

    touch(storage, "tables/4/b-0/I000.rf")
    env.candidates.add_all(["/4/b-0", "/4/b-0/I000.rf"])
    env.blips.add("/4/b-0")

    gca = GarbageCollectionAlgorithm(env.config)
    assert gca.collect(env).deleted == 0
    assert storage.exists("tables/4/b-0/I000.rf")

    env.blips.remove("/4/b-0")
    assert gca.collect(env).deleted == 2
    assert not storage.exists("tables/4/b-0")


def test_missing_files_count_as_deleted(tmp_path):
    storage, env = make_volume(tmp_path)
    env.candidates.add_all(["/4/t-0/F000.rf", "/4/t-9"])

    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 2
    assert len(env.candidates) == 0


def test_failed_delete_keeps_candidate(tmp_path, monkeypatch):
    storage, env = make_volume(tmp_path)
    touch(storage, "tables/4/t-0/F000.rf")
    touch(storage, "tables/4/t-0/F001.rf")
    env.candidates.add_all(["/4/t-0/F000.rf", "/4/t-0/F001.rf"])

    real_delete = storage.delete_file

    def flaky_delete(path):
        if path == "tables/4/t-0/F001.rf":
            raise PermissionError("read-only file")
        real_delete(path)

    monkeypatch.setattr(storage, "delete_file", flaky_delete)
    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 1
    assert stats.errors == 1
    assert env.candidates.list() == ["/4/t-0/F001.rf"]
    assert storage.exists("tables/4/t-0/F001.rf")


def test_safe_mode_deletes_nothing(tmp_path):
    storage, env = make_volume(tmp_path, safe_mode=True)
    touch(storage, "tables/5/t-0/F000.rf")
    env.candidates.add_all(["/5/t-0", "/5/t-0/F000.rf"])

    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 2
    assert storage.exists("tables/5/t-0/F000.rf")
    assert len(env.candidates) == 2


def test_custom_table_dir(tmp_path):
    storage, env = make_volume(tmp_path, table_dir_name="tbls")
    touch(storage, "tbls/4/t-0/F000.rf")
    env.candidates.add("hdfs://foo:6000/accumulo/tbls/4/t-0/F000.rf")

    GarbageCollectionAlgorithm(env.config).collect(env)

    assert not storage.exists("tbls/4/t-0/F000.rf")
    assert os.path.isdir(os.path.join(storage.base_path, "tbls", "4", "t-0"))


def test_malformed_candidate_in_log_fails_the_pass(tmp_path):
    from tabletgc import MalformedPathError

    storage, env = make_volume(tmp_path)
    env.candidates.add("/lonely")

    with pytest.raises(MalformedPathError):
        GarbageCollectionAlgorithm(env.config).collect(env)
    assert env.candidates.list() == ["/lonely"]


def test_pass_lists_each_candidate_once(tmp_path, monkeypatch):
    storage, env = make_volume(tmp_path, candidate_batch_size=10)
    env.candidates.add_all([f"/4/t-0/F{n:03d}.rf" for n in range(100)])

    listed = []
    real_list_files = storage.list_files

    def counting_list_files(prefix, **kwargs):
        result = real_list_files(prefix, **kwargs)
        if prefix.startswith(CANDIDATES_PREFIX):
            listed.append(len(result))
        return result

    monkeypatch.setattr(storage, "list_files", counting_list_files)
    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 100
    assert stats.pages == 10
    assert listed == [10] * 10 + [0]


def test_long_absolute_candidates(tmp_path):
    storage, env = make_volume(tmp_path)
    base = "hdfs://namenode.example.com:8020/" + "deeply/nested/volume/" * 10
    touch(storage, "tables/4/t-0/F000.rf")
    touch(storage, "tables/4/t-0/F001.rf")
    env.candidates.add_all([base + "tables/4/t-0/F000.rf", base + "tables/4/t-0/F001.rf"])
    env.metadata.write_references([file_reference("4", None, "/t-0/F001.rf")])

    stats = GarbageCollectionAlgorithm(env.config).collect(env)

    assert stats.deleted == 1
    assert not storage.exists("tables/4/t-0/F000.rf")
    assert env.candidates.list() == [base + "tables/4/t-0/F001.rf"]
