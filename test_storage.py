"""File record stores, access log and ciphertext blob stores."""

import json

import pytest

from filevault.errors import ConflictError, NotFoundError, StorageIOError
from filevault.storage import (
    AccessAction,
    AccessLogEntry,
    EncryptedFile,
    FilesystemBlobStore,
    InMemoryBlobStore,
    InMemoryStore,
    PersistentStore,
)


def make_record(owner="u1", name="report.pdf", **overrides):
    fields = dict(
        plaintext_size=10,
        stored_size=16,
        integrity_digest="ab" * 32,
        cipher_algorithm="aes-256-cbc",
        cipher_key="00" * 32,
        cipher_iv="11" * 16,
        storage_locator="f" * 32 + ".bin",
    )
    fields.update(overrides)
    return EncryptedFile.new(owner, name, "application/pdf", **fields)


@pytest.fixture(params=["memory", "persistent"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return PersistentStore(tmp_path / "records.json")


def test_create_and_get(store):
    record = store.create(make_record())
    assert store.get(record.id) == record
    assert store.exists(record.id)


def test_get_missing_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.get("missing")
    assert not store.exists("missing")


def test_create_conflict_on_duplicate_id(store):
    record = store.create(make_record())
    with pytest.raises(ConflictError):
        store.create(make_record(file_id=record.id))


def test_list_by_owner_is_newest_first(store):
    first = store.create(make_record(name="a"))
    second = store.create(make_record(name="b"))
    store.create(make_record(owner="u2", name="c"))

    assert [r.id for r in store.list_by_owner("u1")] == [second.id, first.id]
    assert store.list_by_owner("nobody") == []
    # re-callable and reflects current state
    store.delete(second.id)
    assert [r.id for r in store.list_by_owner("u1")] == [first.id]


def test_touch_accessed_only_changes_timestamp(store):
    record = store.create(make_record())
    store.touch_accessed(record.id)
    touched = store.get(record.id)
    assert touched.last_accessed_at >= record.last_accessed_at
    assert touched.cipher_key == record.cipher_key
    assert touched.storage_locator == record.storage_locator
    # idempotent and tolerant of missing ids
    store.touch_accessed(record.id)
    store.touch_accessed("missing")


def test_delete_returns_false_when_absent(store):
    record = store.create(make_record())
    assert store.delete(record.id) is True
    assert store.delete(record.id) is False


def test_access_log_newest_first_with_limit(store):
    record = store.create(make_record())
    for action in (AccessAction.UPLOAD, AccessAction.VIEW, AccessAction.DOWNLOAD):
        store.append_access(AccessLogEntry.new(record.id, "u1", action, "10.0.0.1"))

    recent = store.recent_access(record.id, limit=2)
    assert [e.action for e in recent] == [AccessAction.DOWNLOAD, AccessAction.VIEW]
    assert recent[0].source_address == "10.0.0.1"


def test_access_log_cascades_with_file(store):
    record = store.create(make_record())
    store.append_access(AccessLogEntry.new(record.id, "u1", AccessAction.UPLOAD))
    store.delete(record.id)
    assert store.recent_access(record.id) == []
    with pytest.raises(NotFoundError):
        store.append_access(AccessLogEntry.new(record.id, "u1", AccessAction.VIEW))


def test_persistent_store_survives_reload(tmp_path):
    path = tmp_path / "records.json"
    store = PersistentStore(path)
    record = store.create(make_record(owner=7))
    store.append_access(AccessLogEntry.new(record.id, 7, AccessAction.UPLOAD, "127.0.0.1"))

    reloaded = PersistentStore(path)
    assert reloaded.get(record.id) == record
    assert reloaded.list_by_owner(7) == [record]
    assert reloaded.recent_access(record.id)[0].action is AccessAction.UPLOAD

    on_disk = json.loads(path.read_text())
    assert on_disk["files"][0]["id"] == record.id


class FlakyStore(PersistentStore):
    """Persistent store whose index writes can be switched to fail."""

    fail = False

    def _changed(self):
        if self.fail:
            raise StorageIOError("disk full")
        super()._changed()


def test_failed_write_on_delete_keeps_record_and_log(tmp_path):
    path = tmp_path / "records.json"
    store = FlakyStore(path)
    record = store.create(make_record())
    store.append_access(AccessLogEntry.new(record.id, "u1", AccessAction.UPLOAD))

    store.fail = True
    with pytest.raises(StorageIOError):
        store.delete(record.id)
    assert store.get(record.id) == record
    assert len(store.recent_access(record.id)) == 1

    store.fail = False
    assert PersistentStore(path).get(record.id) == record
    assert store.delete(record.id) is True
    assert not PersistentStore(path).exists(record.id)


def test_failed_write_on_touch_and_log_changes_nothing(tmp_path):
    store = FlakyStore(tmp_path / "records.json")
    record = store.create(make_record())

    store.fail = True
    with pytest.raises(StorageIOError):
        store.touch_accessed(record.id)
    with pytest.raises(StorageIOError):
        store.append_access(AccessLogEntry.new(record.id, "u1", AccessAction.VIEW))
    with pytest.raises(StorageIOError):
        store.create(make_record())

    assert store.get(record.id).last_accessed_at == record.last_accessed_at
    assert store.recent_access(record.id) == []
    assert store.list_by_owner("u1") == [record]


def test_public_dict_has_no_key_material():
    view = make_record().public_dict()
    assert "cipher_key" not in view
    assert "cipher_iv" not in view
    assert "storage_locator" not in view
    assert view["integrity_digest"] == "ab" * 32
    assert "cipher_key" not in repr(make_record())


@pytest.fixture(params=["memory", "filesystem"])
def blobs(request, tmp_path):
    if request.param == "memory":
        return InMemoryBlobStore()
    return FilesystemBlobStore(tmp_path)


def test_blob_put_read_delete(blobs):
    locator = blobs.put(b"ciphertext bytes")
    assert blobs.exists(locator)
    assert blobs.read(locator) == b"ciphertext bytes"
    assert blobs.delete(locator) is True
    assert blobs.delete(locator) is False
    assert not blobs.exists(locator)


def test_blob_put_from_returns_fill_result(blobs):
    locator, result = blobs.put_from(lambda fh: fh.write(b"12345") and "done")
    assert result == "done"
    assert blobs.read(locator) == b"12345"


def test_failed_fill_leaves_no_blob(tmp_path):
    store = FilesystemBlobStore(tmp_path)

    def boom(fh):
        fh.write(b"partial")
        raise ValueError("reader failed")

    with pytest.raises(ValueError):
        store.put_from(boom)
    assert list((tmp_path / "encrypted").iterdir()) == []


def test_missing_blob_is_storage_error(blobs):
    with pytest.raises(StorageIOError):
        blobs.read("0" * 32 + ".bin")


@pytest.mark.parametrize("locator", ["../records.json", "abc", "/etc/passwd"])
def test_locator_cannot_escape_namespace(blobs, locator):
    with pytest.raises(StorageIOError):
        blobs.open(locator)


def test_filesystem_blobs_live_under_encrypted_namespace(tmp_path):
    store = FilesystemBlobStore(tmp_path)
    locator = store.put(b"x")
    assert (tmp_path / "encrypted" / locator).read_bytes() == b"x"


def test_user_directory_shares_the_user_id_type():
    from filevault.accounts import models as accounts_models
    from filevault.storage import models as storage_models

    assert accounts_models.UserId is storage_models.UserId
