"""Tests for the StorageEngine upload/download/share pipeline."""
import gzip
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from cipherdrive import storage_engine as storage_engine_module
from cipherdrive.crypto import IV_SIZE
from cipherdrive.exceptions import (
    AccessDeniedError,
    DecompressionError,
    InvalidContentError,
    NotFoundError,
    QuotaExceededError,
    StorageCorruptedError,
    StorageIOError,
    UserNotFoundError,
)
from cipherdrive.models import AccessGrant, AccessLevel, StoredFile, User
from cipherdrive.quota import QuotaEnforcer
from cipherdrive.storage_engine import StorageEngine

CONTENT = b"Dear diary,\nthe quick brown fox jumps over the lazy dog.\n"


@pytest.fixture
def small_quota_storage(storage):
    """Same pipeline with a 1000-byte per-user ceiling."""
    return StorageEngine(
        db_engine=storage.db_engine,
        blobs=storage.blobs,
        encryptor=storage.encryptor,
        validator=storage.validator,
        quota=QuotaEnforcer(1000),
    )


def _grants(db_engine, file_id):
    with Session(db_engine) as session:
        return session.exec(select(AccessGrant).where(AccessGrant.file_id == file_id)).all()


class TestUpload:
    """Upload path."""

    def test_roundtrip(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        downloaded = storage.download_file(stored.id, alice)

        assert downloaded.content == CONTENT
        assert downloaded.filename == "a.txt"
        assert downloaded.content_type == "text/plain"

    def test_metadata_fields(self, storage, alice):
        stored = storage.upload_file(CONTENT, "notes.txt", alice)

        assert stored.owner_id == alice.id
        assert stored.original_size == len(CONTENT)
        assert stored.storage_path == f"{stored.id}_notes.txt"
        assert stored.size == storage.blobs.size(stored.storage_path)

    def test_on_disk_layout_is_iv_then_gzip_ciphertext(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)
        raw = storage.blobs.path_for(stored.storage_path).read_bytes()

        iv, payload = raw[:IV_SIZE], raw[IV_SIZE:]
        ciphertext = gzip.decompress(payload)

        assert len(raw) == stored.size
        assert CONTENT not in raw
        assert storage.encryptor.decrypt(ciphertext, iv) == CONTENT

    def test_identical_uploads_use_distinct_ivs(self, storage, alice):
        first = storage.upload_file(CONTENT, "same.txt", alice)
        second = storage.upload_file(CONTENT, "same.txt", alice)

        first_blob = storage.blobs.read(first.storage_path)
        second_blob = storage.blobs.read(second.storage_path)

        assert first.storage_path != second.storage_path
        assert first_blob.iv != second_blob.iv
        assert gzip.decompress(first_blob.payload) != gzip.decompress(second_blob.payload)

    def test_path_traversal_name_lands_in_root(self, storage, alice):
        stored = storage.upload_file(CONTENT, "../../etc/passwd", alice)

        assert "/" not in stored.storage_path
        assert ".._.._etc_passwd" in stored.storage_path
        on_disk = storage.blobs.path_for(stored.storage_path)
        assert on_disk.parent == storage.blobs.root
        assert on_disk.exists()

    def test_invalid_content_leaves_nothing_behind(self, storage, alice):
        with pytest.raises(InvalidContentError):
            storage.upload_file(b"", "empty.txt", alice)

        assert list(storage.blobs.root.iterdir()) == []
        assert storage.list_accessible(alice) == []

    def test_metadata_failure_removes_written_bytes(self, storage, alice, monkeypatch):
        written = []
        real_write = storage.blobs.write

        def recording_write(name, iv, payload):
            written.append(name)
            return real_write(name, iv, payload)

        class FailingCommitSession(Session):
            def commit(self):
                raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(storage.blobs, "write", recording_write)
        monkeypatch.setattr(storage_engine_module, "Session", FailingCommitSession)

        with pytest.raises(StorageIOError):
            storage.upload_file(CONTENT, "doomed.txt", alice)

        assert len(written) == 1
        assert not storage.blobs.exists(written[0])
        assert list(storage.blobs.root.iterdir()) == []


class TestQuota:
    """Quota enforcement through the upload path."""

    def test_upload_exactly_filling_quota_succeeds(self, small_quota_storage, alice, add_stored_row):
        add_stored_row(alice, 900)

        stored = small_quota_storage.upload_file(b"a" * 100, "fits.txt", alice)

        assert stored.original_size == 100

    def test_upload_one_byte_over_quota_fails(self, small_quota_storage, alice, add_stored_row):
        add_stored_row(alice, 900)

        with pytest.raises(QuotaExceededError) as excinfo:
            small_quota_storage.upload_file(b"a" * 101, "too-big.txt", alice)

        assert excinfo.value.used == 900
        assert excinfo.value.requested == 101
        assert list(small_quota_storage.blobs.root.iterdir()) == []

    def test_quota_is_per_owner(self, small_quota_storage, alice, bob, add_stored_row):
        add_stored_row(alice, 1000)

        small_quota_storage.upload_file(b"a" * 100, "bobs.txt", bob)

    def test_concurrent_uploads_by_one_owner_respect_ceiling(self, small_quota_storage, alice):
        # each 400-byte upload occupies a bit over 450 bytes on disk, so two fit under 1000
        workers = 6
        barrier = threading.Barrier(workers)

        def upload(i):
            barrier.wait(timeout=10)
            try:
                return small_quota_storage.upload_file(b"a" * 400, f"part-{i}.txt", alice)
            except QuotaExceededError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(upload, range(workers)))

        rejected = [r for r in results if isinstance(r, QuotaExceededError)]
        usage = small_quota_storage.usage(alice)
        assert len(results) - len(rejected) == 2
        assert len(rejected) == workers - 2
        assert usage.used <= 1000
        assert len(list(small_quota_storage.blobs.root.iterdir())) == 2

    def test_usage_reports_stored_sizes(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        usage = storage.usage(alice)

        assert usage.used == stored.size
        assert usage.available == usage.quota - stored.size


class TestAuthorization:
    """Owner, VIEW grantee, OWNER grantee, and stranger."""

    def test_stranger_cannot_touch_file(self, storage, alice, bob):
        stored = storage.upload_file(CONTENT, "private.txt", alice)

        with pytest.raises(NotFoundError):
            storage.download_file(stored.id, bob)
        with pytest.raises(NotFoundError):
            storage.get_metadata(stored.id, bob)
        with pytest.raises(NotFoundError):
            storage.rename_file(stored.id, "mine.txt", bob)
        with pytest.raises(NotFoundError):
            storage.delete_file(stored.id, bob)
        with pytest.raises(NotFoundError):
            storage.share_file(stored.id, "bob", False, bob)

        assert storage.list_accessible(bob) == []

    def test_view_grantee_can_only_read(self, storage, alice, bob, carol):
        stored = storage.upload_file(CONTENT, "shared.txt", alice)
        storage.share_file(stored.id, "bob", True, alice)

        assert storage.download_file(stored.id, bob).content == CONTENT
        assert storage.get_metadata(stored.id, bob).id == stored.id
        with pytest.raises(AccessDeniedError):
            storage.rename_file(stored.id, "renamed.txt", bob)
        with pytest.raises(AccessDeniedError):
            storage.delete_file(stored.id, bob)
        with pytest.raises(AccessDeniedError):
            storage.share_file(stored.id, "carol", True, bob)

        assert storage.blobs.exists(stored.storage_path)

    def test_owner_grantee_has_owner_rights(self, storage, alice, bob, carol):
        stored = storage.upload_file(CONTENT, "delegated.txt", alice)
        storage.share_file(stored.id, "bob", False, alice)

        renamed = storage.rename_file(stored.id, "by-bob.txt", bob)
        storage.share_file(stored.id, "carol", True, bob)

        assert renamed.filename == "by-bob.txt"
        assert renamed.owner_id == alice.id
        assert storage.download_file(stored.id, carol).content == CONTENT

        storage.delete_file(stored.id, bob)
        with pytest.raises(NotFoundError):
            storage.get_metadata(stored.id, alice)

    def test_share_with_unknown_user(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        with pytest.raises(UserNotFoundError):
            storage.share_file(stored.id, "nobody", True, alice)

    def test_resharing_adds_another_grant(self, storage, db_engine, alice, bob):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        storage.share_file(stored.id, "bob", True, alice)
        storage.share_file(stored.id, "bob", False, alice)

        levels = sorted(g.access_level for g in _grants(db_engine, stored.id))
        assert levels == [AccessLevel.OWNER, AccessLevel.VIEW]
        # the OWNER grant wins for owner-level checks
        assert storage.rename_file(stored.id, "upgraded.txt", bob).filename == "upgraded.txt"

    def test_revoke_removes_all_grants_for_user(self, storage, db_engine, alice, bob):
        stored = storage.upload_file(CONTENT, "a.txt", alice)
        storage.share_file(stored.id, "bob", True, alice)
        storage.share_file(stored.id, "bob", True, alice)

        assert storage.revoke_access(stored.id, "bob", alice) == 2

        assert _grants(db_engine, stored.id) == []
        with pytest.raises(NotFoundError):
            storage.download_file(stored.id, bob)

    def test_unknown_file_id(self, storage, alice):
        with pytest.raises(NotFoundError):
            storage.download_file("does-not-exist", alice)


class TestLifecycle:
    """Rename, delete, listing, and admin queries."""

    def test_rename_keeps_storage_path_and_bytes(self, storage, alice):
        stored = storage.upload_file(CONTENT, "before.txt", alice)
        raw_before = storage.blobs.path_for(stored.storage_path).read_bytes()

        renamed = storage.rename_file(stored.id, "after.txt", alice)

        assert renamed.filename == "after.txt"
        assert renamed.storage_path == stored.storage_path
        assert storage.blobs.path_for(stored.storage_path).read_bytes() == raw_before
        assert storage.download_file(stored.id, alice).filename == "after.txt"

    def test_rename_to_blank_is_rejected(self, storage, alice):
        stored = storage.upload_file(CONTENT, "before.txt", alice)

        with pytest.raises(InvalidContentError):
            storage.rename_file(stored.id, "  ", alice)

    def test_delete_removes_bytes_metadata_and_grants(self, storage, db_engine, alice, bob):
        stored = storage.upload_file(CONTENT, "a.txt", alice)
        storage.share_file(stored.id, "bob", True, alice)

        storage.delete_file(stored.id, alice)

        assert not storage.blobs.exists(stored.storage_path)
        assert _grants(db_engine, stored.id) == []
        with Session(db_engine) as session:
            assert session.get(StoredFile, stored.id) is None

    def test_failed_byte_deletion_keeps_metadata(self, storage, alice, monkeypatch):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        def failing_delete(name):
            raise StorageIOError("Failed to delete file")

        monkeypatch.setattr(storage.blobs, "delete", failing_delete)

        with pytest.raises(StorageIOError):
            storage.delete_file(stored.id, alice)

        assert storage.get_metadata(stored.id, alice).id == stored.id

    def test_list_accessible_includes_shared_without_duplicates(self, storage, alice, bob):
        own = storage.upload_file(CONTENT, "bobs-own.txt", bob)
        shared = storage.upload_file(CONTENT, "from-alice.txt", alice)
        storage.share_file(shared.id, "bob", True, alice)
        storage.share_file(shared.id, "bob", False, alice)
        storage.upload_file(CONTENT, "alice-only.txt", alice)

        ids = [f.id for f in storage.list_accessible(bob)]

        assert sorted(ids) == sorted([own.id, shared.id])

    def test_list_accessible_keyword_and_paging(self, storage, alice):
        storage.upload_file(CONTENT, "Report-Q1.txt", alice)
        storage.upload_file(CONTENT, "report-q2.txt", alice)
        storage.upload_file(CONTENT, "photo-notes.txt", alice)

        matches = storage.list_accessible(alice, keyword="report")
        page = storage.list_accessible(alice, limit=2, offset=0)

        assert sorted(f.filename for f in matches) == ["Report-Q1.txt", "report-q2.txt"]
        assert len(page) == 2

    def test_list_shared_with(self, storage, alice, bob):
        viewed = storage.upload_file(CONTENT, "viewed.txt", alice)
        delegated = storage.upload_file(CONTENT, "delegated.txt", alice)
        storage.share_file(viewed.id, "bob", True, alice)
        storage.share_file(delegated.id, "bob", False, alice)

        assert {f.id for f in storage.list_shared_with(bob)} == {viewed.id, delegated.id}
        assert [f.id for f in storage.list_shared_with(bob, read_only=True)] == [viewed.id]

    def test_admin_queries(self, storage, alice, bob, add_stored_row):
        small = add_stored_row(alice, 10)
        large = add_stored_row(bob, 5000, filename="large.txt")

        assert storage.total_storage_used() == 5010
        assert [f.id for f in storage.files_larger_than(10)] == [large.id]
        assert storage.count_files() == 2
        assert {f.id for f in storage.list_all_files()} == {small.id, large.id}


class TestAccountDeletion:
    """Removing a user and everything they own."""

    def test_removes_owned_files_grants_and_user(self, storage, db_engine, alice, bob):
        kept = storage.upload_file(CONTENT, "bobs.txt", bob)
        storage.share_file(kept.id, "alice", True, bob)
        first = storage.upload_file(CONTENT, "one.txt", alice)
        second = storage.upload_file(CONTENT, "two.txt", alice)
        storage.share_file(first.id, "bob", False, alice)

        removed = storage.delete_account(alice)

        assert removed == 2
        assert not storage.blobs.exists(first.storage_path)
        assert not storage.blobs.exists(second.storage_path)
        with Session(db_engine) as session:
            assert session.get(User, alice.id) is None
            assert session.get(StoredFile, first.id) is None
            assert session.exec(select(AccessGrant)).all() == []
        assert [f.id for f in storage.list_accessible(bob)] == [kept.id]
        assert storage.download_file(kept.id, bob).content == CONTENT

    def test_failed_byte_deletion_keeps_account(self, storage, db_engine, alice, monkeypatch):
        stored = storage.upload_file(CONTENT, "a.txt", alice)

        def failing_delete(name):
            raise StorageIOError("Failed to delete file")

        monkeypatch.setattr(storage.blobs, "delete", failing_delete)

        with pytest.raises(StorageIOError):
            storage.delete_account(alice)

        with Session(db_engine) as session:
            assert session.get(User, alice.id) is not None
        assert storage.get_metadata(stored.id, alice).id == stored.id


class TestCorruption:
    """Damaged blobs surface as storage errors, never as wrong plaintext."""

    def test_truncated_blob(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)
        storage.blobs.path_for(stored.storage_path).write_bytes(b"short")

        with pytest.raises(StorageCorruptedError):
            storage.download_file(stored.id, alice)

    def test_garbled_payload(self, storage, alice):
        stored = storage.upload_file(CONTENT, "a.txt", alice)
        path = storage.blobs.path_for(stored.storage_path)
        raw = path.read_bytes()
        path.write_bytes(raw[:IV_SIZE] + b"not gzip at all")

        with pytest.raises(DecompressionError):
            storage.download_file(stored.id, alice)
