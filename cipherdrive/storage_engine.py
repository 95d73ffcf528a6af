# Filename: cipherdrive/storage_engine.py
"""
Upload, download, and lifecycle of encrypted files.

Write path: validate -> quota check -> encrypt -> compress -> write
`IV || payload` -> commit metadata. Read path is the inverse. Every method
takes the acting user explicitly and opens its own metadata session.
"""
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Union
import io
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func, col

from .compression import Compressor
from .config import Settings
from .crypto import Encryptor
from .exceptions import (
    AccessDeniedError,
    InvalidContentError,
    NotFoundError,
    StorageIOError,
    UserNotFoundError,
)
from .keys import KeyManager
from .models import AccessGrant, AccessLevel, StoredFile, User
from .permissions import PermissionRegistry
from .quota import QuotaEnforcer, Usage
from .storage import BlobStore, make_storage_name, sanitize_filename
from .validation import FileValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadedFile:
    content: bytes
    filename: str
    content_type: str


class StorageEngine:
    def __init__(
        self,
        db_engine: Engine,
        blobs: BlobStore,
        encryptor: Encryptor,
        validator: FileValidator,
        quota: QuotaEnforcer,
        compressor: Optional[Compressor] = None,
        permissions: Optional[PermissionRegistry] = None,
    ):
        self.db_engine = db_engine
        self.blobs = blobs
        self.encryptor = encryptor
        self.validator = validator
        self.quota = quota
        self.compressor = compressor or Compressor()
        self.permissions = permissions or PermissionRegistry()

    @classmethod
    def from_settings(cls, db_engine: Engine, settings: Settings) -> "StorageEngine":
        blobs = BlobStore(settings.storage_path)
        blobs.init()
        return cls(
            db_engine=db_engine,
            blobs=blobs,
            encryptor=Encryptor(KeyManager(settings.key_file_path)),
            validator=FileValidator(settings.max_upload_size_bytes, settings.allowed_content_types),
            quota=QuotaEnforcer(settings.max_storage_per_user_bytes),
        )

    # --- lookups ---

    def _get_file(self, session: Session, file_id: str) -> StoredFile:
        stored = session.get(StoredFile, file_id)
        if stored is None:
            raise NotFoundError(f"File not found for ID: {file_id}")
        return stored

    def _get_readable(self, session: Session, file_id: str, user: User) -> StoredFile:
        stored = self._get_file(session, file_id)
        if not self.permissions.has_any_access(session, user, stored):
            raise NotFoundError(f"File not found for ID: {file_id}")
        return stored

    def _get_owned(self, session: Session, file_id: str, user: User) -> StoredFile:
        stored = self._get_readable(session, file_id, user)
        if not self.permissions.is_owner_equivalent(session, user, stored):
            raise AccessDeniedError("Owner access is required for this operation")
        return stored

    def _get_user_by_username(self, session: Session, username: str) -> User:
        user = session.exec(select(User).where(User.username == username)).first()
        if user is None:
            raise UserNotFoundError(f"User not found: {username}")
        return user

    # --- write path ---

    def upload_file(self, content: Union[bytes, BinaryIO], filename: Optional[str], owner: User) -> StoredFile:
        stream = io.BytesIO(content) if isinstance(content, (bytes, bytearray)) else content
        checked = self.validator.validate(stream, filename)

        with self.quota.reserve(owner.id):
            with Session(self.db_engine) as session:
                self.quota.check(session, owner.id, checked.size)

            stored = StoredFile(
                filename=sanitize_filename(filename),
                content_type=checked.content_type,
                original_size=checked.size,
                owner_id=owner.id,
            )
            stored.storage_path = make_storage_name(stored.id, filename)

            encrypted = self.encryptor.encrypt_stream(stream)
            payload = self.compressor.compress(encrypted.ciphertext)
            stored.size = self.blobs.write(stored.storage_path, encrypted.iv, payload)

            try:
                with Session(self.db_engine) as session:
                    session.add(stored)
                    session.commit()
                    session.refresh(stored)
            except SQLAlchemyError as exc:
                self.blobs.discard(stored.storage_path)
                raise StorageIOError(f"Failed to store file: {stored.filename}") from exc
            except BaseException:
                self.blobs.discard(stored.storage_path)
                raise

        logger.info("Stored file %s (%d -> %d bytes) for user %s", stored.id, stored.original_size, stored.size, owner.username)
        return stored

    # --- read path ---

    def get_metadata(self, file_id: str, requester: User) -> StoredFile:
        with Session(self.db_engine) as session:
            return self._get_readable(session, file_id, requester)

    def download_file(self, file_id: str, requester: User) -> DownloadedFile:
        stored = self.get_metadata(file_id, requester)
        blob = self.blobs.read(stored.storage_path)
        ciphertext = self.compressor.decompress(blob.payload)
        plaintext = self.encryptor.decrypt(ciphertext, blob.iv)
        logger.debug("User %s downloaded file %s", requester.username, file_id)
        return DownloadedFile(content=plaintext, filename=stored.filename, content_type=stored.content_type)

    def list_accessible(
        self,
        user: User,
        keyword: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[StoredFile]:
        with Session(self.db_engine) as session:
            return self.permissions.accessible_files(session, user, keyword=keyword, limit=limit, offset=offset)

    def list_shared_with(self, user: User, read_only: bool = False) -> List[StoredFile]:
        level = AccessLevel.VIEW if read_only else None
        with Session(self.db_engine) as session:
            return self.permissions.shared_with(session, user, level)

    def usage(self, user: User) -> Usage:
        with Session(self.db_engine) as session:
            return self.quota.usage(session, user.id)

    # --- owner operations ---

    def rename_file(self, file_id: str, new_name: str, requester: User) -> StoredFile:
        if new_name is None or not new_name.strip():
            raise InvalidContentError("New filename must not be empty")
        with Session(self.db_engine) as session:
            stored = self._get_owned(session, file_id, requester)
            stored.filename = new_name.strip()
            session.add(stored)
            session.commit()
            session.refresh(stored)
            logger.debug("User %s renamed file %s", requester.username, file_id)
            return stored

    def delete_file(self, file_id: str, requester: User) -> None:
        with Session(self.db_engine) as session:
            stored = self._get_owned(session, file_id, requester)
            # bytes first; if this fails the metadata row must stay
            self.blobs.delete(stored.storage_path)
            try:
                self.permissions.delete_grants_for(session, stored.id)
                session.flush()
                session.delete(stored)
                session.commit()
            except SQLAlchemyError as exc:
                logger.error("Deleted bytes of file %s but failed to delete its metadata", file_id, exc_info=True)
                raise StorageIOError("Failed to delete file") from exc
        logger.info("User %s deleted file %s", requester.username, file_id)

    def share_file(self, file_id: str, grantee_username: str, read_only: bool, requester: User) -> AccessGrant:
        level = AccessLevel.VIEW if read_only else AccessLevel.OWNER
        with Session(self.db_engine) as session:
            stored = self._get_owned(session, file_id, requester)
            grantee = self._get_user_by_username(session, grantee_username)
            access_grant = self.permissions.grant(session, stored, grantee, level)
            session.commit()
            session.refresh(access_grant)
        logger.info("User %s shared file %s with %s (%s)", requester.username, file_id, grantee_username, level.value)
        return access_grant

    def revoke_access(self, file_id: str, grantee_username: str, requester: User) -> int:
        with Session(self.db_engine) as session:
            stored = self._get_owned(session, file_id, requester)
            grantee = self._get_user_by_username(session, grantee_username)
            revoked = self.permissions.revoke(session, stored.id, grantee.id)
            session.commit()
        logger.info("User %s revoked %d grant(s) on file %s from %s", requester.username, revoked, file_id, grantee_username)
        return revoked

    # --- accounts ---

    def delete_account(self, user: User) -> int:
        """
        Remove a user together with everything they own.

        Bytes of every owned file go first; a byte deletion failure leaves all
        metadata in place. Then grants on the owned files, grants the user
        holds, the file records and the user row are removed in one commit.
        Returns the number of files removed.
        """
        with Session(self.db_engine) as session:
            owned = list(session.exec(select(StoredFile).where(StoredFile.owner_id == user.id)).all())
            for stored in owned:
                self.blobs.delete(stored.storage_path)
            try:
                for stored in owned:
                    self.permissions.delete_grants_for(session, stored.id)
                self.permissions.delete_grants_held_by(session, user.id)
                session.flush()
                for stored in owned:
                    session.delete(stored)
                session.flush()
                account = session.get(User, user.id)
                if account is not None:
                    session.delete(account)
                session.commit()
            except SQLAlchemyError as exc:
                logger.error("Deleted bytes of %d file(s) but failed to delete account %s", len(owned), user.username, exc_info=True)
                raise StorageIOError("Failed to delete account") from exc
        logger.info("Deleted account %s and %d file(s)", user.username, len(owned))
        return len(owned)

    # --- admin queries ---

    def total_storage_used(self) -> int:
        with Session(self.db_engine) as session:
            return int(session.exec(select(func.coalesce(func.sum(StoredFile.size), 0))).one())

    def files_larger_than(self, size_in_bytes: int) -> List[StoredFile]:
        with Session(self.db_engine) as session:
            stmt = select(StoredFile).where(StoredFile.size > size_in_bytes).order_by(col(StoredFile.size).desc())
            return list(session.exec(stmt).all())

    def list_all_files(self) -> List[StoredFile]:
        with Session(self.db_engine) as session:
            return list(session.exec(select(StoredFile).order_by(col(StoredFile.uploaded_at).desc())).all())

    def count_files(self) -> int:
        with Session(self.db_engine) as session:
            return int(session.exec(select(func.count()).select_from(StoredFile)).one())
