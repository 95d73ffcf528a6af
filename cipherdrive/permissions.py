# Filename: cipherdrive/permissions.py
from typing import List, Optional

from sqlmodel import Session, select, or_, col

from .models import AccessGrant, AccessLevel, StoredFile, User


class PermissionRegistry:
    """
    Sharing ACL and the authorization predicates built on it.

    The primary owner is `StoredFile.owner_id`; everyone else gets access
    through AccessGrant rows. An OWNER grant confers every right of the
    primary owner except being the owner of record.
    """

    def _grant_exists(self, session: Session, file_id: str, user_id: int, level: Optional[AccessLevel] = None) -> bool:
        stmt = select(AccessGrant.id).where(AccessGrant.file_id == file_id, AccessGrant.user_id == user_id)
        if level is not None:
            stmt = stmt.where(AccessGrant.access_level == level)
        return session.exec(stmt.limit(1)).first() is not None

    def is_owner_equivalent(self, session: Session, user: User, stored: StoredFile) -> bool:
        if stored.owner_id == user.id:
            return True
        return self._grant_exists(session, stored.id, user.id, AccessLevel.OWNER)

    def has_any_access(self, session: Session, user: User, stored: StoredFile) -> bool:
        if stored.owner_id == user.id:
            return True
        return self._grant_exists(session, stored.id, user.id)

    def grant(self, session: Session, stored: StoredFile, grantee: User, level: AccessLevel) -> AccessGrant:
        # repeated shares add rows rather than updating an existing grant
        access_grant = AccessGrant(file_id=stored.id, user_id=grantee.id, access_level=level)
        session.add(access_grant)
        return access_grant

    def grants_for(self, session: Session, file_id: str) -> List[AccessGrant]:
        return list(session.exec(select(AccessGrant).where(AccessGrant.file_id == file_id)).all())

    def revoke(self, session: Session, file_id: str, user_id: int) -> int:
        stmt = select(AccessGrant).where(AccessGrant.file_id == file_id, AccessGrant.user_id == user_id)
        revoked = session.exec(stmt).all()
        for access_grant in revoked:
            session.delete(access_grant)
        return len(revoked)

    def delete_grants_for(self, session: Session, file_id: str) -> int:
        grants = self.grants_for(session, file_id)
        for access_grant in grants:
            session.delete(access_grant)
        return len(grants)

    def delete_grants_held_by(self, session: Session, user_id: int) -> int:
        held = session.exec(select(AccessGrant).where(AccessGrant.user_id == user_id)).all()
        for access_grant in held:
            session.delete(access_grant)
        return len(held)

    def accessible_files(
        self,
        session: Session,
        user: User,
        keyword: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[StoredFile]:
        """Files the user owns or holds any grant on, newest first, without duplicates."""
        shared_ids = select(AccessGrant.file_id).where(AccessGrant.user_id == user.id)
        stmt = select(StoredFile).where(
            or_(StoredFile.owner_id == user.id, col(StoredFile.id).in_(shared_ids))
        )
        if keyword:
            stmt = stmt.where(col(StoredFile.filename).ilike(f"%{keyword}%"))
        stmt = stmt.order_by(col(StoredFile.uploaded_at).desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.exec(stmt).all())

    def shared_with(self, session: Session, user: User, level: Optional[AccessLevel] = None) -> List[StoredFile]:
        """Files other users have shared with `user`, optionally only at `level`."""
        grants = select(AccessGrant.file_id).where(AccessGrant.user_id == user.id)
        if level is not None:
            grants = grants.where(AccessGrant.access_level == level)
        stmt = (
            select(StoredFile)
            .where(col(StoredFile.id).in_(grants), StoredFile.owner_id != user.id)
            .order_by(col(StoredFile.uploaded_at).desc())
        )
        return list(session.exec(stmt).all())
