# Filename: cipherdrive/quota.py
from dataclasses import dataclass
from typing import MutableMapping
import threading
import weakref

from sqlmodel import Session, select, func

from .exceptions import QuotaExceededError
from .models import StoredFile


@dataclass(frozen=True)
class Usage:
    used: int
    quota: int

    @property
    def available(self) -> int:
        return max(0, self.quota - self.used)


class QuotaEnforcer:
    """
    Per-owner storage ceiling over the sum of stored (on-disk) sizes.

    Usage is always recomputed from the metadata store. `reserve` hands out a
    per-owner lock; callers hold it from the check until the new file's
    metadata is committed so that two uploads by the same owner in this
    process cannot both pass the check. Locks are held weakly and vanish once
    no upload for that owner is in flight.
    """

    def __init__(self, max_per_user: int):
        self.max_per_user = max_per_user
        self._locks: MutableMapping[int, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def reserve(self, owner_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            return lock

    def used_by(self, session: Session, owner_id: int) -> int:
        stmt = select(func.coalesce(func.sum(StoredFile.size), 0)).where(StoredFile.owner_id == owner_id)
        return int(session.exec(stmt).one())

    def usage(self, session: Session, owner_id: int) -> Usage:
        return Usage(used=self.used_by(session, owner_id), quota=self.max_per_user)

    def check(self, session: Session, owner_id: int, incoming_size: int) -> int:
        """Raise QuotaExceededError unless `incoming_size` more bytes fit. Returns current usage."""
        used = self.used_by(session, owner_id)
        if used + incoming_size > self.max_per_user:
            raise QuotaExceededError(
                used=used,
                available=max(0, self.max_per_user - used),
                requested=incoming_size,
            )
        return used
