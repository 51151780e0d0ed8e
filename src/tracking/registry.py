from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .models import RegistryRoot, TrackedName, UserRecord, utcnow
from .store import DocumentStore

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RemoveResult:
    removed: bool
    user_dropped: bool


class TrackedNameRegistry:
    """
    User -> tracked-name mapping on top of a DocumentStore.

    Every operation is a full read-modify-write of the document, serialized
    by a lock owned by this instance, so a webhook-triggered add and a
    sweep-triggered remove never overwrite each other.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def store(self) -> DocumentStore:
        return self._store

    async def _load(self) -> RegistryRoot:
        root, migrated = await self._store.load()
        if migrated and not self._initialized:
            log.info("Tracking document migrated to the multi-name layout; rewriting.")
            await self._store.save(root)
        self._initialized = True
        return root

    async def add_name(self, external_id: str, name: str) -> bool:
        """Track `name` for `external_id`. Returns False when it was already tracked (timestamp refreshed)."""
        async with self._lock:
            root = await self._load()
            now = utcnow()
            user = root.find(external_id)
            if user is None:
                user = UserRecord(external_id)
                root.users.append(user)
            existing = user.find(name)
            if existing is None:
                user.names.append(TrackedName(value=name, created_at=now))
            else:
                existing.created_at = now
            await self._store.save(root)
        log.info("Tracking %r for %s (%s)", name, external_id, "new" if existing is None else "refreshed")
        return existing is None

    async def remove_name(self, external_id: str, name: str) -> RemoveResult:
        """Stop tracking `name`; the user record goes with its last name."""
        async with self._lock:
            root = await self._load()
            user = root.find(external_id)
            if user is None or user.find(name) is None:
                return RemoveResult(removed=False, user_dropped=False)
            user.names = [n for n in user.names if n.value != name]
            dropped = not user.names
            if dropped:
                root.users = [u for u in root.users if u.external_id != external_id]
            await self._store.save(root)
        log.info("Stopped tracking %r for %s%s", name, external_id, " (user dropped)" if dropped else "")
        return RemoveResult(removed=True, user_dropped=dropped)

    async def is_tracked(self, external_id: str, name: str) -> bool:
        async with self._lock:
            root = await self._load()
        user = root.find(external_id)
        return user is not None and user.find(name) is not None

    async def list_all(self) -> list[tuple[str, TrackedName]]:
        async with self._lock:
            root = await self._load()
        return [(u.external_id, n.copy()) for u in root.users for n in u.names]

    async def names_for(self, external_id: str) -> list[TrackedName]:
        async with self._lock:
            root = await self._load()
        user = root.find(external_id)
        return [n.copy() for n in user.names] if user else []
