from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from core.errors import StoreError

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_ts(raw: Any) -> datetime:
    if not raw:
        return utcnow()
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(s)
    except ValueError:
        log.warning("Unparseable timeStamp %r in tracking document; using now", raw)
        return utcnow()
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class TrackedName:
    """A name being watched. `verified` is only ever True just before deletion."""

    value: str
    created_at: datetime = field(default_factory=utcnow)
    verified: bool = False

    def copy(self) -> TrackedName:
        return replace(self)


@dataclass(slots=True)
class UserRecord:
    external_id: str
    names: list[TrackedName] = field(default_factory=list)

    def find(self, value: str) -> TrackedName | None:
        for n in self.names:
            if n.value == value:
                return n
        return None


@dataclass(slots=True)
class RegistryRoot:
    users: list[UserRecord] = field(default_factory=list)

    def find(self, external_id: str) -> UserRecord | None:
        for u in self.users:
            if u.external_id == external_id:
                return u
        return None

    def prune_empty(self) -> int:
        before = len(self.users)
        self.users = [u for u in self.users if u.names]
        return before - len(self.users)


def root_to_document(root: RegistryRoot) -> dict[str, Any]:
    return {
        "users": [
            {
                "userId": u.external_id,
                "names": [
                    {"name": n.value, "timeStamp": _format_ts(n.created_at)}
                    for n in u.names
                ],
            }
            for u in root.users
            if u.names
        ]
    }


def root_from_document(doc: Any) -> tuple[RegistryRoot, bool]:
    """
    Build a RegistryRoot from a persisted document.

    Returns (root, migrated). `migrated` is True when the document used the
    old one-name-per-user shape ({userId, name, timeStamp}), carried
    duplicates, or held users without names, i.e. when writing it back
    would change it.
    """
    if doc is None:
        return RegistryRoot(), False
    if not isinstance(doc, dict):
        raise StoreError(f"tracking document must be an object, got {type(doc).__name__}")
    raw_users = doc.get("users") or []
    if not isinstance(raw_users, list):
        raise StoreError("tracking document 'users' must be a list")

    migrated = False
    root = RegistryRoot()
    for raw in raw_users:
        if not isinstance(raw, dict) or not raw.get("userId"):
            migrated = True
            continue
        external_id = str(raw["userId"])
        raw_names = raw.get("names")
        if raw_names is None and raw.get("name"):
            raw_names = [{"name": raw["name"], "timeStamp": raw.get("timeStamp")}]
            migrated = True

        user = root.find(external_id)
        if user is None:
            user = UserRecord(external_id)
            root.users.append(user)
        else:
            migrated = True

        for item in raw_names or []:
            value = (item or {}).get("name") if isinstance(item, dict) else None
            if not value:
                migrated = True
                continue
            ts = _parse_ts(item.get("timeStamp"))
            existing = user.find(value)
            if existing is not None:
                existing.created_at = max(existing.created_at, ts)
                migrated = True
            else:
                user.names.append(TrackedName(value=value, created_at=ts))

    if root.prune_empty():
        migrated = True
    return root, migrated
