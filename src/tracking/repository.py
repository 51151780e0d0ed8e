from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.db import SessionLocal, get_engine
from core.errors import StoreError

from .models import RegistryRoot, root_from_document, root_to_document

log = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tracked_users (
        user_id VARCHAR(64) NOT NULL PRIMARY KEY,
        position INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tracked_names (
        user_id VARCHAR(64) NOT NULL,
        name VARCHAR(128) NOT NULL,
        time_stamp VARCHAR(32) NOT NULL,
        position INTEGER NOT NULL,
        PRIMARY KEY (user_id, name)
    )
    """,
)


class SqlDocumentStore:
    """
    Tracking document mapped onto two tables. `save` replaces every row in a
    single transaction, which keeps the whole-document semantics of the file
    store on a shared database.
    """

    def __repr__(self) -> str:
        return "SqlDocumentStore()"

    async def ensure_schema(self) -> None:
        try:
            async with get_engine().begin() as conn:
                for ddl in _SCHEMA:
                    await conn.execute(text(ddl))
        except SQLAlchemyError as e:
            raise StoreError(f"cannot create tracking tables: {e}") from e

    async def load(self) -> tuple[RegistryRoot, bool]:
        sql = text(
            """
            SELECT u.user_id, n.name, n.time_stamp
            FROM tracked_users u
            LEFT JOIN tracked_names n ON n.user_id = u.user_id
            ORDER BY u.position ASC, n.position ASC
            """
        )
        try:
            async with SessionLocal() as session:
                rows = (await session.execute(sql)).all()
        except SQLAlchemyError as e:
            raise StoreError(f"cannot read tracking tables: {e}") from e

        users: dict[str, list[dict]] = {}
        for user_id, name, ts in rows:
            names = users.setdefault(str(user_id), [])
            if name:
                names.append({"name": name, "timeStamp": ts})
        doc = {"users": [{"userId": uid, "names": names} for uid, names in users.items()]}
        return root_from_document(doc)

    async def save(self, root: RegistryRoot) -> None:
        doc = root_to_document(root)
        user_rows = [
            {"uid": u["userId"], "pos": i} for i, u in enumerate(doc["users"])
        ]
        name_rows = [
            {"uid": u["userId"], "name": n["name"], "ts": n["timeStamp"], "pos": j}
            for u in doc["users"]
            for j, n in enumerate(u["names"])
        ]
        try:
            async with SessionLocal() as session:
                async with session.begin():
                    await session.execute(text("DELETE FROM tracked_names"))
                    await session.execute(text("DELETE FROM tracked_users"))
                    if user_rows:
                        await session.execute(
                            text(
                                "INSERT INTO tracked_users (user_id, position) "
                                "VALUES (:uid, :pos)"
                            ),
                            user_rows,
                        )
                    if name_rows:
                        await session.execute(
                            text(
                                "INSERT INTO tracked_names (user_id, name, time_stamp, position) "
                                "VALUES (:uid, :name, :ts, :pos)"
                            ),
                            name_rows,
                        )
        except SQLAlchemyError as e:
            raise StoreError(f"cannot write tracking tables: {e}") from e
        log.debug("Tracking tables replaced: %d user(s), %d name(s)", len(user_rows), len(name_rows))

    async def ping(self) -> None:
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"database unreachable: {e}") from e
