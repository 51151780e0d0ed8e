from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None


class _SessionFactory:
    """
    Allows `SessionLocal()` to work after runtime init via init_db().
    """

    def __init__(self) -> None:
        self._maker: async_sessionmaker[AsyncSession] | None = None

    def configure(self, maker: async_sessionmaker[AsyncSession] | None) -> None:
        self._maker = maker

    def __call__(self, *args, **kwargs) -> AsyncSession:
        if self._maker is None:
            raise RuntimeError("Database is not initialized; call init_db() first.")
        return self._maker(*args, **kwargs)


SessionLocal = _SessionFactory()


def init_db(database_url: str) -> AsyncEngine:
    if not database_url:
        raise RuntimeError("DATABASE_URL is empty; set it in environment.")
    global _engine
    _engine = create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    SessionLocal.configure(async_sessionmaker(_engine, expire_on_commit=False))
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("DB engine is not initialized; call init_db() first.")
    return _engine


async def dispose_db() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    SessionLocal.configure(None)
