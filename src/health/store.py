from __future__ import annotations

from time import perf_counter
from typing import Any

from tracking.store import DocumentStore


async def check_store(store: DocumentStore) -> dict[str, Any]:
    t0 = perf_counter()
    try:
        await store.ping()
        dt_ms = (perf_counter() - t0) * 1000.0
        return {"ok": True, "latency_ms": round(dt_ms, 2), "error": None}
    except Exception as e:
        dt_ms = (perf_counter() - t0) * 1000.0
        return {"ok": False, "latency_ms": round(dt_ms, 2), "error": str(e)}
