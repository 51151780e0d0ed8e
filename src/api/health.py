from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request):
    app = request.app
    scheduler = getattr(app.state, "scheduler", None)
    last = getattr(scheduler, "last_report", None)
    return {
        "ok": bool(getattr(app.state, "store_ok", False)),
        "platform": getattr(app.state, "chat_platform", None),
        "bot_ready": bool(getattr(app.state, "bot_ready", False)),
        "bot_error": getattr(app.state, "bot_error", None),
        "store_ok": bool(getattr(app.state, "store_ok", False)),
        "store_latency_ms": getattr(app.state, "store_latency_ms", None),
        "webhook": getattr(app.state, "webhook_url", None),
        "sweep_running": bool(getattr(scheduler, "running", False)),
        "last_sweep": last.as_dict() if last else None,
    }
