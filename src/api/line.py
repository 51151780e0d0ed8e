from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Header, HTTPException, Request

from i18n.messages import t
from notify.dispatch import notify

router = APIRouter()

log = logging.getLogger(__name__)


def signature_for(channel_secret: str, body: bytes) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def text_events(payload: dict) -> list[tuple[str, str]]:
    """(user id, trimmed text) for every text-message event in a webhook body."""
    out: list[tuple[str, str]] = []
    for ev in payload.get("events") or []:
        if not isinstance(ev, dict) or ev.get("type") != "message":
            continue
        message = ev.get("message") or {}
        if message.get("type") != "text":
            continue
        user_id = (ev.get("source") or {}).get("userId")
        if not user_id:
            continue
        out.append((str(user_id), (message.get("text") or "").strip()))
    return out


@router.post("/linebot")
async def line_webhook(
    request: Request,
    x_line_signature: str | None = Header(default=None),
):
    secret = getattr(request.app.state, "line_channel_secret", None)
    body = await request.body()
    if secret:
        expected = signature_for(secret, body)
        if not x_line_signature or not hmac.compare_digest(expected, x_line_signature):
            raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Body is not JSON") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be an object")

    service = request.app.state.tracking
    for user_id, text in text_events(payload):
        log.info("%s::%s", user_id, text)
        try:
            await service.handle_text(user_id, text)
        except Exception:
            log.exception("handle_text failed for %s", user_id)
            await notify(service.dispatcher, user_id, t(service.lang, "track.failed"))
    return {"ok": True}
