from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable

from fastapi import FastAPI, Header, HTTPException, Request
from telegram import Update
from telegram.error import InvalidToken, RetryAfter, TelegramError
from telegram.ext import Application, ApplicationBuilder

from api.admin import router as admin_router
from api.health import router as health_router
from api.line import router as line_router
from core.config import AppConfig
from core.db import dispose_db
from core.wiring import Components, build_components, build_http_dispatcher
from health.store import check_store
from notify.dispatch import TelegramDispatcher
from tracking.repository import SqlDocumentStore


def _plausible_token(token: str) -> bool:
    if not token:
        return False
    up = token.upper()
    if "REPLACE_WITH_YOUR_REAL" in up or up.startswith("REPLACE"):
        return False
    return bool(re.fullmatch(r"\d+:[A-Za-z0-9_-]{30,}", token))


def _norm_updates(upds: Iterable[str] | None) -> list[str]:
    return sorted(set((up or "").strip() for up in (upds or []) if (up or "").strip()))


async def _ensure_webhook(
    application: Application,
    target_url: str,
    secret_token: str | None,
    allowed_updates: list[str],
    log: logging.Logger,
    max_retries: int = 5,
) -> bool:
    """
    Ensure the bot webhook is configured exactly as desired.

    The webhook is always re-set when a secret token is configured, since
    getWebhookInfo does not reveal whether Telegram already knows the secret.
    """
    want_allowed = _norm_updates(allowed_updates)

    needs_set = True
    try:
        info = await application.bot.get_webhook_info()
        current_url = getattr(info, "url", "") or ""
        have_allowed = _norm_updates(getattr(info, "allowed_updates", None))

        if (
            current_url == target_url
            and want_allowed == have_allowed
            and not secret_token
        ):
            needs_set = False
            log.info(
                "Webhook already configured: %s (allowed=%s, pending=%s).",
                target_url,
                have_allowed or "[]",
                getattr(info, "pending_update_count", 0),
            )
        else:
            log.info(
                "Webhook (re)configuration required: "
                "url_match=%s, allowed_match=%s, secret_present=%s",
                current_url == target_url,
                want_allowed == have_allowed,
                bool(secret_token),
            )
    except Exception as e:
        log.warning("Failed to fetch current webhook info (%s); will set webhook.", e)

    if not needs_set:
        return True

    delay = 1.0
    for attempt in range(1, max_retries + 1):
        try:
            await application.bot.set_webhook(
                url=target_url,
                secret_token=secret_token,
                allowed_updates=allowed_updates,
                drop_pending_updates=False,
            )
            log.info("Webhook set to %s (allowed=%s)", target_url, want_allowed or "[]")
            return True
        except RetryAfter as e:
            wait_s = getattr(e, "retry_after", 1)
            log.warning(
                "Telegram rate limit on setWebhook (RetryAfter=%ss), attempt %s/%s; sleeping…",
                wait_s,
                attempt,
                max_retries,
            )
            await asyncio.sleep(max(1, int(wait_s)))
        except TelegramError as e:
            log.warning(
                "setWebhook failed (attempt %s/%s): %s; retrying in %.1fs…",
                attempt,
                max_retries,
                e,
                delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, 30.0)

    log.error("Giving up on setting webhook after %s attempts.", max_retries)
    return False


def _build_telegram(config: AppConfig, log: logging.Logger) -> Application | None:
    if config.chat_platform != "telegram":
        return None
    if not _plausible_token(config.bot_token):
        log.warning("Telegram token missing/placeholder; API-only mode.")
        return None
    if not config.public_base_url:
        raise RuntimeError("PUBLIC_BASE_URL is empty; set it in environment.")

    from tgbot.handlers import build_handlers, error_handler

    application = ApplicationBuilder().token(config.bot_token).build()
    for h in build_handlers():
        application.add_handler(h)
    application.add_error_handler(error_handler)
    return application


def create_app(config: AppConfig, components: Components | None = None) -> FastAPI:
    app = FastAPI(title="licensewatch")
    log = logging.getLogger("licensewatch")

    application = _build_telegram(config, log)

    if components is None:
        dispatcher = (
            TelegramDispatcher(application.bot)
            if application is not None
            else build_http_dispatcher(config)
        )
        components = build_components(config, dispatcher)

    app.state.chat_platform = config.chat_platform
    app.state.bot_ready = False
    app.state.bot_error = (
        "missing_or_placeholder_token"
        if config.chat_platform == "telegram" and application is None
        else None
    )
    app.state.store_ok = False
    app.state.store_latency_ms = None
    app.state.webhook_url = None
    app.state.tracking = components.service
    app.state.scheduler = components.scheduler
    app.state.line_channel_secret = config.line_channel_secret

    if application is not None:
        from tgbot.handlers import SERVICE_KEY

        application.bot_data[SERVICE_KEY] = components.service
        app.state.webhook_url = (
            f"{config.public_base_url}/{config.webhook_secret_path.strip('/')}"
        )

    app.include_router(health_router, tags=["health"])
    app.include_router(admin_router, prefix="/admin", tags=["admin"])
    if config.chat_platform == "line":
        if not config.line_channel_secret:
            log.warning("LINE_CHANNEL_SECRET is not set; /linebot accepts unsigned requests.")
        app.include_router(line_router, tags=["line"])

    @app.on_event("startup")
    async def _on_startup():
        log.info("Starting up: store check, chat platform setup, sweep scheduler.")
        store = components.store
        if isinstance(store, SqlDocumentStore):
            await store.ensure_schema()
        store_health = await check_store(store)
        app.state.store_ok = bool(store_health.get("ok", False))
        app.state.store_latency_ms = store_health.get("latency_ms")
        if not app.state.store_ok:
            log.error("Store health FAILED: %s", store_health.get("error"))
            raise RuntimeError("Tracking store health check failed")

        if config.sweep_enabled:
            components.scheduler.start()
        else:
            log.info("Registration sweep disabled by SWEEP_ENABLED=false")

        if application is None:
            return
        try:
            await application.initialize()
            me = await application.bot.get_me()
            log.info("Bot authorized as @%s (id=%s)", me.username, me.id)

            allowed_updates = ["message"]
            webhook_ok = await _ensure_webhook(
                application=application,
                target_url=app.state.webhook_url,
                secret_token=config.webhook_secret_token,
                allowed_updates=allowed_updates,
                log=log,
            )
            if not webhook_ok:
                app.state.bot_ready = False
                app.state.bot_error = "webhook_set_failed"
                log.error("Proceeding without Telegram webhook (API-only mode).")
                return

            await application.start()
            app.state.bot_ready = True
            app.state.bot_error = None
            log.info("Webhook ready at %s; application started.", app.state.webhook_url)
        except InvalidToken:
            app.state.bot_ready = False
            app.state.bot_error = "invalid_token"
            log.warning("Telegram rejected token; API-only mode.")
        except Exception:
            app.state.bot_ready = False
            app.state.bot_error = "init_failed"
            log.exception("Telegram initialization failed; API-only mode.")

    @app.on_event("shutdown")
    async def _on_shutdown():
        await components.scheduler.stop()
        if application is not None:
            try:
                if application.running:
                    await application.stop()
                await application.shutdown()
            except Exception:
                log.exception("Telegram application shutdown failed")
        if isinstance(components.store, SqlDocumentStore):
            await dispose_db()

    if application is not None:
        webhook_path = "/" + config.webhook_secret_path.strip("/")

        @app.post(webhook_path)
        async def telegram_webhook(
            request: Request,
            x_telegram_bot_api_secret_token: str | None = Header(default=None),
        ):
            if config.webhook_secret_token:
                if (
                    not x_telegram_bot_api_secret_token
                    or x_telegram_bot_api_secret_token != config.webhook_secret_token
                ):
                    raise HTTPException(
                        status_code=401, detail="Invalid webhook secret token"
                    )

            if not app.state.bot_ready:
                raise HTTPException(status_code=503, detail="Bot not ready (API-only mode)")

            data = await request.json()
            update = Update.de_json(data, application.bot)
            await application.process_update(update)
            return {"ok": True}

    return app
