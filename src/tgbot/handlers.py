from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import (
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from i18n.messages import t
from tracking.service import TrackingService

logger = logging.getLogger(__name__)

SERVICE_KEY = "tracking"


def build_handlers():
    """
    Commands first; every other text message goes to the tracking commands
    (+name / -name / name / name/year).
    """
    return [
        CommandHandler("start", cmd_start),
        CommandHandler("help", cmd_help),
        CommandHandler("list", cmd_list),
        MessageHandler(filters.TEXT & ~filters.COMMAND, on_text),
    ]


def _service(context: ContextTypes.DEFAULT_TYPE) -> TrackingService:
    return context.application.bot_data[SERVICE_KEY]


def _external_id(update: Update) -> str | None:
    chat = update.effective_chat
    return str(chat.id) if chat else None


async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.effective_message
    external_id = _external_id(update)
    user = update.effective_user
    if not msg or not msg.text or not external_id or (user and user.is_bot):
        return
    text = msg.text.strip()
    logger.info("%s::%s", external_id, text)
    await _service(context).handle_text(external_id, text)


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service = _service(context)
    await update.effective_message.reply_text(t(service.lang, "commands.start"))


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service = _service(context)
    await update.effective_message.reply_text(t(service.lang, "commands.help"))


async def cmd_list(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    external_id = _external_id(update)
    if not external_id:
        return
    service = _service(context)
    await update.effective_message.reply_text(await service.list_names(external_id))


# ---- error handler (needed by core.bot.create_app) ----
async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Global error handler for PTB. Keeps the traceback in logs and tells the
    sender the request failed without exposing details.
    """
    err = getattr(context, "error", None)
    logger.error("Unhandled exception while processing update: %r", update, exc_info=err)
    if isinstance(update, Update) and update.effective_message:
        service = context.application.bot_data.get(SERVICE_KEY)
        lang = service.lang if service else "ja"
        try:
            await update.effective_message.reply_text(t(lang, "track.failed"))
        except Exception:
            logger.exception("Failed to send error reply")
