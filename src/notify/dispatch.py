from __future__ import annotations

import logging
from typing import Protocol

import httpx
from telegram import Bot
from telegram.error import RetryAfter, TelegramError

from core.errors import DispatchError

log = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"


class MessageDispatcher(Protocol):
    async def send(self, external_id: str, text: str) -> None:
        """Deliver `text` to `external_id`; raise DispatchError on failure."""
        ...


class TelegramDispatcher:
    """Push through the Telegram Bot API; the external id is the chat id."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, external_id: str, text: str) -> None:
        try:
            chat_id = int(external_id)
        except ValueError as e:
            raise DispatchError(f"not a Telegram chat id: {external_id!r}") from e
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                disable_web_page_preview=True,
            )
        except RetryAfter as e:
            raise DispatchError(
                f"Telegram rate limit (retry after {getattr(e, 'retry_after', '?')}s)"
            ) from e
        except TelegramError as e:
            raise DispatchError(f"Telegram send failed: {e}") from e


class _HttpDispatcher:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def _post(self, url: str, payload: dict, headers: dict | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
                return resp
        except httpx.HTTPStatusError as e:
            raise DispatchError(
                f"POST {url} -> HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise DispatchError(f"POST {url} failed: {e!r}") from e


class LinePushDispatcher(_HttpDispatcher):
    """LINE Messaging API push message."""

    def __init__(self, channel_access_token: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._token = channel_access_token

    async def send(self, external_id: str, text: str) -> None:
        await self._post(
            LINE_PUSH_URL,
            {"to": external_id, "messages": [{"type": "text", "text": text}]},
            headers={"Authorization": f"Bearer {self._token}"},
        )


class WebhookDispatcher(_HttpDispatcher):
    """
    Incoming-webhook style channel (Slack and compatibles): POST {"text": ...}.
    The webhook has a single audience, so the external id is not sent.
    """

    def __init__(self, url: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._url = url

    async def send(self, external_id: str, text: str) -> None:
        await self._post(self._url, {"text": text})


class LogDispatcher:
    """Used when no outbound channel is configured: notifications go to the log."""

    async def send(self, external_id: str, text: str) -> None:
        log.info("notify[%s]: %s", external_id, text)


async def notify(dispatcher: MessageDispatcher, external_id: str, text: str) -> bool:
    """Send and swallow delivery failures; returns whether the message went out."""
    try:
        await dispatcher.send(external_id, text)
    except DispatchError as e:
        log.warning("fail->%s: %s (%s)", external_id, text, e)
        return False
    except Exception:
        log.exception("Unexpected error notifying %s", external_id)
        return False
    log.info("sent->%s: %s", external_id, text)
    return True
