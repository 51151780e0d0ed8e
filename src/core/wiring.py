from __future__ import annotations

import logging
from dataclasses import dataclass

from core.config import AppConfig
from core.db import init_db
from licensing.client import RegistrationQueryClient
from notify.dispatch import (
    LinePushDispatcher,
    LogDispatcher,
    MessageDispatcher,
    WebhookDispatcher,
)
from tracking.registry import TrackedNameRegistry
from tracking.repository import SqlDocumentStore
from tracking.scheduler import NotificationScheduler
from tracking.service import TrackingService
from tracking.store import DocumentStore, JsonFileStore

log = logging.getLogger(__name__)


@dataclass
class Components:
    store: DocumentStore
    registry: TrackedNameRegistry
    client: RegistrationQueryClient
    service: TrackingService
    scheduler: NotificationScheduler


def build_store(config: AppConfig) -> DocumentStore:
    if config.database_url:
        init_db(config.database_url)
        log.info("Tracking store: SQL database")
        return SqlDocumentStore()
    log.info("Tracking store: JSON file %s", config.storage_path)
    return JsonFileStore(config.storage_path)


def build_client(config: AppConfig) -> RegistrationQueryClient:
    return RegistrationQueryClient(
        config.registry_base_url,
        timeout=config.registry_timeout_secs,
        category_code=config.registry_category_code,
    )


def build_http_dispatcher(config: AppConfig) -> MessageDispatcher:
    """Outbound channel for every platform except Telegram, which needs a live bot."""
    if config.chat_platform == "line" and config.line_channel_access_token:
        return LinePushDispatcher(config.line_channel_access_token)
    if config.notify_webhook_url:
        return WebhookDispatcher(config.notify_webhook_url)
    log.warning("No outbound channel configured for %r; notifications are only logged.", config.chat_platform)
    return LogDispatcher()


def build_components(
    config: AppConfig,
    dispatcher: MessageDispatcher,
    *,
    store: DocumentStore | None = None,
    client: RegistrationQueryClient | None = None,
) -> Components:
    store = store if store is not None else build_store(config)
    client = client or build_client(config)
    registry = TrackedNameRegistry(store)
    service = TrackingService(
        registry,
        client,
        dispatcher,
        verbose_negative=config.verbose_negative_notifications,
        lang=config.notify_lang,
    )
    scheduler = NotificationScheduler(
        registry,
        service,
        interval_secs=config.sweep_interval_secs,
        first_delay_secs=config.sweep_first_delay_secs,
    )
    return Components(store, registry, client, service, scheduler)
