from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from core.errors import StoreError
from core.textnorm import has_name_separator, sanitize_name
from i18n.messages import t
from licensing.client import CheckResult, CheckStatus, RegistrationQueryClient
from notify.dispatch import MessageDispatcher, notify

from .models import TrackedName
from .registry import TrackedNameRegistry

log = logging.getLogger(__name__)

_ADD_PREFIXES = ("+", "＋")
_REMOVE_PREFIXES = ("-", "－")
_YEAR_SEPARATORS = ("/", "／")


class CommandKind(str, enum.Enum):
    ADD = "add"
    REMOVE = "remove"
    QUERY = "query"


@dataclass(slots=True, frozen=True)
class Command:
    kind: CommandKind
    name: str
    year_label: str | None = None


def parse_command(text: str | None) -> Command | None:
    """
    '+name' add, '-name' remove, 'name' check this year, 'name/year' check a
    given year. Returns None when the name lacks a family/given separator.
    """
    body = (text or "").strip()
    kind = CommandKind.QUERY
    if body.startswith(_ADD_PREFIXES):
        kind, body = CommandKind.ADD, body[1:]
    elif body.startswith(_REMOVE_PREFIXES):
        kind, body = CommandKind.REMOVE, body[1:]

    year: str | None = None
    if kind is CommandKind.QUERY:
        for sep in _YEAR_SEPARATORS:
            if sep in body:
                body, year = body.split(sep, 1)
                year = year.strip() or None
                break

    body = body.strip()
    if not has_name_separator(body):
        return None
    return Command(kind=kind, name=sanitize_name(body), year_label=year)


class TrackingService:
    """
    Add/remove/check flow shared by the chat surfaces and the scheduler.

    `verbose_negative` decides whether a routine "not registered yet" result
    for the current year is sent; explicit-year answers are always sent.
    """

    def __init__(
        self,
        registry: TrackedNameRegistry,
        client: RegistrationQueryClient,
        dispatcher: MessageDispatcher,
        *,
        verbose_negative: bool = True,
        lang: str = "ja",
    ) -> None:
        self.registry = registry
        self.client = client
        self.dispatcher = dispatcher
        self.verbose_negative = verbose_negative
        self.lang = lang

    async def _say(self, external_id: str, key: str, **kwargs) -> bool:
        return await notify(self.dispatcher, external_id, t(self.lang, key, **kwargs))

    # ---------------------------
    # Interactive path
    # ---------------------------

    async def handle_text(self, external_id: str, text: str) -> None:
        cmd = parse_command(text)
        if cmd is None:
            log.info("Rejected %r from %s: no name separator", text, external_id)
            await self._say(external_id, "track.no_separator", text=(text or "").strip())
            return
        try:
            if cmd.kind is CommandKind.ADD:
                await self.add(external_id, cmd.name)
            elif cmd.kind is CommandKind.REMOVE:
                await self.remove(external_id, cmd.name)
            else:
                await self.query(external_id, cmd.name, cmd.year_label)
        except Exception:
            log.exception("Command %s for %s failed", cmd, external_id)
            await self._say(external_id, "track.failed")

    async def add(self, external_id: str, name: str) -> None:
        try:
            created = await self.registry.add_name(external_id, name)
        except StoreError:
            log.exception("add_name(%s, %r) failed", external_id, name)
            await self._say(external_id, "track.add_failed")
            return
        await self._say(external_id, "track.added" if created else "track.refreshed", name=name)
        await self.settle(external_id, await self.client.check(name), tracked=True)

    async def remove(self, external_id: str, name: str) -> None:
        try:
            res = await self.registry.remove_name(external_id, name)
        except StoreError:
            log.exception("remove_name(%s, %r) failed", external_id, name)
            await self._say(external_id, "track.remove_failed")
            return
        if not res.removed:
            await self._say(external_id, "track.not_tracked", name=name)
            return
        await self._say(external_id, "track.removed", name=name)
        if res.user_dropped:
            await self._say(external_id, "track.all_removed")

    async def query(self, external_id: str, name: str, year_label: str | None = None) -> CheckResult:
        result = await self.client.check(name, year_label)
        if year_label:
            if result.unknown:
                await self._say(external_id, "check.unknown", name=name)
            elif result.registered:
                await self._say(external_id, "check.registered_year", name=name, year=result.year_label)
            else:
                await self._say(external_id, "check.not_registered_year", name=name, year=result.year_label)
            return result
        await self.settle(external_id, result, tracked=False)
        return result

    async def list_names(self, external_id: str) -> str:
        names = await self.registry.names_for(external_id)
        if not names:
            return t(self.lang, "commands.list_empty")
        lines = [t(self.lang, "commands.list_header")]
        lines.extend(f"・{n.value}" for n in names)
        return "\n".join(lines)

    # ---------------------------
    # Shared check outcome
    # ---------------------------

    async def settle(
        self,
        external_id: str,
        result: CheckResult,
        *,
        tracked: bool,
        interactive: bool = True,
    ) -> CheckStatus:
        """
        Apply a current-year result: notify, and stop tracking a registered
        name. An unknown result never reads as "not registered".
        """
        name = result.name
        if result.status is CheckStatus.REGISTERED:
            key = "check.registered_removing" if tracked else "check.registered_current"
            await self._say(external_id, key, name=name)
            try:
                await self.registry.remove_name(external_id, name)
            except StoreError:
                log.exception("Could not drop registered name %r for %s", name, external_id)
        elif result.status is CheckStatus.NOT_REGISTERED:
            if self.verbose_negative:
                await self._say(external_id, "check.not_registered_current", name=name)
        elif interactive:
            await self._say(external_id, "check.unknown", name=name)
        else:
            log.warning("Skipping %r for %s this cycle: %s", name, external_id, result.error)
        return result.status

    async def recheck(self, external_id: str, tracked: TrackedName) -> CheckStatus | None:
        """
        Scheduled re-verification of one tracked name. Returns None when the
        name stopped being tracked before its result could be applied.
        """
        name = tracked.value
        if not await self.registry.is_tracked(external_id, name):
            log.info("Sweep: %r for %s is no longer tracked; skipping.", name, external_id)
            return None
        result = await self.client.check(name)
        if result.registered:
            # Notify only when this sweep is the one that dropped the entry.
            res = await self.registry.remove_name(external_id, name)
            if not res.removed:
                log.info("Sweep: %r for %s was removed during the check; not notifying.", name, external_id)
                return None
            tracked.verified = True
            await self._say(external_id, "check.registered_removing", name=name)
            return result.status
        if not await self.registry.is_tracked(external_id, name):
            log.info("Sweep: %r for %s was removed during the check; not notifying.", name, external_id)
            return None
        return await self.settle(external_id, result, tracked=True, interactive=False)
