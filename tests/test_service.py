from __future__ import annotations

import pytest

from core.errors import StoreError
from i18n.messages import t
from licensing.client import CheckStatus
from tracking.service import Command, CommandKind, TrackingService, parse_command

pytestmark = pytest.mark.anyio

USER = "U1"
NAME = "山田 太郎"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("+山田 太郎", Command(CommandKind.ADD, "山田 太郎")),
        ("＋山田　太郎", Command(CommandKind.ADD, "山田 太郎")),
        ("-山田 太郎", Command(CommandKind.REMOVE, "山田 太郎")),
        ("－ 山田 太郎 ", Command(CommandKind.REMOVE, "山田 太郎")),
        ("山田   太郎", Command(CommandKind.QUERY, "山田 太郎")),
        ("山田 太郎/令和5年", Command(CommandKind.QUERY, "山田 太郎", "令和5年")),
        ("山田 太郎／令和５年", Command(CommandKind.QUERY, "山田 太郎", "令和５年")),
        ("山田 太郎/", Command(CommandKind.QUERY, "山田 太郎")),
    ],
)
def test_parse_command(text: str, expected: Command) -> None:
    assert parse_command(text) == expected


@pytest.mark.parametrize("text", ["山田太郎", "+山田太郎", "-山田太郎", " 山田", "", None, "山田太郎/令和5年"])
def test_parse_command_requires_separator(text) -> None:
    assert parse_command(text) is None


@pytest.fixture
def service(site, registry, dispatcher) -> TrackingService:
    return TrackingService(registry, site.client("令和6年"), dispatcher)


async def test_name_without_space_is_rejected_and_not_tracked(service, registry, dispatcher, site) -> None:
    await service.handle_text(USER, "+山田太郎")

    assert dispatcher.texts_for(USER) == [t("ja", "track.no_separator", text="+山田太郎")]
    assert await registry.list_all() == []
    assert site.requests == []


async def test_add_replies_then_checks_immediately(service, registry, dispatcher, site) -> None:
    site.years[NAME] = ["令和5年"]

    await service.handle_text(USER, "+山田 太郎")

    assert dispatcher.texts_for(USER) == [
        t("ja", "track.added", name=NAME),
        t("ja", "check.not_registered_current", name=NAME),
    ]
    assert [n.value for n in await registry.names_for(USER)] == [NAME]


async def test_add_of_already_registered_name_removes_it(service, registry, dispatcher, site) -> None:
    site.years[NAME] = ["令和6年"]

    await service.handle_text(USER, "+山田 太郎")

    assert dispatcher.texts_for(USER) == [
        t("ja", "track.added", name=NAME),
        t("ja", "check.registered_removing", name=NAME),
    ]
    assert await registry.list_all() == []


async def test_re_adding_refreshes(service, registry, dispatcher) -> None:
    await registry.add_name(USER, NAME)
    await service.handle_text(USER, "+山田 太郎")
    assert dispatcher.texts_for(USER)[0] == t("ja", "track.refreshed", name=NAME)
    assert len(await registry.names_for(USER)) == 1


async def test_remove_last_name_reports_all_removed(service, registry, dispatcher) -> None:
    await registry.add_name(USER, NAME)

    await service.handle_text(USER, "-山田 太郎")

    assert dispatcher.texts_for(USER) == [
        t("ja", "track.removed", name=NAME),
        t("ja", "track.all_removed"),
    ]


async def test_remove_untracked_name(service, dispatcher) -> None:
    await service.handle_text(USER, "-山田 太郎")
    assert dispatcher.texts_for(USER) == [t("ja", "track.not_tracked", name=NAME)]


async def test_query_does_not_track(service, registry, dispatcher, site) -> None:
    site.years[NAME] = ["令和6年"]

    await service.handle_text(USER, "山田 太郎")

    assert dispatcher.texts_for(USER) == [t("ja", "check.registered_current", name=NAME)]
    assert await registry.list_all() == []


async def test_query_with_year(service, dispatcher, site) -> None:
    site.years[NAME] = ["令和4年"]

    await service.handle_text(USER, "山田 太郎/令和4年")
    await service.handle_text(USER, "山田 太郎/令和3年")

    assert dispatcher.texts_for(USER) == [
        t("ja", "check.registered_year", name=NAME, year="令和4年"),
        t("ja", "check.not_registered_year", name=NAME, year="令和3年"),
    ]


async def test_quiet_mode_suppresses_routine_negatives_only(site, registry, dispatcher) -> None:
    service = TrackingService(registry, site.client("令和6年"), dispatcher, verbose_negative=False)
    site.years[NAME] = ["令和5年"]

    await service.handle_text(USER, "山田 太郎")
    assert dispatcher.sent == []

    await service.handle_text(USER, "山田 太郎/令和6年")
    assert dispatcher.texts_for(USER) == [
        t("ja", "check.not_registered_year", name=NAME, year="令和6年")
    ]


async def test_unknown_result_is_never_reported_as_negative(service, registry, dispatcher, site) -> None:
    site.mode = "network"

    await service.handle_text(USER, "+山田 太郎")

    texts = dispatcher.texts_for(USER)
    assert texts == [t("ja", "track.added", name=NAME), t("ja", "check.unknown", name=NAME)]
    assert t("ja", "check.not_registered_current", name=NAME) not in texts
    assert [n.value for n in await registry.names_for(USER)] == [NAME]


async def test_store_failure_replies_add_failed(service, dispatcher, monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise StoreError("disk gone")

    monkeypatch.setattr(service.registry, "add_name", broken)
    await service.handle_text(USER, "+山田 太郎")
    assert dispatcher.texts_for(USER) == [t("ja", "track.add_failed")]


async def test_delivery_failure_does_not_raise(service, dispatcher, site) -> None:
    dispatcher.fail = True
    site.years[NAME] = []
    await service.handle_text(USER, "+山田 太郎")
    assert dispatcher.sent == []


async def test_settle_non_interactive_unknown_is_silent(service, dispatcher, site) -> None:
    site.mode = "status"
    result = await service.client.check(NAME)
    status = await service.settle(USER, result, tracked=True, interactive=False)
    assert status is CheckStatus.UNKNOWN
    assert dispatcher.sent == []


async def test_list_names(service, registry) -> None:
    assert await service.list_names(USER) == t("ja", "commands.list_empty")
    await registry.add_name(USER, NAME)
    assert await service.list_names(USER) == f"{t('ja', 'commands.list_header')}\n・{NAME}"


async def test_english_locale(site, registry, dispatcher) -> None:
    service = TrackingService(registry, site.client(), dispatcher, lang="en")
    await service.handle_text(USER, "山田太郎")
    assert dispatcher.texts_for(USER) == [t("en", "track.no_separator", text="山田太郎")]


async def test_unexpected_failure_replies_generic_failure(service, dispatcher, monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(service.client, "check", broken)
    await service.handle_text(USER, "山田 太郎")
    assert dispatcher.texts_for(USER) == [t("ja", "track.failed")]
