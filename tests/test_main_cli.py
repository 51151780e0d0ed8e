from __future__ import annotations

import pytest

import main
from i18n.messages import t
from notify.dispatch import LogDispatcher

from conftest import RecordingDispatcher


def test_default_command_is_serve() -> None:
    args = main._parse_args([])
    assert args.command == "serve"


def test_serve_options() -> None:
    args = main._parse_args(["serve", "--host", "127.0.0.1", "--port", "8080"])
    assert (args.host, args.port) == ("127.0.0.1", 8080)


def test_check_options() -> None:
    args = main._parse_args(["check", "山田 太郎", "--year", "令和5年"])
    assert args.command == "check"
    assert args.name == "山田 太郎"
    assert args.year == "令和5年"


def test_check_exit_codes(monkeypatch, site, capsys) -> None:
    monkeypatch.setattr(main, "build_client", lambda config: site.client("令和6年"))
    monkeypatch.setattr(main, "_configure_logging", lambda level: None)

    site.years["山田 太郎"] = ["令和6年"]
    assert main.main(["check", "山田 太郎"]) == 0
    assert t("ja", "check.registered_year", name="山田 太郎", year="令和6年") in capsys.readouterr().out

    site.years["山田 太郎"] = ["令和5年"]
    assert main.main(["check", "山田 太郎"]) == 1

    site.mode = "network"
    assert main.main(["check", "山田 太郎"]) == 2
    assert "NetworkError" in capsys.readouterr().err


@pytest.mark.anyio
async def test_watch_posts_every_outcome(site) -> None:
    site.years["山田 太郎"] = ["令和6年"]
    rec = RecordingDispatcher()

    await main.watch_name(
        site.client("令和6年"), rec, "山田 太郎", interval_secs=10, lang="ja", iterations=1
    )

    assert rec.texts_for("山田 太郎") == [t("ja", "watch.registered", name="山田 太郎")]


@pytest.mark.anyio
async def test_watch_reports_unknown(site) -> None:
    site.mode = "status"
    rec = RecordingDispatcher()
    await main.watch_name(site.client(), rec, "山田 太郎", interval_secs=10, lang="ja", iterations=1)
    assert rec.texts_for("山田 太郎") == [t("ja", "watch.unknown", name="山田 太郎")]


@pytest.mark.anyio
async def test_watch_tolerates_log_only_channel(site) -> None:
    await main.watch_name(
        site.client(), LogDispatcher(), "山田 太郎", interval_secs=10, lang="ja", iterations=1
    )
