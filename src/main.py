"""Command-line entry point: run the bot server, or check a name once."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from core.config import AppConfig, load_config
from core.wiring import build_client
from i18n.messages import t
from licensing.client import CheckResult, CheckStatus, RegistrationQueryClient
from notify.dispatch import LogDispatcher, MessageDispatcher, WebhookDispatcher, notify

log = logging.getLogger("licensewatch.main")

_EXIT_CODES = {
    CheckStatus.REGISTERED: 0,
    CheckStatus.NOT_REGISTERED: 1,
    CheckStatus.UNKNOWN: 2,
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        stream=sys.stdout,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.WARNING)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pharmacist registry watcher")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Serve the chat webhook and run the sweep")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: APP_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: APP_PORT)")

    check_parser = subparsers.add_parser("check", help="Check one name once and exit")
    check_parser.add_argument("name", help='Full name, family and given separated by a space')
    check_parser.add_argument(
        "--year",
        default=None,
        help="Era year label to test, e.g. 令和5年 (default: the current year)",
    )

    watch_parser = subparsers.add_parser(
        "watch", help="Check one name every interval and post each result to NOTIFY_WEBHOOK_URL"
    )
    watch_parser.add_argument("name", help="Full name to watch")
    watch_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between checks (default: SWEEP_INTERVAL_SECS)",
    )

    return parser.parse_args(argv)


def _describe(result: CheckResult, lang: str) -> str:
    if result.status is CheckStatus.REGISTERED:
        return t(lang, "check.registered_year", name=result.name, year=result.year_label)
    if result.status is CheckStatus.NOT_REGISTERED:
        return t(lang, "check.not_registered_year", name=result.name, year=result.year_label)
    return t(lang, "check.unknown", name=result.name)


async def watch_name(
    client: RegistrationQueryClient,
    dispatcher: MessageDispatcher,
    name: str,
    *,
    interval_secs: int,
    lang: str,
    iterations: int | None = None,
) -> None:
    """Check `name` now and then every interval; every outcome is posted."""
    done = 0
    while True:
        result = await client.check(name)
        key = {
            CheckStatus.REGISTERED: "watch.registered",
            CheckStatus.NOT_REGISTERED: "watch.not_registered",
            CheckStatus.UNKNOWN: "watch.unknown",
        }[result.status]
        await notify(dispatcher, name, t(lang, key, name=name))
        done += 1
        if iterations is not None and done >= iterations:
            break
        await asyncio.sleep(max(10, interval_secs))


def _serve(config: AppConfig, args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except Exception:
        log.error(
            "uvicorn is required to run the server directly. "
            "Install with: pip install 'uvicorn[standard]'"
        )
        raise

    from core.bot import create_app

    host = getattr(args, "host", None) or config.server_host
    port = getattr(args, "port", None) or config.server_port
    app = create_app(config)
    log.info("Starting uvicorn on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    config = load_config()
    _configure_logging(config.log_level)

    if args.command == "serve":
        return _serve(config, args)

    client = build_client(config)
    if args.command == "check":
        result = asyncio.run(client.check(args.name, args.year))
        print(_describe(result, config.notify_lang))
        if result.error is not None:
            print(f"({type(result.error).__name__}: {result.error})", file=sys.stderr)
        return _EXIT_CODES[result.status]

    if args.command == "watch":
        if config.notify_webhook_url:
            dispatcher: MessageDispatcher = WebhookDispatcher(config.notify_webhook_url)
        else:
            log.warning("NOTIFY_WEBHOOK_URL is not set; results are only logged.")
            dispatcher = LogDispatcher()
        log.info("=== Watching %s ===", args.name)
        try:
            asyncio.run(
                watch_name(
                    client,
                    dispatcher,
                    args.name,
                    interval_secs=args.interval or config.sweep_interval_secs,
                    lang=config.notify_lang,
                )
            )
        except KeyboardInterrupt:
            log.info("Watch stopped.")
        return 0

    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
