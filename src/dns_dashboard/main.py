from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog

from .config import Settings, load_settings, store_credentials
from .errors import DashboardError
from .logging_config import setup_logging
from .output import OutputHandler, StdoutHandler
from .service import DashboardService

log = structlog.get_logger()


def _show(handler: OutputHandler, service: DashboardService, messaging_only: bool) -> None:
    entries = service.messaging_entries() if messaging_only else service.view.entries
    handler.emit_view(entries)


async def _logs(args: argparse.Namespace, settings: Settings, handler: OutputHandler) -> int:
    service = DashboardService.from_settings(settings)
    try:
        update = await service.load_logs(args.client, args.limit)
        if update.notice:
            handler.emit_notice(update.notice)
        if args.enrich:
            handler.emit_enrichment(await service.enrich(args.batch))
        _show(handler, service, args.messaging)
        return 0
    finally:
        await service.aclose()


async def _enrich(args: argparse.Namespace, settings: Settings, handler: OutputHandler) -> int:
    args.enrich = True
    return await _logs(args, settings, handler)


async def _watch(args: argparse.Namespace, settings: Settings, handler: OutputHandler) -> int:
    service = DashboardService.from_settings(settings)
    interval = args.interval or settings.refresh_interval_seconds
    log.info("watch_started", interval=interval, client=args.client)
    try:
        update = await service.load_logs(args.client, args.limit)
        while True:
            if update.notice:
                handler.emit_notice(update.notice)
            if args.enrich:
                handler.emit_enrichment(await service.enrich(args.batch))
            _show(handler, service, args.messaging)
            await asyncio.sleep(interval)
            update = await service.refresh_logs(args.client, args.limit)
    finally:
        await service.aclose()


async def _lookup(args: argparse.Namespace, settings: Settings, handler: OutputHandler) -> int:
    service = DashboardService.from_settings(settings)
    try:
        found = await service.lookup_many(args.domains)
        handler.emit_analyses({d: found.get(d) for d in args.domains})
        return 0
    finally:
        await service.aclose()


async def _analyze(args: argparse.Namespace, settings: Settings, handler: OutputHandler) -> int:
    service = DashboardService.from_settings(settings)
    try:
        resolved = await service.analyze(args.domains)
        handler.emit_analyses({d: resolved.get(d) for d in args.domains})
        return 0
    finally:
        await service.aclose()


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dns-dashboard",
        description="DNS query-log dashboard with cached AI domain classification.",
    )
    p.add_argument("--env-file", default=".env", help="Settings file (default: .env)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("--console-logs", action="store_true", help="Human-readable logs instead of JSON")
    sub = p.add_subparsers(dest="command", required=True)

    def add_view_args(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--client", default=None, help="Only show queries from this client address")
        sp.add_argument("--limit", type=int, default=None, help="Rows to fetch per page")
        sp.add_argument("--messaging", action="store_true", help="Only show messaging-app traffic")
        sp.add_argument("--enrich", action="store_true", help="Classify unanalyzed rows")
        sp.add_argument("--batch", type=int, default=None, help="Max rows per enrichment pass")

    add_view_args(sub.add_parser("logs", help="Load and print the latest query logs"))
    add_view_args(sub.add_parser("enrich", help="Load the latest logs and classify unanalyzed rows"))

    watch = sub.add_parser("watch", help="Keep refreshing the log view")
    add_view_args(watch)
    watch.add_argument("--interval", type=float, default=None, help="Seconds between refreshes")

    for name, help_text in (
        ("lookup", "Show cached analyses without classifying"),
        ("analyze", "Classify domains, using the cache where possible"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("domains", nargs="+")

    creds = sub.add_parser("set-credentials", help="Store API credentials in the env file")
    creds.add_argument("--technitium-token", default=None)
    creds.add_argument("--gemini-api-key", default=None)
    return p


_COMMANDS = {
    "logs": _logs,
    "enrich": _enrich,
    "watch": _watch,
    "lookup": _lookup,
    "analyze": _analyze,
}


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    setup_logging(
        logging.DEBUG if args.verbose else logging.INFO,
        json_output=not args.console_logs,
    )

    if args.command == "set-credentials":
        try:
            store_credentials(
                args.env_file,
                technitium_token=args.technitium_token,
                gemini_api_key=args.gemini_api_key,
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            raise SystemExit(2)
        print("Settings updated.")
        return

    settings = load_settings(args.env_file)
    handler = StdoutHandler()
    try:
        code = asyncio.run(_COMMANDS[args.command](args, settings, handler))
    except KeyboardInterrupt:
        code = 0
    except DashboardError as e:
        log.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
