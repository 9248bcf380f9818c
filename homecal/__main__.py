"""Command-line entry for homecal.

Subcommands:
  serve        run the feed server and background jobs (default)
  evaluate     run one reminder evaluation for a tenant and print the items as JSON
  render       print a user's ICS feed to stdout
  occurrences  list a user's effective event occurrences in a range as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import NoReturn, Optional

from . import _init_logging, load_runtime_config, run_server

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the homecal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="homecal",
        description="HomeCal - household calendar reminders and ICS feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m homecal serve --data-file household.yaml
  python -m homecal evaluate --tenant <uuid> --at 2025-03-03T08:00:00Z
  python -m homecal render --tenant <uuid> --user <uuid> > household.ics
  python -m homecal occurrences --tenant <uuid> --user <uuid> --from 2025-03-01T00:00:00Z --to 2025-04-01T00:00:00Z
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML config file (default: ./homecal.yaml or HOMECAL_CONFIG)")
    parser.add_argument("--data-file", metavar="PATH", help="YAML fixture loaded into the in-memory store")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for homecal modules")

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the feed server and background jobs")
    serve.add_argument("--port", type=int, metavar="PORT", help="Port for the web server (default: 8080)")

    evaluate = sub.add_parser("evaluate", help="Print reminders due for a tenant")
    evaluate.add_argument("--tenant", required=True, type=uuid.UUID, help="Tenant ID")
    evaluate.add_argument("--at", metavar="ISO8601", help="Evaluation instant (default: now)")

    render = sub.add_parser("render", help="Print a user's ICS feed")
    render.add_argument("--tenant", required=True, type=uuid.UUID, help="Tenant ID")
    render.add_argument("--user", required=True, type=uuid.UUID, help="User ID")

    occurrences = sub.add_parser("occurrences", help="List a user's event occurrences in a range")
    occurrences.add_argument("--tenant", required=True, type=uuid.UUID, help="Tenant ID")
    occurrences.add_argument("--user", required=True, type=uuid.UUID, help="User ID")
    occurrences.add_argument("--from", dest="range_start", metavar="ISO8601", help="Range start (default: feed window start)")
    occurrences.add_argument("--to", dest="range_end", metavar="ISO8601", help="Range end (default: feed window end)")

    return parser


def _parse_instant(text: Optional[str]):
    if not text:
        return None
    from dateutil import parser as date_parser

    from .core.timezone_utils import ensure_utc

    return ensure_utc(date_parser.isoparse(text))


async def _evaluate(args: argparse.Namespace) -> list[dict]:
    from .api.server import build_services

    services = build_services(load_runtime_config(args))
    items = await services.evaluator.evaluate(args.tenant, _parse_instant(args.at))
    return [item.model_dump(mode="json") for item in items]


async def _render(args: argparse.Namespace) -> bytes:
    from .api.server import build_services

    services = build_services(load_runtime_config(args))
    range_start, range_end = services.renderer.default_range(services.time_provider())
    return await services.renderer.render(args.tenant, args.user, range_start, range_end)


async def _occurrences(args: argparse.Namespace) -> list[dict]:
    from .api.server import build_services
    from .calendar.occurrences import expand_event_occurrences
    from .core.exceptions import MalformedRuleError
    from .feed.renderer import select_feed_events

    services = build_services(load_runtime_config(args))
    default_start, default_end = services.renderer.default_range(services.time_provider())
    range_start = _parse_instant(args.range_start) or default_start
    range_end = _parse_instant(args.range_end) or default_end
    if range_end <= range_start:
        raise ValueError("--to must be after --from")

    events = await services.store.get_feed_events(args.tenant, args.user, range_start, range_end)
    occurrences = []
    for event in select_feed_events(events, args.user, range_start, range_end):
        try:
            occurrences.extend(expand_event_occurrences(event, range_start, range_end))
        except MalformedRuleError as e:
            logger.warning("Skipping event %s with malformed rule %r: %s", event.id, e.rule, e.reason)
    occurrences.sort(key=lambda o: (o.start, str(o.event_id)))
    return [occurrence.model_dump(mode="json") for occurrence in occurrences]


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the homecal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)
    command = args.command or "serve"

    if command == "serve":
        run_server(args)
        sys.exit(0)

    _init_logging("DEBUG" if args.debug else "WARNING")
    try:
        if command == "evaluate":
            print(json.dumps(asyncio.run(_evaluate(args)), indent=2))
        elif command == "occurrences":
            print(json.dumps(asyncio.run(_occurrences(args)), indent=2))
        else:
            sys.stdout.write(asyncio.run(_render(args)).decode("utf-8"))
    except (ValueError, OSError) as exc:
        print(f"homecal: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
