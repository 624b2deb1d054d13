"""crontask command-line entry point.

Usage examples:
    # Run one cycle (what the system crontab calls every minute)
    crontask run

    # Same, with no output / with per-task debug lines
    crontask run --quiet
    crontask run --debug

    # Inspect and administer status records
    crontask status
    crontask reset nightly-report
    crontask disable nightly-report
    crontask schedule nightly-report "30 2 * * *"

    # Serve POST /cron/run for HTTP-triggered cycles
    crontask serve --port 8443
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from crontask.config import settings
from crontask.scheduler.admin import StatusAdmin
from crontask.scheduler.errors import CronTaskError
from crontask.scheduler.models import Priority
from crontask.scheduler.output import OutputSink, Verbosity
from crontask.scheduler.registry import load_task_modules, task_registry
from crontask.scheduler.runner import TaskRunner
from crontask.scheduler.store import StatusStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)

_ADMIN_COMMANDS = {
    "reset": "reset",
    "enable": "enable",
    "disable": "disable",
    "on": "turn_on",
    "off": "turn_off",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crontask", description="Run and administer cron tasks")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one cycle over all registered tasks")
    noise = run.add_mutually_exclusive_group()
    noise.add_argument("--quiet", action="store_true", help="Print nothing")
    noise.add_argument("--debug", action="store_true", help="Print a line for every task")

    status = sub.add_parser("status", help="Show every task's status record")
    status.add_argument("--json", action="store_true", help="Print records as JSON")

    for name, help_text in (
        ("reset", "Clear a task's error status"),
        ("enable", "Allow a task to run"),
        ("disable", "Stop a task from ever running"),
        ("on", "Switch an off task back to pending"),
        ("off", "Switch an idle task off"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("task_id")

    priority = sub.add_parser("priority", help="Change a task's priority")
    priority.add_argument("task_id")
    priority.add_argument("level", choices=[p.value for p in Priority])

    schedule = sub.add_parser("schedule", help="Change an editable task's schedule")
    schedule.add_argument("task_id")
    schedule.add_argument("expression")

    serve = sub.add_parser("serve", help="Serve POST /cron/run over HTTP")
    serve.add_argument("--port", type=int, default=None)

    return parser


def _verbosity(args: argparse.Namespace) -> Verbosity:
    if args.quiet:
        return Verbosity.SILENT
    if args.debug:
        return Verbosity.DEBUG
    return Verbosity.parse(settings.cron_verbosity)


async def _run_cycle(store: StatusStore, args: argparse.Namespace) -> int:
    runner = TaskRunner(store, task_registry)
    await runner.run_cycle(sink=OutputSink(verbosity=_verbosity(args)))
    return 0


async def _show_status(store: StatusStore, args: argparse.Namespace) -> int:
    records = await StatusAdmin(store, task_registry).list_statuses()
    if args.json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return 0
    if not records:
        print("No cron task status records yet.")
        return 0
    for r in records:
        flags = "" if r.enabled else " [disabled]"
        if r.is_locked:
            flags += " [locked]"
        print(
            f"{r.task_id:<30} {r.status.value:<9} {r.priority.value:<7} {r.schedule:<15}"
            f" last_run={r.last_run.isoformat() if r.last_run else '-'}{flags}"
        )
    return 0


async def _admin(store: StatusStore, args: argparse.Namespace) -> int:
    admin = StatusAdmin(store, task_registry)
    if args.command == "priority":
        record = await admin.set_priority(args.task_id, args.level)
    elif args.command == "schedule":
        record = await admin.set_schedule(args.task_id, args.expression)
    else:
        record = await getattr(admin, _ADMIN_COMMANDS[args.command])(args.task_id)
    print(json.dumps(record.to_dict(), indent=2))
    return 0


async def _serve(store: StatusStore, args: argparse.Namespace) -> int:
    from crontask.webhooks.server import CronServer

    server = CronServer(TaskRunner(store, task_registry), port=args.port)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    store = StatusStore()
    if args.command == "run":
        return await _run_cycle(store, args)
    if args.command == "status":
        return await _show_status(store, args)
    if args.command == "serve":
        return await _serve(store, args)
    return await _admin(store, args)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        load_task_modules(settings.get_task_modules())
        return asyncio.run(_dispatch(args))
    except (CronTaskError, PermissionError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    except Exception:
        logger.exception("crontask %s failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
