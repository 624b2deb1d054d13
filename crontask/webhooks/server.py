"""Lightweight async HTTP endpoint for triggering a cron cycle.

Lets an external scheduler (or an uptime pinger) run the cycle with
``POST /cron/run`` instead of shelling out to the CLI. Callers must present
the shared secret in the ``X-Cron-Secret`` header; with no secret configured
every request is refused.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import hmac
import logging

from aiohttp import web

from crontask.config import settings
from crontask.scheduler.output import OutputSink, Verbosity
from crontask.scheduler.runner import TaskRunner

logger = logging.getLogger(__name__)

RUNNER_KEY = web.AppKey("runner", TaskRunner)


def _authorised(request: web.Request) -> bool:
    secret = request.headers.get("X-Cron-Secret", "")
    if not settings.cron_secret:
        return False
    return hmac.compare_digest(secret.encode(), settings.cron_secret.encode())


def _verbosity(request: web.Request) -> Verbosity:
    if request.query.get("quiet"):
        return Verbosity.SILENT
    if request.query.get("debug"):
        return Verbosity.DEBUG
    return Verbosity.parse(settings.cron_verbosity)


async def _handle_run(request: web.Request) -> web.Response:
    """POST /cron/run: run one cycle and return its report."""
    if not _authorised(request):
        logger.warning("Cron trigger rejected: invalid secret (remote=%s)", request.remote)
        return web.json_response({"error": "unauthorized"}, status=401)

    runner = request.app[RUNNER_KEY]
    sink = OutputSink(verbosity=_verbosity(request), echo=False)
    try:
        report = await runner.run_cycle(sink=sink)
    except Exception:
        logger.exception("Cron cycle failed")
        return web.json_response({"error": "cycle failed"}, status=500)

    logger.info("Cron cycle triggered over HTTP: %s", report.summary())
    return web.json_response(
        {"ok": True, **report.to_dict(), "output": sink.lines}
    )


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


def _create_web_app(runner: TaskRunner) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[RUNNER_KEY] = runner
    app.router.add_get("/health", _health)
    app.router.add_post("/cron/run", _handle_run)
    return app


class CronServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, runner: TaskRunner, port: int | None = None) -> None:
        self.port = port if port is not None else settings.webhook_port
        self._task_runner = runner
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for cycle triggers."""
        if not settings.cron_secret:
            logger.warning("CRON_SECRET is empty, every /cron/run request will be refused")

        app = _create_web_app(self._task_runner)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Cron endpoint listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Cron endpoint stopped")
