"""HTTP trigger for the cron cycle."""

from crontask.webhooks.server import CronServer

__all__ = ["CronServer"]
