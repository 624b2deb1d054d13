"""crontask: cron-style recurring task runner with durable status tracking."""
