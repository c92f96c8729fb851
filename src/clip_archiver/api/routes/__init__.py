"""API route modules."""

from clip_archiver.api.routes import archive, cron, health

__all__ = ["archive", "cron", "health"]
