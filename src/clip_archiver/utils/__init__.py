"""Shared utilities."""

from clip_archiver.utils.async_utils import run_async

__all__ = ["run_async"]
