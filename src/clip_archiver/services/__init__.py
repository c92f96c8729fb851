"""Application services."""

from clip_archiver.services.archiver import ArchiveController
from clip_archiver.services.catalog import CatalogWriter
from clip_archiver.services.finalizer import Finalizer
from clip_archiver.services.ledger import ArchiveJobNotFoundError, normalize_channel
from clip_archiver.services.scheduler import RefreshScheduler
from clip_archiver.services.windows import plan_incremental, plan_windows

__all__ = [
    "ArchiveController",
    "ArchiveJobNotFoundError",
    "CatalogWriter",
    "Finalizer",
    "RefreshScheduler",
    "normalize_channel",
    "plan_incremental",
    "plan_windows",
]
