"""Domain enumerations."""

from enum import StrEnum


class ArchiveStatus(StrEnum):
    """Status of a channel's archive job in the ledger."""

    PENDING = "pending"
    RUNNING = "running"
    RESOLVING_METADATA = "resolving_metadata"
    COMPLETE = "complete"
    FAILED = "failed"


# Statuses that count against the concurrency cap while their checkpoint is fresh
ACTIVE_STATUSES = (ArchiveStatus.RUNNING, ArchiveStatus.RESOLVING_METADATA)


class StartOutcome(StrEnum):
    """Result of asking to start (or resume) an archive job."""

    STARTED = "started"
    ALREADY_ARCHIVED = "already_archived"
    IN_PROGRESS = "in_progress"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"


class RunOutcome(StrEnum):
    """Result of one bounded execution of an archive job."""

    CONTINUE_LATER = "continue_later"  # Budget reached, more windows remain
    COMPLETE = "complete"
    FAILED = "failed"
    NOT_FOUND = "not_found"  # No ledger row for the channel
    SUPERSEDED = "superseded"  # Another runner advanced the checkpoint first
