"""Window planning for full-history and incremental fetches.

A plan is a list of fixed-length, non-overlapping, half-open windows
``[start, end)`` tiling ``[lower_bound, now]``, with the final window
clipped to ``now``. Planning is pure: the same inputs always give the
same windows, which is what lets a job's ``current_window`` index act as
a resume pointer across invocations.
"""

import math
from datetime import datetime, timedelta

from clip_archiver.config import settings
from clip_archiver.domain.models import TimeWindow


def plan_windows(
    creation_time: datetime,
    now: datetime,
    window_days: int,
    floor: datetime | None = None,
) -> list[TimeWindow]:
    """Plan the windows covering a channel's full history.

    Args:
        creation_time: When the channel was created.
        now: Upper bound of the plan.
        window_days: Length of every window except possibly the last.
        floor: Earliest possible record time (defaults to the API launch date).

    Returns:
        Ordered windows; empty if the lower bound is not before ``now``.
    """
    if window_days <= 0:
        raise ValueError("window_days must be positive")

    floor = floor if floor is not None else settings.archive_api_floor
    lower_bound = max(creation_time, floor)
    if lower_bound >= now:
        return []

    length = timedelta(days=window_days)
    count = math.ceil((now - lower_bound) / length)

    return [
        TimeWindow(
            index=i,
            start=lower_bound + i * length,
            end=min(lower_bound + (i + 1) * length, now),
        )
        for i in range(count)
    ]


def plan_incremental(
    last_refresh: datetime,
    now: datetime,
    window_days: int | None = None,
    overlap: timedelta | None = None,
    floor: datetime | None = None,
) -> list[TimeWindow]:
    """Plan the windows for an incremental refresh.

    The plan starts ``overlap`` before ``last_refresh`` so clips whose
    timestamps landed near the previous boundary are fetched again.
    """
    window_days = window_days or settings.refresh_window_days
    if overlap is None:
        overlap = timedelta(hours=settings.refresh_overlap_hours)
    return plan_windows(last_refresh - overlap, now, window_days, floor=floor)

