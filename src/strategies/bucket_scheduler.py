"""Day partitioning into fixed-size time buckets."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

SECONDS_IN_HOUR = 60 * 60
SECONDS_IN_DAY = 24 * SECONDS_IN_HOUR


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def floor_date(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def ceil_date(t: datetime) -> datetime:
    return floor_date(t) + timedelta(days=1)


def sunday_first_weekday(t: datetime) -> int:
    """Weekday index with Sunday as 0, matching the filter array order."""
    return (t.weekday() + 1) % 7


@dataclass(frozen=True)
class BucketSchedule:
    bucket_id: int
    total_buckets: int
    seconds_elapsed: int
    seconds_today: int
    bucket_size_seconds: int
    day_start: datetime

    def bucket_start(self, bucket_id: int | None = None) -> datetime:
        idx = self.bucket_id if bucket_id is None else bucket_id
        return self.day_start + timedelta(seconds=idx * self.bucket_size_seconds)

    def bucket_end(self, bucket_id: int | None = None) -> datetime:
        idx = self.bucket_id if bucket_id is None else bucket_id
        end_seconds = min((idx + 1) * self.bucket_size_seconds, self.seconds_today)
        return self.day_start + timedelta(seconds=end_seconds)


def schedule_bucket(now: datetime, bucket_size_seconds: int) -> BucketSchedule:
    """Locate ``now`` within its day.

    The day runs from local midnight to the next midnight in ``now``'s
    timezone (naive values are treated as UTC). The last bucket may be
    shorter than ``bucket_size_seconds`` when the size does not tile the day.
    """
    if bucket_size_seconds <= 0:
        raise ValueError(f"bucket_size_seconds must be positive, got {bucket_size_seconds}")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    day_start = floor_date(now)
    day_end = ceil_date(now)
    # compare in UTC so DST days come out as 23h/25h
    day_start_utc = day_start.astimezone(timezone.utc)
    seconds_today = int((day_end.astimezone(timezone.utc) - day_start_utc).total_seconds())
    total_buckets = math.ceil(seconds_today / bucket_size_seconds)

    seconds_elapsed = int((now.astimezone(timezone.utc) - day_start_utc).total_seconds())
    bucket_id = seconds_elapsed // bucket_size_seconds

    return BucketSchedule(
        bucket_id=bucket_id,
        total_buckets=total_buckets,
        seconds_elapsed=seconds_elapsed,
        seconds_today=seconds_today,
        bucket_size_seconds=bucket_size_seconds,
        day_start=day_start,
    )
