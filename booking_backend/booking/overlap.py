"""
Overlap detection for time slots.

Windows are half-open ``[start, end)``: a slot ending at 11:00 and one
starting at 11:00 do not conflict. All instants are truncated to whole
seconds before they are compared or stored.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from booking_backend.models.time_slot import TimeSlot


def truncate_to_seconds(instant: datetime) -> datetime:
    """Drop sub-second precision and normalise aware datetimes to naive UTC."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc).replace(tzinfo=None)
    return instant.replace(microsecond=0)


def utc_now() -> datetime:
    return truncate_to_seconds(datetime.now(timezone.utc))


def intervals_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    return first_start < second_end and second_start < first_end


def describe_window(start: datetime, end: datetime) -> str:
    if start.date() == end.date():
        return f"{start:%Y-%m-%d} {start:%H:%M} - {end:%H:%M}"
    return f"{start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}"


def find_overlapping_slot(
    db: Session,
    start: datetime,
    end: datetime,
    exclude_id: int | None = None,
) -> TimeSlot | None:
    """Return the earliest slot whose window overlaps ``[start, end)``, if any."""
    start = truncate_to_seconds(start)
    end = truncate_to_seconds(end)

    query = db.query(TimeSlot).filter(
        TimeSlot.start_time < end,
        TimeSlot.end_time > start,
    )
    if exclude_id is not None:
        query = query.filter(TimeSlot.id != exclude_id)

    return query.order_by(TimeSlot.start_time.asc(), TimeSlot.id.asc()).first()
