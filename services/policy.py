from datetime import datetime, time, timedelta

from models.booking import CONFIRMED

DEFAULT_CUTOFF = timedelta(hours=2)


def slot_start(booking) -> datetime:
    return datetime.combine(booking.booking_date, time.fromisoformat(booking.start_time))


def can_cancel(booking, now: datetime, cutoff: timedelta = DEFAULT_CUTOFF) -> bool:
    """A confirmed booking may be cancelled while strictly more than `cutoff` remains before it starts."""
    if booking.status != CONFIRMED:
        return False
    return (slot_start(booking) - now) > cutoff
