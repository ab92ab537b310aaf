from datetime import date
from typing import List, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.blocked_slot import BlockedSlot
from models.booking import ACTIVE_STATUSES, Booking
from models.court import Court
from models.facility import Facility
from services.errors import (
    CourtNotFound,
    Forbidden,
    NotFound,
    ResolverError,
    SlotConflict,
    ValidationError,
)
from services.slots import Slot, as_id, generate_slots, normalize_slot

BOOKED = "Booked"
MAINTENANCE = "Maintenance"


class SlotAvailability(NamedTuple):
    slot: Slot
    is_available: bool
    reason: Optional[str]


def court_window(court, default_window):
    start, end = default_window
    if court.opening_hour is not None:
        start = court.opening_hour
    if court.closing_hour is not None:
        end = court.closing_hour
    return start, end


class AvailabilityResolver:
    """
    Overlays active bookings and owner-blocked slots on a court's slot grid.
    Also owns the owner-side block/unblock operations.
    """

    def __init__(self, session, operating_hours=(6, 22)):
        self.session = session
        self.operating_hours = operating_hours

    def resolve_availability(self, court_id: int, day: date) -> List[SlotAvailability]:
        try:
            court = self.session.get(Court, court_id)
            if court is None:
                raise CourtNotFound()

            catalog = generate_slots(*court_window(court, self.operating_hours))

            booked = {
                row.start_time
                for row in self.session.query(Booking.start_time).filter(
                    Booking.court_id == court_id,
                    Booking.booking_date == day,
                    Booking.status.in_(ACTIVE_STATUSES),
                )
            }
            blocked = {
                row.start_time
                for row in self.session.query(BlockedSlot.start_time).filter(
                    BlockedSlot.court_id == court_id,
                    BlockedSlot.date == day,
                )
            }
        except SQLAlchemyError as exc:
            raise ResolverError() from exc

        out = []
        for slot in catalog:
            # booking check first: a slot both booked and blocked reports "Booked"
            if slot.start_time in booked:
                out.append(SlotAvailability(slot, False, BOOKED))
            elif slot.start_time in blocked:
                out.append(SlotAvailability(slot, False, MAINTENANCE))
            else:
                out.append(SlotAvailability(slot, True, None))
        return out

    # ---------- owner operations ----------

    def _owned_court(self, owner, court_id: int) -> Court:
        court = self.session.get(Court, court_id)
        if court is None:
            raise CourtNotFound()
        if not owner.is_admin:
            facility = self.session.get(Facility, court.facility_id)
            if facility is None or facility.owner_user_id != owner.id:
                raise Forbidden("Not authorized")
        return court

    def block_slot(self, owner, court_id: int, day: date, start_time, end_time=None,
                   reason: str = None) -> BlockedSlot:
        if not court_id or day is None or not start_time:
            raise ValidationError("courtId, date and startTime are required")

        court = self._owned_court(owner, as_id(court_id, "courtId"))
        slot = normalize_slot({"startTime": start_time, "endTime": end_time})
        if slot not in generate_slots(*court_window(court, self.operating_hours)):
            raise ValidationError(f"{slot.start_time} is outside the court's operating hours")

        blocked = BlockedSlot(
            court_id=court.id,
            date=day,
            start_time=slot.start_time,
            end_time=slot.end_time,
            reason=(reason or "").strip() or MAINTENANCE,
            created_by=owner.id,
        )
        self.session.add(blocked)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise SlotConflict("Time slot already blocked", slots=[slot.start_time])
        return blocked

    def unblock_slot(self, owner, blocked_slot_id: int) -> None:
        blocked = self.session.get(BlockedSlot, blocked_slot_id)
        if blocked is None:
            raise NotFound("Blocked slot not found")
        self._owned_court(owner, blocked.court_id)

        self.session.delete(blocked)
        self.session.commit()
