"""
Booking lifecycle: PENDING -> CONFIRMED | CANCELLED, CONFIRMED -> CANCELLED.

Double booking is prevented by the partial unique index on
(court_id, booking_date, start_time) over active rows; the pre-check below only
produces a friendlier error, the INSERT is what actually decides the race.
Status changes are guarded UPDATEs on the expected prior status, so a booking
that changed underneath us is never silently overwritten.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.booking import ACTIVE_STATUSES, CANCELLED, CONFIRMED, PENDING, Booking
from models.court import Court
from services.availability import court_window
from services.errors import (
    CancellationWindowExpired,
    CourtNotFound,
    Forbidden,
    InvalidBookingState,
    NotFound,
    SlotConflict,
    StoreError,
    ValidationError,
)
from services.policy import DEFAULT_CUTOFF, can_cancel
from services.slots import as_id, generate_slots, normalize_slots
from utils.money import split_evenly, to_minor

STATUSES = (PENDING, CONFIRMED, CANCELLED)


def normalize_ids(booking_ids: Iterable) -> List[int]:
    if not isinstance(booking_ids, (list, tuple, set)) or not booking_ids:
        raise ValidationError("bookingIds must be a non-empty list")
    # de-duplicate, keep order
    return list(dict.fromkeys(as_id(i, "bookingIds") for i in booking_ids))


class BookingLifecycle:

    def __init__(self, session, operating_hours=(6, 22), cancel_cutoff: timedelta = DEFAULT_CUTOFF,
                 clock=datetime.now):
        self.session = session
        self.operating_hours = operating_hours
        self.cancel_cutoff = cancel_cutoff
        self.clock = clock

    # ---------- create ----------

    def create_booking(self, user_id, facility_id, court_id, day: date, requested_slots,
                       total_amount) -> List[Booking]:
        if not user_id:
            raise ValidationError("userId is required")
        if facility_id in (None, "") or court_id in (None, "") or day is None:
            raise ValidationError("facilityId, courtId and selectedDate are required")
        if not isinstance(day, date):
            raise ValidationError("selectedDate must be a date")
        facility_id = as_id(facility_id, "facilityId")
        court_id = as_id(court_id, "courtId")

        slots = normalize_slots(requested_slots)
        total = to_minor(total_amount)
        if total <= 0:
            raise ValidationError("totalAmount must be greater than zero")
        if total < len(slots):
            # every slot must carry at least one unit of the total
            raise ValidationError("totalAmount is too small to split across the requested slots")

        court = self.session.get(Court, court_id)
        if court is None or not court.is_active or court.facility_id != facility_id:
            raise CourtNotFound()

        catalog = set(generate_slots(*court_window(court, self.operating_hours)))
        outside = [s.start_time for s in slots if s not in catalog]
        if outside:
            raise ValidationError(f"Slots outside operating hours: {', '.join(outside)}")

        now = self.clock()
        if any(datetime.combine(day, time.fromisoformat(s.start_time)) <= now for s in slots):
            raise ValidationError("Cannot book past/started slots")

        starts = [s.start_time for s in slots]
        try:
            taken = sorted(
                row.start_time
                for row in self.session.query(Booking.start_time).filter(
                    Booking.court_id == court_id,
                    Booking.booking_date == day,
                    Booking.start_time.in_(starts),
                    Booking.status.in_(ACTIVE_STATUSES),
                )
            )
            if taken:
                self.session.rollback()
                raise SlotConflict(f"Slot already booked: {', '.join(taken)}", slots=taken)

            bookings = [
                Booking(
                    user_id=user_id,
                    facility_id=facility_id,
                    court_id=court_id,
                    booking_date=day,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    amount=share,
                    status=PENDING,
                )
                for slot, share in zip(slots, split_evenly(total, len(slots)))
            ]
            self.session.add_all(bookings)
            self.session.commit()
        except IntegrityError:
            # uq_booking_active_slot: a concurrent request won the race
            self.session.rollback()
            raise SlotConflict("Slot already booked", slots=starts)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError() from exc

        return bookings

    # ---------- payment outcome ----------

    def _load(self, ids: List[int], user_id=None) -> List[Booking]:
        rows = (
            self.session.query(Booking)
            .filter(Booking.id.in_(ids))
            .order_by(Booking.booking_date.asc(), Booking.start_time.asc())
            .all()
        )
        if len(rows) != len(ids):
            raise NotFound("Booking not found")
        if user_id is not None and any(b.user_id != user_id for b in rows):
            raise Forbidden("Booking belongs to another user")
        return rows

    def confirm_bookings(self, booking_ids, payment_id: str, user_id=None, order_id=None) -> List[Booking]:
        """
        PENDING -> CONFIRMED for every id, or for none of them.
        Re-confirming with the same payment id is a no-op.
        """
        ids = normalize_ids(booking_ids)
        if not payment_id or not isinstance(payment_id, str):
            raise ValidationError("paymentId is required")

        rows = self._load(ids, user_id)
        if all(b.status == CONFIRMED and b.payment_id == payment_id for b in rows):
            return rows

        not_pending = [b.id for b in rows if b.status != PENDING]
        if not_pending:
            self.session.rollback()
            raise InvalidBookingState(f"Bookings not pending: {not_pending}")

        values = {"status": CONFIRMED, "payment_id": payment_id, "confirmed_at": datetime.utcnow()}
        if order_id:
            values["order_id"] = order_id

        try:
            updated = (
                self.session.query(Booking)
                .filter(Booking.id.in_(ids), Booking.status == PENDING)
                .update(values, synchronize_session=False)
            )
            if updated != len(ids):
                self.session.rollback()
                raise InvalidBookingState("Bookings changed state during confirmation")
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError() from exc

        return self._load(ids)

    def rollback_bookings(self, booking_ids, user_id=None, reason: str = "PAYMENT_FAILED") -> int:
        """
        Soft-cancel still-PENDING bookings. Already cancelled rows are left as
        they are, and so are confirmed ones. Returns the number of rows changed.
        """
        ids = normalize_ids(booking_ids)
        self._load(ids, user_id)

        try:
            updated = (
                self.session.query(Booking)
                .filter(Booking.id.in_(ids), Booking.status == PENDING)
                .update(
                    {"status": CANCELLED, "cancelled_at": datetime.utcnow(), "cancel_reason": reason},
                    synchronize_session=False,
                )
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError() from exc
        return updated

    # ---------- user cancellation ----------

    def cancel_booking(self, booking_id, requesting_user_id, reason: str = None) -> Booking:
        booking = self.session.get(Booking, as_id(booking_id, "bookingId"))
        if booking is None:
            raise NotFound("Booking not found")
        if booking.user_id != requesting_user_id:
            raise Forbidden("Booking belongs to another user")
        if booking.status != CONFIRMED:
            raise InvalidBookingState("Booking not cancellable")
        if not can_cancel(booking, self.clock(), self.cancel_cutoff):
            hours = self.cancel_cutoff.total_seconds() / 3600
            raise CancellationWindowExpired(f"Cancellation not allowed within {hours:g} hours of start")

        try:
            updated = (
                self.session.query(Booking)
                .filter(Booking.id == booking.id, Booking.status == CONFIRMED)
                .update(
                    {"status": CANCELLED, "cancelled_at": datetime.utcnow(),
                     "cancel_reason": reason or "USER_CANCELLED"},
                    synchronize_session=False,
                )
            )
            if updated != 1:
                self.session.rollback()
                raise InvalidBookingState("Booking not cancellable")
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError() from exc

        return self.session.get(Booking, booking.id)

    # ---------- queries / housekeeping ----------

    def list_user_bookings(self, user_id, status: str = None) -> List[Booking]:
        q = self.session.query(Booking).filter(Booking.user_id == user_id)
        if status:
            status = status.strip().upper()
            if status not in STATUSES:
                raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
            q = q.filter(Booking.status == status)
        return q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def expire_stale_pending(self, ttl: timedelta, now: datetime = None) -> int:
        """Cancel PENDING bookings whose payment never completed within `ttl`."""
        cutoff = (now or datetime.utcnow()) - ttl
        try:
            updated = (
                self.session.query(Booking)
                .filter(Booking.status == PENDING, Booking.created_at < cutoff)
                .update(
                    {"status": CANCELLED, "cancelled_at": datetime.utcnow(), "cancel_reason": "PAYMENT_TIMEOUT"},
                    synchronize_session=False,
                )
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError() from exc
        return updated
