from datetime import datetime, time, timedelta

import pytest

from models import db, Booking
from services import (
    BookingLifecycle,
    CancellationWindowExpired,
    CourtNotFound,
    Forbidden,
    InvalidBookingState,
    NotFound,
    SlotConflict,
    ValidationError,
)


def _at(day, hour, minute=0, second=0):
    return datetime.combine(day, time(hour, minute, second))


def _book(lifecycle, user, court, day, slots=("09",), total=500):
    return lifecycle.create_booking(user.id, court.facility_id, court.id, day, list(slots), total)


# ---------- create ----------

def test_single_slot_booking_then_confirm(lifecycle, resolver, player, court, game_day):
    [booking] = _book(lifecycle, player, court, game_day)

    assert booking.status == "PENDING"
    assert booking.total_amount == 500
    assert (booking.start_time, booking.end_time) == ("09:00", "10:00")
    assert booking.payment_id is None

    lifecycle.confirm_bookings([booking.id], "pay_1")

    booking = db.session.get(Booking, booking.id)
    assert booking.status == "CONFIRMED"
    assert booking.payment_id == "pay_1"
    slot = [a for a in resolver.resolve_availability(court.id, game_day) if a.slot.start_time == "09:00"][0]
    assert (slot.is_available, slot.reason) == (False, "Booked")


def test_multi_slot_total_split_exactly(lifecycle, player, court, game_day):
    bookings = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)

    assert [b.total_amount for b in bookings] == [500, 500]
    assert sum(b.amount for b in bookings) == 100000


def test_uneven_total_keeps_every_unit(lifecycle, player, court, game_day):
    bookings = _book(lifecycle, player, court, game_day, slots=["09", "10", "11"], total=100)

    assert [b.amount for b in bookings] == [3334, 3333, 3333]
    assert sum(b.amount for b in bookings) == 10000


def test_structured_and_bare_slots_are_equivalent(lifecycle, player, court, game_day):
    bookings = _book(lifecycle, player, court, game_day,
                     slots=[{"startTime": "18:00", "endTime": "19:00"}, "07"], total=800)

    assert [(b.start_time, b.end_time) for b in bookings] == [("07:00", "08:00"), ("18:00", "19:00")]


def test_taken_slot_conflicts_and_creates_nothing(lifecycle, player, other_player, court, game_day):
    _book(lifecycle, player, court, game_day, slots=["10"])

    with pytest.raises(SlotConflict) as excinfo:
        _book(lifecycle, other_player, court, game_day, slots=["09", "10"], total=1000)

    assert excinfo.value.slots == ["10:00"]
    assert Booking.query.filter_by(user_id=other_player.id).count() == 0


def test_slot_is_bookable_again_after_rollback(lifecycle, player, other_player, court, game_day):
    [first] = _book(lifecycle, player, court, game_day)
    lifecycle.rollback_bookings([first.id])

    [second] = _book(lifecycle, other_player, court, game_day)

    assert second.status == "PENDING"
    assert Booking.query.filter_by(start_time="09:00").count() == 2


def test_storage_constraint_blocks_duplicate_active_rows(app, player, court, game_day):
    db.session.add(Booking(user_id=player.id, facility_id=court.facility_id, court_id=court.id,
                           booking_date=game_day, start_time="09:00", end_time="10:00", amount=1))
    db.session.commit()

    # a racer whose conflict read ran before the other insert committed
    lifecycle = BookingLifecycle(db.session)
    real_query = db.session.query

    def blind_query(*entities, **kwargs):
        q = real_query(*entities, **kwargs)
        if entities and entities[0] is Booking.start_time:
            return q.filter(Booking.id < 0)
        return q

    db.session.query = blind_query
    try:
        with pytest.raises(SlotConflict):
            _book(lifecycle, player, court, game_day)
    finally:
        del db.session.query

    assert Booking.query.filter_by(start_time="09:00").count() == 1


@pytest.mark.parametrize("kwargs", [
    {"requested_slots": []},
    {"total_amount": 0},
    {"total_amount": -10},
    {"total_amount": "abc"},
    {"facility_id": None},
    {"court_id": "x"},
    {"day": "2026-01-01"},
    {"requested_slots": ["05"]},
    {"requested_slots": ["22"]},
    {"requested_slots": ["09", "10"], "total_amount": "0.01"},
])
def test_create_validation(lifecycle, player, court, game_day, kwargs):
    args = dict(user_id=player.id, facility_id=court.facility_id, court_id=court.id, day=game_day,
                requested_slots=["09"], total_amount=500)
    args.update(kwargs)

    with pytest.raises(ValidationError):
        lifecycle.create_booking(**args)
    assert Booking.query.count() == 0


def test_court_must_exist_belong_and_be_active(lifecycle, player, court, facility, game_day):
    with pytest.raises(CourtNotFound):
        lifecycle.create_booking(player.id, facility.id, 999, game_day, ["09"], 500)
    with pytest.raises(CourtNotFound):
        lifecycle.create_booking(player.id, facility.id + 1, court.id, game_day, ["09"], 500)

    court.is_active = False
    db.session.commit()
    with pytest.raises(CourtNotFound):
        lifecycle.create_booking(player.id, facility.id, court.id, game_day, ["09"], 500)


def test_cannot_book_started_slot(player, court, game_day):
    lifecycle = BookingLifecycle(db.session, clock=lambda: _at(game_day, 9, 30))

    with pytest.raises(ValidationError):
        _book(lifecycle, player, court, game_day, slots=["09"])
    assert _book(lifecycle, player, court, game_day, slots=["10"])


# ---------- confirm ----------

def test_confirm_is_all_or_nothing(lifecycle, player, court, game_day):
    first, second = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)
    lifecycle.rollback_bookings([second.id])

    with pytest.raises(InvalidBookingState):
        lifecycle.confirm_bookings([first.id, second.id], "pay_1")

    assert db.session.get(Booking, first.id).status == "PENDING"
    assert db.session.get(Booking, second.id).status == "CANCELLED"


def test_confirm_same_payment_twice_is_noop(lifecycle, player, court, game_day):
    [booking] = _book(lifecycle, player, court, game_day)
    lifecycle.confirm_bookings([booking.id], "pay_1")

    rows = lifecycle.confirm_bookings([booking.id], "pay_1")

    assert [b.status for b in rows] == ["CONFIRMED"]
    with pytest.raises(InvalidBookingState):
        lifecycle.confirm_bookings([booking.id], "pay_2")


def test_confirm_checks_owner_and_ids(lifecycle, player, other_player, court, game_day):
    [booking] = _book(lifecycle, player, court, game_day)

    with pytest.raises(Forbidden):
        lifecycle.confirm_bookings([booking.id], "pay_1", user_id=other_player.id)
    with pytest.raises(NotFound):
        lifecycle.confirm_bookings([booking.id, 999], "pay_1")
    with pytest.raises(ValidationError):
        lifecycle.confirm_bookings([], "pay_1")
    with pytest.raises(ValidationError):
        lifecycle.confirm_bookings([booking.id], "")

    assert db.session.get(Booking, booking.id).status == "PENDING"


# ---------- rollback ----------

def test_rollback_twice_same_state(lifecycle, player, court, game_day):
    bookings = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)
    ids = [b.id for b in bookings]

    assert lifecycle.rollback_bookings(ids) == 2
    first_state = [(b.status, b.cancel_reason) for b in Booking.query.order_by(Booking.id)]
    assert lifecycle.rollback_bookings(ids) == 0
    second_state = [(b.status, b.cancel_reason) for b in Booking.query.order_by(Booking.id)]

    assert first_state == second_state == [("CANCELLED", "PAYMENT_FAILED")] * 2


def test_rollback_leaves_confirmed_bookings(lifecycle, player, court, game_day):
    first, second = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)
    lifecycle.confirm_bookings([first.id], "pay_1")

    assert lifecycle.rollback_bookings([first.id, second.id]) == 1
    assert db.session.get(Booking, first.id).status == "CONFIRMED"
    assert db.session.get(Booking, second.id).status == "CANCELLED"


# ---------- user cancellation ----------

def test_cancel_confirmed_booking(lifecycle, player, court, game_day):
    [booking] = _book(lifecycle, player, court, game_day)
    lifecycle.confirm_bookings([booking.id], "pay_1")

    cancelled = lifecycle.cancel_booking(booking.id, player.id, reason="Rain")

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancel_reason == "Rain"
    assert cancelled.cancelled_at is not None


def test_cancel_errors(lifecycle, player, other_player, court, game_day):
    [booking] = _book(lifecycle, player, court, game_day)

    with pytest.raises(NotFound):
        lifecycle.cancel_booking(999, player.id)
    with pytest.raises(InvalidBookingState):
        lifecycle.cancel_booking(booking.id, player.id)

    lifecycle.confirm_bookings([booking.id], "pay_1")
    with pytest.raises(Forbidden):
        lifecycle.cancel_booking(booking.id, other_player.id)


def test_cancel_window(player, court, game_day):
    early = BookingLifecycle(db.session, clock=lambda: _at(game_day, 6, 59, 59))
    [booking] = _book(early, player, court, game_day)
    early.confirm_bookings([booking.id], "pay_1")

    late = BookingLifecycle(db.session, clock=lambda: _at(game_day, 7, 0, 0))
    with pytest.raises(CancellationWindowExpired) as excinfo:
        late.cancel_booking(booking.id, player.id)
    assert "2 hours" in excinfo.value.message
    assert db.session.get(Booking, booking.id).status == "CONFIRMED"

    assert early.cancel_booking(booking.id, player.id).status == "CANCELLED"


# ---------- listing / sweep ----------

def test_list_user_bookings(lifecycle, player, other_player, court, game_day):
    mine = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)
    _book(lifecycle, other_player, court, game_day, slots=["11"])
    lifecycle.confirm_bookings([mine[0].id], "pay_1")

    assert {b.id for b in lifecycle.list_user_bookings(player.id)} == {b.id for b in mine}
    assert [b.id for b in lifecycle.list_user_bookings(player.id, status="confirmed")] == [mine[0].id]
    with pytest.raises(ValidationError):
        lifecycle.list_user_bookings(player.id, status="LOST")


def test_expire_stale_pending(lifecycle, player, court, game_day):
    stale, fresh = _book(lifecycle, player, court, game_day, slots=["09", "10"], total=1000)
    confirmed = _book(lifecycle, player, court, game_day, slots=["11"])[0]
    lifecycle.confirm_bookings([confirmed.id], "pay_1")
    db.session.get(Booking, stale.id).created_at = datetime.utcnow() - timedelta(minutes=30)
    db.session.commit()

    assert lifecycle.expire_stale_pending(timedelta(minutes=15)) == 1

    assert db.session.get(Booking, stale.id).status == "CANCELLED"
    assert db.session.get(Booking, stale.id).cancel_reason == "PAYMENT_TIMEOUT"
    assert db.session.get(Booking, fresh.id).status == "PENDING"
    assert db.session.get(Booking, confirmed.id).status == "CONFIRMED"


def test_smallest_total_still_gives_every_slot_a_unit(lifecycle, player, court, game_day):
    bookings = _book(lifecycle, player, court, game_day, slots=["09", "10"], total="0.02")

    assert [b.amount for b in bookings] == [1, 1]
