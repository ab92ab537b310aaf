from flask import Blueprint, request, jsonify, current_app, g

from models import db
from services import SlotConflict, build_lifecycle, parse_date
from utils.auth_context import login_required
from utils.audit import log_event
from utils.money import from_minor

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")

SUCCESS_PAYMENT_STATUSES = {"SUCCESS", "PAID", "CAPTURED"}


def booking_json(b):
    return {
        "id": b.id,
        "userId": b.user_id,
        "facilityId": b.facility_id,
        "courtId": b.court_id,
        "bookingDate": b.booking_date.isoformat(),
        "startTime": b.start_time,
        "endTime": b.end_time,
        "totalAmount": float(b.total_amount),
        "status": b.status,
        "paymentId": b.payment_id,
        "orderId": b.order_id,
        "createdAt": b.created_at.isoformat(),
        "cancelledAt": b.cancelled_at.isoformat() if b.cancelled_at else None,
    }


def _lifecycle():
    return build_lifecycle(db.session, current_app.config)


# ---------- PLAYERS: book slots (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    court_id = data.get("courtId")

    try:
        bookings = _lifecycle().create_booking(
            user_id=g.user.id,
            facility_id=data.get("facilityId"),
            court_id=court_id,
            day=parse_date(data.get("selectedDate")),
            requested_slots=data.get("selectedSlots"),
            total_amount=data.get("totalAmount"),
        )
    except SlotConflict as exc:
        log_event("BOOKING_FAIL_ALREADY_BOOKED", user_id=g.user.id, entity="court", entity_id=court_id,
                  metadata={"date": data.get("selectedDate"), "slots": exc.slots})
        raise

    ids = [b.id for b in bookings]
    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=ids,
              metadata={"court_id": court_id, "date": bookings[0].booking_date.isoformat()})
    return jsonify(
        success=True,
        message="Booking created successfully",
        bookings=[booking_json(b) for b in bookings],
        totalAmount=float(from_minor(sum(b.amount for b in bookings))),
    ), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/my-bookings")
@login_required
def my_bookings():
    rows = _lifecycle().list_user_bookings(g.user.id, status=request.args.get("status"))
    return jsonify(success=True, bookings=[booking_json(b) for b in rows]), 200


# ---------- PLAYERS: client-reported payment outcome ----------
@booking_bp.post("/confirm-payment")
@login_required
def confirm_payment():
    data = request.get_json(silent=True) or {}
    booking_ids = data.get("bookingIds")
    payment_id = data.get("paymentId")
    payment_status = (data.get("paymentStatus") or "").strip().upper()

    lifecycle = _lifecycle()
    if payment_status in SUCCESS_PAYMENT_STATUSES:
        rows = lifecycle.confirm_bookings(booking_ids, payment_id, user_id=g.user.id)
        log_event("BOOKING_CONFIRM", user_id=g.user.id, entity="booking", entity_id=[b.id for b in rows],
                  metadata={"payment_id": payment_id})
        return jsonify(success=True, message="Bookings confirmed", bookings=[booking_json(b) for b in rows]), 200

    # soft cancel; bookings are never deleted
    count = lifecycle.rollback_bookings(booking_ids, user_id=g.user.id, reason="PAYMENT_FAILED")
    log_event("BOOKING_PAYMENT_FAILED", user_id=g.user.id, entity="booking", entity_id=booking_ids,
              metadata={"payment_status": payment_status or None, "cancelled": count})
    return jsonify(success=True, message="Payment failed, bookings cancelled", cancelled=count), 200


# ---------- PLAYERS: cancel booking (policy window) ----------
@booking_bp.put("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    booking = _lifecycle().cancel_booking(booking_id, g.user.id, reason=reason)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})
    return jsonify(success=True, message="Booking cancelled successfully", booking=booking_json(booking)), 200
