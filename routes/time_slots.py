from flask import Blueprint, request, jsonify, current_app, g

from models import db
from security.rbac import require_roles
from services import SlotConflict, build_resolver, parse_date
from utils.audit import log_event

time_slots_bp = Blueprint("time_slots", __name__, url_prefix="/time-slots")


def _blocked_json(b):
    return {
        "id": b.id,
        "courtId": b.court_id,
        "date": b.date.isoformat(),
        "startTime": b.start_time,
        "endTime": b.end_time,
        "reason": b.reason,
    }


# ---------- PUBLIC: availability for a court on a date ----------
@time_slots_bp.get("/court/<int:court_id>/date/<date_str>")
def court_time_slots(court_id: int, date_str: str):
    day = parse_date(date_str)
    slots = build_resolver(db.session, current_app.config).resolve_availability(court_id, day)
    return jsonify(
        success=True,
        timeSlots=[
            {
                "startTime": s.slot.start_time,
                "endTime": s.slot.end_time,
                "isAvailable": s.is_available,
                "reason": s.reason,
            }
            for s in slots
        ],
    ), 200


# ---------- OWNER: block a slot (maintenance) ----------
@time_slots_bp.post("/block")
@require_roles("OWNER")
def block_time_slot():
    data = request.get_json(silent=True) or {}
    resolver = build_resolver(db.session, current_app.config)

    try:
        blocked = resolver.block_slot(
            g.user,
            court_id=data.get("courtId"),
            day=parse_date(data.get("date")),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            reason=data.get("reason"),
        )
    except SlotConflict:
        log_event("SLOT_BLOCK_FAIL_DUPLICATE", user_id=g.user.id, entity="court", entity_id=data.get("courtId"))
        raise

    log_event("SLOT_BLOCK", user_id=g.user.id, entity="blocked_slot", entity_id=blocked.id,
              metadata={"court_id": blocked.court_id, "date": blocked.date.isoformat(), "start_time": blocked.start_time})
    return jsonify(success=True, message="Time slot blocked successfully", blockedSlot=_blocked_json(blocked)), 201


# ---------- OWNER: remove a block ----------
@time_slots_bp.delete("/unblock/<int:blocked_id>")
@require_roles("OWNER")
def unblock_time_slot(blocked_id: int):
    build_resolver(db.session, current_app.config).unblock_slot(g.user, blocked_id)

    log_event("SLOT_UNBLOCK", user_id=g.user.id, entity="blocked_slot", entity_id=blocked_id)
    return jsonify(success=True, message="Time slot unblocked successfully"), 200
