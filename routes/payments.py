from flask import Blueprint, request, jsonify, current_app, g

from models import db
from services import PaymentOrderError, PaymentUnfulfilled, build_reconciler
from utils.auth_context import login_required
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payment")


def _gateway():
    return current_app.extensions["payment_gateway"]


def _reconciler():
    return build_reconciler(db.session, current_app.config, _gateway())


def _log_unfulfilled(exc, user_id=None):
    # captured money with no booking behind it; support refunds from this trail
    current_app.logger.error("Payment %s for order %s arrived after its bookings were released",
                             exc.payment_id, exc.order_id)
    log_event("PAYMENT_UNFULFILLED", user_id=user_id, entity="payment_order", entity_id=exc.order_id,
              metadata={"payment_id": exc.payment_id})


@payments_bp.post("/create-order")
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    booking_ids = data.get("bookingIds")
    currency = data.get("currency") or current_app.config.get("PAYMENT_CURRENCY", "INR")

    try:
        order = _reconciler().create_order(g.user.id, data.get("amount"), currency, booking_ids)
    except PaymentOrderError as exc:
        # bookings stay PENDING so the client can retry or cancel
        current_app.logger.warning("Payment order creation failed for bookings %s: %s", booking_ids, exc)
        log_event("PAYMENT_ORDER_FAIL", user_id=g.user.id, entity="booking", entity_id=booking_ids)
        raise

    log_event("PAYMENT_ORDER_CREATED", user_id=g.user.id, entity="payment_order", entity_id=order.id,
              metadata={"booking_ids": booking_ids, "amount": order.amount, "currency": order.currency})
    return jsonify(
        success=True,
        order={
            "id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "receipt": order.receipt,
        },
        key=current_app.config.get("PAYMENT_PUBLIC_KEY"),
    ), 200


@payments_bp.post("/verify")
@login_required
def verify_payment():
    if not current_app.config.get("PAYMENT_SIGNING_SECRET"):
        return jsonify(error="Payment signing secret not configured (PAYMENT_SIGNING_SECRET)"), 500

    data = request.get_json(silent=True) or {}
    try:
        result = _reconciler().verify_and_confirm(
            g.user.id,
            order_id=data.get("razorpay_order_id"),
            provider_payment_id=data.get("razorpay_payment_id"),
            provider_signature=data.get("razorpay_signature"),
            booking_ids=data.get("bookingIds"),
        )
    except PaymentUnfulfilled as exc:
        _log_unfulfilled(exc, user_id=g.user.id)
        raise

    if not result.verified:
        log_event("PAYMENT_VERIFY_FAIL", user_id=g.user.id, entity="payment_order", entity_id=result.order_id,
                  metadata={"booking_ids": result.booking_ids})
        return jsonify(error="Payment verification failed", code="PAYMENT_VERIFICATION_FAILED"), 400

    log_event("PAYMENT_VERIFIED", user_id=g.user.id, entity="payment_order", entity_id=result.order_id,
              metadata={"payment_id": result.payment_id, "booking_ids": result.booking_ids})
    return jsonify(
        success=True,
        message="Payment verified and booking confirmed",
        paymentId=result.payment_id,
        bookingIds=result.booking_ids,
    ), 200


# ---------- STRIPE: payment_intent events (no cookie session, signed by Stripe) ----------
@payments_bp.post("/stripe-webhook")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    event = _gateway().parse_event(request.data, request.headers.get("Stripe-Signature"), endpoint_secret)

    try:
        result = _reconciler().handle_provider_event(event)
    except PaymentUnfulfilled as exc:
        _log_unfulfilled(exc)
        # acknowledged so Stripe stops retrying; the order row carries the refund case
        return jsonify(received=True, fulfilled=False), 200

    if result is None:
        current_app.logger.info("Ignored Stripe event %s for order %s", event.event_type, event.order_id)
        return jsonify(received=True), 200

    action = "PAYMENT_PAID" if result.verified else "PAYMENT_FAILED"
    log_event(action, entity="payment_order", entity_id=result.order_id,
              metadata={"payment_id": result.payment_id, "booking_ids": result.booking_ids,
                        "event": event.event_type})
    return jsonify(received=True), 200


@payments_bp.get("/<payment_id>")
@login_required
def payment_details(payment_id: str):
    payment = _reconciler().payment_details(g.user.id, payment_id)
    return jsonify(
        success=True,
        payment={
            "id": payment.id,
            "orderId": payment.order_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status,
        },
    ), 200


@payments_bp.post("/cancel")
@login_required
def cancel_payment():
    data = request.get_json(silent=True) or {}
    order_id = data.get("orderId")

    count = _reconciler().cancel_order(g.user.id, order_id, data.get("bookingIds"))

    log_event("PAYMENT_CANCELLED", user_id=g.user.id, entity="payment_order", entity_id=order_id,
              metadata={"reason": "user_cancelled", "cancelled": count})
    return jsonify(success=True, message="Payment cancelled and bookings updated", cancelled=count), 200
