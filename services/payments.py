"""
Payment reconciliation: sizes a provider order to the pending bookings,
confirms or rolls back the bookings once the provider reports the outcome.

Two confirmation paths reach the same settlement code:

* the client callback (`verify_and_confirm`), signed with HMAC-SHA256 (hex)
  over the exact bytes "<order_id>|<payment_id>" keyed with the shared
  signing secret;
* the Stripe webhook (`handle_provider_event`), signed by Stripe and checked
  with `stripe.Webhook.construct_event`.

A payment that arrives after its bookings stopped being PENDING is recorded
on the order as PAID_UNFULFILLED with the provider payment id, so it can be
refunded.
"""
import hashlib
import hmac
import time
from datetime import datetime
from typing import List, NamedTuple, Optional

import stripe
from sqlalchemy import or_

from models.booking import PENDING, Booking
from models.payment import (
    ORDER_CANCELLED,
    ORDER_CREATED,
    ORDER_FAILED,
    ORDER_PAID,
    ORDER_PAID_UNFULFILLED,
    PaymentOrder,
)
from services.errors import (
    Forbidden,
    InvalidBookingState,
    NotFound,
    PaymentLookupError,
    PaymentOrderError,
    PaymentUnfulfilled,
    ValidationError,
)
from services.lifecycle import normalize_ids
from utils.money import to_minor

EVENT_SUCCEEDED = "succeeded"
EVENT_FAILED = "failed"

STRIPE_EVENT_KINDS = {
    "payment_intent.succeeded": EVENT_SUCCEEDED,
    "payment_intent.payment_failed": EVENT_FAILED,
    "payment_intent.canceled": EVENT_FAILED,
}


class OrderHandle(NamedTuple):
    id: str
    amount: int  # smallest unit
    currency: str
    receipt: str


class PaymentDetails(NamedTuple):
    id: str
    order_id: Optional[str]
    amount: int  # smallest unit
    currency: str
    status: str


class ProviderEvent(NamedTuple):
    kind: Optional[str]  # EVENT_SUCCEEDED, EVENT_FAILED or None for events we ignore
    event_type: str
    order_id: Optional[str]
    payment_id: Optional[str]


class VerificationResult(NamedTuple):
    verified: bool
    order_id: str
    payment_id: Optional[str]
    booking_ids: List[int]


def sign_payment(order_id: str, payment_id: str, secret: str) -> str:
    payload = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class StripeGateway:
    """Provider orders are Stripe PaymentIntents; outcomes arrive as Stripe webhook events."""

    provider = "STRIPE"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def _require_key(self, error_cls):
        if not self.api_key:
            raise error_cls("Stripe secret key missing (STRIPE_SECRET_KEY)")
        stripe.api_key = self.api_key

    def create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> OrderHandle:
        self._require_key(PaymentOrderError)

        intent = stripe.PaymentIntent.create(
            amount=amount,
            currency=currency.lower(),
            metadata={"receipt": receipt, **{k: str(v) for k, v in notes.items()}},
        )
        return OrderHandle(
            id=intent["id"],
            amount=intent["amount"],
            currency=intent["currency"].upper(),
            receipt=receipt,
        )

    def fetch_payment(self, payment_id: str) -> PaymentDetails:
        self._require_key(PaymentLookupError)

        if payment_id.startswith("ch_"):
            charge = stripe.Charge.retrieve(payment_id)
            return PaymentDetails(
                id=charge["id"],
                order_id=charge.get("payment_intent"),
                amount=charge["amount"],
                currency=charge["currency"].upper(),
                status=charge["status"],
            )
        intent = stripe.PaymentIntent.retrieve(payment_id)
        return PaymentDetails(
            id=intent["id"],
            order_id=intent["id"],
            amount=intent["amount"],
            currency=intent["currency"].upper(),
            status=intent["status"],
        )

    def parse_event(self, payload: bytes, signature_header: str, webhook_secret: str) -> ProviderEvent:
        try:
            event = stripe.Webhook.construct_event(payload, signature_header, webhook_secret)
        except Exception as exc:
            raise ValidationError("Invalid webhook signature") from exc

        event_type = event["type"]
        kind = STRIPE_EVENT_KINDS.get(event_type)
        if kind is None:
            return ProviderEvent(None, event_type, None, None)

        intent = event["data"]["object"]
        # the charge id is what Stripe's dashboard and refunds refer to
        return ProviderEvent(kind, event_type, intent["id"], intent.get("latest_charge") or intent["id"])


class PaymentReconciler:

    def __init__(self, session, lifecycle, gateway, signing_secret: str):
        self.session = session
        self.lifecycle = lifecycle
        self.gateway = gateway
        self.signing_secret = signing_secret

    def _pending_for_user(self, ids: List[int], user_id) -> List[Booking]:
        rows = self.session.query(Booking).filter(Booking.id.in_(ids)).all()
        if len(rows) != len(ids):
            raise NotFound("Booking not found")
        if any(b.user_id != user_id for b in rows):
            raise Forbidden("Booking belongs to another user")
        not_pending = [b.id for b in rows if b.status != PENDING]
        if not_pending:
            raise InvalidBookingState(f"Bookings not pending: {not_pending}")
        return rows

    def create_order(self, user_id, total_amount, currency: str, booking_ids) -> OrderHandle:
        amount = to_minor(total_amount)
        if amount <= 0:
            raise ValidationError("Invalid amount")
        currency = (currency or "").strip().upper()
        if not currency:
            raise ValidationError("currency is required")

        ids = normalize_ids(booking_ids)
        bookings = self._pending_for_user(ids, user_id)
        if sum(b.amount for b in bookings) != amount:
            raise ValidationError("amount does not match the bookings' total")

        receipt = f"receipt_{int(time.time() * 1000)}"
        try:
            handle = self.gateway.create_order(
                amount=amount,
                currency=currency,
                receipt=receipt,
                notes={"bookingIds": ",".join(str(i) for i in ids), "userId": user_id},
            )
        except PaymentOrderError:
            raise
        except Exception as exc:
            # bookings stay PENDING; the client retries or calls cancel
            raise PaymentOrderError(f"Failed to create payment order: {exc}") from exc

        order = PaymentOrder(
            order_id=handle.id,
            user_id=user_id,
            provider=getattr(self.gateway, "provider", "STRIPE"),
            amount=handle.amount,
            currency=handle.currency,
            receipt=handle.receipt,
            status=ORDER_CREATED,
        )
        self.session.add(order)
        for b in bookings:
            b.order_id = handle.id
        self.session.commit()
        return handle

    def _order_booking_ids(self, order: PaymentOrder, booking_ids) -> List[int]:
        tagged = [
            row.id
            for row in self.session.query(Booking.id).filter(Booking.order_id == order.order_id)
        ]
        if not booking_ids:
            if not tagged:
                raise ValidationError("bookingIds must be a non-empty list")
            return tagged
        ids = normalize_ids(booking_ids)
        if set(ids) - set(tagged):
            raise ValidationError("bookingIds do not belong to this order")
        return ids

    def _find_order(self, order_id: str) -> Optional[PaymentOrder]:
        return self.session.query(PaymentOrder).filter_by(order_id=order_id).first()

    def _get_order(self, order_id: str, user_id) -> PaymentOrder:
        if not order_id:
            raise ValidationError("orderId is required")
        order = self._find_order(order_id)
        if order is None:
            raise NotFound("Payment order not found")
        if order.user_id != user_id:
            raise Forbidden("Payment order belongs to another user")
        return order

    # ---------- settlement ----------

    def _settle_paid(self, order: PaymentOrder, payment_id: str, ids: List[int]) -> None:
        """
        Mark the order PAID and confirm its bookings in one commit. If the
        bookings can no longer be confirmed, the payment is kept on the order
        as PAID_UNFULFILLED and PaymentUnfulfilled is raised.
        """
        order_id = order.order_id
        try:
            order.status = ORDER_PAID
            order.payment_id = payment_id
            order.closed_at = datetime.utcnow()
            # same session: the order status commits together with the bookings
            self.lifecycle.confirm_bookings(ids, payment_id, user_id=order.user_id, order_id=order_id)
            self.session.commit()
        except InvalidBookingState as exc:
            self.session.rollback()
            order = self._find_order(order_id)
            if order.status == ORDER_PAID:
                # already settled with a different payment id
                raise
            order.status = ORDER_PAID_UNFULFILLED
            order.payment_id = payment_id
            order.closed_at = datetime.utcnow()
            self.session.commit()
            raise PaymentUnfulfilled(order_id=order_id, payment_id=payment_id) from exc
        except Exception:
            self.session.rollback()
            raise

    def _settle_failed(self, order: PaymentOrder, ids: List[int], reason: str) -> None:
        try:
            if order.status == ORDER_CREATED:
                order.status = ORDER_FAILED
                order.closed_at = datetime.utcnow()
            self.lifecycle.rollback_bookings(ids, user_id=order.user_id, reason=reason)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def verify_and_confirm(self, user_id, order_id: str, provider_payment_id: str,
                           provider_signature: str, booking_ids=None) -> VerificationResult:
        order = self._get_order(order_id, user_id)
        ids = self._order_booking_ids(order, booking_ids)

        expected = sign_payment(order_id, provider_payment_id or "", self.signing_secret)
        verified = bool(
            provider_payment_id
            and isinstance(provider_signature, str)
            and hmac.compare_digest(expected, provider_signature)
        )

        if verified:
            self._settle_paid(order, provider_payment_id, ids)
        else:
            self._settle_failed(order, ids, "PAYMENT_VERIFICATION_FAILED")

        return VerificationResult(verified, order_id, provider_payment_id, ids)

    def handle_provider_event(self, event: ProviderEvent) -> Optional[VerificationResult]:
        """
        Apply a verified provider event. Returns None for event types we do not
        act on and for orders this engine never created.
        """
        if event.kind is None or not event.order_id:
            return None
        order = self._find_order(event.order_id)
        if order is None:
            return None

        ids = self._order_booking_ids(order, None)
        if event.kind == EVENT_SUCCEEDED:
            self._settle_paid(order, event.payment_id, ids)
            return VerificationResult(True, order.order_id, event.payment_id, ids)

        self._settle_failed(order, ids, "PAYMENT_FAILED")
        return VerificationResult(False, order.order_id, event.payment_id, ids)

    def cancel_order(self, user_id, order_id: str, booking_ids) -> int:
        """
        Roll back the order's bookings. The provider order itself is not voided.
        """
        order = None
        if order_id:
            order = self._find_order(order_id)
            if order is not None and order.user_id != user_id:
                raise Forbidden("Payment order belongs to another user")

        if order is not None:
            ids = self._order_booking_ids(order, booking_ids)
        else:
            ids = normalize_ids(booking_ids)

        try:
            if order is not None and order.status == ORDER_CREATED:
                order.status = ORDER_CANCELLED
                order.closed_at = datetime.utcnow()
            updated = self.lifecycle.rollback_bookings(ids, user_id=user_id, reason="PAYMENT_CANCELLED")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return updated

    # ---------- lookup ----------

    def payment_details(self, user_id, payment_id: str) -> PaymentDetails:
        if not payment_id:
            raise ValidationError("paymentId is required")
        order = (
            self.session.query(PaymentOrder)
            .filter(or_(PaymentOrder.payment_id == payment_id, PaymentOrder.order_id == payment_id))
            .first()
        )
        if order is None:
            raise NotFound("Payment not found")
        if order.user_id != user_id:
            raise Forbidden("Payment belongs to another user")

        try:
            return self.gateway.fetch_payment(payment_id)
        except PaymentLookupError:
            raise
        except Exception as exc:
            raise PaymentLookupError(f"Failed to get payment details: {exc}") from exc
