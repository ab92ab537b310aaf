from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, text

from models.db import db

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
ACTIVE_STATUSES = (PENDING, CONFIRMED)

_ACTIVE_PREDICATE = "status IN ('PENDING', 'CONFIRMED')"

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)

    booking_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)  # "HH:00"
    end_time = db.Column(db.String(5), nullable=False)

    amount = db.Column(db.Integer, nullable=False)  # smallest currency unit, this hour's share

    status = db.Column(db.String(20), nullable=False, default=PENDING)
    # status values: PENDING, CONFIRMED, CANCELLED

    payment_id = db.Column(db.String(64), nullable=True)
    order_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    __table_args__ = (
        # Hard business-rule: one active booking per court/date/hour (prevents double booking)
        Index(
            "uq_booking_active_slot",
            "court_id", "booking_date", "start_time",
            unique=True,
            sqlite_where=text(_ACTIVE_PREDICATE),
            postgresql_where=text(_ACTIVE_PREDICATE),
        ),
    )

    @property
    def total_amount(self) -> Decimal:
        return Decimal(self.amount) / 100
