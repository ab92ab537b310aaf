from datetime import datetime
from models.db import db

ORDER_CREATED = "CREATED"
ORDER_PAID = "PAID"
ORDER_FAILED = "FAILED"
ORDER_CANCELLED = "CANCELLED"
# money captured but the bookings were no longer pending; needs a refund
ORDER_PAID_UNFULFILLED = "PAID_UNFULFILLED"

class PaymentOrder(db.Model):
    __tablename__ = "payment_orders"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)  # provider id
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False, default="STRIPE")
    amount = db.Column(db.Integer, nullable=False)   # smallest unit
    currency = db.Column(db.String(10), nullable=False, default="INR")
    receipt = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=ORDER_CREATED)
    payment_id = db.Column(db.String(64), nullable=True, index=True)  # provider payment id once paid

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    closed_at = db.Column(db.DateTime, nullable=True)
