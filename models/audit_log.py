from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # NULL for provider/CLI events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. BOOKING_CREATE, PAYMENT_VERIFIED
    entity = db.Column(db.String(80), nullable=True)   # booking, payment_order, blocked_slot
    entity_id = db.Column(db.String(255), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
