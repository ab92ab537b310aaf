from datetime import datetime
from models.db import db

class BlockedSlot(db.Model):
    __tablename__ = "blocked_slots"

    id = db.Column(db.Integer, primary_key=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)  # "HH:00"
    end_time = db.Column(db.String(5), nullable=False)
    reason = db.Column(db.String(120), nullable=False, default="Maintenance")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("court_id", "date", "start_time", name="uq_blocked_slot_once"),
    )
