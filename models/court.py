from datetime import datetime
from models.db import db

class Court(db.Model):
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    sport_type = db.Column(db.String(40), nullable=True)

    price_per_hour = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit

    # per-court operating window; NULL falls back to OPERATING_START_HOUR/OPERATING_END_HOUR
    opening_hour = db.Column(db.Integer, nullable=True)
    closing_hour = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    facility = db.relationship("Facility", back_populates="courts")
