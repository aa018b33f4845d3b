from datetime import datetime
from models.db import db

class IpRateLimit(db.Model):
    __tablename__ = "ip_rate_limits"

    id = db.Column(db.Integer, primary_key=True)
    # "<scope>:<client ip>", e.g. "booking_create:203.0.113.9"
    bucket = db.Column(db.String(128), unique=True, nullable=False, index=True)

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
