from datetime import datetime
from models.db import db


class BlockedDate(db.Model):
    __tablename__ = "blocked_dates"

    id = db.Column(db.Integer, primary_key=True)
    blocked_date = db.Column(db.Date, nullable=False, unique=True, index=True)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.blocked_date.isoformat(),
            "reason": self.reason,
        }
