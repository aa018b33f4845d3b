from datetime import datetime
from models.db import db

class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Integer, nullable=False, default=0)  # whole currency units (RM)
    price_label = db.Column(db.String(60), nullable=True)     # e.g. "RM450 / session"
    duration_label = db.Column(db.String(60), nullable=True)  # e.g. "90 minutes"

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_featured = db.Column(db.Boolean, default=False, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "price_label": self.price_label,
            "duration_label": self.duration_label,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "sort_order": self.sort_order,
        }
