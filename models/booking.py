from datetime import datetime
from sqlalchemy import text
from models.db import db

PENDING = "pending"
PAID = "paid"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (PENDING, PAID, COMPLETED, CANCELLED)
ACTIVE_STATUSES = (PENDING, PAID)

# Forward-only; cancelled and completed are terminal
TRANSITIONS = {
    PENDING: {PAID, CANCELLED},
    PAID: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

_ACTIVE_PREDICATE = text("status IN ('pending', 'paid')")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    booking_date = db.Column(db.Date, nullable=False, index=True)
    booking_time = db.Column(db.Time, nullable=False)

    customer_name = db.Column(db.String(120), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_phone = db.Column(db.String(30), nullable=True)

    # price snapshot taken at creation; never recomputed from the service
    price_paid = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=PENDING)
    stripe_payment_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_session_id = db.Column(db.String(255), nullable=True, unique=True)

    google_meet_link = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    reminder_24h_sent = db.Column(db.Boolean, default=False, nullable=False)
    reminder_1h_sent = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    service = db.relationship("Service", lazy="joined")

    __table_args__ = (
        # Hard business-rule: one active booking per calendar day (prevents double booking)
        db.Index(
            "uq_bookings_active_date",
            "booking_date",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
    )

    def summary(self):
        return {
            "id": self.id,
            "service_name": self.service.name if self.service else "Session",
            "booking_date": self.booking_date.isoformat(),
            "booking_time": self.booking_time.strftime("%H:%M"),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "status": self.status,
            "price_paid": self.price_paid,
        }

    def to_dict(self):
        out = self.summary()
        out.update({
            "service_id": self.service_id,
            "customer_phone": self.customer_phone,
            "stripe_payment_id": self.stripe_payment_id,
            "google_meet_link": self.google_meet_link,
            "notes": self.notes,
            "admin_notes": self.admin_notes,
            "reminder_24h_sent": self.reminder_24h_sent,
            "reminder_1h_sent": self.reminder_1h_sent,
            "created_at": self.created_at.isoformat(),
        })
        return out
