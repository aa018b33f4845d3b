from flask import Blueprint, jsonify

from .booking import booking_bp
from .self_service import self_service_bp
from .payments import payments_bp
from .stripe_webhook import webhook_bp
from .admin import admin_bp
from .audit_logs import audit_bp
from .cron import cron_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
