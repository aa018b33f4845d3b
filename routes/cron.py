from flask import Blueprint, jsonify

from security.rbac import require_cron
from services import get_services

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


# Triggered hourly (minute 0) by the external scheduler
@cron_bp.post("/send-reminders")
@require_cron
def send_reminders():
    svc = get_services()
    results = svc.reminders.run()
    return jsonify(success=True, timestamp=svc.clock.now().isoformat(), results=results), 200
