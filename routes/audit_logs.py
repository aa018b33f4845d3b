import json

from flask import Blueprint, jsonify, request
from models.audit_log import AuditLog
from security.rbac import require_admin

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


@audit_bp.get("/audit-logs")
@require_admin
def list_audit_logs():
    """Audit trail for manual reconciliation, filterable by action and booking."""
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    action = request.args.get("action")
    booking_id = request.args.get("booking_id", type=int)

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if booking_id is not None:
        q = q.filter(AuditLog.entity == "booking", AuditLog.entity_id == str(booking_id))

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()

    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat(),
            "actor": r.actor,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "metadata": json.loads(r.metadata_json) if r.metadata_json else None,
        }
        for r in rows
    ]), 200
