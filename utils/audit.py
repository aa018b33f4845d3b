import json
import logging

from flask import request, has_request_context
from models import db
from models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def _request_origin():
    if not has_request_context():
        return None, None
    ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    user_agent = request.headers.get("User-Agent", "")
    return ip, user_agent[:255] if user_agent else None


def log_event(action: str, actor=None, entity=None, entity_id=None, metadata=None):
    """Persist an audit row. Usable from requests, the CLI and the cron sweep."""
    ip, user_agent = _request_origin()

    row = AuditLog(
        actor=actor,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
    logger.debug("audit %s %s=%s %s", action, entity, entity_id, metadata or "")
