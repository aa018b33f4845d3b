import hmac
import logging
from functools import wraps
from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)

def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return ""

def has_credential(config_key: str) -> bool:
    expected = current_app.config.get(config_key)
    provided = _bearer_token()
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))

def require_credential(config_key: str):
    """
    Usage: @require_credential("ADMIN_API_TOKEN")
    Admin sign-in lives outside this service; it hands us a bearer token.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not _bearer_token():
                return jsonify(error="Authentication required"), 401
            if not has_credential(config_key):
                logger.warning("Rejected %s credential for %s %s", config_key, request.method, request.path)
                return jsonify(error="Unauthorized"), 401
            return fn(*args, **kwargs)
        return wrapper
    return decorator

require_admin = require_credential("ADMIN_API_TOKEN")
require_cron = require_credential("CRON_SECRET")
