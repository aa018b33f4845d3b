from datetime import datetime, timedelta
from functools import wraps

from flask import request, current_app, jsonify
from sqlalchemy.exc import IntegrityError

from models import db
from models.ip_rate_limit import IpRateLimit

def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"

def check_and_increment(scope: str, window_seconds: int, max_requests: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Simple fixed window per (scope, IP), stored in the DB so it holds across workers.
    """
    bucket = f"{scope}:{_client_ip()}"[:128]
    now = datetime.utcnow()

    row = IpRateLimit.query.filter_by(bucket=bucket).first()
    if not row:
        row = IpRateLimit(bucket=bucket, window_start=now, count=0)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            # another worker created the bucket first
            db.session.rollback()
            row = IpRateLimit.query.filter_by(bucket=bucket).first()

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0

def rate_limited(scope: str, window_key: str, max_key: str):
    """
    Usage: @rate_limited("booking_create", "BOOKING_RATE_WINDOW_SECONDS", "BOOKING_RATE_MAX_REQUESTS")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            window_seconds = current_app.config.get(window_key, 60)
            max_requests = current_app.config.get(max_key, 5)
            allowed, retry_after = check_and_increment(scope, window_seconds, max_requests)
            if not allowed:
                resp = jsonify(error="Too many requests. Please try again later.", retryAfter=retry_after)
                resp.headers["Retry-After"] = str(retry_after)
                resp.headers["X-RateLimit-Limit"] = str(max_requests)
                resp.headers["X-RateLimit-Remaining"] = "0"
                return resp, 429
            return fn(*args, **kwargs)
        return wrapper
    return decorator
