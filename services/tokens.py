"""Signed, expiring self-service links.

A token binds a booking id to the customer's email and an expiry. Nothing is
stored server-side: the HMAC tag (itsdangerous, SHA-256) is the only proof the
link came from us, so rotating the secret voids every outstanding link.
"""
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from itsdangerous import BadData, URLSafeSerializer

logger = logging.getLogger(__name__)

TOKEN_SALT = "booking-self-service"
DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60
EXPIRING_SOON_SECONDS = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class TokenClaims:
    booking_id: int
    email: str
    expires_at: int


class TokenCodec:
    def __init__(self, secret: str, default_ttl: int = DEFAULT_TTL_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        if not secret:
            raise ValueError("Token secret must be a non-empty string")
        self._serializer = URLSafeSerializer(secret, salt=TOKEN_SALT)
        self.default_ttl = default_ttl
        self._clock = clock or time.time

    def issue(self, booking_id: int, email: str, ttl: Optional[int] = None) -> str:
        ttl = self.default_ttl if ttl is None else ttl
        payload = {
            "bid": int(booking_id),
            "email": email,
            "exp": int(self._clock()) + int(ttl),
        }
        return self._serializer.dumps(payload)

    def validate(self, token) -> Optional[TokenClaims]:
        """Return the claims, or None for anything tampered, malformed or expired."""
        if not token or not isinstance(token, str):
            return None
        try:
            payload = self._serializer.loads(token)
        except BadData:
            logger.warning("Rejected self-service token: bad signature or encoding")
            return None

        if not isinstance(payload, dict):
            return None
        # base64 ignores trailing pad bits; only the canonical encoding is accepted
        if not hmac.compare_digest(self._serializer.dumps(payload), token):
            logger.warning("Rejected self-service token: non-canonical encoding")
            return None
        booking_id = payload.get("bid")
        email = payload.get("email")
        expires_at = payload.get("exp")
        if (
            not isinstance(booking_id, int) or isinstance(booking_id, bool)
            or not isinstance(email, str) or not email
            or not isinstance(expires_at, int)
        ):
            logger.warning("Rejected self-service token: invalid payload structure")
            return None

        if self._clock() > expires_at:
            logger.info("Rejected self-service token for booking %s: expired", booking_id)
            return None

        return TokenClaims(booking_id=booking_id, email=email, expires_at=expires_at)

    def expires_soon(self, token, within: int = EXPIRING_SOON_SECONDS) -> bool:
        claims = self.validate(token)
        if claims is None:
            return True
        return (claims.expires_at - self._clock()) < within
