"""
Session Tokens
==============
HMAC-SHA256 signed session tokens issued after a successful OTP login.

Format: ``<urlsafe-b64 JSON payload>.<hex signature>``. The payload carries
the caller's claims plus ``iat``/``exp``. Tokens are stateless; there is no
revocation list, so logout is client-side.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 3600
TOKEN_VERSION = "1"


class SessionTokenIssuer:
    """Issues and decodes signed session tokens."""

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Token secret cannot be empty")
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _sign(self, payload_b64: str) -> str:
        return hmac.new(
            self.secret.encode(),
            payload_b64.encode(),
            hashlib.sha256,
        ).hexdigest()

    def issue(self, claims: Dict[str, Any]) -> str:
        """
        Sign ``claims`` into a token.

        Args:
            claims: JSON-serializable claims (e.g. ``userId``, ``email``)

        Returns:
            Signed token string
        """
        now = int(self._clock())
        payload = dict(claims)
        payload.update({"iat": now, "exp": now + self.ttl_seconds, "ver": TOKEN_VERSION})

        payload_json = json.dumps(payload, separators=(",", ":"), default=str)
        payload_b64 = base64.urlsafe_b64encode(payload_json.encode()).decode()
        return f"{payload_b64}.{self._sign(payload_b64)}"

    def decode(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify a token.

        Returns:
            Payload if the signature is valid and the token has not expired,
            None otherwise
        """
        if not token:
            return None

        parts = token.split(".")
        if len(parts) != 2:
            return None
        payload_b64, signature = parts

        if not hmac.compare_digest(signature, self._sign(payload_b64)):
            logger.warning("token.bad_signature")
            return None

        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        except (ValueError, TypeError):
            return None
        if not isinstance(payload, dict):
            return None

        if self._clock() >= payload.get("exp", 0):
            return None
        return payload
