"""
Development Providers
=====================
Providers that log instead of sending. Used when no credentials are
configured outside production.

Both write the plaintext code to the log on purpose; never enable them
in production.
"""

import random
import uuid
from typing import Dict, List, Optional, Tuple

import structlog

from otpauth_core.providers.base import (
    DeliveryResult,
    EmailDeliveryProvider,
    Initiation,
    VerificationProvider,
)

logger = structlog.get_logger(__name__)


class LoggingEmailProvider(EmailDeliveryProvider):
    """Keeps every message in ``outbox`` and logs the subject line."""

    name = "logging_email"

    def __init__(self):
        super().__init__()
        self.outbox: List[Dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        message_id = f"dev-{uuid.uuid4().hex[:12]}"
        self.outbox.append({"id": message_id, "to": to, "subject": subject, "html": html})
        logger.warning("dev_email.sent", to=to, subject=subject, message_id=message_id)
        return DeliveryResult(provider_message_id=message_id)


class LoggingVerificationProvider(VerificationProvider):
    """
    Generates codes itself and logs them.

    Behaves like a delegated provider: the caller only ever sees the handle.
    """

    name = "logging_verification"

    def __init__(self, code_length: int = 4, rng: Optional[random.Random] = None):
        super().__init__()
        self.code_length = code_length
        self._rng = rng or random.Random()
        self._pending: Dict[str, Tuple[str, str]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def initiate(self, phone: str) -> Initiation:
        low = 10 ** (self.code_length - 1)
        code = str(self._rng.randint(low, 10 ** self.code_length - 1))
        handle = f"DEV-{uuid.uuid4().hex[:16]}"
        # A new initiation supersedes earlier ones for the phone
        for stale in [h for h, (p, _) in self._pending.items() if p == phone]:
            del self._pending[stale]
        self._pending[handle] = (phone, code)
        logger.warning("dev_sms.code_generated", phone=phone, code=code, handle=handle)
        return Initiation(verification_handle=handle)

    async def confirm(self, phone: str, verification_handle: str, code: str) -> bool:
        pending = self._pending.get(verification_handle)
        if pending is None or pending != (phone, str(code)):
            return False
        del self._pending[verification_handle]
        return True

    def last_code(self, phone: str) -> Optional[str]:
        """Most recent code initiated for ``phone``."""
        for pending_phone, code in reversed(list(self._pending.values())):
            if pending_phone == phone:
                return code
        return None
