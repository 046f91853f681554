"""
Provider Base Classes
=====================
Interfaces for outbound email delivery and delegated SMS verification.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class DeliveryResult:
    """Result of an email send."""
    provider_message_id: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class Initiation:
    """
    A delegated verification started by the provider.

    ``verification_handle`` is opaque to us; it is passed back on confirm.
    """
    verification_handle: str
    timeout_seconds: Optional[int] = None
    raw_response: Optional[Dict[str, Any]] = None


class BaseProvider(ABC):
    """Lifecycle shared by all providers."""

    name: str = "base"

    def __init__(self):
        self._is_initialized = False

    async def initialize(self) -> None:
        """Initialize the provider (e.g., create HTTP clients)."""
        self._is_initialized = True
        logger.info("provider.initialized", provider=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        self._is_initialized = False
        logger.info("provider.closed", provider=self.name)

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


class EmailDeliveryProvider(BaseProvider):
    """Sends email. Raises DeliveryError on failure."""

    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        """
        Send an HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body

        Returns:
            DeliveryResult with the provider's message id
        """


class VerificationProvider(BaseProvider):
    """
    Third-party service that generates, delivers and checks SMS codes.

    Transport and provider-side failures raise ProviderError. A code the
    provider rejects is not an error: ``confirm`` returns False.
    """

    @abstractmethod
    async def initiate(self, phone: str) -> Initiation:
        """Generate and deliver a code to ``phone``."""

    @abstractmethod
    async def confirm(self, phone: str, verification_handle: str, code: str) -> bool:
        """Check ``code`` for a previously initiated verification."""
