"""
Resend Email Provider
=====================
Email delivery through the Resend REST API.
"""

import logging
from typing import Optional

import httpx
import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from otpauth_core.errors import DeliveryError
from otpauth_core.providers.base import DeliveryResult, EmailDeliveryProvider

logger = structlog.get_logger(__name__)
_retry_logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


class ResendEmailProvider(EmailDeliveryProvider):
    """
    Resend adapter.

    Transport errors, 429 and 5xx responses are retried up to three times
    with exponential backoff; anything else fails immediately.
    """

    name = "resend"
    BASE_URL = "https://api.resend.com"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        await super().initialize()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        response = await self._client.post("/emails", json=payload)
        if response.status_code >= 500 or response.status_code == 429:
            response.raise_for_status()
        return response

    async def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        if not self._client:
            raise RuntimeError("Provider not initialized")

        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error("resend.send_failed", error=str(e))
            raise DeliveryError(provider=self.name, details=str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {"body": response.text}

        if response.status_code not in (200, 201):
            logger.error(
                "resend.rejected",
                status_code=response.status_code,
                response=data,
            )
            raise DeliveryError(
                provider=self.name,
                status_code=response.status_code,
                details=data,
            )

        logger.info("resend.sent", message_id=data.get("id"))
        return DeliveryResult(provider_message_id=data.get("id"), raw_response=data)
