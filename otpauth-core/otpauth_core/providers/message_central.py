"""
MessageCentral Verification Provider
====================================
Delegated SMS verification through MessageCentral VerifyNow.

MessageCentral generates and delivers the code itself and hands back a
``verificationId``; the code is later checked against that id.
"""

import re
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from otpauth_core.errors import ProviderError
from otpauth_core.providers.base import Initiation, VerificationProvider

logger = structlog.get_logger(__name__)

MOBILE_NUMBER_DIGITS = 10


def split_phone(phone: str, default_country_code: str = "91") -> Tuple[str, str]:
    """
    Split a phone number into (country_code, mobile_number).

    The national number is taken as the last ten digits; anything before it
    is the country code.
    """
    digits = re.sub(r"\D", "", phone)
    if len(digits) > MOBILE_NUMBER_DIGITS:
        return digits[:-MOBILE_NUMBER_DIGITS], digits[-MOBILE_NUMBER_DIGITS:]
    return default_country_code, digits


class MessageCentralProvider(VerificationProvider):
    """
    MessageCentral VerifyNow adapter.

    No automatic retries: re-sending ``initiate`` would deliver a second SMS.
    """

    name = "message_central"
    BASE_URL = "https://cpaas.messagecentral.com/verification/v3"
    SUCCESS_CODE = 200

    def __init__(
        self,
        customer_id: str,
        auth_token: str,
        default_country_code: str = "91",
        send_timeout: float = 15.0,
        validate_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.customer_id = customer_id
        self.auth_token = auth_token
        self.default_country_code = default_country_code
        self.send_timeout = send_timeout
        self.validate_timeout = validate_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={"authToken": self.auth_token, "Accept": "application/json"},
            transport=self._transport,
        )
        await super().initialize()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    def _parse(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            logger.error(
                "message_central.invalid_json",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProviderError(
                provider=self.name,
                status_code=response.status_code,
                details=response.text[:500],
            )

    @classmethod
    def _response_code(cls, data: Dict[str, Any]) -> Optional[int]:
        try:
            return int(data.get("responseCode"))
        except (TypeError, ValueError):
            return None

    async def initiate(self, phone: str) -> Initiation:
        if not self._client:
            raise RuntimeError("Provider not initialized")

        country_code, mobile_number = split_phone(phone, self.default_country_code)
        params = {
            "countryCode": country_code,
            "customerId": self.customer_id,
            "flowType": "SMS",
            "mobileNumber": mobile_number,
        }
        try:
            response = await self._client.post(
                "/send", params=params, timeout=self.send_timeout
            )
        except httpx.HTTPError as e:
            logger.error("message_central.send_failed", error=str(e))
            raise ProviderError(provider=self.name, details=str(e)) from e

        data = self._parse(response)
        verification_id = (data.get("data") or {}).get("verificationId")
        if self._response_code(data) != self.SUCCESS_CODE or not verification_id:
            logger.error(
                "message_central.send_rejected",
                status_code=response.status_code,
                response=data,
            )
            raise ProviderError(
                provider=self.name,
                status_code=response.status_code,
                details=data,
            )

        timeout = (data.get("data") or {}).get("timeout")
        logger.info(
            "message_central.sent",
            verification_id=verification_id,
            provider_timeout=timeout,
        )
        return Initiation(
            verification_handle=str(verification_id),
            timeout_seconds=int(float(timeout)) if timeout else None,
            raw_response=data,
        )

    async def confirm(self, phone: str, verification_handle: str, code: str) -> bool:
        if not self._client:
            raise RuntimeError("Provider not initialized")

        country_code, mobile_number = split_phone(phone, self.default_country_code)
        params = {
            "countryCode": country_code,
            "mobileNumber": mobile_number,
            "verificationId": verification_handle,
            "customerId": self.customer_id,
            "code": code,
        }
        try:
            response = await self._client.get(
                "/validateOtp", params=params, timeout=self.validate_timeout
            )
        except httpx.HTTPError as e:
            logger.error("message_central.validate_failed", error=str(e))
            raise ProviderError(provider=self.name, details=str(e)) from e

        if response.status_code >= 500:
            logger.error(
                "message_central.validate_unavailable",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProviderError(
                provider=self.name,
                status_code=response.status_code,
                details=response.text[:500],
            )

        data = self._parse(response)
        if self._response_code(data) == self.SUCCESS_CODE:
            logger.info(
                "message_central.verified",
                verification_id=verification_handle,
                status=(data.get("data") or {}).get("verificationStatus"),
            )
            return True

        # Wrong, expired or already-used codes: the provider has answered
        logger.warning(
            "message_central.code_rejected",
            verification_id=verification_handle,
            response_code=data.get("responseCode"),
            message=data.get("message"),
        )
        return False
