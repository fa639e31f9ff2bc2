# backend/app/services/paystack_client.py
import httpx
from typing import Dict, Any, Optional

from app.core.config import settings
from app.core.exceptions import ExternalGatewayError
from app.core.logging import logger


class PaystackClient:
    """Thin async client for the Paystack transaction API"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS
        self.callback_url = settings.PAYSTACK_CALLBACK_URL
        self._transport = transport

    async def initialize_transaction(
        self,
        email: str,
        amount: int,
        currency: str,
        reference: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Initialize a checkout for the given reference

        Args:
            email: Payer email
            amount: Amount in minor currency units (pesewas, kobo)
            currency: Currency code (GHS, NGN, ...)
            reference: Our idempotency reference, reused by Paystack
            metadata: Echoed back on verify and webhook payloads

        Returns:
            Dict with authorization_url, access_code and reference
        """
        payload: Dict[str, Any] = {
            "email": email,
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "metadata": metadata or {},
        }
        if self.callback_url:
            payload["callback_url"] = self.callback_url

        data = await self._request("POST", "/transaction/initialize", json=payload)
        logger.info(f"Initialized Paystack transaction: {reference}", extra={"reference": reference})
        return {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": data.get("reference") or reference,
        }

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """
        Fetch the definitive transaction record for a reference

        Returns:
            The ``data`` object of the verify response (status, gateway_response,
            paid_at, customer, metadata, ...)
        """
        return await self._request("GET", f"/transaction/verify/{reference}")

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.secret_key:
            raise ExternalGatewayError("Payment gateway is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            logger.error(f"Paystack request timed out: {method} {path}: {e}")
            raise ExternalGatewayError.timeout("Payment gateway timed out")
        except httpx.HTTPError as e:
            logger.error(f"Paystack request failed: {method} {path}: {e}")
            raise ExternalGatewayError("Payment gateway unavailable")

        try:
            result = response.json()
        except ValueError:
            result = {}

        if response.status_code >= 400 or not result.get("status"):
            message = result.get("message") or f"HTTP {response.status_code}"
            logger.error(f"Paystack error: {method} {path}: {message}")
            raise ExternalGatewayError(f"Payment gateway error: {message}")

        return result.get("data") or {}
