# backend/app/services/identity_provider.py
import uuid
import httpx
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import ConflictError, ExternalGatewayError
from app.core.logging import logger


class IdentityProviderClient:
    """Admin client for the identity toolkit that owns login principals"""

    def __init__(
        self,
        project_id: Optional[str] = None,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_id = project_id if project_id is not None else settings.IDENTITY_PROJECT_ID
        self.access_token = access_token if access_token is not None else settings.IDENTITY_ACCESS_TOKEN
        self.base_url = (base_url or settings.IDENTITY_PROVIDER_URL).rstrip("/")
        self.timeout = settings.IDENTITY_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.project_id and self.access_token)

    async def create_user(self, email: str, display_name: str) -> str:
        """Create a principal and return its uid"""
        if not self.configured:
            logger.warning("Identity provider not configured, issuing local uid")
            return uuid.uuid4().hex

        data = await self._post("accounts", {"email": email, "displayName": display_name})
        uid = data.get("localId")
        if not uid:
            raise ExternalGatewayError("Identity provider returned no uid")
        return uid

    async def delete_user(self, uid: str) -> None:
        """Delete a principal. An already-missing principal counts as deleted."""
        if not self.configured:
            logger.warning(f"Identity provider not configured, skipping principal delete: {uid}")
            return

        try:
            await self._post("accounts:delete", {"localId": uid})
        except ExternalGatewayError as e:
            if "USER_NOT_FOUND" in e.message:
                logger.info(f"Principal already gone: {uid}")
                return
            raise

    async def update_user(self, uid: str, email: str, display_name: Optional[str] = None) -> None:
        """Change a principal's login email (and display name)"""
        if not self.configured:
            logger.warning(f"Identity provider not configured, skipping principal update: {uid}")
            return

        body: Dict[str, Any] = {"localId": uid, "email": email}
        if display_name:
            body["displayName"] = display_name
        try:
            await self._post("accounts:update", body)
        except ExternalGatewayError as e:
            if "EMAIL_EXISTS" in e.message:
                raise ConflictError("An account with this email already exists")
            raise

    async def generate_password_reset_link(self, email: str) -> str:
        """Out-of-band password reset link for ``email``"""
        if not self.configured:
            raise ExternalGatewayError("Identity provider not configured, cannot issue reset links")

        data = await self._post(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email, "returnOobLink": True},
        )
        link = data.get("oobLink")
        if not link:
            raise ExternalGatewayError("Identity provider returned no reset link")
        return link

    async def _post(self, action: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/projects/{self.project_id}/{action}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
        except httpx.TimeoutException:
            raise ExternalGatewayError.timeout("Identity provider timed out")
        except httpx.HTTPError as e:
            raise ExternalGatewayError(f"Identity provider unavailable: {e}")

        try:
            result = response.json()
        except ValueError:
            result = {}

        if response.status_code >= 400:
            message = (result.get("error") or {}).get("message") or f"HTTP {response.status_code}"
            raise ExternalGatewayError(f"Identity provider error: {message}")
        return result
