"""
Tests for the Paystack and identity provider HTTP clients
"""
import json

import httpx
import pytest

from app.core.exceptions import ConflictError, ExternalGatewayError
from app.services.identity_provider import IdentityProviderClient
from app.services.paystack_client import PaystackClient


def paystack_with(handler) -> PaystackClient:
    return PaystackClient(
        secret_key="sk_test_secret",
        base_url="https://api.paystack.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
class TestPaystackClient:

    async def test_initialize_transaction(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "access_code": "abc",
                    "reference": "sch_ref",
                },
            })

        result = await paystack_with(handler).initialize_transaction(
            email="admin@example.com",
            amount=5000,
            currency="GHS",
            reference="sch_ref",
            metadata={"tenantId": "t1"},
        )

        assert result["authorization_url"] == "https://checkout.paystack.com/abc"
        assert seen["path"] == "/transaction/initialize"
        assert seen["auth"] == "Bearer sk_test_secret"
        assert seen["body"]["metadata"] == {"tenantId": "t1"}
        assert seen["body"]["amount"] == 5000

    async def test_verify_transaction(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/transaction/verify/sch_ref"
            return httpx.Response(200, json={"status": True, "data": {"status": "success", "reference": "sch_ref"}})

        data = await paystack_with(handler).verify_transaction("sch_ref")
        assert data["status"] == "success"

    async def test_error_response_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"status": False, "message": "Invalid key"})

        with pytest.raises(ExternalGatewayError) as exc_info:
            await paystack_with(handler).verify_transaction("sch_ref")
        assert exc_info.value.status_code == 502
        assert "Invalid key" in exc_info.value.message

    async def test_status_false_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": False, "message": "Transaction reference not found"})

        with pytest.raises(ExternalGatewayError):
            await paystack_with(handler).verify_transaction("sch_ref")

    async def test_timeout_maps_to_504(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalGatewayError) as exc_info:
            await paystack_with(handler).verify_transaction("sch_ref")
        assert exc_info.value.status_code == 504
        assert exc_info.value.code == "gateway_timeout"

    async def test_unconfigured_client_raises(self):
        client = PaystackClient(secret_key="")
        with pytest.raises(ExternalGatewayError):
            await client.verify_transaction("sch_ref")


@pytest.mark.asyncio
class TestIdentityProviderClient:

    def provider_with(self, handler) -> IdentityProviderClient:
        return IdentityProviderClient(
            project_id="demo-project",
            access_token="token",
            base_url="https://identity.test/v1",
            transport=httpx.MockTransport(handler),
        )

    async def test_create_user_returns_uid(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/projects/demo-project/accounts"
            return httpx.Response(200, json={"localId": "uid-123"})

        assert await self.provider_with(handler).create_user("a@example.com", "A") == "uid-123"

    async def test_delete_missing_user_is_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "USER_NOT_FOUND"}})

        await self.provider_with(handler).delete_user("uid-123")

    async def test_delete_other_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": {"message": "INTERNAL"}})

        with pytest.raises(ExternalGatewayError):
            await self.provider_with(handler).delete_user("uid-123")

    async def test_unconfigured_provider_issues_local_uids(self):
        provider = IdentityProviderClient(project_id="", access_token="")

        uid = await provider.create_user("a@example.com", "A")
        await provider.delete_user(uid)

        assert provider.configured is False
        assert len(uid) == 32

    async def test_update_user_sends_email_change(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"localId": "uid-123"})

        await self.provider_with(handler).update_user("uid-123", "new@example.com", "New Name")

        assert seen["path"] == "/v1/projects/demo-project/accounts:update"
        assert seen["body"] == {"localId": "uid-123", "email": "new@example.com", "displayName": "New Name"}

    async def test_update_user_taken_email_conflicts(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "EMAIL_EXISTS"}})

        with pytest.raises(ConflictError):
            await self.provider_with(handler).update_user("uid-123", "taken@example.com")

    async def test_password_reset_link(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/v1/projects/demo-project/accounts:sendOobCode"
            assert body["requestType"] == "PASSWORD_RESET"
            assert body["returnOobLink"] is True
            return httpx.Response(200, json={"email": body["email"], "oobLink": "https://auth.test/reset?oobCode=x"})

        link = await self.provider_with(handler).generate_password_reset_link("a@example.com")

        assert link == "https://auth.test/reset?oobCode=x"

    async def test_unconfigured_provider_cannot_issue_reset_links(self):
        provider = IdentityProviderClient(project_id="", access_token="")

        with pytest.raises(ExternalGatewayError):
            await provider.generate_password_reset_link("a@example.com")
