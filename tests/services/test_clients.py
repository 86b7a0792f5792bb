import httpx
import pytest

from class_service.core.exceptions import AuthenticationError, ServiceUnavailableError
from class_service.schemas.user import UserRole
from class_service.services.identity_client import IdentityClient
from class_service.services.subscription_client import SubscriptionClient
from class_service.services.user_directory import UserDirectoryClient


def transport_returning(status_code=200, json=None, text=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=json)
    return httpx.MockTransport(handler)


def transport_raising(exc_class):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_class("sin respuesta", request=request)
    return httpx.MockTransport(handler)


class TestSubscriptionClient:
    @pytest.mark.asyncio
    async def test_active_subscription(self):
        seen = []
        client = SubscriptionClient(
            base_url="http://payments",
            transport=transport_returning(json={"success": True, "data": {"hasActiveSubscription": True}}, seen=seen),
        )

        assert await client.has_active_subscription("tok-1") is True
        assert seen[0].url == "http://payments/api/payments/me/active"
        assert seen[0].headers["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_no_subscription(self):
        client = SubscriptionClient(
            base_url="http://payments",
            transport=transport_returning(json={"success": True, "data": {"hasActiveSubscription": False}}),
        )
        assert await client.has_active_subscription("tok-1") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 500, 503])
    async def test_non_200_is_unavailable(self, status_code):
        client = SubscriptionClient(base_url="http://payments", transport=transport_returning(status_code, json={}))
        with pytest.raises(ServiceUnavailableError):
            await client.has_active_subscription("tok-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc_class", [httpx.ConnectTimeout, httpx.ReadTimeout, httpx.ConnectError])
    async def test_network_failures_are_unavailable(self, exc_class):
        client = SubscriptionClient(base_url="http://payments", transport=transport_raising(exc_class))
        with pytest.raises(ServiceUnavailableError):
            await client.has_active_subscription("tok-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"success": True},
        {"success": True, "data": {"hasActiveSubscription": "yes"}},
        {"success": True, "data": None},
    ])
    async def test_malformed_body_is_unavailable(self, body):
        client = SubscriptionClient(base_url="http://payments", transport=transport_returning(json=body))
        with pytest.raises(ServiceUnavailableError):
            await client.has_active_subscription("tok-1")

    @pytest.mark.asyncio
    async def test_non_json_body_is_unavailable(self):
        client = SubscriptionClient(base_url="http://payments", transport=transport_returning(text="<html>"))
        with pytest.raises(ServiceUnavailableError):
            await client.has_active_subscription("tok-1")


class TestUserDirectoryClient:
    @pytest.mark.asyncio
    async def test_email_map(self):
        body = {"success": True, "data": [
            {"_id": "u1", "email": "uno@gym.test"},
            {"id": "u2", "email": "dos@gym.test"},
            {"id": "u3"},
            "basura",
        ]}
        client = UserDirectoryClient(base_url="http://auth", transport=transport_returning(json=body))

        assert await client.get_email_map("tok") == {"u1": "uno@gym.test", "u2": "dos@gym.test"}

    @pytest.mark.asyncio
    async def test_failure_returns_empty_map(self):
        client = UserDirectoryClient(base_url="http://auth", transport=transport_returning(500, json={}))
        assert await client.get_email_map("tok") == {}

    @pytest.mark.asyncio
    async def test_timeout_returns_empty_map(self):
        client = UserDirectoryClient(base_url="http://auth", transport=transport_raising(httpx.ReadTimeout))
        assert await client.get_email_map("tok") == {}


class TestIdentityClient:
    @pytest.mark.asyncio
    async def test_verify_token(self):
        body = {"success": True, "data": {
            "_id": "abc123", "role": "monitor", "name": "Marta", "email": "marta@gym.test", "isActive": True,
        }}
        seen = []
        client = IdentityClient(base_url="http://auth", transport=transport_returning(json=body, seen=seen))

        user = await client.verify_token("tok-9")

        assert user.id == "abc123"
        assert user.role == UserRole.MONITOR
        assert user.token == "tok-9"
        assert seen[0].url == "http://auth/api/auth/profile"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_token(self, status_code):
        client = IdentityClient(base_url="http://auth", transport=transport_returning(status_code, json={}))
        with pytest.raises(AuthenticationError):
            await client.verify_token("tok")

    @pytest.mark.asyncio
    async def test_success_false_is_rejected(self):
        client = IdentityClient(
            base_url="http://auth", transport=transport_returning(json={"success": False, "message": "expirado"})
        )
        with pytest.raises(AuthenticationError):
            await client.verify_token("tok")

    @pytest.mark.asyncio
    async def test_unknown_role_is_rejected(self):
        body = {"success": True, "data": {"_id": "x", "role": "superuser", "name": "X"}}
        client = IdentityClient(base_url="http://auth", transport=transport_returning(json=body))
        with pytest.raises(AuthenticationError):
            await client.verify_token("tok")

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        client = IdentityClient(base_url="http://auth", transport=transport_returning(502, json={}))
        with pytest.raises(ServiceUnavailableError):
            await client.verify_token("tok")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        client = IdentityClient(base_url="http://auth", transport=transport_raising(httpx.ConnectTimeout))
        with pytest.raises(ServiceUnavailableError):
            await client.verify_token("tok")
