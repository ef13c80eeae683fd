"""
Unit Tests for the Identity Directory Client

Tests the admin REST client against httpx.MockTransport:
- Request shape (paths, headers, body, timeout)
- Status code classification
- Transport error classification
- Not-found handling for get/delete

Run with: pytest tests/test_identity_client.py -v
"""

import json

import httpx
import pytest

from identity.client import IdentityDirectoryClient, classify_response_error, ADMIN_USERS_PATH
from identity.models import IdentityUser, IdentityServiceError, IdentityErrorKind


BASE_URL = "https://project.supabase.co"
SERVICE_KEY = "service-role-key"

USER_PAYLOAD = {
    "id": "11111111-1111-1111-1111-111111111111",
    "email": "Jane@Co.com",
    "email_confirmed_at": "2024-01-01T00:00:00Z",
    "user_metadata": {"name": "Jane Doe", "full_name": "Jane Doe"},
    "app_metadata": {"provider": "email", "roles": ["employee"]},
    "created_at": "2024-01-01T00:00:00Z",
}


def make_client(handler, create_timeout: float = 10.0) -> IdentityDirectoryClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IdentityDirectoryClient(BASE_URL + "/", SERVICE_KEY, http_client, create_timeout=create_timeout)


class TestClassifyResponseError:
    """Test HTTP status classification."""

    @pytest.mark.parametrize("status_code,payload,kind", [
        (409, {}, IdentityErrorKind.CONFLICT),
        (422, {"msg": "A user with this email address has already been registered"}, IdentityErrorKind.CONFLICT),
        (400, {"error": "email_exists"}, IdentityErrorKind.CONFLICT),
        (400, {"message": "Password too short"}, IdentityErrorKind.BAD_REQUEST),
        (401, {}, IdentityErrorKind.UNAUTHORIZED),
        (403, {}, IdentityErrorKind.UNAUTHORIZED),
        (404, {}, IdentityErrorKind.NOT_FOUND),
        (422, {"msg": "Unable to validate email address"}, IdentityErrorKind.VALIDATION),
        (500, {}, IdentityErrorKind.UNAVAILABLE),
        (503, None, IdentityErrorKind.UNAVAILABLE),
    ])
    def test_classification(self, status_code, payload, kind):
        error = classify_response_error(status_code, payload)
        assert error.kind == kind
        assert error.status_code == status_code

    def test_bad_request_passes_upstream_message(self):
        error = classify_response_error(400, {"message": "Password too short"})
        assert error.message == "Invalid request: Password too short"

    def test_unauthorized_hides_upstream_message(self):
        error = classify_response_error(401, {"message": "invalid JWT: secret-token"})
        assert "secret-token" not in error.message
        assert error.message == "Authentication failed: Invalid service role key"

    def test_unavailable_message(self):
        error = classify_response_error(502, {"message": "bad gateway"})
        assert error.message == "Authentication service is currently unavailable. Please try again later."


class TestCreateUser:
    """Test account creation."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test path, headers, body and timeout of the create call."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            seen["timeout"] = request.extensions.get("timeout")
            return httpx.Response(200, json=USER_PAYLOAD)

        client = make_client(handler, create_timeout=7.5)
        user = await client.create_user("jane@co.com", "secret123", "Jane Doe", "admin")

        assert seen["method"] == "POST"
        assert seen["url"] == f"{BASE_URL}{ADMIN_USERS_PATH}"
        assert seen["headers"]["apikey"] == SERVICE_KEY
        assert seen["headers"]["authorization"] == f"Bearer {SERVICE_KEY}"
        assert seen["body"]["email_confirm"] is True
        assert seen["body"]["password"] == "secret123"
        assert seen["body"]["user_metadata"]["name"] == "Jane Doe"
        assert seen["body"]["app_metadata"] == {"provider": "email", "roles": ["admin"]}
        assert seen["timeout"]["read"] == 7.5

        assert isinstance(user, IdentityUser)
        assert user.id == USER_PAYLOAD["id"]
        assert user.email == "jane@co.com"
        assert user.email_confirmed is True

    @pytest.mark.asyncio
    async def test_user_envelope_accepted(self):
        client = make_client(lambda request: httpx.Response(200, json={"user": USER_PAYLOAD}))

        user = await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert user.id == USER_PAYLOAD["id"]

    @pytest.mark.asyncio
    async def test_duplicate_email(self):
        client = make_client(lambda request: httpx.Response(
            422, json={"code": 422, "msg": "A user with this email address has already been registered"}
        ))

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert exc_info.value.kind == IdentityErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert exc_info.value.kind == IdentityErrorKind.TIMEOUT
        assert exc_info.value.message == "Request to authentication service timed out"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert exc_info.value.kind == IdentityErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert exc_info.value.kind == IdentityErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_payload_without_id(self):
        client = make_client(lambda request: httpx.Response(200, json={"email": "jane@co.com"}))

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.create_user("jane@co.com", "secret123", "Jane Doe", "employee")

        assert exc_info.value.kind == IdentityErrorKind.INVALID_RESPONSE


class TestLookups:
    """Test find, get, update and delete."""

    @pytest.mark.asyncio
    async def test_find_users_by_email_filters_exact_match(self):
        seen = {}

        def handler(request):
            seen["filter"] = request.url.params.get("filter")
            other = dict(USER_PAYLOAD, id="22222222-2222-2222-2222-222222222222", email="mary.jane@co.com")
            return httpx.Response(200, json={"users": [USER_PAYLOAD, other]})

        client = make_client(handler)
        users = await client.find_users_by_email(" JANE@co.com ")

        assert seen["filter"] == "jane@co.com"
        assert [u.id for u in users] == [USER_PAYLOAD["id"]]

    @pytest.mark.asyncio
    async def test_find_users_accepts_bare_list(self):
        client = make_client(lambda request: httpx.Response(200, json=[USER_PAYLOAD]))

        users = await client.find_users_by_email("jane@co.com")

        assert len(users) == 1

    @pytest.mark.asyncio
    async def test_get_user_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"msg": "User not found"}))

        assert await client.get_user("missing") is None

    @pytest.mark.asyncio
    async def test_get_user(self):
        def handler(request):
            assert request.url.path == f"{ADMIN_USERS_PATH}/{USER_PAYLOAD['id']}"
            return httpx.Response(200, json=USER_PAYLOAD)

        client = make_client(handler)
        user = await client.get_user(USER_PAYLOAD["id"])

        assert user.name == "Jane Doe"
        assert user.roles == ["employee"]

    @pytest.mark.asyncio
    async def test_update_user_sends_only_given_attributes(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=USER_PAYLOAD)

        client = make_client(handler)
        await client.update_user(USER_PAYLOAD["id"], email=" New@Co.com ")

        assert seen["method"] == "PUT"
        assert seen["body"] == {"email": "new@co.com"}

    @pytest.mark.asyncio
    async def test_delete_user(self):
        client = make_client(lambda request: httpx.Response(200, json={}))

        assert await client.delete_user(USER_PAYLOAD["id"]) is True

    @pytest.mark.asyncio
    async def test_delete_user_already_gone(self):
        client = make_client(lambda request: httpx.Response(404, json={"msg": "User not found"}))

        assert await client.delete_user(USER_PAYLOAD["id"]) is False

    @pytest.mark.asyncio
    async def test_delete_user_server_error(self):
        client = make_client(lambda request: httpx.Response(500, json={"msg": "boom"}))

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.delete_user(USER_PAYLOAD["id"])

        assert exc_info.value.kind == IdentityErrorKind.UNAVAILABLE


class TestHealth:
    """Test the health check."""

    @pytest.mark.asyncio
    async def test_healthy(self):
        client = make_client(lambda request: httpx.Response(200, json={"version": "v2"}))

        health = await client.check_health()

        assert health["status"] == "healthy"
        assert health["available"] is True

    @pytest.mark.asyncio
    async def test_unreachable_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        health = await client.check_health()

        assert health == {"status": "network", "available": False}
