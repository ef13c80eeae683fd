"""
Identity Directory - Admin REST Client

Thin async client for the hosted auth service's administrative API
(`/auth/v1/admin/users`), authenticated with the project's service-role key.

Every failure is raised as IdentityServiceError with a kind derived from the
HTTP status or the transport error, so callers never see raw httpx objects.

Security:
- The service key is sent as both `apikey` and bearer token, never logged
- Passwords are forwarded opaquely and never logged
"""

import logging
from typing import Optional, Dict, Any, List

import httpx
from fastapi import Request

from .models import IdentityUser, IdentityServiceError, IdentityErrorKind

logger = logging.getLogger(__name__)


ADMIN_USERS_PATH = "/auth/v1/admin/users"
HEALTH_PATH = "/auth/v1/health"

# Upstream phrases that mean "email already registered"
_DUPLICATE_MARKERS = ("already been registered", "already registered", "already exists", "email_exists")


def _upstream_message(payload: Any, fallback: str) -> str:
    """Pick the most specific message from an auth service error body."""
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    return fallback


def classify_response_error(status_code: int, payload: Any, reason: str = "") -> IdentityServiceError:
    """
    Map a non-2xx admin API response to an IdentityServiceError.

    400 and 422 pass the upstream message through; 401/403 are reported as a
    credential problem without echoing upstream text; 5xx is "unavailable".
    """
    message = _upstream_message(payload, reason or f"HTTP {status_code}")
    is_duplicate = any(marker in message.lower() for marker in _DUPLICATE_MARKERS)

    if status_code == 409 or (status_code in (400, 422) and is_duplicate):
        return IdentityServiceError(
            IdentityErrorKind.CONFLICT,
            "A user with this email already exists in the authentication system",
            status_code
        )
    if status_code == 400:
        return IdentityServiceError(IdentityErrorKind.BAD_REQUEST, f"Invalid request: {message}", status_code)
    if status_code in (401, 403):
        return IdentityServiceError(
            IdentityErrorKind.UNAUTHORIZED,
            "Authentication failed: Invalid service role key",
            status_code
        )
    if status_code == 404:
        return IdentityServiceError(IdentityErrorKind.NOT_FOUND, "User not found", status_code)
    if status_code == 422:
        return IdentityServiceError(IdentityErrorKind.VALIDATION, f"Validation error: {message}", status_code)
    if status_code >= 500:
        return IdentityServiceError(
            IdentityErrorKind.UNAVAILABLE,
            "Authentication service is currently unavailable. Please try again later.",
            status_code
        )
    return IdentityServiceError(IdentityErrorKind.BAD_REQUEST, message, status_code)


class IdentityDirectoryClient:
    """
    Client for the identity directory's admin API.

    The httpx.AsyncClient is injected so the process can share one connection
    pool and tests can pass a client backed by httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        http_client: httpx.AsyncClient,
        create_timeout: float = 10.0
    ):
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._http = http_client
        self.create_timeout = create_timeout

    # ==================== INTERNAL ====================

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Issue a request, translating transport errors to IdentityServiceError."""
        kwargs: Dict[str, Any] = {"headers": self._headers()}
        if json is not None:
            kwargs["json"] = json
        if params is not None:
            kwargs["params"] = params
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            return await self._http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException:
            logger.error(f"Identity directory {method} {path} timed out")
            raise IdentityServiceError(
                IdentityErrorKind.TIMEOUT,
                "Request to authentication service timed out"
            )
        except httpx.RequestError as e:
            logger.error(f"Identity directory {method} {path} failed: {type(e).__name__}")
            raise IdentityServiceError(
                IdentityErrorKind.NETWORK,
                "Failed to connect to authentication service. Please check your network connection."
            )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise IdentityServiceError(
                IdentityErrorKind.INVALID_RESPONSE,
                "Invalid response received from authentication service",
                response.status_code
            )

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = None
        error = classify_response_error(response.status_code, payload, response.reason_phrase)
        logger.warning(
            f"Identity directory returned {response.status_code} ({error.kind.value})",
            extra={"status_code": response.status_code, "kind": error.kind.value}
        )
        raise error

    def _parse_user(self, payload: Any, status_code: int) -> IdentityUser:
        try:
            return IdentityUser.from_payload(payload)
        except (KeyError, TypeError, AttributeError):
            raise IdentityServiceError(
                IdentityErrorKind.INVALID_RESPONSE,
                "Invalid response format from authentication service",
                status_code
            )

    # ==================== USER OPERATIONS ====================

    async def find_users_by_email(self, email: str) -> List[IdentityUser]:
        """
        Find accounts registered with this email (case-insensitive).

        The admin list endpoint treats `filter` as a substring search on email,
        so results are re-checked against the normalized email before being
        returned.
        """
        normalized = email.strip().lower()
        response = await self._request(
            "GET", ADMIN_USERS_PATH, params={"filter": normalized}
        )
        self._raise_for_status(response)
        payload = self._json(response)

        if isinstance(payload, dict):
            entries = payload.get("users") or []
        elif isinstance(payload, list):
            entries = payload
        else:
            entries = []

        users = []
        for entry in entries:
            user = self._parse_user(entry, response.status_code)
            if user.email == normalized:
                users.append(user)
        return users

    async def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str
    ) -> IdentityUser:
        """
        Create a pre-confirmed account.

        Only this call carries an explicit timeout (create_timeout).
        """
        body = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {
                "name": name,
                "full_name": name,
                "avatar_url": "",
            },
            "app_metadata": {
                "provider": "email",
                "roles": [role],
            },
        }
        response = await self._request("POST", ADMIN_USERS_PATH, json=body, timeout=self.create_timeout)
        self._raise_for_status(response)
        user = self._parse_user(self._json(response), response.status_code)
        logger.info(f"Identity user created: {user.id}")
        return user

    async def get_user(self, user_id: str) -> Optional[IdentityUser]:
        """Get an account by id, or None if it does not exist."""
        response = await self._request("GET", f"{ADMIN_USERS_PATH}/{user_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return self._parse_user(self._json(response), response.status_code)

    async def update_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        role: Optional[str] = None
    ) -> IdentityUser:
        """Update email, display name and/or role; unspecified attributes are left alone."""
        body: Dict[str, Any] = {}
        if email:
            body["email"] = email.strip().lower()
        if name:
            body["user_metadata"] = {"name": name, "full_name": name}
        if role:
            body["app_metadata"] = {"role": role, "roles": [role]}

        response = await self._request("PUT", f"{ADMIN_USERS_PATH}/{user_id}", json=body)
        self._raise_for_status(response)
        return self._parse_user(self._json(response), response.status_code)

    async def delete_user(self, user_id: str) -> bool:
        """
        Delete an account.

        Returns:
            True if deleted, False if it did not exist (already deleted)
        """
        response = await self._request("DELETE", f"{ADMIN_USERS_PATH}/{user_id}")
        if response.status_code == 404:
            logger.info(f"Identity user {user_id} not found on delete, treating as already deleted")
            return False
        self._raise_for_status(response)
        logger.info(f"Identity user deleted: {user_id}")
        return True

    async def check_health(self) -> Dict[str, Any]:
        """Check the identity service. Never raises."""
        try:
            response = await self._request("GET", HEALTH_PATH)
        except IdentityServiceError as e:
            return {"status": e.kind.value, "available": False}

        if response.is_success:
            return {
                "status": "healthy",
                "available": True,
                "response_time_ms": int(response.elapsed.total_seconds() * 1000),
            }
        return {"status": "unhealthy", "available": False, "http_status": response.status_code}


# ==================== DEPENDENCY ====================

def get_identity_directory(request: Request) -> IdentityDirectoryClient:
    """FastAPI dependency: the process-wide client built at startup."""
    return request.app.state.identity_directory
