"""
Identity Directory - Data Types

Plain types for the hosted auth service's administrative user records and
the failures its REST surface can produce.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List


class IdentityErrorKind(str, Enum):
    """Classification of identity directory failures (by HTTP status / transport)."""
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    UNEXPECTED = "unexpected"


class IdentityServiceError(Exception):
    """
    Raised by IdentityDirectoryClient for any failed call.

    The message is already safe to show to API callers: upstream text is only
    passed through for bad-request and validation failures.
    """

    def __init__(
        self,
        kind: IdentityErrorKind,
        message: str,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"IdentityServiceError(kind={self.kind.value!r}, status_code={self.status_code!r})"


@dataclass
class IdentityUser:
    """An account record in the identity directory."""
    id: str
    email: str
    email_confirmed: bool = False
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    app_metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return self.user_metadata.get("name") or self.user_metadata.get("full_name")

    @property
    def roles(self) -> List[str]:
        roles = self.app_metadata.get("roles")
        if isinstance(roles, list):
            return roles
        role = self.app_metadata.get("role")
        return [role] if role else []

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "IdentityUser":
        """
        Build from an admin API user payload.

        Accepts both the bare user object and the `{"user": {...}}` envelope.
        """
        if "id" not in payload and isinstance(payload.get("user"), dict):
            payload = payload["user"]

        return cls(
            id=str(payload["id"]),
            email=(payload.get("email") or "").lower(),
            email_confirmed=bool(
                payload.get("email_confirmed_at") or payload.get("confirmed_at")
            ),
            user_metadata=payload.get("user_metadata") or {},
            app_metadata=payload.get("app_metadata") or {},
            created_at=payload.get("created_at"),
        )
