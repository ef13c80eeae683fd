"""
Identity Directory Module

Client and types for the hosted authentication service that owns employee
accounts and credentials.

Features:
- Admin user lookup by email and id
- Pre-confirmed account creation
- Account update and idempotent deletion
- Failure classification by HTTP status and transport error
"""

from .models import IdentityUser, IdentityServiceError, IdentityErrorKind
from .client import IdentityDirectoryClient, get_identity_directory, classify_response_error

__all__ = [
    'IdentityUser',
    'IdentityServiceError',
    'IdentityErrorKind',
    'IdentityDirectoryClient',
    'get_identity_directory',
    'classify_response_error',
]
