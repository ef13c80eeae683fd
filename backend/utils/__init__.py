"""
Utils Package

Provides utility modules for:
- errors: Structured JSON error bodies for the employee endpoints
"""

from .errors import ErrorResponse, error_response

__all__ = [
    'ErrorResponse',
    'error_response',
]
