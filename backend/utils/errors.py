"""
Structured Error Response Utilities

Builds the JSON error bodies returned by the employee endpoints so every
failure carries a stable `error` string and a human `message`.

Error Response Format:
{
    "success": false,
    "error": "Employee not found",
    "message": "No employee found with ID: ...",
    "code": "employee/email-already-exists"      (conflicts only)
    "details": {...}                             (outside production only)
}
"""

from typing import Optional, Any, Dict

from fastapi.responses import JSONResponse


class ErrorResponse:
    """Structured error response builder."""

    @staticmethod
    def missing_fields(received: Dict[str, bool], details: Optional[str] = None) -> dict:
        """
        Create a missing required fields error response.

        Args:
            received: Presence flag per required field
            details: Optional custom description

        Returns:
            Structured error dict
        """
        missing = [name for name, present in received.items() if not present]
        return {
            "success": False,
            "error": "Missing required fields",
            "message": f"Missing: {', '.join(missing)}" if missing else "Missing required fields",
            "details": details or "Name, email, and password are required",
            "received": received,
        }

    @staticmethod
    def invalid_field(field: str, message: str, value: Optional[Any] = None) -> dict:
        """
        Create an invalid field error response.

        Args:
            field: Name of the invalid field
            message: Description of the validation error
            value: The invalid value (optional, for debugging)
        """
        response = {
            "success": False,
            "error": "Invalid field",
            "field": field,
            "message": message,
        }
        if value is not None:
            response["received_value"] = str(value)[:100]  # Truncate for safety
        return response

    @staticmethod
    def conflict(message: str, code: str, existing_record: Optional[dict] = None) -> dict:
        """Create a duplicate email conflict response."""
        response = {
            "success": False,
            "error": "Email already exists",
            "message": message,
            "code": code,
        }
        if existing_record:
            response["existingRecord"] = existing_record
        return response

    @staticmethod
    def not_found(employee_id: str) -> dict:
        return {
            "success": False,
            "error": "Employee not found",
            "message": f"No employee found with ID: {employee_id}",
        }

    @staticmethod
    def failure(
        error: str,
        message: str,
        details: Optional[dict] = None,
        include_details: bool = True,
        **extra: Any
    ) -> dict:
        """
        Create a generic failure response.

        `details` is only attached when include_details is True (never in
        production).
        """
        response = {
            "success": False,
            "error": error,
            "message": message,
            **extra,
        }
        if details and include_details:
            response["details"] = details
        return response


def error_response(status_code: int, body: dict) -> JSONResponse:
    """Wrap a structured error body in a JSONResponse."""
    return JSONResponse(status_code=status_code, content=body)
