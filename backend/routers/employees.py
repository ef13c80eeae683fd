"""
Employee API Router

Endpoints:
- POST /create-employee - Provision identity + employee row (with rollback)
- GET /employees - List employees
- GET /employees/{employee_id} - Get employee by ID
- PUT /employees/{employee_id} - Partial update (identity first, then row)
- DELETE /employees/{employee_id} - Best-effort identity delete, then row
- POST /employees/{employee_id}/deactivate - Remove identity, keep row inactive

All error bodies carry a stable `error` string and a human `message`;
implementation details are only included outside production.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from database import get_db, EmployeeDirectory
from identity import IdentityDirectoryClient, get_identity_directory
from models import CreateEmployeeRequest, UpdateEmployeeRequest, EmployeeRole
from services.employees import EmployeeService, EmployeeChanges
from services.provisioning import (
    EmployeeProvisioningService, ProvisionRequest, ProvisioningDefaults, Provisioned
)
from sentry_integration import capture_exception
from utils.errors import ErrorResponse, error_response

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Employees"])


# ==================== DEPENDENCIES ====================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_employee_directory(db: AsyncSession = Depends(get_db)) -> EmployeeDirectory:
    return EmployeeDirectory(db)


def get_provisioning_service(
    identity: IdentityDirectoryClient = Depends(get_identity_directory),
    directory: EmployeeDirectory = Depends(get_employee_directory),
    settings: Settings = Depends(get_app_settings)
) -> EmployeeProvisioningService:
    defaults = ProvisioningDefaults(
        company_id=settings.DEFAULT_COMPANY_ID,
        role_id=settings.DEFAULT_ROLE_ID
    )
    return EmployeeProvisioningService(identity, directory, defaults)


def get_employee_service(
    identity: IdentityDirectoryClient = Depends(get_identity_directory),
    directory: EmployeeDirectory = Depends(get_employee_directory)
) -> EmployeeService:
    return EmployeeService(identity, directory)


def _internal_error(e: Exception, settings: Settings, **context) -> JSONResponse:
    capture_exception(e, **context)
    return error_response(500, ErrorResponse.failure(
        "Internal server error",
        str(e) or "An unexpected error occurred",
        details={"type": type(e).__name__},
        include_details=not settings.is_production
    ))


# ==================== CREATE ====================

@router.post("/create-employee", status_code=201)
async def create_employee(
    payload: Optional[CreateEmployeeRequest] = None,
    service: EmployeeProvisioningService = Depends(get_provisioning_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Create an identity account and its employee row as one unit.

    Returns:
    - 201: employee created
    - 400: name, email or password missing (or invalid role)
    - 409: email already registered (`code` says on which side)
    - 500: any other failure; any identity created in this call was removed
    """
    payload = payload or CreateEmployeeRequest()
    logger.info(f"[POST /create-employee] Request received (email provided: {bool(payload.email)})")

    result = await service.provision(ProvisionRequest(**payload.model_dump()))
    status_code, body = result.to_response(include_details=not settings.is_production)

    if isinstance(result, Provisioned):
        logger.info(f"[POST /create-employee] Employee created: {result.employee.id}")
    else:
        logger.warning(
            f"[POST /create-employee] Failed with {status_code} at stage {result.stage.value}",
            extra={"result": type(result).__name__}
        )
    return JSONResponse(status_code=status_code, content=body)


# ==================== READ ====================

@router.get("/employees")
async def list_employees(
    company_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: EmployeeService = Depends(get_employee_service),
    settings: Settings = Depends(get_app_settings)
):
    """List employees, optionally filtered by company and active flag."""
    try:
        employees = await service.list(
            company_id=company_id,
            is_active=is_active,
            limit=limit,
            offset=offset
        )
    except Exception as e:
        logger.error(f"[GET /employees] Unexpected error: {e}")
        return _internal_error(e, settings)

    return {
        "success": True,
        "count": len(employees),
        "data": [employee.to_dict() for employee in employees],
    }


@router.get("/employees/{employee_id}")
async def get_employee(
    employee_id: str,
    service: EmployeeService = Depends(get_employee_service),
    settings: Settings = Depends(get_app_settings)
):
    """Get a single employee."""
    try:
        employee = await service.get(employee_id)
    except Exception as e:
        logger.error(f"[GET /employees/{employee_id}] Unexpected error: {e}")
        return _internal_error(e, settings, employee_id=employee_id)

    if not employee:
        logger.info(f"[GET /employees/{employee_id}] Employee not found")
        return error_response(404, ErrorResponse.not_found(employee_id))

    return {"success": True, "data": employee.to_dict()}


# ==================== UPDATE ====================

@router.put("/employees/{employee_id}")
async def update_employee(
    employee_id: str,
    payload: UpdateEmployeeRequest,
    service: EmployeeService = Depends(get_employee_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Partial update.

    Email/name/role changes go to the identity directory first; if that
    fails (400) the row is not touched.
    """
    if payload.role is not None and payload.role not in [r.value for r in EmployeeRole]:
        return error_response(400, ErrorResponse.invalid_field(
            "role", f"role must be one of: {', '.join(r.value for r in EmployeeRole)}", payload.role
        ))

    changes = EmployeeChanges(**payload.model_dump(), provided=frozenset(payload.model_fields_set))

    try:
        outcome = await service.update(employee_id, changes)
    except Exception as e:
        logger.error(f"[PUT /employees/{employee_id}] Unexpected error: {e}")
        return _internal_error(e, settings, employee_id=employee_id)

    if outcome.identity_error:
        return error_response(400, ErrorResponse.failure(
            "Failed to update authentication details",
            outcome.identity_error.message,
            code=outcome.identity_error.status_code,
        ))
    if outcome.store_error:
        return error_response(400, ErrorResponse.failure("Failed to update employee", outcome.store_error))
    if outcome.not_found:
        return error_response(404, ErrorResponse.not_found(employee_id))

    return {
        "success": True,
        "message": "Employee updated successfully",
        "data": outcome.employee.to_dict(),
    }


# ==================== DELETE ====================

@router.delete("/employees/{employee_id}")
async def delete_employee(
    employee_id: str,
    service: EmployeeService = Depends(get_employee_service),
    settings: Settings = Depends(get_app_settings)
):
    """Delete the identity (best effort) and the employee row."""
    try:
        employee = await service.delete(employee_id)
    except Exception as e:
        logger.error(f"[DELETE /employees/{employee_id}] Unexpected error: {e}")
        return _internal_error(e, settings, employee_id=employee_id)

    if not employee:
        return error_response(404, ErrorResponse.not_found(employee_id))

    return {
        "success": True,
        "message": "Employee deleted successfully",
        "data": {
            "id": str(employee.id),
            "email": employee.email,
            "name": employee.name,
        },
    }


@router.post("/employees/{employee_id}/deactivate")
async def deactivate_employee(
    employee_id: str,
    service: EmployeeService = Depends(get_employee_service),
    settings: Settings = Depends(get_app_settings)
):
    """Revoke sign-in by deleting the identity; the row stays with is_active = false."""
    try:
        outcome = await service.deactivate(employee_id)
    except Exception as e:
        logger.error(f"[POST /employees/{employee_id}/deactivate] Unexpected error: {e}")
        return _internal_error(e, settings, employee_id=employee_id)

    if outcome.identity_error:
        return error_response(500, ErrorResponse.failure(
            "Failed to delete authentication user",
            outcome.identity_error.message,
            code=outcome.identity_error.kind.value,
        ))
    if not outcome.employee:
        return error_response(404, ErrorResponse.not_found(employee_id))

    return {
        "success": True,
        "message": "Employee successfully deactivated",
        "employeeId": employee_id,
    }
