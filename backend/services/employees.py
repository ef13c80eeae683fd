"""
Employee Service

Read, update, delete and deactivate employees across the identity directory
and the employee directory.

These are best-effort pass-throughs, not sagas:
- update touches the identity first; if that fails the row is left unchanged
- delete tries the identity first (not-found counts as deleted) and always
  goes on to delete the row
- deactivate removes the identity and keeps the row with is_active = false
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Dict, Any, List

from database.employee_directory import EmployeeDirectory, EmployeeStoreError, parse_employee_id
from identity.client import IdentityDirectoryClient
from identity.models import IdentityServiceError

logger = logging.getLogger(__name__)


@dataclass
class EmployeeChanges:
    """Partial update. Fields left as None are not touched."""
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: Optional[bool] = None
    # Names of fields explicitly present in the request, so "" can clear a reference
    provided: frozenset = frozenset()

    @property
    def touches_identity(self) -> bool:
        return bool(self.email or self.name or self.role)

    def to_row_changes(self) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if self.name:
            changes["name"] = self.name.strip()
        if self.email:
            changes["email"] = self.email.strip().lower()
        if self.role:
            changes["role"] = self.role
        for key in ("department", "position"):
            if key in self.provided:
                changes[key] = getattr(self, key)
        for key in ("team_id", "reporting_manager_id"):
            if key in self.provided:
                changes[key] = getattr(self, key) or None
        if self.hire_date:
            changes["hire_date"] = self.hire_date
        if self.is_active is not None:
            changes["is_active"] = self.is_active
        return changes


@dataclass
class UpdateOutcome:
    employee: Optional[Any] = None
    identity_error: Optional[IdentityServiceError] = None
    store_error: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return self.employee is None and not self.identity_error and not self.store_error


@dataclass
class DeactivateOutcome:
    employee: Optional[Any] = None
    identity_error: Optional[IdentityServiceError] = None


class EmployeeService:
    """Employee CRUD over both stores."""

    def __init__(self, identity: IdentityDirectoryClient, directory: EmployeeDirectory):
        self.identity = identity
        self.directory = directory

    async def get(self, employee_id: str):
        return await self.directory.get(employee_id)

    async def list(
        self,
        company_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Any]:
        return await self.directory.list(
            company_id=company_id,
            is_active=is_active,
            limit=limit,
            offset=offset
        )

    async def update(self, employee_id: str, changes: EmployeeChanges) -> UpdateOutcome:
        """
        Update identity (if email/name/role changed) then the row.

        Not atomic: an identity failure leaves the row unchanged, a row
        failure after a successful identity update is reported as-is.
        """
        if parse_employee_id(employee_id) is None:
            return UpdateOutcome()

        if changes.touches_identity:
            try:
                await self.identity.update_user(
                    employee_id,
                    email=changes.email,
                    name=changes.name,
                    role=changes.role,
                )
                logger.info(f"[PUT /employees/{employee_id}] Identity user updated")
            except IdentityServiceError as e:
                logger.error(f"[PUT /employees/{employee_id}] Error updating identity user: {e.message}")
                return UpdateOutcome(identity_error=e)

        try:
            employee = await self.directory.update(employee_id, changes.to_row_changes())
        except EmployeeStoreError as e:
            logger.error(f"[PUT /employees/{employee_id}] Error updating employee: {e}")
            return UpdateOutcome(store_error=str(e))

        if employee is None:
            logger.info(f"[PUT /employees/{employee_id}] No employee found")
        return UpdateOutcome(employee=employee)

    async def delete(self, employee_id: str):
        """
        Delete identity (best effort) then the row.

        Returns:
            The deleted row, or None if no row had this id
        """
        if parse_employee_id(employee_id) is None:
            return None

        try:
            deleted = await self.identity.delete_user(employee_id)
            if not deleted:
                logger.info(f"[DELETE /employees/{employee_id}] Identity user not found, continuing with row deletion")
        except IdentityServiceError as e:
            logger.error(f"[DELETE /employees/{employee_id}] Error deleting identity user ({e.kind.value}), continuing")

        return await self.directory.delete(employee_id)

    async def deactivate(self, employee_id: str) -> DeactivateOutcome:
        """
        Remove the identity so the employee can no longer sign in, keep the row inactive.

        An identity error other than not-found aborts before the row is touched.
        """
        employee = await self.directory.get(employee_id)
        if not employee:
            return DeactivateOutcome()

        try:
            await self.identity.delete_user(employee_id)
        except IdentityServiceError as e:
            logger.error(f"[POST /employees/{employee_id}/deactivate] Error deleting identity user: {e.message}")
            return DeactivateOutcome(employee=employee, identity_error=e)

        employee = await self.directory.update(employee_id, {"is_active": False})
        logger.info(f"[POST /employees/{employee_id}/deactivate] Employee deactivated")
        return DeactivateOutcome(employee=employee)
