"""
Employee Directory - Store

Async repository over the `employees` table. Each instance wraps one
AsyncSession (one per request).

Failures are raised as DuplicateEmployeeError (unique email violated) or
EmployeeStoreError (anything else the database rejects); the session is
rolled back before either is raised.
"""

import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EmployeeDB

logger = logging.getLogger(__name__)


UNIQUE_VIOLATION = "23505"

UPDATABLE_FIELDS = (
    "name", "email", "role", "department", "position",
    "team_id", "reporting_manager_id", "hire_date", "is_active",
)


class EmployeeStoreError(Exception):
    """The employee directory rejected an operation"""
    pass


class DuplicateEmployeeError(EmployeeStoreError):
    """An employee row with this email already exists"""
    pass


@dataclass
class NewEmployee:
    """Row to insert. `id` must be the identity directory's user id."""
    id: str
    name: str
    email: str
    role: str
    hire_date: date
    is_active: bool = True
    department: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    company_id: Optional[str] = None
    role_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_employee_id(employee_id: str) -> Optional[str]:
    """Canonical form of an employee id, or None if it is not a UUID (no such row can exist)."""
    try:
        return str(uuid.UUID(str(employee_id)))
    except ValueError:
        return None


def is_unique_violation(exc: IntegrityError) -> bool:
    """True if the driver reports SQLSTATE 23505 (or says so in its message)."""
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == UNIQUE_VIOLATION:
            return True
    text = str(orig or exc).lower()
    return "unique" in text or "duplicate key" in text


class EmployeeDirectory:
    """Repository for employee rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> Optional[EmployeeDB]:
        """Find employee by email (case-insensitive)."""
        try:
            result = await self.db.execute(
                select(EmployeeDB).where(func.lower(EmployeeDB.email) == email.strip().lower())
            )
        except SQLAlchemyError as e:
            # Leave the session usable for the insert that may follow
            await self.db.rollback()
            raise EmployeeStoreError(f"Failed to look up employee by email: {e}") from e
        return result.scalars().first()

    async def get(self, employee_id: str) -> Optional[EmployeeDB]:
        """Find employee by id."""
        employee_id = parse_employee_id(employee_id)
        if employee_id is None:
            return None
        result = await self.db.execute(select(EmployeeDB).where(EmployeeDB.id == employee_id))
        return result.scalar_one_or_none()

    async def list(
        self,
        company_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[EmployeeDB]:
        """List employees, newest first."""
        query = select(EmployeeDB)
        if company_id:
            query = query.where(EmployeeDB.company_id == company_id)
        if is_active is not None:
            query = query.where(EmployeeDB.is_active == is_active)
        query = query.order_by(EmployeeDB.created_at.desc()).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def insert(self, record: NewEmployee) -> EmployeeDB:
        """
        Insert a new employee row.

        Raises:
            DuplicateEmployeeError: the email (or id) is already taken
            EmployeeStoreError: any other database failure
        """
        now = datetime.now(timezone.utc)
        employee = EmployeeDB(**record.to_dict(), created_at=now, updated_at=now)
        self.db.add(employee)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                logger.warning(f"Employee insert hit unique constraint for id {record.id}")
                raise DuplicateEmployeeError("An employee with this email already exists") from e
            raise EmployeeStoreError(f"Failed to create employee record: {e.orig}") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise EmployeeStoreError(f"Failed to create employee record: {e}") from e

        await self.db.refresh(employee)
        logger.info(f"Employee row created: {employee.id}")
        return employee

    async def update(self, employee_id: str, changes: Dict[str, Any]) -> Optional[EmployeeDB]:
        """
        Apply changes to an employee row.

        Returns:
            Updated row, or None if no row has this id
        """
        employee = await self.get(employee_id)
        if not employee:
            return None

        for key, value in changes.items():
            if key in UPDATABLE_FIELDS:
                setattr(employee, key, value)
        employee.updated_at = datetime.now(timezone.utc)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                raise DuplicateEmployeeError("An employee with this email already exists") from e
            raise EmployeeStoreError(f"Failed to update employee: {e.orig}") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise EmployeeStoreError(f"Failed to update employee: {e}") from e

        await self.db.refresh(employee)
        return employee

    async def delete(self, employee_id: str) -> Optional[EmployeeDB]:
        """
        Delete an employee row.

        Returns:
            The deleted row, or None if no row has this id
        """
        employee = await self.get(employee_id)
        if not employee:
            return None

        try:
            await self.db.delete(employee)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise EmployeeStoreError(f"Failed to delete employee record: {e}") from e

        logger.info(f"Employee row deleted: {employee_id}")
        return employee
