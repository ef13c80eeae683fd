"""
Employee Directory - Database Models

SQLAlchemy mapping for the `employees` table. One row per provisioned
identity; `id` is the identity directory's user id.
"""

from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy import Column, String, Boolean, Date, DateTime
from sqlalchemy.dialects.postgresql import UUID

from .connection import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmployeeDB(Base):
    """
    Employee - Directory Row

    Email is stored lower-cased and trimmed and is unique across the table;
    that constraint is what serializes concurrent provisioning of one email.
    """
    __tablename__ = "employees"

    id = Column(UUID(as_uuid=False), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(30), nullable=False, default="employee")
    role_id = Column(UUID(as_uuid=False))
    department = Column(String(255))
    position = Column(String(255))
    team_id = Column(UUID(as_uuid=False))
    reporting_manager_id = Column(UUID(as_uuid=False))
    hire_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)
    company_id = Column(UUID(as_uuid=False))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "role_id": str(self.role_id) if self.role_id else None,
            "department": self.department,
            "position": self.position,
            "team_id": str(self.team_id) if self.team_id else None,
            "reporting_manager_id": str(self.reporting_manager_id) if self.reporting_manager_id else None,
            "hire_date": self.hire_date.isoformat() if self.hire_date else None,
            "is_active": self.is_active,
            "company_id": str(self.company_id) if self.company_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
