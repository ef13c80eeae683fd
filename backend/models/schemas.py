from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import date


# ==================== EMPLOYEE CREATE ====================
class CreateEmployeeRequest(BaseModel):
    """
    Body of POST /create-employee.

    Required fields are declared optional here so that a missing field
    produces the structured 400 body rather than a framework 422.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: Optional[bool] = None
    company_id: Optional[str] = None

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "name": "Jane Doe",
                "email": "jane@company.com",
                "password": "secret123",
                "role": "employee",
                "department": "Engineering",
                "position": "Developer",
            }
        },
    )


# ==================== EMPLOYEE UPDATE ====================
class UpdateEmployeeRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")
