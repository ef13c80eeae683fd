from .connection import get_db, create_engine_from_settings, create_session_factory, ping, Base

from .models import EmployeeDB
from .employee_directory import (
    EmployeeDirectory, NewEmployee,
    EmployeeStoreError, DuplicateEmployeeError, is_unique_violation, parse_employee_id
)

__all__ = [
    'get_db', 'create_engine_from_settings', 'create_session_factory', 'ping', 'Base',
    'EmployeeDB',
    'EmployeeDirectory', 'NewEmployee',
    'EmployeeStoreError', 'DuplicateEmployeeError', 'is_unique_violation', 'parse_employee_id',
]
