from enum import Enum


class EmployeeRole(str, Enum):
    employee = "employee"
    reporting_manager = "reporting_manager"
    admin = "admin"
    super_admin = "super_admin"


class ConflictSource(str, Enum):
    """Which store already holds a conflicting email."""
    identity = "identity"
    directory = "directory"


class SagaStage(str, Enum):
    """Position of a provisioning run; failures report the stage they stopped in."""
    validating = "validating"
    preflight = "preflight"
    creating_identity = "creating_identity"
    verifying_identity = "verifying_identity"
    inserting_employee = "inserting_employee"
    compensating = "compensating"
    done = "done"
