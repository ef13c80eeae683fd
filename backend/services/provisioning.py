"""
Employee Provisioning Service

Creates an identity directory account and the matching employee row as one
logical unit of work.

Flow (one compensating transition):
    validate -> preflight -> create identity -> verify identity
             -> insert employee -> done
                       \\-> (verify or insert failed) -> delete identity

Guarantees:
- On success exactly one identity and one employee row exist, sharing an id
- On any failure after the identity was created, the identity is deleted
- A failing compensating delete is logged and reported to Sentry but never
  replaces the primary outcome
- Once the identity create call is issued the run completes even if the
  caller is cancelled (the create call and every later step run in one
  shielded task, held in _inflight_runs until it finishes)

Every exit path is one of the frozen result types below; nothing raised by
the collaborators crosses this boundary.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, Any, Union, Tuple, List, Set, Protocol

from database.employee_directory import NewEmployee, DuplicateEmployeeError, EmployeeStoreError
from identity.models import IdentityUser, IdentityServiceError, IdentityErrorKind
from models.enums import EmployeeRole, ConflictSource, SagaStage
from sentry_integration import capture_exception
from utils.errors import ErrorResponse

logger = logging.getLogger(__name__)


IDENTITY_CONFLICT_CODE = "auth/email-already-exists"
DIRECTORY_CONFLICT_CODE = "employee/email-already-exists"

# Runs past the create call; referenced here so a cancelled caller cannot drop them
_inflight_runs: Set[asyncio.Task] = set()


# ==================== COLLABORATORS ====================

class IdentityDirectory(Protocol):
    async def find_users_by_email(self, email: str) -> List[IdentityUser]: ...

    async def create_user(self, email: str, password: str, name: str, role: str) -> IdentityUser: ...

    async def get_user(self, user_id: str) -> Optional[IdentityUser]: ...

    async def delete_user(self, user_id: str) -> bool: ...


class EmployeeStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[Any]: ...

    async def insert(self, record: NewEmployee) -> Any: ...


# ==================== REQUEST ====================

def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@dataclass
class ProvisionRequest:
    """A prospective employee. Optional fields fall back to defaults at insert time."""
    name: Optional[str]
    email: Optional[str]
    password: Optional[str]
    role: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: Optional[bool] = None
    company_id: Optional[str] = None

    def received(self) -> Dict[str, bool]:
        """Presence flags for the required fields (never the values)."""
        return {
            "name": bool(self.name and self.name.strip()),
            "email": bool(normalize_email(self.email)),
            "password": bool(self.password),
        }


# ==================== RESULTS ====================

@dataclass(frozen=True)
class Provisioned:
    """Both records exist and share `employee.id`."""
    employee: Any
    status_code: int = 201

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        return self.status_code, {
            "success": True,
            "message": "Employee created successfully",
            "data": self.employee.to_dict(),
        }


@dataclass(frozen=True)
class ValidationFailure:
    """Rejected before any I/O."""
    received: Dict[str, bool]
    message: str = "Name, email, and password are required"
    field: Optional[str] = None
    stage: SagaStage = SagaStage.validating
    status_code: int = 400

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        if self.field:
            return self.status_code, ErrorResponse.invalid_field(self.field, self.message)
        return self.status_code, ErrorResponse.missing_fields(self.received, self.message)


@dataclass(frozen=True)
class DuplicateConflict:
    """
    The email is already registered.

    `compensated` is None when no identity was created in this call, else
    whether the compensating delete succeeded.
    """
    source: ConflictSource
    stage: SagaStage
    existing_id: Optional[str] = None
    existing_email: Optional[str] = None
    compensated: Optional[bool] = None
    status_code: int = 409

    @property
    def code(self) -> str:
        return IDENTITY_CONFLICT_CODE if self.source == ConflictSource.identity else DIRECTORY_CONFLICT_CODE

    @property
    def message(self) -> str:
        if self.source == ConflictSource.identity:
            return "A user with this email already exists in the authentication system"
        return "An employee with this email already exists in the database"

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        existing = None
        if self.existing_id:
            existing = {"id": self.existing_id, "email": self.existing_email}
        return self.status_code, ErrorResponse.conflict(self.message, self.code, existing)


@dataclass(frozen=True)
class IdentityFailure:
    """The identity create call failed; nothing was created."""
    kind: IdentityErrorKind
    message: str
    upstream_status: Optional[int] = None
    stage: SagaStage = SagaStage.creating_identity
    status_code: int = 500

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        return self.status_code, ErrorResponse.failure(
            "Failed to create employee",
            self.message,
            details={"upstream_status": self.upstream_status},
            include_details=include_details,
            kind=self.kind.value,
            stage=self.stage.value,
        )


@dataclass(frozen=True)
class VerificationFailure:
    """The created identity could not be read back; it was compensated."""
    user_id: str
    compensated: bool
    message: str = "Failed to verify authentication user was created successfully"
    stage: SagaStage = SagaStage.verifying_identity
    status_code: int = 500

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        return self.status_code, ErrorResponse.failure(
            "Failed to create employee",
            self.message,
            details={"user_id": self.user_id, "compensated": self.compensated},
            include_details=include_details,
            kind="verification",
            stage=self.stage.value,
        )


@dataclass(frozen=True)
class DirectoryFailure:
    """The employee insert failed for a reason other than a duplicate email."""
    user_id: str
    message: str
    compensated: bool
    stage: SagaStage = SagaStage.inserting_employee
    status_code: int = 500

    def to_response(self, include_details: bool = False) -> Tuple[int, dict]:
        return self.status_code, ErrorResponse.failure(
            "Failed to create employee",
            self.message,
            details={"user_id": self.user_id, "compensated": self.compensated},
            include_details=include_details,
            kind="directory",
            stage=self.stage.value,
        )


ProvisioningResult = Union[
    Provisioned, ValidationFailure, DuplicateConflict,
    IdentityFailure, VerificationFailure, DirectoryFailure
]


# ==================== SERVICE ====================

@dataclass
class ProvisioningDefaults:
    """Values stamped on new rows when the request leaves them out."""
    company_id: Optional[str] = None
    role_id: Optional[str] = None


@dataclass
class _SagaState:
    """Mutable bookkeeping for one run."""
    email: str
    stage: SagaStage = SagaStage.validating
    user_id: Optional[str] = None
    history: List[str] = field(default_factory=list)

    def advance(self, stage: SagaStage) -> None:
        self.history.append(stage.value)
        self.stage = stage


class EmployeeProvisioningService:
    """
    Employee provisioning saga.

    Collaborators are injected; the service keeps no state between calls.
    """

    def __init__(
        self,
        identity: IdentityDirectory,
        directory: EmployeeStore,
        defaults: Optional[ProvisioningDefaults] = None
    ):
        self.identity = identity
        self.directory = directory
        self.defaults = defaults or ProvisioningDefaults()

    async def provision(self, request: ProvisionRequest) -> ProvisioningResult:
        """
        Provision one employee.

        Returns:
            Provisioned on success, otherwise the failure describing where
            and why the run stopped
        """
        state = _SagaState(email=normalize_email(request.email))

        # 1. Validate (no I/O)
        invalid = self._validate(request)
        if invalid:
            return invalid
        role = request.role or EmployeeRole.employee.value

        # 2. Preflight existence check
        state.advance(SagaStage.preflight)
        conflict = await self._preflight(state)
        if conflict:
            return conflict

        # 3-8. From the create call on, the run completes even if the caller is cancelled
        state.advance(SagaStage.creating_identity)
        run = asyncio.ensure_future(self._create_and_complete(state, request, role))
        _inflight_runs.add(run)
        run.add_done_callback(_inflight_runs.discard)
        return await asyncio.shield(run)

    # ==================== STEPS ====================

    async def _create_and_complete(
        self,
        state: _SagaState,
        request: ProvisionRequest,
        role: str
    ) -> ProvisioningResult:
        logger.info(f"Provisioning: creating identity for {state.email}")
        try:
            user = await self.identity.create_user(
                email=state.email,
                password=request.password,
                name=request.name.strip(),
                role=role,
            )
        except IdentityServiceError as e:
            logger.error(f"Provisioning: identity creation failed ({e.kind.value}): {e.message}")
            if e.kind == IdentityErrorKind.CONFLICT:
                return DuplicateConflict(source=ConflictSource.identity, stage=state.stage)
            return IdentityFailure(kind=e.kind, message=e.message, upstream_status=e.status_code)
        except Exception as e:
            logger.exception("Provisioning: unexpected error creating identity")
            capture_exception(e, stage=state.stage.value)
            return IdentityFailure(kind=IdentityErrorKind.UNEXPECTED, message=str(e))

        state.user_id = user.id
        return await self._complete(state, request, role)

    def _validate(self, request: ProvisionRequest) -> Optional[ValidationFailure]:
        received = request.received()
        if not all(received.values()):
            return ValidationFailure(received=received)

        if request.role is not None:
            valid_roles = [r.value for r in EmployeeRole]
            if request.role not in valid_roles:
                return ValidationFailure(
                    received=received,
                    field="role",
                    message=f"role must be one of: {', '.join(valid_roles)}",
                )
        return None

    async def _preflight(self, state: _SagaState) -> Optional[DuplicateConflict]:
        """
        Look for the email on both sides.

        Errors here are tolerated: the directory's unique constraint is the
        authoritative guard, so the run proceeds to creation.
        """
        try:
            users = await self.identity.find_users_by_email(state.email)
            if users:
                logger.info(f"Provisioning: email exists in identity directory: {state.email}")
                return DuplicateConflict(
                    source=ConflictSource.identity,
                    stage=state.stage,
                    existing_id=users[0].id,
                    existing_email=users[0].email,
                )
        except Exception as e:
            logger.warning(f"Provisioning: identity preflight check failed, proceeding: {e}")

        try:
            existing = await self.directory.find_by_email(state.email)
            if existing:
                logger.info(f"Provisioning: email exists in employee directory: {state.email}")
                return DuplicateConflict(
                    source=ConflictSource.directory,
                    stage=state.stage,
                    existing_id=str(existing.id),
                    existing_email=existing.email,
                )
        except Exception as e:
            logger.warning(f"Provisioning: directory preflight check failed, proceeding: {e}")

        return None

    async def _complete(
        self,
        state: _SagaState,
        request: ProvisionRequest,
        role: str
    ) -> ProvisioningResult:
        # 5. Verify the identity is readable
        state.advance(SagaStage.verifying_identity)
        try:
            verified = await self.identity.get_user(state.user_id)
        except Exception as e:
            logger.error(f"Provisioning: verification of identity {state.user_id} failed: {e}")
            verified = None

        if not verified:
            compensated = await self._compensate(state)
            return VerificationFailure(user_id=state.user_id, compensated=compensated)

        # 6. Insert the employee row
        state.advance(SagaStage.inserting_employee)
        record = NewEmployee(
            id=state.user_id,
            name=request.name.strip(),
            email=state.email,
            role=role,
            hire_date=request.hire_date or date.today(),
            is_active=True if request.is_active is None else request.is_active,
            department=request.department,
            position=request.position,
            team_id=request.team_id or None,
            reporting_manager_id=request.reporting_manager_id or None,
            company_id=request.company_id or self.defaults.company_id,
            role_id=self.defaults.role_id,
        )

        try:
            employee = await self.directory.insert(record)
        except DuplicateEmployeeError:
            # Lost a race against a concurrent run for the same email
            logger.warning(f"Provisioning: employee insert hit unique constraint for {state.email}")
            compensated = await self._compensate(state)
            return DuplicateConflict(
                source=ConflictSource.directory,
                stage=SagaStage.inserting_employee,
                compensated=compensated,
            )
        except EmployeeStoreError as e:
            logger.error(f"Provisioning: employee insert failed: {e}")
            compensated = await self._compensate(state)
            return DirectoryFailure(user_id=state.user_id, message=str(e), compensated=compensated)
        except Exception as e:
            logger.exception("Provisioning: unexpected error inserting employee")
            capture_exception(e, stage=state.stage.value, user_id=state.user_id)
            compensated = await self._compensate(state)
            return DirectoryFailure(
                user_id=state.user_id,
                message=f"Failed to create employee record: {e}",
                compensated=compensated,
            )

        if employee is None:
            compensated = await self._compensate(state)
            return DirectoryFailure(
                user_id=state.user_id,
                message="Failed to create employee record: No data returned",
                compensated=compensated,
            )

        state.advance(SagaStage.done)
        logger.info(
            f"Provisioning: employee {employee.id} created",
            extra={"user_id": state.user_id, "stages": state.history}
        )
        return Provisioned(employee=employee)

    async def _compensate(self, state: _SagaState) -> bool:
        """
        Delete the identity created in this run.

        Returns:
            True if the identity no longer exists afterwards
        """
        failed_stage = state.stage
        state.advance(SagaStage.compensating)
        logger.info(f"Provisioning: compensating, deleting identity {state.user_id} (failed at {failed_stage.value})")
        try:
            await self.identity.delete_user(state.user_id)
            return True
        except Exception as e:
            logger.error(f"Provisioning: compensating delete of identity {state.user_id} failed: {e}")
            capture_exception(e, user_id=state.user_id, failed_stage=failed_stage.value)
            return False
