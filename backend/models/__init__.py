from .schemas import CreateEmployeeRequest, UpdateEmployeeRequest
from .enums import EmployeeRole, ConflictSource, SagaStage

__all__ = [
    'CreateEmployeeRequest', 'UpdateEmployeeRequest',
    'EmployeeRole', 'ConflictSource', 'SagaStage'
]
