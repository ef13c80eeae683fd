from .employees import router as employees_router

__all__ = [
    'employees_router',
]
