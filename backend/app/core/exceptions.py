"""
Unified exception taxonomy for the service layer.

Every service error carries the HTTP status it maps to, so routers can turn it
into a response without knowing which service raised it. Messages are safe to
show to the client; store-level details never go into them.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Malformed or out-of-range input. `details` maps field name to problem."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details)


class UnauthorizedError(ServiceError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, 401)


class ForbiddenError(ServiceError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, 403)


class NotFoundError(ServiceError):
    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} not found", 404, {"resourceId": str(resource_id)})


class ConflictError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 409)


class DayNotEnabledError(ConflictError):
    def __init__(self, day: str):
        self.day = day
        super().__init__(f"Delivery day '{day}' is not enabled")


class InvalidTransitionError(ConflictError):
    def __init__(self, entity: str, current_status: str, target_status: str):
        super().__init__(f"{entity} is {current_status}, cannot move to {target_status}")


class UnexpectedError(ServiceError):
    """Store or network failure. The client only ever sees the generic message."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, 500)
