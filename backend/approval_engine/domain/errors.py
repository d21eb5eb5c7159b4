"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed (e.g. missing rejection comment)"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class WorkflowValidationError(ValidationError):
    """Workflow template validation failed"""
    error_code = "WORKFLOW_VALIDATION_ERROR"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class TemplateNotFoundError(NotFoundError):
    """No template matches the request type"""
    error_code = "TEMPLATE_NOT_FOUND"


class WorkflowNotFoundError(NotFoundError):
    """Workflow instance not found"""
    error_code = "WORKFLOW_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrentModificationError(ConflictError):
    """Optimistic concurrency retries exhausted"""
    error_code = "CONCURRENT_MODIFICATION"


class InvalidTransitionError(ConflictError):
    """Command not legal for the instance's current state, step or actor"""
    error_code = "INVALID_TRANSITION"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class NoApproverAvailableError(EngineError):
    """Directory returned no approver for a step's role"""
    error_code = "NO_APPROVER_AVAILABLE"
    http_status = 422


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class DirectoryError(ExternalServiceError):
    """Directory service call failed"""
    error_code = "DIRECTORY_ERROR"


class EventDeliveryError(ExternalServiceError):
    """Event sink could not accept an event"""
    error_code = "EVENT_DELIVERY_ERROR"
