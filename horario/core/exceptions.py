from pydantic import ValidationError

class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class PreconditionViolation(AppError):
    """Raised when a local guard fails before any remote call is made."""
    def __init__(self, message: str, details: dict = None, status_code: int = 400):
        super().__init__(message, status_code=status_code, details=details)

class NotEditableError(PreconditionViolation):
    """Raised when allocations are changed on a proposal that is not a draft."""
    def __init__(self, proposal_id: str, status: str):
        super().__init__(
            f"Proposal {proposal_id} cannot be edited while in status {status}",
            details={"proposal_id": proposal_id, "status": status},
        )

class TransitionNotAllowedError(PreconditionViolation):
    """Raised when an event has no edge from the proposal's current status."""
    def __init__(self, status: str, event: str):
        super().__init__(
            f"Cannot {event} a proposal in status {status}",
            details={"status": status, "event": event},
        )

class PermissionDeniedError(PreconditionViolation):
    """Raised when the acting role may not trigger an event."""
    def __init__(self, role: str, event: str):
        super().__init__(
            f"Role {role} is not allowed to {event} a proposal",
            details={"role": role, "event": event},
            status_code=403,
        )

class ValidationRejectedError(AppError):
    """Raised when the remote authority rejects an operation on business rules."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class TransportError(AppError):
    """Raised on network failures or server errors talking to the remote authority."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=502, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

def precondition_from_validation(exc: ValidationError, default_message: str = "Invalid input") -> PreconditionViolation:
    """Turn a pydantic ValidationError on local input into a PreconditionViolation."""
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return PreconditionViolation(errors[0]["message"] if errors else default_message, details={"errors": errors})
