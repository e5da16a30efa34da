from fastapi import HTTPException

class SchedulingError(HTTPException):
    """
    Base class for expected, recoverable scheduling outcomes.

    The detail carries a machine readable code, a human readable message and
    whether retrying the same request could succeed (True when the caller lost
    a race or hit a concurrent update, False when the input must be fixed).
    """
    status = 400
    default_code = "scheduling_error"

    def __init__(self, message: str, code: str = None, retryable: bool = False):
        self.code = code or self.default_code
        self.message = message
        self.retryable = retryable
        super().__init__(
            status_code=self.status,
            detail={
                "code": self.code,
                "message": message,
                "retryable": retryable
            }
        )

class AuthorizationError(SchedulingError):
    status = 403
    default_code = "authorization_error"

class NotFoundError(SchedulingError):
    status = 404
    default_code = "not_found"

class ConflictError(SchedulingError):
    status = 409
    default_code = "conflict"

class CutoffViolationError(SchedulingError):
    status = 400
    default_code = "cutoff_violation"

class ScheduleValidationError(SchedulingError):
    status = 400
    default_code = "validation_error"
