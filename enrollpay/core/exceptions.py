"""Domain errors raised by the service layer.

Each error carries a stable machine code and an HTTP status so the API layer can
render it in the standard ``ErrorResponse`` envelope without knowing which
service raised it.
"""

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base class for all typed business failures"""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.message!r}>"


class NotFoundError(DomainError):
    """Missing course, class, student, payment, enrollment or installment"""

    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class ConflictError(DomainError):
    """Duplicate active enrollment, duplicate payment or a lost concurrent update"""

    code = "CONFLICT"
    status_code = 409


class InvalidTransitionError(DomainError):
    """State machine refused the transition (double pay, re-approve, double refund)"""

    code = "INVALID_TRANSITION"
    status_code = 409


class PreconditionFailedError(DomainError):
    """Approval gating conditions not met.

    ``failures`` lists every failing condition; ``message`` is the first one.
    """

    code = "PRECONDITION_FAILED"
    status_code = 412

    def __init__(self, failures: List[str]):
        super().__init__(failures[0], details={"failures": list(failures)})
        self.failures = list(failures)


class ForbiddenError(DomainError):
    """Operation not allowed for this actor or in the aggregate's current state"""

    code = "FORBIDDEN"
    status_code = 403
