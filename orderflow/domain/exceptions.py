"""Order domain exceptions.

Raised by the domain and the lifecycle engine when a rule is violated.
Callers catch these and translate them into transport-specific responses;
``code`` is a stable identifier for that mapping.
"""

from typing import Dict, List, Optional


class OrderError(Exception):
    """Base class for every failure reported by the order core"""

    code = "ORDER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OrderError):
    """The referenced order does not exist"""

    code = "NOT_FOUND"


class InvalidTransitionError(OrderError):
    """A status edge outside the graph, or any move out of a terminal status"""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: Optional[str] = None, message: Optional[str] = None):
        if message is None:
            if target is None:
                message = f"Order in status '{current}' cannot be transitioned"
            else:
                message = f"Cannot transition order from '{current}' to '{target}'"
        super().__init__(message)
        self.current = current
        self.target = target


class UnknownActionError(OrderError):
    code = "UNKNOWN_ACTION"


class ConflictError(OrderError):
    """A concurrent writer saved the order first (version mismatch)"""

    code = "CONFLICT"


class CapacityExceededError(OrderError):
    """The order number sequence no longer fits the configured width"""

    code = "CAPACITY_EXCEEDED"


class ValidationFailedError(OrderError):
    code = "VALIDATION_FAILED"

    def __init__(self, errors: Dict[str, List[str]]):
        details = "; ".join(f"{field}: {', '.join(messages)}" for field, messages in errors.items())
        super().__init__(f"Validation failed ({details})")
        self.errors = errors


class ForbiddenError(OrderError):
    """The operation is disabled by engine configuration"""

    code = "FORBIDDEN"


class OperationTimeoutError(OrderError, TimeoutError):
    code = "TIMEOUT"
