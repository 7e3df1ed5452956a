"""
Base exception classes for the service layer.

Each service module derives its own base from ServiceError
(OrderServiceError, WithdrawalServiceError, ...) plus narrow subclasses
for the cases callers tell apart. Routers turn any ServiceError into an
HTTPException carrying its status code.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class InvalidStatusTransitionError(ServiceError):
    """A status change that the entity's lifecycle does not allow."""

    def __init__(self, entity: str, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Cannot change {entity} status from '{current}' to '{new}'", 400)


def check_transition(entity: str, transitions: dict, current: str, new: str) -> None:
    """Raise InvalidStatusTransitionError unless `new` is reachable from `current`."""
    if new not in transitions.get(current, ()):
        raise InvalidStatusTransitionError(entity, current, new)
