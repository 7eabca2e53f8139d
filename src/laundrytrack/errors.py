from __future__ import annotations


class LaundryTrackError(Exception):
    pass


class ValidationError(LaundryTrackError):
    """Caller-correctable input problem; ``errors`` maps field name to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))

    @property
    def messages(self) -> list[str]:
        return list(self.errors.values())


class NotFoundError(LaundryTrackError):
    pass


class InvalidTransitionError(LaundryTrackError):
    def __init__(self, order_id: str, current: str, target: str) -> None:
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from '{current}' to '{target}'.")


class ConflictError(LaundryTrackError):
    def __init__(self, order_id: str, expected: str, actual: str) -> None:
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Order {order_id} changed concurrently: expected status '{expected}', found '{actual}'."
        )


class AuthenticationError(LaundryTrackError):
    pass


class AuthorizationError(LaundryTrackError):
    pass


class PersistenceError(LaundryTrackError):
    pass


class DeliveryError(LaundryTrackError):
    pass
