from __future__ import annotations


class HoursError(Exception):
    """Base class for failures surfaced by the hour accounting engine."""


class ValidationError(HoursError):
    pass


class NotFoundError(HoursError):
    pass


class InvalidStateError(HoursError):
    pass


class CapacityExceededError(ValidationError):
    def __init__(self, requested_hours: float, budget_hours: float) -> None:
        self.requested_hours = requested_hours
        self.budget_hours = budget_hours
        super().__init__(
            f"Scheduled hours ({requested_hours:.2f}) exceed the weekly budget ({budget_hours:g}h)"
        )


class PersistenceError(HoursError):
    pass
