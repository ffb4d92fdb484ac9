"""
Experiment engine exceptions.

Raised by the store, allocator and lifecycle controller; admin-facing callers
receive them synchronously. Assignment and event paths catch them at the
engine boundary instead.
"""

from typing import Optional


class ExperimentError(Exception):
    """Base class for experiment engine errors."""


class ValidationError(ExperimentError):
    """A structural invariant was violated on create/edit."""

    def __init__(self, message: str, invariant: Optional[str] = None):
        self.invariant = invariant
        if invariant:
            message = f"[{invariant}] {message}"
        super().__init__(message)


class InvalidStateError(ExperimentError):
    """Structural edit attempted outside draft."""


class InvalidTransitionError(ExperimentError):
    """Lifecycle event not allowed from the current status."""

    def __init__(self, current: str, event: str):
        self.current = current
        self.event = event
        super().__init__(f"Invalid transition: cannot {event} an experiment that is {current}")


class NotFoundError(ExperimentError):
    """Unknown experiment or variant id."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} {identifier} not found")


class InsufficientDataError(ExperimentError):
    """Not enough exposures to call a winner. Soft: reported, not raised to callers."""

    def __init__(self, variant_id: str, exposures: int, required: int):
        self.variant_id = variant_id
        self.exposures = exposures
        self.required = required
        super().__init__(
            f"Variant {variant_id} has {exposures} exposures, {required} required"
        )
