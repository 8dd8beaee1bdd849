"""Typed errors raised by the journal core and translated by the API layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class JournalError(Exception):
    """Base class for every expected, caller-correctable failure."""


class ValidationError(JournalError):
    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(summary or "Validation failed")

    @property
    def fields(self) -> dict[str, str]:
        return {e.field: e.message for e in self.errors}

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field, message)])


class NotFoundError(JournalError):
    """Record does not exist, or exists outside the caller's ownership scope."""

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateError(JournalError):
    """Operation is not permitted in the record's current state."""


class PermissionDeniedError(JournalError):
    """Team role does not allow the requested action."""


class ConsistencyError(JournalError):
    """A multi-write unit failed and was rolled back."""
