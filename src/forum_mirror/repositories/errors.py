"""Exceptions raised by the data access layer."""

from __future__ import annotations


class IntegrityViolationError(LookupError):
    """Raised when a write references a parent row that does not exist.

    Examples are a thread whose channel was never registered, a post whose
    thread is unknown, or a rank update naming a missing thread.
    """

    def __init__(self, entity: str, entity_id: int, detail: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} {entity_id} does not exist"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
