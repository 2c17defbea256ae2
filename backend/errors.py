"""
Error taxonomy for the fantasy core.
All errors are raised synchronously at the offending call; none are retried.
"""
from __future__ import annotations


class FantasyError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(FantasyError):
    """One or more field rules were violated. Carries every failing message."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class UniquenessConflictError(FantasyError):
    """Duplicate key on insert/update (raised from the storage layer's unique index)."""

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"Duplicate key: {entity} with {key} already exists")


class NotFoundError(FantasyError):
    """Id lookup missed. Soft-deleted rows also report NotFound under default queries."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


# ---------- Business rules ----------


class BusinessRuleError(FantasyError, ValueError):
    """A squad or state-machine rule rejected the operation. Prior state is intact."""


class SquadFullError(BusinessRuleError):
    """Squad already holds the maximum number of players."""


class InsufficientBudgetError(BusinessRuleError):
    """Purchase price exceeds remaining budget."""


class DuplicatePlayerError(BusinessRuleError):
    """Player already in the squad."""


class PlayerNotFoundError(BusinessRuleError):
    """Player is not part of the squad."""


class IllegalStateTransitionError(BusinessRuleError):
    """Status transition not allowed from the current state."""


class GameweekOverflowError(BusinessRuleError):
    """Cannot advance past the final gameweek."""


class OutOfRangeError(BusinessRuleError):
    """A date or value falls outside its permitted window."""


class TransferWindowClosedError(BusinessRuleError):
    """Squad changes are not allowed for the season right now."""
