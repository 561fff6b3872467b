# settlement/errors.py
"""
Settlement error hierarchy.

Single-event operations (deposit approval, claims) propagate these to
the caller. Batch jobs catch them per member and keep going.
"""


class SettlementError(Exception):
    """Base class for all settlement errors."""
    pass


class ValidationError(SettlementError):
    """Invalid input detected before any write happened."""
    pass


class DuplicateEventError(SettlementError):
    """Ledger entry with the same (recipient, uniqueKey) already exists."""

    def __init__(self, userId: str, uniqueKey: str):
        self.userId = userId
        self.uniqueKey = uniqueKey
        super().__init__(f"Duplicate ledger entry {uniqueKey} for user {userId}")


class MissingUplineError(SettlementError):
    """Expected sponsor could not be resolved."""

    def __init__(self, userId: str, level: int):
        self.userId = userId
        self.level = level
        super().__init__(f"No level-{level} upline for user {userId}")


class PersistenceError(SettlementError):
    """Store failure other than a unique-key conflict."""
    pass
