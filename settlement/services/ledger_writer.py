# settlement/services/ledger_writer.py
"""
Idempotent ledger writer.

Every derived payout goes through tryCredit(). The (userID, uniqueKey)
unique constraint on the transactions table is the system of record:
a credit is posted at most once per key, and the balance increment is
rolled back together with a rejected ledger insert.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.ledger_entry import LedgerEntry
from settlement.config.payouts import PayoutKind, get_payout_profile
from settlement.errors import DuplicateEventError, PersistenceError, ValidationError
from settlement.services.balance_store import BalanceStore
from settlement.utils.ids import normalize_id
from settlement.utils.money import LEDGER_DECIMALS, ZERO, round_amount
from settlement.utils.time_windows import to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditResult:
    credited: bool
    amount: Decimal
    entryId: Optional[int] = None


def build_unique_key(prefix: str, *parts: Any) -> str:
    """
    Build a deterministic idempotency key.

    Example:
        build_unique_key("DTE", "2025-01-02", member, sponsor, "A")
        -> "DTE:2025-01-02:<member>:<sponsor>:A"
    """
    pieces = [prefix]
    for part in parts:
        text = getattr(part, "value", part)
        text = "" if text is None else str(text).strip()
        if not text:
            raise ValidationError(f"Empty component in unique key {prefix}:{parts}")
        pieces.append(text)
    return ":".join(pieces)


def serialize_meta(meta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Make meta JSON-safe (Decimal and datetime become strings)."""
    result = {}
    for key, value in (meta or {}).items():
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = serialize_meta(value)
        result[key] = value
    return result


class LedgerWriter:
    """Exactly-once crediting keyed by (recipient, uniqueKey)."""

    def __init__(self, session: Session):
        self.session = session
        self.balances = BalanceStore(session)

    def hasEntry(self, userId: Any, uniqueKey: str) -> bool:
        normalized = normalize_id(userId)
        if normalized is None:
            return False

        return self.session.query(LedgerEntry.entryID).filter(
            LedgerEntry.userID == normalized,
            LedgerEntry.uniqueKey == uniqueKey
        ).first() is not None

    def tryCredit(
            self,
            recipientId: Any,
            uniqueKey: str,
            kind: PayoutKind,
            amount: Any,
            meta: Optional[Dict[str, Any]] = None,
            occurredAt: Optional[datetime] = None,
            decimals: int = LEDGER_DECIMALS
    ) -> CreditResult:
        """
        Credit a payout at most once.

        Args:
            recipientId: Recipient user id (any normalize_id form)
            uniqueKey: Deterministic key from build_unique_key()
            kind: Payout kind, selects ledger type and balance columns
            amount: Payout amount, rounded to `decimals` before use
            meta: Extra audit fields stored on the entry
            occurredAt: Timestamp of the underlying event
            decimals: Rounding scale

        Returns:
            CreditResult(credited=False) for duplicates and non-positive amounts

        Raises:
            ValidationError: Invalid recipient or key
            PersistenceError: Store failure other than a duplicate key
        """
        userId = normalize_id(recipientId)
        if userId is None:
            raise ValidationError(f"Invalid recipient id: {recipientId!r}")
        if not uniqueKey:
            raise ValidationError("uniqueKey is required")

        rounded = round_amount(amount, decimals)
        if rounded <= ZERO:
            logger.debug(f"Skip non-positive credit {uniqueKey} for {userId}: {rounded}")
            return CreditResult(credited=False, amount=ZERO)

        if self.hasEntry(userId, uniqueKey):
            logger.debug(f"Entry {uniqueKey} for {userId} already posted")
            return CreditResult(credited=False, amount=rounded)

        try:
            entryId = self._insertCredit(userId, uniqueKey, kind, rounded, meta, occurredAt)
        except DuplicateEventError as e:
            logger.info(f"Concurrent duplicate rejected: {e}")
            return CreditResult(credited=False, amount=rounded)

        return CreditResult(credited=True, amount=rounded, entryId=entryId)

    def _insertCredit(
            self,
            userId: str,
            uniqueKey: str,
            kind: PayoutKind,
            amount: Decimal,
            meta: Optional[Dict[str, Any]],
            occurredAt: Optional[datetime]
    ) -> int:
        profile = get_payout_profile(kind)

        entryMeta = {"source": profile["source"], "kind": kind.value}
        entryMeta.update(serialize_meta(meta))

        entry = LedgerEntry(
            userID=userId,
            type=profile["type"],
            amount=amount,
            status="approved",
            claimable=profile["claimable"],
            uniqueKey=uniqueKey,
            meta=entryMeta,
        )
        if occurredAt is not None:
            entry.createdAt = to_naive_utc(occurredAt)

        try:
            with self.session.begin_nested():
                self.balances.incrementOrCreate(
                    userId,
                    {field: amount for field in profile["balanceFields"]}
                )
                self.session.add(entry)
                self.session.flush()
        except IntegrityError as e:
            # Only a lost race on (userID, uniqueKey) is a duplicate
            if self.hasEntry(userId, uniqueKey):
                raise DuplicateEventError(userId, uniqueKey) from e
            logger.error(f"Integrity error posting {uniqueKey} for {userId}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to post {uniqueKey} for {userId}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to post {uniqueKey} for {userId}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to post {uniqueKey} for {userId}: {e}") from e

        return entry.entryID
