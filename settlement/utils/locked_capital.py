# settlement/utils/locked_capital.py
"""
Locked capital rules (pure functions, no database access).

A lot is matured when it was released explicitly or its lockEnd has
passed. Pending lots are subtracted from the spendable balance to get
the withdrawable amount.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from settlement.utils.money import LEDGER_DECIMALS, ZERO, round_amount, to_decimal
from settlement.utils.time_windows import to_naive_utc

DEFAULT_LOCK_DAYS = 30


@dataclass
class LotPartition:
    matured: List[Any] = field(default_factory=list)
    pending: List[Any] = field(default_factory=list)

    @property
    def pendingAmount(self) -> Decimal:
        return sum((to_decimal(lot.amount) for lot in self.pending), ZERO)

    @property
    def maturedAmount(self) -> Decimal:
        return sum((to_decimal(lot.amount) for lot in self.matured), ZERO)


@dataclass(frozen=True)
class LockWindow:
    lockStart: datetime
    lockEnd: datetime


def is_lot_matured(lot: Any, as_of: datetime) -> bool:
    if getattr(lot, "released", False):
        return True
    lock_end = getattr(lot, "lockEnd", None)
    if lock_end is None:
        return False
    return to_naive_utc(lock_end) <= as_of


def partition_lots_by_maturity(lots: Optional[Iterable[Any]], as_of: Optional[datetime] = None) -> LotPartition:
    """
    Split lots into matured and pending as of a given instant.

    Args:
        lots: LockedCapitalLot rows or any objects with amount/lockEnd/released
        as_of: Evaluation instant (naive or aware, default now)

    Returns:
        LotPartition preserving input order
    """
    moment = to_naive_utc(as_of)
    partition = LotPartition()

    for lot in lots or []:
        if is_lot_matured(lot, moment):
            partition.matured.append(lot)
        else:
            partition.pending.append(lot)

    return partition


def get_withdrawable_balance(balance: Any, as_of: Optional[datetime] = None) -> Decimal:
    """
    Spendable balance minus capital that is still locked.

    Example:
        current=150, pending lots 100 -> 50.00
        current=80, pending lots 100 -> 0.00
    """
    if balance is None:
        return round_amount(ZERO, LEDGER_DECIMALS)

    partition = partition_lots_by_maturity(getattr(balance, "lockedCapitalLots", None), as_of)
    available = to_decimal(getattr(balance, "current", None)) - partition.pendingAmount

    if available < ZERO:
        available = ZERO

    return round_amount(available, LEDGER_DECIMALS)


def resolve_capital_lock_window(lock_days: Optional[int] = None, now: Optional[datetime] = None) -> LockWindow:
    """Lock window starting now and lasting lock_days (default 30)."""
    days = DEFAULT_LOCK_DAYS if lock_days is None else int(lock_days)
    if days < 0:
        raise ValueError("lock_days must be non-negative")

    start = to_naive_utc(now)
    return LockWindow(lockStart=start, lockEnd=start + timedelta(days=days))
