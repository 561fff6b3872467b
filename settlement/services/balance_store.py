# settlement/services/balance_store.py
"""
Balance increment-or-create.
The only place that writes Balance money columns.
"""
from decimal import Decimal
from typing import Dict, Optional, Any
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.balance import Balance
from settlement.utils.money import ZERO, to_decimal

logger = logging.getLogger(__name__)

MONEY_FIELDS = (
    "current",
    "totalBalance",
    "totalEarning",
    "lockedCapital",
    "teamRewardsAvailable",
    "teamRewardsClaimed",
)


class BalanceStore:
    """Atomic additive updates on the balances table."""

    def __init__(self, session: Session):
        self.session = session

    def _buildIncrements(self, increments: Dict[str, Any]) -> Dict[Any, Any]:
        values = {}
        for field, amount in increments.items():
            if field not in MONEY_FIELDS:
                raise ValueError(f"Unknown balance field: {field}")
            column = getattr(Balance, field)
            values[column] = column + to_decimal(amount)
        return values

    def _applyUpdate(self, userId: str, increments: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> int:
        values = self._buildIncrements(increments)
        for field, value in (extra or {}).items():
            values[getattr(Balance, field)] = value

        if not values:
            return self.session.query(Balance.balanceID).filter(Balance.userID == userId).count()

        return self.session.query(Balance).filter(
            Balance.userID == userId
        ).update(values, synchronize_session=False)

    def incrementOrCreate(
            self,
            userId: str,
            increments: Dict[str, Decimal],
            defaults: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Increment balance columns, creating the row on first use.

        Runs UPDATE ... SET col = col + :amount. When no row matched, the
        row is inserted with the increments as initial values inside a
        savepoint. If another writer inserted first, the update is retried.

        Args:
            userId: Canonical user id
            increments: Column name -> amount to add (may be negative)
            defaults: Non-money column values applied on insert and update
                      (e.g. teamRewardsLastClaimedAt)
        """
        if self._applyUpdate(userId, increments, defaults):
            return

        initial: Dict[str, Any] = {field: ZERO for field in MONEY_FIELDS}
        for field, amount in increments.items():
            initial[field] = to_decimal(amount)
        initial.update(defaults or {})

        try:
            with self.session.begin_nested():
                self.session.add(Balance(userID=userId, **initial))
            logger.debug(f"Created balance row for user {userId}")
        except IntegrityError:
            logger.debug(f"Balance row for user {userId} created concurrently, retrying update")
            if not self._applyUpdate(userId, increments, defaults):
                raise

    def getOrCreate(self, userId: str) -> Balance:
        """Load the balance row, creating an empty one if missing."""
        balance = self.session.query(Balance).filter_by(userID=userId).first()
        if balance:
            return balance

        self.incrementOrCreate(userId, {})
        return self.session.query(Balance).filter_by(userID=userId).one()
