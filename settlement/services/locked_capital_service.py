# settlement/services/locked_capital_service.py
"""
Locked capital persistence: creating lots, releasing matured lots,
and computing the withdrawable amount for a wallet.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from models.balance import Balance
from models.locked_capital_lot import LockedCapitalLot
from settlement.config.payouts import get_capital_lock_days
from settlement.errors import ValidationError
from settlement.services.balance_store import BalanceStore
from settlement.utils.ids import normalize_id
from settlement.utils.locked_capital import get_withdrawable_balance, resolve_capital_lock_window
from settlement.utils.money import LEDGER_DECIMALS, PLATFORM_DECIMALS, ZERO, round_amount, to_decimal
from settlement.utils.time_windows import to_naive_utc

logger = logging.getLogger(__name__)


class LockedCapitalService:
    """Service for time-locked deposit principal."""

    def __init__(self, session: Session):
        self.session = session
        self.balances = BalanceStore(session)

    async def lockCapital(
            self,
            userId: Any,
            amount: Any,
            now: Optional[datetime] = None,
            sourceEntryId: Optional[int] = None
    ) -> LockedCapitalLot:
        """
        Append a new lot and add it to Balance.lockedCapital.

        Raises:
            ValidationError: Invalid user id or non-positive amount
        """
        normalizedId = normalize_id(userId)
        if normalizedId is None:
            raise ValidationError(f"Invalid user id: {userId!r}")

        lotAmount = round_amount(amount, PLATFORM_DECIMALS)
        if lotAmount <= ZERO:
            raise ValidationError(f"Lock amount must be positive, got {amount!r}")

        window = resolve_capital_lock_window(get_capital_lock_days(), now)
        balance = self.balances.getOrCreate(normalizedId)

        lot = LockedCapitalLot(
            balanceID=balance.balanceID,
            userID=normalizedId,
            amount=lotAmount,
            lockStart=window.lockStart,
            lockEnd=window.lockEnd,
            released=False,
            sourceEntryID=sourceEntryId,
        )
        self.session.add(lot)
        self.balances.incrementOrCreate(normalizedId, {"lockedCapital": lotAmount})
        self.session.flush()

        logger.info(f"Locked ${lotAmount} for user {normalizedId} until {window.lockEnd.isoformat()}")
        return lot

    async def releaseMaturedLots(self, asOf: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Release every unreleased lot whose lockEnd has passed.

        Each lot is released in its own savepoint and committed; a failed
        lot is logged and left for the next run.

        Returns:
            Dict with released, totalAmount, failed
        """
        moment = to_naive_utc(asOf)

        lots = self.session.query(LockedCapitalLot).filter(
            LockedCapitalLot.released == False,  # noqa: E712
            LockedCapitalLot.lockEnd <= moment
        ).order_by(LockedCapitalLot.lockEnd).all()

        stats = {"released": 0, "totalAmount": ZERO, "failed": 0}

        for lot in lots:
            try:
                with self.session.begin_nested():
                    released = self._releaseLot(lot, moment)
                self.session.commit()

                if released:
                    stats["released"] += 1
                    stats["totalAmount"] += to_decimal(lot.amount)

            except Exception as e:
                logger.error(f"Failed to release lot {lot.lotID}: {e}", exc_info=True)
                stats["failed"] += 1

        logger.info(
            f"✓ Released {stats['released']} lots (${stats['totalAmount']}), "
            f"{stats['failed']} failed"
        )
        return stats

    def _releaseLot(self, lot: LockedCapitalLot, moment: datetime) -> bool:
        # Guarded flip so a concurrent run cannot release the same lot twice
        flipped = self.session.query(LockedCapitalLot).filter(
            LockedCapitalLot.lotID == lot.lotID,
            LockedCapitalLot.released == False  # noqa: E712
        ).update(
            {LockedCapitalLot.released: True, LockedCapitalLot.releasedAt: moment},
            synchronize_session=False
        )
        if not flipped:
            return False

        balance = self.session.query(Balance).filter_by(balanceID=lot.balanceID).first()
        if balance:
            self.session.refresh(balance)
        locked = to_decimal(balance.lockedCapital) if balance else ZERO
        decrement = min(to_decimal(lot.amount), locked)

        if decrement > ZERO:
            self.balances.incrementOrCreate(lot.userID, {"lockedCapital": -decrement})

        self.session.expire(lot)
        logger.debug(f"Released lot {lot.lotID} of user {lot.userID} (${lot.amount})")
        return True

    async def getWithdrawable(self, userId: Any, asOf: Optional[datetime] = None) -> Decimal:
        """Spendable balance minus still-locked capital, floored at zero."""
        normalizedId = normalize_id(userId)
        if normalizedId is None:
            raise ValidationError(f"Invalid user id: {userId!r}")

        balance = self.session.query(Balance).filter_by(userID=normalizedId).first()
        if not balance:
            return round_amount(ZERO, LEDGER_DECIMALS)

        # Increments bypass the identity map
        self.session.expire(balance)

        return get_withdrawable_balance(balance, asOf)
