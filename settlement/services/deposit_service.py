# settlement/services/deposit_service.py
"""
Deposit approval workflow.

A deposit enters as a pending ledger entry. Approval flips it to
approved exactly once, pays the deposit rewards, updates the lifetime
deposit total and activation flag, credits and locks the principal.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from models.ledger_entry import LedgerEntry
from models.user import User
from settlement.errors import ValidationError
from settlement.services.balance_store import BalanceStore
from settlement.services.deposit_reward_service import (
    DepositEventRef,
    DepositRewardService,
    validate_deposit_amount,
)
from settlement.services.ledger_writer import serialize_meta
from settlement.services.locked_capital_service import LockedCapitalService
from settlement.utils.ids import normalize_id
from settlement.utils.money import PLATFORM_DECIMALS, ZERO, round_amount
from settlement.utils.time_windows import to_naive_utc

logger = logging.getLogger(__name__)


class DepositService:
    """Service for deposit intake and approval."""

    def __init__(self, session: Session):
        self.session = session

    async def createPendingDeposit(
            self,
            userId: Any,
            amount: Any,
            reference: Optional[str] = None
    ) -> LedgerEntry:
        """
        Record a deposit waiting for admin approval.

        Args:
            userId: Depositor id
            amount: Deposit amount
            reference: External reference (tx hash, receipt id)

        Returns:
            Pending LedgerEntry of type deposit
        """
        normalizedId = normalize_id(userId)
        if normalizedId is None:
            raise ValidationError(f"Invalid user id: {userId!r}")

        depositAmount = round_amount(validate_deposit_amount(amount), PLATFORM_DECIMALS)
        if depositAmount <= ZERO:
            raise ValidationError(f"Deposit amount too small: {amount!r}")

        if not self.session.query(User.userID).filter_by(userID=normalizedId).first():
            raise ValidationError(f"User {normalizedId} not found")

        entry = LedgerEntry(
            userID=normalizedId,
            type="deposit",
            amount=depositAmount,
            status="pending",
            claimable=False,
            meta=serialize_meta({"source": "deposit", "reference": reference}),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(f"Pending deposit {entry.entryID} created for {normalizedId}: ${depositAmount}")
        return entry

    async def approveDeposit(self, depositEntryId: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Approve a pending deposit and run its side effects as one unit.

        Returns:
            Dict with entryId, userId, amount, rewards (RewardOutcome), lotId

        Raises:
            ValidationError: Unknown entry or entry not pending
        """
        moment = to_naive_utc(now)

        entry = self.session.query(LedgerEntry).filter_by(
            entryID=depositEntryId,
            type="deposit"
        ).first()

        if not entry:
            raise ValidationError(f"Deposit {depositEntryId} not found")

        with self.session.begin_nested():
            # 1. Guarded status transition
            flipped = self.session.query(LedgerEntry).filter(
                LedgerEntry.entryID == depositEntryId,
                LedgerEntry.status == "pending"
            ).update(
                {LedgerEntry.status: "approved", LedgerEntry.updatedAt: moment},
                synchronize_session=False
            )
            if not flipped:
                raise ValidationError(f"Deposit {depositEntryId} is not pending")

            userId = entry.userID
            amount = entry.amount

            # 2. Rewards, decided on the pre-deposit lifetime total
            outcome = await DepositRewardService(self.session).applyDepositRewards(
                userId,
                amount,
                DepositEventRef(id=depositEntryId, occurredAt=moment)
            )

            # 3. Lifetime total and activation
            userValues = {User.depositTotal: User.depositTotal + amount}
            if outcome.depositorActive:
                userValues[User.isActive] = True
            self.session.query(User).filter(User.userID == userId).update(
                userValues, synchronize_session=False
            )

            # 4. Principal
            BalanceStore(self.session).incrementOrCreate(
                userId,
                {"current": amount, "totalBalance": amount}
            )

            # 5. Lock
            lot = await LockedCapitalService(self.session).lockCapital(
                userId, amount, now=moment, sourceEntryId=depositEntryId
            )

            # 6. Audit fields on the deposit entry
            meta = dict(entry.meta or {})
            meta.update(serialize_meta({
                "approvedAt": moment,
                "lifetimeBefore": outcome.lifetimeBefore,
                "depositorActive": outcome.depositorActive,
                "qualifiesForActivation": outcome.activated,
                "lotId": lot.lotID,
            }))
            entry.meta = meta
            self.session.flush()

        self.session.expire(entry)

        logger.info(
            f"✓ Deposit {depositEntryId} approved for {userId}: ${amount}"
            f"{' (activated)' if outcome.activated else ''}"
        )

        return {
            "entryId": depositEntryId,
            "userId": userId,
            "amount": amount,
            "rewards": outcome,
            "lotId": lot.lotID,
        }
