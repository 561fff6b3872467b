# settlement/services/deposit_reward_service.py
"""
Deposit reward calculator.
Pays the self-bonus and the two referral legs for one approved deposit.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import logging

from sqlalchemy.orm import Session

from models.ledger_entry import LedgerEntry
from models.user import User
from settlement.config.payouts import (
    PayoutKind,
    get_active_deposit_threshold,
    get_deposit_percentages,
)
from settlement.errors import ValidationError
from settlement.services.ledger_writer import LedgerWriter, build_unique_key
from settlement.utils.ids import normalize_id
from settlement.utils.money import LEDGER_DECIMALS, ZERO, percent_of, to_decimal
from settlement.utils.time_windows import to_naive_utc
from settlement.utils.upline_resolver import UplineResolver

logger = logging.getLogger(__name__)

DEPOSIT_KEY_PREFIX = "DEP"

# Leg labels used in unique keys
LEG_SELF = "self"
LEG_L1 = "l1"
LEG_L2 = "l2"


@dataclass(frozen=True)
class DepositEventRef:
    """Identifies the approved deposit that triggers rewards."""
    id: Any
    occurredAt: Optional[datetime] = None


@dataclass(frozen=True)
class RewardOutcome:
    selfBonus: Decimal
    l1Bonus: Decimal
    l2Bonus: Decimal
    l1UserId: Optional[str]
    l2UserId: Optional[str]
    depositorActive: bool
    activated: bool = False
    lifetimeDeposit: Decimal = ZERO
    lifetimeBefore: Decimal = ZERO


def validate_deposit_amount(amount: Any) -> Decimal:
    if amount is None or isinstance(amount, bool):
        raise ValidationError("Deposit amount is required")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Deposit amount is not a number: {amount!r}")

    if not value.is_finite() or value <= ZERO:
        raise ValidationError(f"Deposit amount must be positive and finite, got {amount!r}")

    return value


class DepositRewardService:
    """Service for deposit-triggered bonuses."""

    def __init__(self, session: Session):
        self.session = session
        self.writer = LedgerWriter(session)

    async def applyDepositRewards(
            self,
            depositorId: Any,
            amount: Any,
            depositEventRef: DepositEventRef
    ) -> RewardOutcome:
        """
        Credit deposit bonuses for one event.

        Activation is decided once from the lifetime total before this
        deposit plus the deposit itself, and the same snapshot gates the
        self-bonus and the level-2 leg. The level-1 leg is paid whenever
        a sponsor exists. The pre-deposit total is stored on every leg and
        on the approved deposit entry, and a replay reuses it, so
        re-invoking with the same event id posts nothing.

        This method does not change depositTotal/isActive; the approval
        workflow applies those after rewards are posted.

        Args:
            depositorId: Depositor id (any normalize_id form)
            amount: Deposit amount
            depositEventRef: Event id and timestamp

        Returns:
            RewardOutcome with the amounts posted by this call

        Raises:
            ValidationError: Bad amount, missing event id, unknown depositor
        """
        # ═══════════════════════════════════════════════════════════════
        # VALIDATION (no writes before this block passes)
        # ═══════════════════════════════════════════════════════════════
        depositAmount = validate_deposit_amount(amount)

        eventId = getattr(depositEventRef, "id", None)
        if eventId is None or not str(eventId).strip():
            raise ValidationError("Deposit event id is required")
        eventId = str(eventId).strip()

        normalizedId = normalize_id(depositorId)
        if normalizedId is None:
            raise ValidationError(f"Invalid depositor id: {depositorId!r}")

        depositor = self.session.query(User).populate_existing().filter_by(userID=normalizedId).first()
        if not depositor:
            raise ValidationError(f"Depositor {normalizedId} not found")

        occurredAt = to_naive_utc(getattr(depositEventRef, "occurredAt", None))

        # ═══════════════════════════════════════════════════════════════
        # ACTIVATION SNAPSHOT
        # ═══════════════════════════════════════════════════════════════
        threshold = get_active_deposit_threshold()
        lifetimeBefore = self._recordedLifetimeBefore(normalizedId, eventId)
        if lifetimeBefore is None:
            lifetimeBefore = to_decimal(depositor.depositTotal)
        lifetimeAfter = lifetimeBefore + depositAmount
        depositorActive = lifetimeAfter >= threshold
        activated = depositorActive and lifetimeBefore < threshold

        percentages = get_deposit_percentages()
        upline = UplineResolver(self.session).resolveUpline(normalizedId)

        baseMeta = {
            "depositEventId": eventId,
            "depositorId": normalizedId,
            "baseAmount": depositAmount,
            "lifetimeBefore": lifetimeBefore,
            "depositorActive": depositorActive,
        }

        # ═══════════════════════════════════════════════════════════════
        # LEGS
        # ═══════════════════════════════════════════════════════════════
        selfBonus = ZERO
        if depositorActive:
            selfBonus = self._creditLeg(
                normalizedId, eventId, LEG_SELF, PayoutKind.DEPOSIT_SELF,
                depositAmount, percentages[PayoutKind.DEPOSIT_SELF], baseMeta, occurredAt
            )

        l1Bonus = ZERO
        l1UserId = upline.level1.id if upline.level1 else None
        if l1UserId:
            l1Bonus = self._creditLeg(
                l1UserId, eventId, LEG_L1, PayoutKind.DEPOSIT_L1,
                depositAmount, percentages[PayoutKind.DEPOSIT_L1], baseMeta, occurredAt
            )
        else:
            logger.debug(f"Depositor {normalizedId} has no sponsor, L1 leg skipped")

        l2Bonus = ZERO
        l2UserId = upline.level2.id if upline.level2 else None
        if l2UserId and depositorActive:
            l2Bonus = self._creditLeg(
                l2UserId, eventId, LEG_L2, PayoutKind.DEPOSIT_L2,
                depositAmount, percentages[PayoutKind.DEPOSIT_L2], baseMeta, occurredAt
            )

        logger.info(
            f"Deposit {eventId} by {normalizedId} (${depositAmount}, active={depositorActive}): "
            f"self={selfBonus}, l1={l1Bonus}, l2={l2Bonus}"
        )

        return RewardOutcome(
            selfBonus=selfBonus,
            l1Bonus=l1Bonus,
            l2Bonus=l2Bonus,
            l1UserId=l1UserId,
            l2UserId=l2UserId,
            depositorActive=depositorActive,
            activated=activated,
            lifetimeDeposit=lifetimeAfter,
            lifetimeBefore=lifetimeBefore,
        )

    def _recordedLifetimeBefore(self, depositorId: str, eventId: str) -> Optional[Decimal]:
        """
        Pre-deposit lifetime total already recorded for this event.

        Looks at legs posted earlier under DEP:{eventId}:* and at the
        approved deposit entry itself. Returns None for a first run.
        """
        legs = self.session.query(LedgerEntry).filter(
            LedgerEntry.uniqueKey.startswith(
                build_unique_key(DEPOSIT_KEY_PREFIX, eventId) + ":", autoescape=True
            )
        ).all()
        for leg in legs:
            meta = leg.meta or {}
            if meta.get("depositorId") == depositorId and meta.get("lifetimeBefore") is not None:
                return to_decimal(meta["lifetimeBefore"])

        if eventId.isdigit():
            deposit = self.session.query(LedgerEntry).filter_by(
                entryID=int(eventId),
                userID=depositorId,
                type="deposit",
            ).first()
            if deposit and (deposit.meta or {}).get("lifetimeBefore") is not None:
                return to_decimal(deposit.meta["lifetimeBefore"])

        return None

    def _creditLeg(
            self,
            recipientId: str,
            eventId: str,
            leg: str,
            kind: PayoutKind,
            depositAmount: Decimal,
            percent: Decimal,
            baseMeta: dict,
            occurredAt: datetime
    ) -> Decimal:
        """Credit one leg; returns the posted amount or 0."""
        bonus = percent_of(depositAmount, percent, LEDGER_DECIMALS)
        if bonus <= ZERO:
            return ZERO

        meta = dict(baseMeta)
        meta["percent"] = percent
        meta["leg"] = leg

        result = self.writer.tryCredit(
            recipientId,
            build_unique_key(DEPOSIT_KEY_PREFIX, eventId, leg),
            kind,
            bonus,
            meta=meta,
            occurredAt=occurredAt,
        )
        return result.amount if result.credited else ZERO
