# settlement/services/mining_profit_service.py
"""
Daily mining profit accrual.

Credits each holder a percentage of their current balance for the
previous UTC day and records the member's daily profit snapshot that
the team earnings distributor reads later.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session

from models.balance import Balance
from models.team_daily_profit import TeamDailyProfit
from models.user import User
from settlement.config.payouts import PayoutKind, get_daily_profit_percent, get_mining_roi_cap
from settlement.services.ledger_writer import LedgerWriter, build_unique_key
from settlement.utils.money import PLATFORM_DECIMALS, ZERO, percent_of, round_amount, to_decimal
from settlement.utils.time_windows import DayWindow, previous_utc_day

logger = logging.getLogger(__name__)

MINING_KEY_PREFIX = "DMP"


@dataclass(frozen=True)
class MiningRunSummary:
    day: str
    created: int
    skipped: int
    failed: int
    totalAmount: Decimal
    defaultRate: Decimal


class MiningProfitService:
    """Service for the daily mining accrual job."""

    def __init__(self, session: Session):
        self.session = session
        self.writer = LedgerWriter(session)

    async def runDailyMiningProfit(self, referenceDate: Optional[datetime] = None) -> MiningRunSummary:
        """
        Accrue mining profit for the UTC day before referenceDate.

        Per holder: profit = current * rate% at 4 decimals, where rate is
        the user's override when positive, else DAILY_PROFIT_PERCENT.
        Users with lifetime deposits are capped at depositTotal * ROI cap
        of total mining earnings; the last payout is clipped to fit.

        Each member is processed in its own savepoint and committed, so
        a failure for one member leaves the rest of the batch intact and
        a re-run only posts what is still missing.

        Returns:
            MiningRunSummary
        """
        window = previous_utc_day(referenceDate)
        defaultRate = get_daily_profit_percent()
        roiCap = get_mining_roi_cap()

        logger.info(f"Starting daily mining accrual for {window.dayKey} (default rate {defaultRate}%)")

        rows = self.session.query(Balance.userID).filter(
            Balance.current > 0
        ).order_by(Balance.userID).all()

        created = 0
        skipped = 0
        failed = 0
        totalAmount = ZERO

        for (userId,) in rows:
            try:
                with self.session.begin_nested():
                    amount = self._accrueMember(userId, window, defaultRate, roiCap)
                self.session.commit()

                if amount is None:
                    skipped += 1
                else:
                    created += 1
                    totalAmount += amount

            except Exception as e:
                logger.error(f"Mining accrual failed for user {userId}: {e}", exc_info=True)
                failed += 1

        summary = MiningRunSummary(
            day=window.dayKey,
            created=created,
            skipped=skipped,
            failed=failed,
            totalAmount=round_amount(totalAmount, PLATFORM_DECIMALS),
            defaultRate=defaultRate,
        )

        logger.info(
            f"✓ Mining accrual {summary.day}: created={created}, skipped={skipped}, "
            f"failed={failed}, total=${summary.totalAmount}"
        )
        return summary

    def _accrueMember(
            self,
            userId: str,
            window: DayWindow,
            defaultRate: Decimal,
            roiCap: Decimal
    ) -> Optional[Decimal]:
        """Accrue one member. Returns the credited amount or None when skipped."""
        balance = self.session.query(Balance).populate_existing().filter_by(userID=userId).first()
        user = self.session.query(User).populate_existing().filter_by(userID=userId).first()

        if not balance or not user:
            logger.warning(f"Skipping mining for {userId}: user or balance missing")
            return None

        principal = to_decimal(balance.current)
        if principal <= ZERO:
            return None

        override = to_decimal(user.miningDailyRateOverridePct)
        rate = override if override > ZERO else defaultRate

        profit = percent_of(principal, rate, PLATFORM_DECIMALS)
        if profit <= ZERO:
            return None

        # ROI cap
        depositTotal = to_decimal(user.depositTotal)
        capped = False
        if depositTotal > ZERO:
            remaining = round_amount(depositTotal * roiCap - to_decimal(user.roiEarnedTotal), PLATFORM_DECIMALS)
            if remaining <= ZERO:
                logger.debug(f"User {userId} reached mining ROI cap")
                return None
            if profit > remaining:
                profit = remaining
                capped = True

        uniqueKey = build_unique_key(MINING_KEY_PREFIX, window.dayKey, userId)
        result = self.writer.tryCredit(
            userId,
            uniqueKey,
            PayoutKind.MINING,
            profit,
            meta={
                "day": window.dayKey,
                "baseAmount": round_amount(principal, PLATFORM_DECIMALS),
                "ratePct": rate,
                "roiCapped": capped,
            },
            occurredAt=window.lastInstant,
            decimals=PLATFORM_DECIMALS,
        )

        if not result.credited:
            logger.debug(f"Mining {uniqueKey} already posted")
            return None

        self.session.query(User).filter(User.userID == userId).update(
            {User.roiEarnedTotal: User.roiEarnedTotal + result.amount},
            synchronize_session=False
        )

        self._recordTeamDailyProfit(userId, window, result.amount, bool(user.isActive))
        return result.amount

    def _recordTeamDailyProfit(self, userId: str, window: DayWindow, amount: Decimal, isActive: bool) -> None:
        snapshot = self.session.query(TeamDailyProfit).filter_by(
            memberID=userId,
            dayKey=window.dayKey
        ).first()

        if snapshot is None:
            self.session.add(TeamDailyProfit(
                memberID=userId,
                dayKey=window.dayKey,
                profitDate=window.lastInstant,
                profitAmount=amount,
                activeOnDate=isActive,
            ))
        else:
            snapshot.profitAmount = amount
            snapshot.activeOnDate = isActive

        self.session.flush()
