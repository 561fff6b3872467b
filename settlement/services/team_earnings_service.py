# settlement/services/team_earnings_service.py
"""
Team daily earnings distributor.

For every member with mining profit in the previous business day, pays
a percentage of that profit to the level-1 sponsor (team A) and to the
level-2 sponsor (team B). Rewards are claimable and accumulate in
Balance.teamRewardsAvailable until claim settlement moves them.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Set
import logging

from sqlalchemy.orm import Session

from models.team_daily_profit import TeamDailyProfit
from settlement.config.payouts import (
    PayoutKind,
    get_team_daily_profit_percent,
    get_team_earnings_utc_offset_hours,
)
from settlement.errors import MissingUplineError
from settlement.services.ledger_writer import LedgerWriter, build_unique_key
from settlement.utils.ids import normalize_id
from settlement.utils.money import LEDGER_DECIMALS, PLATFORM_DECIMALS, ZERO, percent_of, round_amount, to_decimal
from settlement.utils.time_windows import DayWindow, previous_business_day
from settlement.utils.upline_resolver import UplineResolver, UserRef

logger = logging.getLogger(__name__)

TEAM_KEY_PREFIX = "DTE"

TEAM_DEPTH = {"A": 1, "B": 2}


@dataclass
class AggregatedProfit:
    sumProfit: Decimal = ZERO
    wasActive: bool = False


@dataclass(frozen=True)
class TeamEarningsSummary:
    day: str
    postedCount: int
    uniqueReceivers: int
    totalReward: Decimal
    missingUplines: int = 0
    skipped: int = 0
    failed: int = 0


class TeamEarningsService:
    """Service for the daily team override job."""

    def __init__(self, session: Session):
        self.session = session
        self.writer = LedgerWriter(session)

    def _aggregateProfits(self, window: DayWindow) -> Dict[str, AggregatedProfit]:
        """Sum profit and OR the active flag per member inside the window."""
        rows = self.session.query(TeamDailyProfit).filter(
            TeamDailyProfit.profitDate >= window.start,
            TeamDailyProfit.profitDate < window.end
        ).all()

        aggregated: Dict[str, AggregatedProfit] = {}
        for row in rows:
            memberId = normalize_id(row.memberID)
            if memberId is None:
                continue
            entry = aggregated.setdefault(memberId, AggregatedProfit())
            entry.sumProfit += to_decimal(row.profitAmount)
            entry.wasActive = entry.wasActive or bool(row.activeOnDate)

        return aggregated

    async def runDailyTeamEarnings(self, referenceDate: Optional[datetime] = None) -> TeamEarningsSummary:
        """
        Distribute team rewards for the business day before referenceDate.

        Team A and team B are separate legs: a failure or a duplicate on
        one does not affect the other. Team B additionally requires the
        member to have been active on at least one profit row in the
        window. A re-run posts nothing.

        Returns:
            TeamEarningsSummary
        """
        window = previous_business_day(referenceDate, get_team_earnings_utc_offset_hours())
        percent = get_team_daily_profit_percent()

        logger.info(
            f"Starting team earnings for business day {window.dayKey} "
            f"[{window.start.isoformat()} .. {window.end.isoformat()})"
        )

        profits = self._aggregateProfits(window)
        resolver = UplineResolver(self.session)

        postedCount = 0
        missingUplines = 0
        skipped = 0
        failed = 0
        totalReward = ZERO
        receivers: Set[str] = set()

        for memberId, aggregated in profits.items():
            baseProfit = round_amount(aggregated.sumProfit, PLATFORM_DECIMALS)
            reward = percent_of(baseProfit, percent, LEDGER_DECIMALS)
            if reward <= ZERO:
                skipped += 1
                continue

            member = resolver.loadUser(memberId)
            if member is None:
                logger.warning(f"Team earnings: member {memberId} not found")
                skipped += 1
                continue

            upline = resolver.resolveUpline(memberId)

            legs = (
                ("A", upline.level1, PayoutKind.TEAM_A, True),
                ("B", upline.level2, PayoutKind.TEAM_B, aggregated.wasActive),
            )

            for team, sponsor, kind, eligible in legs:
                if not eligible:
                    continue

                try:
                    if sponsor is None:
                        raise MissingUplineError(memberId, TEAM_DEPTH[team])

                    with self.session.begin_nested():
                        posted = self._creditTeamReward(
                            sponsor, member, team, kind, window, baseProfit, reward, percent, aggregated.wasActive
                        )
                    self.session.commit()

                    if posted:
                        postedCount += 1
                        totalReward += reward
                        receivers.add(sponsor.id)
                    else:
                        skipped += 1

                except MissingUplineError as e:
                    logger.debug(str(e))
                    missingUplines += 1

                except Exception as e:
                    logger.error(
                        f"Team {team} reward failed for member {memberId}: {e}",
                        exc_info=True
                    )
                    failed += 1

        summary = TeamEarningsSummary(
            day=window.dayKey,
            postedCount=postedCount,
            uniqueReceivers=len(receivers),
            totalReward=round_amount(totalReward, LEDGER_DECIMALS),
            missingUplines=missingUplines,
            skipped=skipped,
            failed=failed,
        )

        logger.info(
            f"✓ Team earnings {summary.day}: posted={postedCount}, receivers={summary.uniqueReceivers}, "
            f"total=${summary.totalReward}, missingUplines={missingUplines}, failed={failed}"
        )
        return summary

    def _creditTeamReward(
            self,
            sponsor: UserRef,
            member: UserRef,
            team: str,
            kind: PayoutKind,
            window: DayWindow,
            baseProfit: Decimal,
            reward: Decimal,
            percent: Decimal,
            memberActive: bool
    ) -> bool:
        uniqueKey = build_unique_key(TEAM_KEY_PREFIX, window.dayKey, member.id, sponsor.id, team)

        result = self.writer.tryCredit(
            sponsor.id,
            uniqueKey,
            kind,
            reward,
            meta={
                "team": team,
                "day": window.dayKey,
                "memberId": member.id,
                "memberName": member.name,
                "ratePct": percent,
                "baseProfit": baseProfit,
                "teamDepth": TEAM_DEPTH[team],
                "memberActive": memberActive,
            },
            occurredAt=window.lastInstant,
        )

        if not result.credited:
            logger.debug(f"Team reward {uniqueKey} already posted")

        return result.credited
