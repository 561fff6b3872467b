# settlement/services/claim_service.py
"""
Claim settlement for team rewards.
Moves claimable teamReward entries into the spendable balance.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.balance import Balance
from models.ledger_entry import LedgerEntry
from settlement.config.payouts import TEAM_REWARDS_CLAIM_SOURCE
from settlement.errors import ValidationError
from settlement.services.balance_store import BalanceStore
from settlement.services.ledger_writer import serialize_meta
from settlement.utils.ids import normalize_id
from settlement.utils.money import LEDGER_DECIMALS, ZERO, round_amount, to_decimal
from settlement.utils.time_windows import to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    claimed: Decimal
    claimedTotal: Decimal
    items: List[int] = field(default_factory=list)


class ClaimService:
    """Service for claiming accumulated team rewards."""

    def __init__(self, session: Session):
        self.session = session
        self.balances = BalanceStore(session)

    def _claimableQuery(self, userId: str):
        return self.session.query(LedgerEntry).filter(
            LedgerEntry.userID == userId,
            LedgerEntry.type == "teamReward",
            LedgerEntry.status == "approved",
            LedgerEntry.claimable == True,  # noqa: E712
            LedgerEntry.amount > 0
        )

    def _normalize(self, userId: Any) -> str:
        normalized = normalize_id(userId)
        if normalized is None:
            raise ValidationError(f"Invalid user id: {userId!r}")
        return normalized

    async def getClaimableTotal(self, userId: Any) -> Decimal:
        """Sum of team rewards waiting for claim."""
        normalized = self._normalize(userId)
        total = self._claimableQuery(normalized).with_entities(
            func.coalesce(func.sum(LedgerEntry.amount), 0)
        ).scalar()
        return round_amount(total, LEDGER_DECIMALS)

    async def listPendingRewards(self, userId: Any) -> List[Dict[str, Any]]:
        """Claimable entries for the wallet preview, oldest first."""
        normalized = self._normalize(userId)
        entries = self._claimableQuery(normalized).order_by(
            LedgerEntry.createdAt, LedgerEntry.entryID
        ).all()

        return [
            {
                "entryId": entry.entryID,
                "amount": round_amount(entry.amount, LEDGER_DECIMALS),
                "team": (entry.meta or {}).get("team"),
                "day": (entry.meta or {}).get("day"),
                "memberId": (entry.meta or {}).get("memberId"),
                "createdAt": entry.createdAt,
            }
            for entry in entries
        ]

    async def claimTeamEarnings(self, userId: Any, now: Optional[datetime] = None) -> ClaimResult:
        """
        Claim every claimable team reward of a user.

        Each source entry is flipped with a guarded update, so an entry
        taken by a concurrent claim is not counted twice. The claim entry,
        back-references and balance moves share one savepoint.

        Returns:
            ClaimResult(claimed=0) when nothing was claimable
        """
        normalized = self._normalize(userId)
        moment = to_naive_utc(now)

        entries = self._claimableQuery(normalized).order_by(
            LedgerEntry.createdAt, LedgerEntry.entryID
        ).all()

        if not entries:
            return ClaimResult(claimed=round_amount(ZERO, LEDGER_DECIMALS),
                               claimedTotal=self._lifetimeClaimed(normalized))

        with self.session.begin_nested():
            claimedIds: List[int] = []
            claimed = ZERO

            # ═══════════════════════════════════════════════════════════
            # FLIP SOURCE ENTRIES
            # ═══════════════════════════════════════════════════════════
            for entry in entries:
                flipped = self.session.query(LedgerEntry).filter(
                    LedgerEntry.entryID == entry.entryID,
                    LedgerEntry.claimable == True  # noqa: E712
                ).update(
                    {LedgerEntry.claimable: False, LedgerEntry.claimedAt: moment},
                    synchronize_session=False
                )
                if flipped:
                    claimedIds.append(entry.entryID)
                    claimed += to_decimal(entry.amount)

            claimed = round_amount(claimed, LEDGER_DECIMALS)

            if claimed <= ZERO:
                logger.info(f"Nothing left to claim for {normalized}")
                return ClaimResult(claimed=claimed, claimedTotal=self._lifetimeClaimed(normalized))

            # ═══════════════════════════════════════════════════════════
            # CLAIM ENTRY
            # ═══════════════════════════════════════════════════════════
            claimEntry = LedgerEntry(
                userID=normalized,
                type="teamReward",
                amount=claimed,
                status="approved",
                claimable=False,
                claimedAt=moment,
                meta=serialize_meta({
                    "source": TEAM_REWARDS_CLAIM_SOURCE,
                    "claimedEntryIds": claimedIds,
                    "claimedAt": moment,
                }),
            )
            claimEntry.createdAt = moment
            self.session.add(claimEntry)
            self.session.flush()

            for entry in entries:
                if entry.entryID in claimedIds:
                    self.session.expire(entry)
                    meta = dict(entry.meta or {})
                    meta["claimEntryId"] = claimEntry.entryID
                    entry.meta = meta

            # ═══════════════════════════════════════════════════════════
            # BALANCE MOVES
            # ═══════════════════════════════════════════════════════════
            self.balances.incrementOrCreate(
                normalized,
                {
                    "teamRewardsAvailable": -claimed,
                    "current": claimed,
                    "totalBalance": claimed,
                    "totalEarning": claimed,
                    "teamRewardsClaimed": claimed,
                },
                defaults={"teamRewardsLastClaimedAt": moment},
            )
            self.session.flush()

        claimedTotal = self._lifetimeClaimed(normalized)

        logger.info(
            f"✓ User {normalized} claimed ${claimed} from {len(claimedIds)} team rewards "
            f"(lifetime ${claimedTotal})"
        )
        return ClaimResult(claimed=claimed, claimedTotal=claimedTotal, items=claimedIds)

    def _lifetimeClaimed(self, userId: str) -> Decimal:
        total = self.session.query(Balance.teamRewardsClaimed).filter(
            Balance.userID == userId
        ).scalar()
        return round_amount(total, LEDGER_DECIMALS)
