# tests/test_claims.py
"""
Tests for team reward claim settlement.

Key principle: claimed amount == sum of the entries moved, and every
cent leaves teamRewardsAvailable exactly once.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from models import LedgerEntry
from settlement.config.payouts import PayoutKind
from settlement.errors import ValidationError
from settlement.services.claim_service import ClaimService
from settlement.services.ledger_writer import LedgerWriter

NOW = datetime(2025, 1, 12, 9, 30)


@pytest.fixture
def rewarded(session, make_user):
    """Sponsor holding two claimable team rewards ($1.50 + $2.25)."""
    sponsor = make_user("sponsor", current=10)
    writer = LedgerWriter(session)
    writer.tryCredit(sponsor.userID, "DTE:2025-01-10:m1:s:A", PayoutKind.TEAM_A, "1.50",
                     meta={"team": "A", "day": "2025-01-10"}, occurredAt=datetime(2025, 1, 10, 18))
    writer.tryCredit(sponsor.userID, "DTE:2025-01-11:m2:s:B", PayoutKind.TEAM_B, "2.25",
                     meta={"team": "B", "day": "2025-01-11"}, occurredAt=datetime(2025, 1, 11, 18))
    session.commit()
    return sponsor


class TestClaim:

    def test_claim_moves_rewards(self, session, run, rewarded, balance_of, entries):
        before = balance_of(rewarded)
        availableBefore = before.teamRewardsAvailable
        currentBefore = before.current

        result = run(ClaimService(session).claimTeamEarnings(rewarded.userID, NOW))
        session.commit()

        assert result.claimed == Decimal("3.75")
        assert result.claimedTotal == Decimal("3.75")
        assert len(result.items) == 2

        balance = balance_of(rewarded)
        assert availableBefore == result.claimed
        assert balance.teamRewardsAvailable == Decimal("0")
        assert balance.current - currentBefore == result.claimed
        assert balance.totalBalance == Decimal("13.75")
        assert balance.totalEarning == Decimal("3.75")
        assert balance.teamRewardsClaimed == Decimal("3.75")
        assert balance.teamRewardsLastClaimedAt == NOW

    def test_source_entries_back_reference_claim(self, session, run, rewarded, entries):
        result = run(ClaimService(session).claimTeamEarnings(rewarded.userID, NOW))
        session.commit()

        all_entries = entries(rewarded, type="teamReward")
        claimEntry = [e for e in all_entries if e.meta.get("source") == "team_rewards_claim"][0]
        sources = [e for e in all_entries if e.entryID in result.items]

        assert claimEntry.amount == Decimal("3.75")
        assert claimEntry.claimable is False
        assert claimEntry.meta["claimedEntryIds"] == result.items

        for entry in sources:
            assert entry.claimable is False
            assert entry.claimedAt == NOW
            assert entry.meta["claimEntryId"] == claimEntry.entryID

    def test_second_claim_is_empty(self, session, run, rewarded, ledger_count):
        service = ClaimService(session)
        run(service.claimTeamEarnings(rewarded.userID, NOW))
        session.commit()
        count = ledger_count()

        result = run(service.claimTeamEarnings(rewarded.userID, NOW))

        assert result.claimed == Decimal("0")
        assert result.claimedTotal == Decimal("3.75")
        assert result.items == []
        assert ledger_count() == count

    def test_nothing_to_claim(self, session, run, make_user, ledger_count):
        user = make_user("nobody")

        result = run(ClaimService(session).claimTeamEarnings(user.userID, NOW))

        assert result.claimed == Decimal("0")
        assert result.claimedTotal == Decimal("0")
        assert ledger_count() == 0

    def test_lifetime_total_accumulates(self, session, run, rewarded):
        service = ClaimService(session)
        run(service.claimTeamEarnings(rewarded.userID, NOW))

        LedgerWriter(session).tryCredit(rewarded.userID, "DTE:2025-01-12:m1:s:A", PayoutKind.TEAM_A, "0.25")
        session.commit()

        result = run(service.claimTeamEarnings(rewarded.userID, NOW))

        assert result.claimed == Decimal("0.25")
        assert result.claimedTotal == Decimal("4.00")

    def test_pending_rewards_not_claimed(self, session, run, make_user):
        user = make_user("sponsor")
        session.add(LedgerEntry(
            userID=user.userID,
            type="teamReward",
            amount=Decimal("5"),
            status="pending",
            claimable=True,
            meta={},
        ))
        session.commit()

        result = run(ClaimService(session).claimTeamEarnings(user.userID, NOW))

        assert result.claimed == Decimal("0")

    def test_zero_amount_rewards_left_untouched(self, session, run, make_user, entries, ledger_count):
        """
        TEST: A zero-amount reward is not claimable, so a claim neither
        flips it nor leaves it flipped without a claim entry.
        """
        user = make_user("sponsor")
        session.add(LedgerEntry(
            userID=user.userID,
            type="teamReward",
            amount=Decimal("0"),
            status="approved",
            claimable=True,
            meta={},
        ))
        session.commit()
        count = ledger_count()

        service = ClaimService(session)
        assert run(service.getClaimableTotal(user.userID)) == Decimal("0")
        assert run(service.listPendingRewards(user.userID)) == []

        result = run(service.claimTeamEarnings(user.userID, NOW))
        session.commit()

        assert result.claimed == Decimal("0")
        assert result.items == []
        assert ledger_count() == count

        [entry] = entries(user)
        assert entry.claimable is True
        assert entry.claimedAt is None

    def test_invalid_user(self, session, run):
        with pytest.raises(ValidationError):
            run(ClaimService(session).claimTeamEarnings("bad-id"))


class TestPreview:

    def test_claimable_total(self, session, run, rewarded):
        service = ClaimService(session)

        assert run(service.getClaimableTotal(rewarded.userID)) == Decimal("3.75")

        run(service.claimTeamEarnings(rewarded.userID, NOW))
        session.commit()

        assert run(service.getClaimableTotal(rewarded.userID)) == Decimal("0")

    def test_pending_list_oldest_first(self, session, run, rewarded):
        items = run(ClaimService(session).listPendingRewards(rewarded.userID))

        assert [item["amount"] for item in items] == [Decimal("1.50"), Decimal("2.25")]
        assert [item["team"] for item in items] == ["A", "B"]
        assert items[0]["day"] == "2025-01-10"
