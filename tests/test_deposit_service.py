# tests/test_deposit_service.py
"""
Tests for the deposit approval workflow.

Approval = guarded pending->approved flip + rewards + lifetime total +
activation + principal credit + capital lock, all in one unit.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from models import LedgerEntry, LockedCapitalLot, User
from settlement.errors import ValidationError
from settlement.services.deposit_reward_service import DepositEventRef, DepositRewardService
from settlement.services.deposit_service import DepositService
from settlement.services.locked_capital_service import LockedCapitalService

NOW = datetime(2025, 1, 5, 12, 0)


@pytest.fixture
def deposit(session, run):
    """Create and approve a deposit, returning the approval result."""

    def _deposit(user, amount, now=NOW):
        service = DepositService(session)
        entry = run(service.createPendingDeposit(user.userID, amount, reference="tx-1"))
        session.commit()
        result = run(service.approveDeposit(entry.entryID, now=now))
        session.commit()
        return result

    return _deposit


class TestCreatePendingDeposit:

    def test_pending_entry(self, session, run, make_user, entries, balance_of):
        user = make_user("depositor")

        entry = run(DepositService(session).createPendingDeposit(user.userID, "100", reference="tx-9"))
        session.commit()

        [stored] = entries(user)
        assert stored.entryID == entry.entryID
        assert stored.type == "deposit"
        assert stored.status == "pending"
        assert stored.amount == Decimal("100")
        assert stored.meta["reference"] == "tx-9"
        assert balance_of(user) is None

    def test_unknown_user(self, session, run):
        with pytest.raises(ValidationError):
            run(DepositService(session).createPendingDeposit("8f14e45fceea467a95756b2a4c0be0c1", 10))

    @pytest.mark.parametrize("amount", [0, -1, "x"])
    def test_bad_amount(self, session, run, make_user, amount):
        user = make_user("depositor")
        with pytest.raises(ValidationError):
            run(DepositService(session).createPendingDeposit(user.userID, amount))


class TestApproveDeposit:

    def test_full_approval(self, session, chain, deposit, balance_of, entries):
        """
        TEST: $100 approval activates the member, pays all legs, credits
        and locks the principal.
        """
        member = chain["member"]

        result = deposit(member, 100)

        session.expire_all()
        user = session.query(User).filter_by(userID=member.userID).one()
        assert user.depositTotal == Decimal("100")
        assert user.isActive is True

        balance = balance_of(member)
        assert balance.current == Decimal("105.00")
        assert balance.totalBalance == Decimal("105.00")
        assert balance.totalEarning == Decimal("5.00")
        assert balance.lockedCapital == Decimal("100")

        assert balance_of(chain["sponsor"]).current == Decimal("15.00")
        assert balance_of(chain["top"]).current == Decimal("3.00")

        assert result["rewards"].activated is True

        depositEntry = entries(member, type="deposit")[0]
        assert depositEntry.status == "approved"
        assert depositEntry.meta["qualifiesForActivation"] is True
        assert depositEntry.meta["lotId"] == result["lotId"]

        lot = session.query(LockedCapitalLot).filter_by(lotID=result["lotId"]).one()
        assert lot.amount == Decimal("100")
        assert lot.lockStart == NOW
        assert lot.lockEnd == NOW + timedelta(days=30)
        assert lot.sourceEntryID == depositEntry.entryID
        assert lot.released is False

    def test_second_approval_rejected(self, session, run, make_user, deposit, balance_of, ledger_count):
        user = make_user("depositor")
        result = deposit(user, 100)
        count = ledger_count()

        with pytest.raises(ValidationError):
            run(DepositService(session).approveDeposit(result["entryId"], now=NOW))
        session.rollback()

        assert ledger_count() == count
        assert balance_of(user).current == Decimal("105.00")

    def test_unknown_entry(self, session, run):
        with pytest.raises(ValidationError):
            run(DepositService(session).approveDeposit(999999))

    def test_non_deposit_entry_rejected(self, session, run, make_user):
        user = make_user("depositor")
        entry = LedgerEntry(userID=user.userID, type="bonus", amount=Decimal("5"), status="pending", meta={})
        session.add(entry)
        session.commit()

        with pytest.raises(ValidationError):
            run(DepositService(session).approveDeposit(entry.entryID))

    def test_two_deposits_end_to_end(self, session, chain, deposit, balance_of, entries):
        """
        TEST: $50 keeps the member inactive (L1 only), $30 crosses $80
        and pays self, L1 and L2 on $30.
        """
        member = chain["member"]

        first = deposit(member, 50)
        assert first["rewards"].depositorActive is False
        assert first["rewards"].l1Bonus == Decimal("7.50")
        assert first["rewards"].selfBonus == Decimal("0")
        assert first["rewards"].l2Bonus == Decimal("0")

        session.expire_all()
        assert session.query(User).filter_by(userID=member.userID).one().isActive is False

        second = deposit(member, 30)
        assert second["rewards"].activated is True
        assert second["rewards"].selfBonus == Decimal("1.50")
        assert second["rewards"].l1Bonus == Decimal("4.50")
        assert second["rewards"].l2Bonus == Decimal("0.90")

        session.expire_all()
        user = session.query(User).filter_by(userID=member.userID).one()
        assert user.depositTotal == Decimal("80")
        assert user.isActive is True

        deposits = entries(member, type="deposit")
        assert [e.meta["qualifiesForActivation"] for e in deposits] == [False, True]

        assert balance_of(chain["sponsor"]).current == Decimal("12.00")
        assert balance_of(chain["top"]).current == Decimal("0.90")
        assert balance_of(member).current == Decimal("81.50")
        assert balance_of(member).lockedCapital == Decimal("80")

    def test_withdrawable_excludes_locked_principal(self, session, run, make_user, deposit):
        user = make_user("depositor")
        deposit(user, 100)

        service = LockedCapitalService(session)
        assert run(service.getWithdrawable(user.userID, NOW)) == Decimal("5.00")
        assert run(service.getWithdrawable(user.userID, NOW + timedelta(days=30))) == Decimal("105.00")


class TestReplayAfterApproval:
    """
    Replaying rewards for an approved deposit must post nothing, even
    though approval already added the deposit to the lifetime total.
    """

    def test_replay_with_sponsors_is_noop(self, session, run, chain, deposit, balance_of, ledger_count):
        """
        TEST: $50 approval pays L1 only; a replay must not see lifetime
        $100 and start paying self/L2.
        """
        member = chain["member"]
        result = deposit(member, 50)
        count = ledger_count()

        outcome = run(DepositRewardService(session).applyDepositRewards(
            member.userID, 50, DepositEventRef(id=result["entryId"])
        ))
        session.commit()

        assert outcome.depositorActive is False
        assert outcome.activated is False
        assert outcome.lifetimeBefore == Decimal("0")
        assert outcome.selfBonus == Decimal("0")
        assert outcome.l1Bonus == Decimal("0")
        assert outcome.l2Bonus == Decimal("0")

        assert ledger_count() == count
        assert balance_of(chain["top"]) is None
        assert balance_of(member).current == Decimal("50")
        assert balance_of(chain["sponsor"]).current == Decimal("7.50")

    def test_replay_without_sponsor_uses_deposit_entry(self, session, run, make_user, deposit, ledger_count, entries):
        """
        TEST: No legs were posted, so the snapshot comes from the approved
        deposit entry itself.
        """
        user = make_user("loner")
        result = deposit(user, 50)
        count = ledger_count()

        depositEntry = entries(user, type="deposit")[0]
        assert Decimal(depositEntry.meta["lifetimeBefore"]) == Decimal("0")
        assert depositEntry.meta["depositorActive"] is False

        outcome = run(DepositRewardService(session).applyDepositRewards(
            user.userID, 50, DepositEventRef(id=result["entryId"])
        ))
        session.commit()

        assert outcome.depositorActive is False
        assert outcome.selfBonus == Decimal("0")
        assert ledger_count() == count

    def test_next_deposit_still_reads_current_total(self, session, run, chain, deposit):
        """TEST: A new event is not affected by the earlier event's snapshot."""
        member = chain["member"]
        deposit(member, 50)

        second = deposit(member, 30)

        assert second["rewards"].lifetimeBefore == Decimal("50")
        assert second["rewards"].activated is True
