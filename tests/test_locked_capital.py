# tests/test_locked_capital.py
"""
Tests for locked capital rules and persistence.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from config import Config
from models import LockedCapitalLot
from settlement.errors import ValidationError
from settlement.services.locked_capital_service import LockedCapitalService
from settlement.utils.locked_capital import (
    get_withdrawable_balance,
    partition_lots_by_maturity,
    resolve_capital_lock_window,
)

NOW = datetime(2025, 2, 1, 12, 0)


def lot(amount, lockEnd, released=False):
    return SimpleNamespace(amount=Decimal(str(amount)), lockEnd=lockEnd, released=released)


# =============================================================================
# TEST CLASS: pure rules
# =============================================================================

class TestPartition:

    def test_split_by_lock_end(self):
        matured = lot(100, NOW - timedelta(days=1))
        boundary = lot(50, NOW)
        pending = lot(25, NOW + timedelta(seconds=1))

        partition = partition_lots_by_maturity([matured, boundary, pending], NOW)

        assert partition.matured == [matured, boundary]
        assert partition.pending == [pending]
        assert partition.pendingAmount == Decimal("25")
        assert partition.maturedAmount == Decimal("150")

    def test_released_lot_is_matured(self):
        early = lot(100, NOW + timedelta(days=10), released=True)

        partition = partition_lots_by_maturity([early], NOW)

        assert partition.matured == [early]

    def test_no_lots(self):
        partition = partition_lots_by_maturity(None, NOW)
        assert partition.matured == [] and partition.pending == []


class TestWithdrawable:

    def test_pending_lots_subtracted(self):
        balance = SimpleNamespace(current=Decimal("150"), lockedCapitalLots=[lot(100, NOW + timedelta(days=1))])
        assert get_withdrawable_balance(balance, NOW) == Decimal("50.00")

    def test_floored_at_zero(self):
        balance = SimpleNamespace(current=Decimal("80"), lockedCapitalLots=[lot(100, NOW + timedelta(days=1))])
        assert get_withdrawable_balance(balance, NOW) == Decimal("0.00")

    def test_after_maturity_everything_withdrawable(self):
        balance = SimpleNamespace(current=Decimal("150"), lockedCapitalLots=[lot(100, NOW - timedelta(days=1))])
        assert get_withdrawable_balance(balance, NOW) == Decimal("150.00")

    def test_missing_balance(self):
        assert get_withdrawable_balance(None, NOW) == Decimal("0.00")


class TestLockWindow:

    def test_default_thirty_days(self):
        window = resolve_capital_lock_window(None, NOW)
        assert window.lockStart == NOW
        assert window.lockEnd == NOW + timedelta(days=30)

    def test_custom_days(self):
        assert resolve_capital_lock_window(7, NOW).lockEnd == NOW + timedelta(days=7)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            resolve_capital_lock_window(-1, NOW)


# =============================================================================
# TEST CLASS: persistence
# =============================================================================

class TestLockedCapitalService:

    def test_lock_and_release(self, session, run, make_user, balance_of):
        user = make_user("holder", current=100)
        service = LockedCapitalService(session)

        run(service.lockCapital(user.userID, 100, now=NOW))
        session.commit()
        assert balance_of(user).lockedCapital == Decimal("100")

        early = run(service.releaseMaturedLots(NOW + timedelta(days=29)))
        assert early["released"] == 0

        releaseAt = NOW + timedelta(days=30)
        stats = run(service.releaseMaturedLots(releaseAt))

        assert stats["released"] == 1
        assert stats["totalAmount"] == Decimal("100")
        assert balance_of(user).lockedCapital == Decimal("0")

        stored = session.query(LockedCapitalLot).filter_by(userID=user.userID).one()
        assert stored.released is True
        assert stored.releasedAt == releaseAt
        assert stored.amount == Decimal("100")

        again = run(service.releaseMaturedLots(releaseAt))
        assert again["released"] == 0

    def test_configured_lock_days(self, session, run, make_user, set_config):
        set_config(Config.CAPITAL_LOCK_DAYS, 7)
        user = make_user("holder")

        created = run(LockedCapitalService(session).lockCapital(user.userID, 10, now=NOW))

        assert created.lockEnd == NOW + timedelta(days=7)

    def test_locked_capital_never_negative(self, session, run, make_user, balance_of):
        user = make_user("holder", current=100)
        service = LockedCapitalService(session)
        run(service.lockCapital(user.userID, 100, now=NOW))
        session.commit()

        balance = balance_of(user)
        balance.lockedCapital = Decimal("40")
        session.commit()

        run(service.releaseMaturedLots(NOW + timedelta(days=31)))

        assert balance_of(user).lockedCapital == Decimal("0")

    def test_withdrawable(self, session, run, make_user):
        user = make_user("holder", current=150)
        service = LockedCapitalService(session)
        run(service.lockCapital(user.userID, 100, now=NOW))
        session.commit()

        assert run(service.getWithdrawable(user.userID, NOW)) == Decimal("50.00")
        assert run(service.getWithdrawable(user.userID, NOW + timedelta(days=30))) == Decimal("150.00")

    def test_withdrawable_without_balance(self, session, run, make_user):
        user = make_user("empty")
        assert run(LockedCapitalService(session).getWithdrawable(user.userID, NOW)) == Decimal("0.00")

    @pytest.mark.parametrize("amount", [0, -10, "0.00001"])
    def test_bad_lock_amount(self, session, run, make_user, amount):
        user = make_user("holder")
        with pytest.raises(ValidationError):
            run(LockedCapitalService(session).lockCapital(user.userID, amount, now=NOW))
