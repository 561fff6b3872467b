# tests/conftest.py
"""
Pytest configuration and shared fixtures for settlement tests.

Every test gets a fresh in-memory SQLite database.

Run:
    pytest tests -v
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Config
from core.db import create_db_engine
from models import Base, User, Balance, LedgerEntry, TeamDailyProfit


def _default_config():
    values = dict(Config.DEFAULTS)
    values[Config.DATABASE_URL] = "sqlite://"
    values[Config.TEAM_EARNINGS_UTC_OFFSET_HOURS] = int(values[Config.TEAM_EARNINGS_UTC_OFFSET_HOURS])
    values[Config.CAPITAL_LOCK_DAYS] = int(values[Config.CAPITAL_LOCK_DAYS])
    return values


# =============================================================================
# CONFIG FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def settlement_config(monkeypatch):
    """Isolate every test from .env and from runtime overrides."""
    monkeypatch.setattr(Config, "_config", _default_config())
    return Config


@pytest.fixture
def set_config(settlement_config):
    """Override one configuration value for the current test."""

    def _set(key, value):
        Config.set(key, value, source="test")

    return _set


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """In-memory database shared by all connections of one test."""
    engine = create_db_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create database session for each test."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def run():
    """Run a service coroutine to completion."""

    def _run(coro):
        return asyncio.run(coro)

    return _run


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(session):
    """
    Create and commit a user, optionally with a balance row.

    Usage:
        sponsor = make_user("sponsor")
        member = make_user("member", sponsor=sponsor, current=1000)
    """

    def _make(
            name="user",
            sponsor=None,
            depositTotal=0,
            isActive=False,
            current=None,
            rateOverride=None,
            roiEarnedTotal=0
    ):
        user = User(
            name=name,
            email=f"{name}@example.com",
            referredBy=sponsor.userID if sponsor is not None else None,
            depositTotal=Decimal(str(depositTotal)),
            roiEarnedTotal=Decimal(str(roiEarnedTotal)),
            isActive=isActive,
            miningDailyRateOverridePct=Decimal(str(rateOverride)) if rateOverride is not None else None,
        )
        session.add(user)
        session.flush()

        if current is not None:
            session.add(Balance(
                userID=user.userID,
                current=Decimal(str(current)),
                totalBalance=Decimal(str(current)),
            ))

        session.commit()
        return user

    return _make


@pytest.fixture
def chain(make_user):
    """Three-level chain: top <- sponsor <- member."""
    top = make_user("top")
    sponsor = make_user("sponsor", sponsor=top)
    member = make_user("member", sponsor=sponsor)
    return {"top": top, "sponsor": sponsor, "member": member}


@pytest.fixture
def add_profit(session):
    """Insert a TeamDailyProfit row directly."""

    def _add(member, dayKey, profitDate, amount, active=False):
        row = TeamDailyProfit(
            memberID=member.userID,
            dayKey=dayKey,
            profitDate=profitDate,
            profitAmount=Decimal(str(amount)),
            activeOnDate=active,
        )
        session.add(row)
        session.commit()
        return row

    return _add


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def balance_of(session):
    """Fresh Balance row for a user (None when missing)."""

    def _get(user):
        session.expire_all()
        return session.query(Balance).filter_by(userID=user.userID).first()

    return _get


@pytest.fixture
def entries(session):
    """Ledger entries of a user, oldest first, optionally filtered by type."""

    def _get(user, type=None):
        session.expire_all()
        query = session.query(LedgerEntry).filter_by(userID=user.userID)
        if type is not None:
            query = query.filter_by(type=type)
        return query.order_by(LedgerEntry.entryID).all()

    return _get


@pytest.fixture
def ledger_count(session):
    """Total number of ledger entries."""

    def _count():
        return session.query(func.count(LedgerEntry.entryID)).scalar()

    return _count
