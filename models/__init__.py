"""
Database models for the settlement engine.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, TimestampMixin

# Core models
from models.user import User
from models.balance import Balance
from models.locked_capital_lot import LockedCapitalLot
from models.ledger_entry import LedgerEntry
from models.team_daily_profit import TeamDailyProfit

__all__ = [
    # Base
    'Base',
    'TimestampMixin',

    # Core
    'User',
    'Balance',
    'LockedCapitalLot',
    'LedgerEntry',
    'TeamDailyProfit',
]
