# settlement/__init__.py
"""
Settlement engine - deposit rewards, mining accrual, team earnings,
claims and locked capital.
"""

# Services
from settlement.services.deposit_reward_service import DepositRewardService, DepositEventRef, RewardOutcome
from settlement.services.deposit_service import DepositService
from settlement.services.mining_profit_service import MiningProfitService, MiningRunSummary
from settlement.services.team_earnings_service import TeamEarningsService, TeamEarningsSummary
from settlement.services.claim_service import ClaimService, ClaimResult
from settlement.services.locked_capital_service import LockedCapitalService
from settlement.services.ledger_writer import LedgerWriter, CreditResult, build_unique_key
from settlement.services.balance_store import BalanceStore

# Configuration
from settlement.config.payouts import PayoutKind

# Utilities
from settlement.utils.money import round_amount, percent_of, LEDGER_DECIMALS, PLATFORM_DECIMALS
from settlement.utils.ids import normalize_id
from settlement.utils.upline_resolver import UplineResolver

# Errors
from settlement.errors import (
    SettlementError,
    ValidationError,
    DuplicateEventError,
    MissingUplineError,
    PersistenceError,
)

__all__ = [
    # Services
    'DepositRewardService',
    'DepositEventRef',
    'RewardOutcome',
    'DepositService',
    'MiningProfitService',
    'MiningRunSummary',
    'TeamEarningsService',
    'TeamEarningsSummary',
    'ClaimService',
    'ClaimResult',
    'LockedCapitalService',
    'LedgerWriter',
    'CreditResult',
    'build_unique_key',
    'BalanceStore',

    # Config
    'PayoutKind',

    # Utils
    'round_amount',
    'percent_of',
    'LEDGER_DECIMALS',
    'PLATFORM_DECIMALS',
    'normalize_id',
    'UplineResolver',

    # Errors
    'SettlementError',
    'ValidationError',
    'DuplicateEventError',
    'MissingUplineError',
    'PersistenceError',
]
