# settlement/config/payouts.py
"""
Payout kinds and rate configuration.
Rates are read from Config and converted to Decimal on every access,
so runtime overrides (Config.set) apply to the next calculation.
"""
from enum import Enum
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Tuple
import logging

from config import Config, ConfigurationError

logger = logging.getLogger(__name__)


class PayoutKind(Enum):
    """Every kind of derived payout the engine can post."""
    DEPOSIT_SELF = "deposit_self"
    DEPOSIT_L1 = "deposit_l1"
    DEPOSIT_L2 = "deposit_l2"
    MINING = "mining"
    TEAM_A = "team_a"
    TEAM_B = "team_b"


# Ledger entry type per payout kind
LEDGER_TYPE_BY_KIND: Dict[PayoutKind, str] = {
    PayoutKind.DEPOSIT_SELF: "bonus",
    PayoutKind.DEPOSIT_L1: "commission",
    PayoutKind.DEPOSIT_L2: "commission",
    PayoutKind.MINING: "earn",
    PayoutKind.TEAM_A: "teamReward",
    PayoutKind.TEAM_B: "teamReward",
}

# meta.source tag per payout kind
SOURCE_BY_KIND: Dict[PayoutKind, str] = {
    PayoutKind.DEPOSIT_SELF: "deposit_bonus_self",
    PayoutKind.DEPOSIT_L1: "deposit_referral_l1",
    PayoutKind.DEPOSIT_L2: "deposit_referral_l2",
    PayoutKind.MINING: "daily_mining_profit",
    PayoutKind.TEAM_A: "daily_team_earning",
    PayoutKind.TEAM_B: "daily_team_earning",
}

# Balance columns incremented by a credit of this kind
_IMMEDIATE_FIELDS = ("current", "totalBalance", "totalEarning")

BALANCE_FIELDS_BY_KIND: Dict[PayoutKind, Tuple[str, ...]] = {
    PayoutKind.DEPOSIT_SELF: _IMMEDIATE_FIELDS,
    PayoutKind.DEPOSIT_L1: _IMMEDIATE_FIELDS,
    PayoutKind.DEPOSIT_L2: _IMMEDIATE_FIELDS,
    PayoutKind.MINING: ("current", "totalEarning"),
    PayoutKind.TEAM_A: ("teamRewardsAvailable",),
    PayoutKind.TEAM_B: ("teamRewardsAvailable",),
}

CLAIMABLE_KINDS = frozenset({PayoutKind.TEAM_A, PayoutKind.TEAM_B})

# Source tag of the entry created by claim settlement
TEAM_REWARDS_CLAIM_SOURCE = "team_rewards_claim"


def get_payout_profile(kind: PayoutKind) -> Dict[str, Any]:
    """
    Get ledger/balance mapping for a payout kind.

    Returns:
        Dict with type, source, balanceFields, claimable
    """
    return {
        "type": LEDGER_TYPE_BY_KIND[kind],
        "source": SOURCE_BY_KIND[kind],
        "balanceFields": BALANCE_FIELDS_BY_KIND[kind],
        "claimable": kind in CLAIMABLE_KINDS,
    }


def _decimal_setting(key: str) -> Decimal:
    raw = Config.get(key)
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        logger.error(f"Invalid numeric setting {key}={raw!r}")
        raise ConfigurationError(f"{key} must be numeric, got {raw!r}")

    if not value.is_finite() or value < 0:
        raise ConfigurationError(f"{key} must be a non-negative number, got {raw!r}")

    return value


def _int_setting(key: str) -> int:
    raw = Config.get(key)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


# ═══════════════════════════════════════════════════════════════════════════
# RATE ACCESSORS
# ═══════════════════════════════════════════════════════════════════════════

def get_active_deposit_threshold() -> Decimal:
    """Lifetime deposit total that makes a user active (default 80)."""
    return _decimal_setting(Config.ACTIVE_DEPOSIT_THRESHOLD)


def get_deposit_percentages() -> Dict[PayoutKind, Decimal]:
    """Deposit bonus percentages keyed by leg, in percent units."""
    return {
        PayoutKind.DEPOSIT_SELF: _decimal_setting(Config.DEPOSIT_SELF_PERCENT_ACTIVE),
        PayoutKind.DEPOSIT_L1: _decimal_setting(Config.DEPOSIT_L1_PERCENT),
        PayoutKind.DEPOSIT_L2: _decimal_setting(Config.DEPOSIT_L2_PERCENT_ACTIVE),
    }


def get_daily_profit_percent() -> Decimal:
    return _decimal_setting(Config.DAILY_PROFIT_PERCENT)


def get_mining_roi_cap() -> Decimal:
    """Maximum mining earnings as a multiple of lifetime deposits."""
    return _decimal_setting(Config.MINING_ROI_CAP)


def get_team_daily_profit_percent() -> Decimal:
    return _decimal_setting(Config.TEAM_DAILY_PROFIT_PERCENT)


def get_team_earnings_utc_offset_hours() -> int:
    return _int_setting(Config.TEAM_EARNINGS_UTC_OFFSET_HOURS)


def get_capital_lock_days() -> int:
    days = _int_setting(Config.CAPITAL_LOCK_DAYS)
    if days < 0:
        raise ConfigurationError(f"CAPITAL_LOCK_DAYS must be non-negative, got {days}")
    return days
