# config.py
"""
Configuration management for the settlement engine.
Loads from .env, validates critical keys.
"""
import os
import logging
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        threshold = Config.get(Config.ACTIVE_DEPOSIT_THRESHOLD)

        # Override at runtime (admin settings, tests)
        Config.set(Config.DAILY_PROFIT_PERCENT, "2.0")
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # Logging
    LOG_LEVEL = "LOG_LEVEL"

    # Activation
    ACTIVE_DEPOSIT_THRESHOLD = "ACTIVE_DEPOSIT_THRESHOLD"

    # Deposit bonuses (percent units, 5 = 5%)
    DEPOSIT_SELF_PERCENT_ACTIVE = "DEPOSIT_SELF_PERCENT_ACTIVE"
    DEPOSIT_L1_PERCENT = "DEPOSIT_L1_PERCENT"
    DEPOSIT_L2_PERCENT_ACTIVE = "DEPOSIT_L2_PERCENT_ACTIVE"

    # Mining
    DAILY_PROFIT_PERCENT = "DAILY_PROFIT_PERCENT"
    MINING_ROI_CAP = "MINING_ROI_CAP"

    # Team earnings
    TEAM_DAILY_PROFIT_PERCENT = "TEAM_DAILY_PROFIT_PERCENT"
    TEAM_EARNINGS_UTC_OFFSET_HOURS = "TEAM_EARNINGS_UTC_OFFSET_HOURS"

    # Locked capital
    CAPITAL_LOCK_DAYS = "CAPITAL_LOCK_DAYS"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # DEFAULTS
    # ═══════════════════════════════════════════════════════════════════════

    DEFAULTS: Dict[str, str] = {
        DATABASE_URL: "sqlite:///settlement.db",
        LOG_LEVEL: "INFO",
        ACTIVE_DEPOSIT_THRESHOLD: "80",
        DEPOSIT_SELF_PERCENT_ACTIVE: "5",
        DEPOSIT_L1_PERCENT: "15",
        DEPOSIT_L2_PERCENT_ACTIVE: "3",
        DAILY_PROFIT_PERCENT: "1.5",
        MINING_ROI_CAP: "3",
        TEAM_DAILY_PROFIT_PERCENT: "1",
        TEAM_EARNINGS_UTC_OFFSET_HOURS: "5",
        CAPITAL_LOCK_DAYS: "30",
    }

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file and process environment.

        Numeric settings are kept as strings here; consumers convert them
        to Decimal so no float ever enters money arithmetic.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            for key, default in cls.DEFAULTS.items():
                cls._config[key] = os.getenv(key, default).strip()

            # Integer settings are validated eagerly
            cls._config[cls.TEAM_EARNINGS_UTC_OFFSET_HOURS] = int(
                cls._config[cls.TEAM_EARNINGS_UTC_OFFSET_HOURS]
            )
            cls._config[cls.CAPITAL_LOCK_DAYS] = int(cls._config[cls.CAPITAL_LOCK_DAYS])

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Falls back to the built-in default for known keys when the
        environment has not been loaded yet.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in cls._config:
            return cls._config[key]
        if default is not None:
            return default
        return cls.DEFAULTS.get(key)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """
        Set configuration value (for dynamic updates).

        Args:
            key: Configuration key
            value: New value
            source: Source of the update (for logging)
        """
        cls._config[key] = value
        logger.debug(f"Config updated: {key} = {value} (source: {source})")
