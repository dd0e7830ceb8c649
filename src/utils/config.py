"""
Configuration management for the Production Fulfillment core.

This module handles:
- Database path/URL configuration
- Environment-specific configuration (development vs. production)
- Lot consumption settings (cost-change tolerance, shortfall policy)
- Dispatch defaults
"""

import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_LOT_COST_TOLERANCE_PERCENT,
    DEFAULT_PALLET_COUNT,
    DEFAULT_SHORTFALL_POLICY,
    SHORTFALL_POLICIES,
)

logger = logging.getLogger(__name__)

ENV_VAR_ENVIRONMENT = "FULFILLMENT_ENV"
ENV_VAR_DATABASE_URL = "FULFILLMENT_DATABASE_URL"
ENV_VAR_LOT_COST_TOLERANCE = "FULFILLMENT_LOT_COST_TOLERANCE"
ENV_VAR_SHORTFALL_POLICY = "FULFILLMENT_SHORTFALL_POLICY"


class Config:
    """
    Application configuration manager.

    Handles database location and the tunables of the consumption engine.
    Values come from constructor arguments first, then environment
    variables, then the defaults in constants.py.
    """

    def __init__(
        self,
        environment: str = "production",
        database_url: Optional[str] = None,
        lot_cost_tolerance_percent: Optional[Decimal] = None,
        shortfall_policy: Optional[str] = None,
        default_pallet_count: int = DEFAULT_PALLET_COUNT,
    ):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
            database_url: Explicit SQLAlchemy URL; overrides the file location
            lot_cost_tolerance_percent: Cost delta (%) above which a lot change alerts
            shortfall_policy: 'block' or 'warn'
            default_pallet_count: Pallets created when a sales order sets none
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url = database_url or os.environ.get(ENV_VAR_DATABASE_URL)

        if lot_cost_tolerance_percent is None:
            lot_cost_tolerance_percent = _decimal_from_env(
                ENV_VAR_LOT_COST_TOLERANCE, DEFAULT_LOT_COST_TOLERANCE_PERCENT
            )
        if lot_cost_tolerance_percent < 0:
            raise ValueError("lot_cost_tolerance_percent cannot be negative")
        self.lot_cost_tolerance_percent = Decimal(str(lot_cost_tolerance_percent))

        if shortfall_policy is None:
            shortfall_policy = os.environ.get(ENV_VAR_SHORTFALL_POLICY, DEFAULT_SHORTFALL_POLICY)
        if shortfall_policy not in SHORTFALL_POLICIES:
            raise ValueError(
                f"Unknown shortfall policy '{shortfall_policy}'. "
                f"Expected one of: {', '.join(SHORTFALL_POLICIES)}"
            )
        self.shortfall_policy = shortfall_policy

        if default_pallet_count < 1:
            raise ValueError("default_pallet_count must be >= 1")
        self.default_pallet_count = default_pallet_count

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.fulfillment
        """
        return Path.home() / ".fulfillment"

    def _ensure_directories(self):
        """Create necessary directories if they don't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            The explicit URL when one was configured, otherwise a SQLite URL
            pointing at database_path.
        """
        if self._database_url:
            return self._database_url

        self._ensure_directories()
        # Use forward slashes for SQLite URL
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"Config(environment='{self.environment}', "
            f"shortfall_policy='{self.shortfall_policy}', "
            f"lot_cost_tolerance_percent={self.lot_cost_tolerance_percent})"
        )


def _decimal_from_env(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a decimal number, got '{raw}'") from e


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents accidental database
    switching mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    FULFILLMENT_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VAR_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def set_config(config: Config) -> None:
    """
    Replace the global configuration instance.

    Used by embedding applications and tests that need non-default settings.
    """
    global _config_instance
    _config_instance = config


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
