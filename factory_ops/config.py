"""
Settings for the record store and the automation engine.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """
    Very simple settings holder.
    Reads DATABASE_URL from environment if present,
    otherwise defaults to local sqlite file.
    """

    def __init__(self) -> None:
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./factory_ops.db")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.seed_demo_data: bool = _env_flag("SEED_DEMO_DATA")
        self.automation_autostart: bool = _env_flag("AUTOMATION_AUTOSTART")


settings = Settings()


@dataclass
class DelayPolicy:
    """
    How "planned date in the past" is decided for the order_delay trigger.

    Planned dates are stored naive; ``timezone`` names the zone they are
    expressed in. With ``business_days_only`` an order only counts as delayed
    once a full Mon-Fri day has passed after its planned date.
    """
    timezone: str = "UTC"
    grace_hours: float = 0.0
    business_days_only: bool = False


@dataclass
class AutomationConfig:
    """Configuration for the scheduling and rule engines."""

    # Dry-run switch: when False, mutating actions compute but don't persist
    WRITE_ENABLED: bool = True

    # Critical path
    DEFAULT_DURATION_HOURS: float = 8.0
    CRITICAL_SLACK_TOLERANCE: float = 0.01

    # Rules
    DEFAULT_DEBOUNCE_MINUTES: int = 60
    EVALUATION_INTERVAL_SECONDS: int = 300

    # Order delay policy
    DELAY_TIMEZONE: str = "UTC"
    DELAY_GRACE_HOURS: float = 0.0
    DELAY_BUSINESS_DAYS_ONLY: bool = False

    @classmethod
    def from_env(cls) -> "AutomationConfig":
        """Load config from environment variables."""
        return cls(
            WRITE_ENABLED=_env_flag("AUTOMATION_WRITE_ENABLED", "true"),
            DEFAULT_DURATION_HOURS=float(os.getenv("AUTOMATION_DEFAULT_DURATION_HOURS", "8")),
            CRITICAL_SLACK_TOLERANCE=float(os.getenv("AUTOMATION_SLACK_TOLERANCE", "0.01")),
            DEFAULT_DEBOUNCE_MINUTES=int(os.getenv("AUTOMATION_DEFAULT_DEBOUNCE_MINUTES", "60")),
            EVALUATION_INTERVAL_SECONDS=int(os.getenv("AUTOMATION_INTERVAL_SECONDS", "300")),
            DELAY_TIMEZONE=os.getenv("AUTOMATION_DELAY_TIMEZONE", "UTC"),
            DELAY_GRACE_HOURS=float(os.getenv("AUTOMATION_DELAY_GRACE_HOURS", "0")),
            DELAY_BUSINESS_DAYS_ONLY=_env_flag("AUTOMATION_DELAY_BUSINESS_DAYS_ONLY"),
        )

    @property
    def delay_policy(self) -> DelayPolicy:
        return DelayPolicy(
            timezone=self.DELAY_TIMEZONE,
            grace_hours=self.DELAY_GRACE_HOURS,
            business_days_only=self.DELAY_BUSINESS_DAYS_ONLY,
        )


# Global config instance
_config: Optional[AutomationConfig] = None


def get_config() -> AutomationConfig:
    """Get or create global config."""
    global _config
    if _config is None:
        _config = AutomationConfig.from_env()
    return _config


def set_dry_run(enabled: bool = True):
    """Enable or disable dry-run (advisory) mode."""
    config = get_config()
    config.WRITE_ENABLED = not enabled
    return {"dry_run": enabled, "write_enabled": not enabled}


def is_write_enabled() -> bool:
    """Check if actions are allowed to modify records."""
    return get_config().WRITE_ENABLED
