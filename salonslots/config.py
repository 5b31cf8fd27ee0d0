"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator

from .adapters.memory_store import SAMPLE_DATA_FILE
from .domain.models import VALID_GRANULARITIES, BookingRules

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BookingRulesConfig(BaseModel):
    """Fallback booking rules for salons without their own."""
    min_lead_time_minutes: int = 120
    max_booking_horizon_days: int = 60
    slot_granularity_minutes: int = 15
    reservation_hold_minutes: int = 15
    auto_confirm_online_bookings: bool = False
    cancellation_cutoff_hours: int = 24
    allow_customer_cancellation: bool = True
    max_concurrent_reservations_per_customer: int = 2

    @field_validator("min_lead_time_minutes", "cancellation_cutoff_hours")
    @classmethod
    def validate_not_negative(cls, value: int) -> int:
        """Ensure the value is zero or more."""
        if value < 0:
            raise ValueError(f"Value must not be negative, got {value}")
        return value

    @field_validator(
        "max_booking_horizon_days",
        "reservation_hold_minutes",
        "max_concurrent_reservations_per_customer",
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure the value is greater than zero."""
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Only grid steps that divide an hour evenly are allowed."""
        if value not in VALID_GRANULARITIES:
            raise ValueError(
                f"slot_granularity_minutes must be one of {VALID_GRANULARITIES}, got {value}"
            )
        return value

    def to_domain(self) -> BookingRules:
        """Convert to the domain value object."""
        return BookingRules(**self.model_dump())


class AppConfig(BaseModel):
    """Application configuration."""
    salon_id: str
    timezone: str = "Europe/Zurich"
    data_file: Optional[Path] = None
    days_to_fetch: int = 14
    log_level: str = "INFO"
    booking_rules: BookingRulesConfig = Field(default_factory=BookingRulesConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone exists in the tz database."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("days_to_fetch")
    @classmethod
    def validate_days_to_fetch(cls, value: int) -> int:
        """Ensure at least one day is searched."""
        if value <= 0:
            raise ValueError("days_to_fetch must be greater than zero")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and check the logging level name."""
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {value}")
        return level

    def get_data_file(self) -> Path:
        """Return the salon data file, falling back to the bundled sample."""
        return self.data_file or SAMPLE_DATA_FILE

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        A relative ``data_file`` is resolved against the config file's
        directory.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        data_file = data.get("data_file")
        if data_file and not Path(data_file).is_absolute():
            data["data_file"] = config_path.parent / data_file

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
