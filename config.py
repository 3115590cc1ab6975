"""
Configuration module for the salon booking checkout engine.
Loads environment variables and provides typed configuration.
"""

from datetime import time
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class DayHours(BaseModel):
    """Opening hours for a single weekday."""

    open: bool = True
    start: time = time(9, 0)
    end: time = time(19, 0)


def default_working_hours() -> Dict[str, DayHours]:
    """Working hours the salon ships with (Sunday closed)."""
    weekday = DayHours(open=True, start=time(9, 0), end=time(19, 0))
    return {
        "monday": weekday,
        "tuesday": weekday,
        "wednesday": weekday,
        "thursday": weekday,
        "friday": weekday,
        "saturday": DayHours(open=True, start=time(10, 0), end=time(18, 0)),
        "sunday": DayHours(open=False, start=time(10, 0), end=time(16, 0)),
    }


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Use the in-memory store instead of Supabase (demo / local development)
    use_memory_store: bool = False

    # Business rules
    timezone: str = "Europe/Prague"
    max_booking_days: int = 7
    working_hours: Dict[str, DayHours] = Field(default_factory=default_working_hours)
    max_parallel_appointments: Optional[int] = (
        None  # Business-wide slot capacity, None means no shared limit
    )

    # Backend calls
    request_timeout_seconds: float = 10.0
    catalog_cache_ttl_minutes: int = 5

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    environment: str = "development"  # development, staging, production

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validate_all_required(self) -> None:
        """
        Validate that all settings needed by the Supabase store are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if self.use_memory_store:
            return

        required_fields = ["supabase_url", "supabase_key"]

        missing = []
        for field in required_fields:
            value = getattr(self, field, None)

            if not value:
                missing.append(field)
                continue

            # Check for placeholder values
            if str(value).lower().startswith("your_"):
                missing.append(field)

        if self.max_booking_days < 0:
            missing.append("max_booking_days")

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
