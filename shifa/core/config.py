"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Shipped rulesets live next to the package, at the repository root
RULESETS_DIR = Path(__file__).parent.parent.parent / "rulesets"


class Settings(BaseSettings):
    """Application settings loaded from ``SHIFA_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SHIFA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application environment
    env: Literal["dev", "test", "staging", "prod"] = "dev"

    # Logging
    log_level: str = "INFO"

    # Bind address for `python -m shifa`
    host: str = "0.0.0.0"
    port: int = 8000

    # Triage profiles: name -> ruleset file under rulesets_dir
    rulesets_dir: Path = RULESETS_DIR
    default_profile: str = "mass-casualty"
    profiles: dict[str, str] = {
        "mass-casualty": "mass-casualty-triage-v1.0.0.yaml",
        "first-responder": "first-responder-triage-v1.0.0.yaml",
    }

    # When set, a malformed condition fails the profile load; otherwise it is
    # kept as a condition that never matches
    strict_conditions: bool = False

    # Load every profile during startup so a broken ruleset shows up early
    preload_profiles: bool = True

    # Sessions live in memory only; the oldest is dropped past this count
    max_sessions: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def check_default_profile(self) -> "Settings":
        """The default profile must be one of the configured profiles."""
        if self.default_profile not in self.profiles:
            raise ValueError(
                f"default_profile '{self.default_profile}' is not in profiles "
                f"({', '.join(sorted(self.profiles)) or 'none configured'})"
            )
        return self

    def profile_path(self, profile: str) -> Path:
        """Get the ruleset path configured for a profile.

        Raises:
            KeyError: If the profile is not configured
        """
        return self.rulesets_dir / self.profiles[profile]

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode."""
        return self.env == "prod"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
