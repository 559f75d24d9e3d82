"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RISK_LEVEL_SPELLINGS = ("None", "Low", "Medium", "High", "Critical")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_env: str = "development"
    app_debug: bool = False

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    llm_max_tokens: int = 4000
    llm_temperature: float = 0.1

    # Report recovery
    default_risk_level: str = "Medium"
    unparsed_recommendation: str = "Analysis could not be fully parsed. Manual review required."
    recommendation_window: int = 300
    truncated_field_window: int = 1000

    # Static detection merge: "escalate" raises overall_risk_level to the
    # merged patterns' level, "flag" leaves it for the validator to reject.
    risk_escalation_policy: Literal["escalate", "flag"] = "escalate"

    # Optional audit guidelines appended to every analysis prompt
    audit_guidelines_path: str | None = None

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    @field_validator("default_risk_level", mode="after")
    @classmethod
    def validate_default_risk_level(cls, v: str) -> str:
        """Ensure the fallback risk level uses a canonical spelling."""
        for spelling in RISK_LEVEL_SPELLINGS:
            if v.strip().lower() == spelling.lower():
                return spelling
        raise ValueError(
            f"default_risk_level must be one of {', '.join(RISK_LEVEL_SPELLINGS)}, got {v!r}"
        )

    @field_validator("recommendation_window", "truncated_field_window", mode="after")
    @classmethod
    def validate_windows(cls, v: int, info) -> int:
        """Ensure scan windows are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive number of characters")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def escalate_on_merge(self) -> bool:
        return self.risk_escalation_policy == "escalate"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
