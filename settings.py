from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    openai_api_key: str

    model: str = "gpt-4o"
    data_dir: Path = Path("./data")
    token_batch_interval_ms: int = 500
    stage_timeout_seconds: float | None = None
    email_batch_size: int = 5
    max_email_leads: int = 10
    lead_preview_limit: int = 5
    sender_name: str = "Bella"
    scrape_max_chars: int = 8000
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CAMPAIGN_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator(
        "token_batch_interval_ms",
        "email_batch_size",
        "max_email_leads",
        "lead_preview_limit",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("stage_timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("stage_timeout_seconds must be positive when set")
        return v

    @property
    def token_batch_interval(self) -> float:
        """Batching window in seconds, as used by the stage runner."""
        return self.token_batch_interval_ms / 1000.0

    @property
    def campaigns_dir(self) -> Path:
        return self.data_dir / "campaigns"

    @property
    def leads_file(self) -> Path:
        return self.data_dir / "leads.json"
