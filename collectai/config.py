from pathlib import Path
from functools import lru_cache

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from pydantic import SecretStr


# Used when config/settings.yaml has no pricing section.
DEFAULT_PRICING = {
    "openai": {
        "gpt-4-turbo": {"input": 10.0, "output": 30.0, "per_tokens": 1_000_000},
    },
    "google": {
        "gemini-2.5-flash": {"input": 0.075, "output": 0.30, "per_tokens": 1_000},
    },
}

DEFAULT_COST_LIMITS = {
    "monthly_limit_usd": 1000.0,
    "daily_limit_usd": 50.0,
    "alert_threshold_percent": 80.0,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Keys
    openai_api_key: SecretStr = SecretStr("")
    gemini_api_key: SecretStr = SecretStr("")

    # Database
    database_url: str = "./data/collectai.db"

    # Server
    backend_port: int = 8000
    log_level: str = "INFO"

    # Per-call timeout for an AI backend before falling back to the other one
    backend_timeout_seconds: float = 30.0

    # Loaded from YAML
    yaml_config: dict = {}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        yaml_path = Path(__file__).parent.parent / "config" / "settings.yaml"
        if yaml_path.exists():
            with open(yaml_path, "r", encoding="utf-8") as f:
                self.yaml_config = yaml.safe_load(f) or {}

    @property
    def premium_model(self) -> str:
        return self.yaml_config.get("models", {}).get("premium", "gpt-4-turbo")

    @property
    def low_cost_model(self) -> str:
        return self.yaml_config.get("models", {}).get("low_cost", "gemini-2.5-flash")

    @property
    def pricing_config(self) -> dict:
        return self.yaml_config.get("pricing") or DEFAULT_PRICING

    @property
    def default_cost_limits(self) -> dict:
        return {**DEFAULT_COST_LIMITS, **self.yaml_config.get("cost_limits", {})}


@lru_cache
def get_settings() -> Settings:
    return Settings()
