"""Configuration for the source collectors.

All settings can be overridden via COLLECTOR_* environment variables.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectorsConfig(BaseSettings):
    """Collector credentials and HTTP behaviour.

    Example:
        COLLECTOR_GITHUB_TOKEN=ghp_...
        COLLECTOR_PRODUCTHUNT_TOKEN=...
    """

    model_config = SettingsConfigDict(
        env_prefix="COLLECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    http_timeout: float = Field(default=30.0, gt=0.0)
    user_agent: str = Field(
        default="problem-vault/0.1.0",
        description="User-Agent sent to every source (Reddit rejects generic agents)",
    )

    github_token: SecretStr | None = Field(
        default=None,
        description="Optional GitHub token; raises the search API rate limit",
    )
    producthunt_token: SecretStr | None = Field(
        default=None,
        description="Product Hunt developer token; the collector skips without it",
    )

    default_max_items: int = Field(default=100, ge=1)
    seed_targets_on_startup: bool = False

    @property
    def github_configured(self) -> bool:
        return self.github_token is not None and bool(self.github_token.get_secret_value())

    @property
    def producthunt_configured(self) -> bool:
        return self.producthunt_token is not None and bool(
            self.producthunt_token.get_secret_value()
        )
