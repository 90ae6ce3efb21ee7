"""Configuration for LLM and embedding providers.

All settings can be overridden via LLM_* environment variables.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """API keys, model selection and circuit breaker tuning.

    Example:
        LLM_OPENAI_API_KEY=sk-...
        LLM_ANTHROPIC_API_KEY=sk-ant-...
    """

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI key for extraction, verification, scoring and embeddings",
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic key for the brainstorm collector",
    )

    extraction_model: str = "gpt-4o-mini"
    verification_model: str = "gpt-4o-mini"
    scoring_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = Field(default=1536, ge=1)
    brainstorm_model: str = "claude-3-haiku-20240307"

    extraction_max_tokens: int = Field(default=1000, ge=1)
    verification_max_tokens: int = Field(default=10, ge=1)
    scoring_max_tokens: int = Field(default=500, ge=1)
    brainstorm_max_tokens: int = Field(default=4096, ge=1)

    llm_timeout: float = Field(default=60.0, gt=0.0)

    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout: float = Field(default=60.0, gt=0.0)

    @property
    def openai_configured(self) -> bool:
        return self.openai_api_key is not None and bool(
            self.openai_api_key.get_secret_value().strip()
        )

    @property
    def anthropic_configured(self) -> bool:
        return self.anthropic_api_key is not None and bool(
            self.anthropic_api_key.get_secret_value().strip()
        )
