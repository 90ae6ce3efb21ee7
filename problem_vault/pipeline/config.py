"""Configuration for the signal pipeline and deduplication engine.

All settings can be overridden via PIPELINE_* environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from problem_vault.llm.prompts import EXTRACTION_PROMPT_NAME


class PipelineConfig(BaseSettings):
    """Dedup thresholds (cosine distance) and pipeline limits.

    Example:
        PIPELINE_BORDERLINE_DISTANCE=0.18
        PIPELINE_BATCH_LIMIT=500
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    definite_duplicate_distance: float = Field(
        default=0.10,
        ge=0.0,
        le=2.0,
        description="Below this distance a match is merged without asking the verifier",
    )
    borderline_distance: float = Field(
        default=0.20,
        ge=0.0,
        le=2.0,
        description="Below this distance (and above the definite one) the verifier decides",
    )
    search_radius: float = Field(
        default=0.25,
        ge=0.0,
        le=2.0,
        description="Maximum distance considered by the nearest-neighbour query",
    )
    search_limit: int = Field(default=5, ge=1, le=100)

    extraction_prompt_name: str = EXTRACTION_PROMPT_NAME
    embedding_max_chars: int = Field(default=8000, ge=100)
    batch_limit: int | None = Field(
        default=None,
        ge=1,
        description="Optional cap on signals handled per pipeline run",
    )
