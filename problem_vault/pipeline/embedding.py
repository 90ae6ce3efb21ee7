"""Embedding generation for candidate problems."""

import logging

from problem_vault.llm.client import LLMClient
from problem_vault.observability.metrics import get_metrics
from problem_vault.pipeline.config import PipelineConfig

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Turns (title, description) into a vector, or None when unavailable."""

    def __init__(self, llm: LLMClient, config: PipelineConfig | None = None) -> None:
        self._llm = llm
        self._config = config or PipelineConfig()

    def embedding_text(self, title: str, description: str) -> str:
        return f"{title}. {description}"[: self._config.embedding_max_chars]

    async def embed(self, title: str, description: str) -> list[float] | None:
        if not self._llm.openai_configured:
            logger.warning("OpenAI not configured, skipping embedding")
            return None

        try:
            vector = await self._llm.embed(self.embedding_text(title, description))
        except Exception as e:
            get_metrics().record_llm_error("openai", "embed")
            logger.warning(f"Embedding failed for {title!r}: {e}")
            return None

        expected = self._llm.config.embedding_dimensions
        if len(vector) != expected:
            logger.warning(f"Embedding has {len(vector)} dimensions, expected {expected}")
            return None
        return vector
