"""LLM tie-break for borderline duplicate candidates."""

import logging

from problem_vault.llm.client import LLMClient
from problem_vault.llm.prompts import VERIFICATION_SYSTEM_PROMPT, VERIFICATION_USER_TEMPLATE
from problem_vault.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class LlmDuplicateVerifier:
    """Answers whether two problem statements describe the same problem.

    Defaults to "not duplicate" whenever the model is unavailable.
    """

    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    async def is_duplicate(
        self,
        title_a: str,
        description_a: str,
        title_b: str,
        description_b: str,
    ) -> bool:
        if not self._llm.openai_configured:
            logger.warning("OpenAI not configured, treating borderline match as different")
            return False

        config = self._llm.config
        try:
            reply = await self._llm.chat(
                VERIFICATION_SYSTEM_PROMPT,
                VERIFICATION_USER_TEMPLATE.format(
                    title_a=title_a,
                    description_a=description_a,
                    title_b=title_b,
                    description_b=description_b,
                ),
                model=config.verification_model,
                max_tokens=config.verification_max_tokens,
            )
        except Exception as e:
            get_metrics().record_llm_error("openai", "verify")
            logger.warning(f"Duplicate verification failed, treating as different: {e}")
            return False

        answer = reply.strip().upper()
        return "DUPLICATE" in answer and "DIFFERENT" not in answer
