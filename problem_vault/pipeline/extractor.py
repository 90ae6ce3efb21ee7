"""Problem extraction: one raw signal in, one candidate problem (or none) out."""

import logging

from pydantic import ValidationError

from problem_vault.collectors.schemas import Signal
from problem_vault.llm.circuit_breaker import CircuitOpenError
from problem_vault.llm.client import LLMClient, extract_json_block
from problem_vault.llm.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_TEMPLATE,
    SOURCE_HINTS,
)
from problem_vault.observability.metrics import get_metrics
from problem_vault.pipeline.config import PipelineConfig
from problem_vault.pipeline.repository import PromptRepository
from problem_vault.pipeline.schemas import ExtractedProblem

logger = logging.getLogger(__name__)


def parse_extraction(reply: str) -> ExtractedProblem:
    """Parse the model reply; anything unparseable counts as no problem."""
    try:
        return ExtractedProblem.model_validate_json(extract_json_block(reply, opener="{"))
    except (ValidationError, ValueError) as e:
        logger.warning(f"Unparseable extraction reply: {e}")
        return ExtractedProblem.no_problem()


class LlmProblemExtractor:
    """
    Extracts a structured business problem from a signal with GPT.

    The system prompt can be overridden through the ``llm_prompt`` table;
    a hint specific to the signal's source is always appended.
    """

    def __init__(
        self,
        llm: LLMClient,
        prompts: PromptRepository | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._llm = llm
        self._prompts = prompts
        self._config = config or PipelineConfig()

    @property
    def is_configured(self) -> bool:
        return self._llm.openai_configured

    async def system_prompt(self, source_type: str) -> str:
        base = None
        if self._prompts is not None:
            base = await self._prompts.get_active_system_prompt(
                self._config.extraction_prompt_name
            )
        return (base or EXTRACTION_SYSTEM_PROMPT) + SOURCE_HINTS.get(source_type, "")

    async def extract(self, signal: Signal) -> ExtractedProblem:
        if not self.is_configured:
            logger.warning("OpenAI not configured, cannot extract problems")
            return ExtractedProblem.no_problem()

        source_type = signal.source_type.value
        system_prompt = await self.system_prompt(source_type)
        user_message = EXTRACTION_USER_TEMPLATE.format(
            source_type=source_type,
            raw_text=signal.raw_text,
        )

        config = self._llm.config
        try:
            reply = await self._llm.chat(
                system_prompt,
                user_message,
                model=config.extraction_model,
                max_tokens=config.extraction_max_tokens,
                json_mode=True,
            )
        except CircuitOpenError:
            get_metrics().record_llm_error("openai", "extract")
            logger.warning(f"Extraction skipped for signal {signal.id}: circuit open")
            return ExtractedProblem.no_problem()
        except Exception as e:
            get_metrics().record_llm_error("openai", "extract")
            logger.warning(f"Extraction failed for signal {signal.id}: {e}")
            return ExtractedProblem.no_problem()

        return parse_extraction(reply)
