"""
LLM brainstorm collector.

Asks Claude for a batch of concrete software-solvable problems per
industry and stores each one as a signal. Skips the whole run when no
Anthropic key is configured.

Targets:
    any  the value is an industry name

Signal payload: title, description, target_customer, problem_type,
monetization_model, estimated_pain_intensity, industry, confidence.
"""

import logging

from pydantic import TypeAdapter, ValidationError

from problem_vault.collectors.base import BaseCollector, CollectionRun, stable_hash
from problem_vault.collectors.responses import BrainstormProblem
from problem_vault.collectors.schemas import CollectorTarget, SourceType
from problem_vault.llm.client import LLMClient, extract_json_block
from problem_vault.llm.prompts import BRAINSTORM_SYSTEM_PROMPT, BRAINSTORM_USER_TEMPLATE

logger = logging.getLogger(__name__)

_PROBLEM_LIST = TypeAdapter(list[BrainstormProblem])


def parse_problems(reply: str) -> list[BrainstormProblem]:
    """Parse the model's JSON array. Unparseable replies yield no problems."""
    try:
        return _PROBLEM_LIST.validate_json(extract_json_block(reply, opener="["))
    except (ValidationError, ValueError) as e:
        logger.warning(f"Unparseable brainstorm reply: {e}")
        return []


def brainstorm_source_id(industry: str, title: str) -> str:
    namespace = industry.lower().replace(" ", "_")
    return f"llm_{namespace}_{stable_hash(title.lower().strip(), length=12)}"


class LlmBrainstormCollector(BaseCollector):
    """Generates problem statements per industry with an LLM."""

    def __init__(self, *args, llm: LLMClient | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._llm = llm or LLMClient()

    @property
    def source_type(self) -> SourceType:
        return SourceType.LLM_BRAINSTORM

    @property
    def is_configured(self) -> bool:
        return self._llm.anthropic_configured

    @property
    def skip_reason(self) -> str:
        return "Anthropic API key not configured"

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        reply = await self._llm.message(
            BRAINSTORM_SYSTEM_PROMPT,
            BRAINSTORM_USER_TEMPLATE.format(industry=identifier),
        )
        if not reply.strip():
            logger.warning(f"Empty brainstorm reply for industry {identifier!r}")
            return

        for problem in parse_problems(reply):
            if run.should_stop:
                break
            title = (problem.title or "").strip()
            if not title:
                run.filtered += 1
                continue

            payload = problem.model_dump()
            payload.update({"industry": identifier, "confidence": "ai_predicted"})
            await self._store(run, brainstorm_source_id(identifier, title), payload)
