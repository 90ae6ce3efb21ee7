"""Provider access for every LLM-backed step.

One client owns the OpenAI (chat + embeddings) and Anthropic SDK clients,
each behind its own circuit breaker. SDK imports are deferred to first
use so the package imports cleanly without keys or network.

Callers decide how to degrade: every method here raises on failure
(including ``CircuitOpenError``) and returns raw text or vectors.
"""

import logging
from typing import Any

from problem_vault.llm.circuit_breaker import CircuitBreaker
from problem_vault.llm.config import LLMConfig

logger = logging.getLogger(__name__)


def extract_json_block(text: str, opener: str = "{") -> str:
    """
    Pull a JSON document out of a model reply.

    Handles ```json fences, bare ``` fences and leading prose before the
    first ``opener`` character ("{" for objects, "[" for arrays).
    """
    trimmed = text.strip()
    if "```json" in trimmed:
        start = trimmed.index("```json") + len("```json")
        end = trimmed.find("```", start)
        if end > start:
            return trimmed[start:end].strip()
    elif "```" in trimmed:
        start = trimmed.index("```") + 3
        line_end = trimmed.find("\n", start)
        if line_end > start:
            start = line_end + 1
        end = trimmed.find("```", start)
        if end > start:
            return trimmed[start:end].strip()

    begin = trimmed.find(opener)
    if begin >= 0:
        return trimmed[begin:]
    return trimmed


class LLMClient:
    """Unified access to OpenAI and Anthropic.

    Args:
        config: API keys, models and breaker tuning.
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        self._config = config or LLMConfig()
        self._openai_client: Any = None
        self._anthropic_client: Any = None
        self._openai_breaker = CircuitBreaker(
            "openai",
            failure_threshold=self._config.circuit_failure_threshold,
            recovery_timeout=self._config.circuit_recovery_timeout,
        )
        self._anthropic_breaker = CircuitBreaker(
            "anthropic",
            failure_threshold=self._config.circuit_failure_threshold,
            recovery_timeout=self._config.circuit_recovery_timeout,
        )

    @property
    def config(self) -> LLMConfig:
        return self._config

    @property
    def openai_configured(self) -> bool:
        return self._config.openai_configured

    @property
    def anthropic_configured(self) -> bool:
        return self._config.anthropic_configured

    @property
    def openai_breaker(self) -> CircuitBreaker:
        return self._openai_breaker

    @property
    def anthropic_breaker(self) -> CircuitBreaker:
        return self._anthropic_breaker

    def _get_openai_client(self) -> Any:
        if self._openai_client is None:
            import openai

            api_key = self._config.openai_api_key
            self._openai_client = openai.AsyncOpenAI(
                api_key=api_key.get_secret_value() if api_key else None,
                timeout=self._config.llm_timeout,
            )
        return self._openai_client

    def _get_anthropic_client(self) -> Any:
        if self._anthropic_client is None:
            import anthropic

            api_key = self._config.anthropic_api_key
            self._anthropic_client = anthropic.AsyncAnthropic(
                api_key=api_key.get_secret_value() if api_key else None,
                timeout=self._config.llm_timeout,
            )
        return self._anthropic_client

    async def chat(
        self,
        system_prompt: str,
        user_message: str,
        model: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        """Single-turn OpenAI chat completion. Returns the reply text."""

        async def _call() -> str:
            client = self._get_openai_client()
            kwargs: dict[str, Any] = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                max_completion_tokens=max_tokens,
                temperature=0,
                **kwargs,
            )
            return response.choices[0].message.content or ""

        return await self._openai_breaker.call(_call)

    async def embed(self, text: str) -> list[float]:
        """Embed one text with the configured embedding model."""

        async def _call() -> list[float]:
            client = self._get_openai_client()
            response = await client.embeddings.create(
                model=self._config.embedding_model,
                input=text,
            )
            return list(response.data[0].embedding)

        return await self._openai_breaker.call(_call)

    async def message(
        self,
        system_prompt: str,
        user_message: str,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-turn Anthropic message. Returns the concatenated text blocks."""

        async def _call() -> str:
            client = self._get_anthropic_client()
            response = await client.messages.create(
                model=model or self._config.brainstorm_model,
                max_tokens=max_tokens or self._config.brainstorm_max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
            return "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            )

        return await self._anthropic_breaker.call(_call)
