"""
structlog setup shared by the CLI and the API.

Services and routes log structlog key/value events; collectors, stores
and the LLM client use plain ``logging.getLogger(__name__)``. Both write
to stdout; structlog events render as JSON in production and through the
console renderer otherwise. Values bound with ``bind_context`` (request
ids, source types) are merged into every structlog event.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from problem_vault.config.settings import get_settings

_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncio", "openai", "anthropic", "asyncpg")


def _renderer(production: bool) -> list[Processor]:
    if production:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Overrides ``LOG_LEVEL`` (the CLI passes ``DEBUG`` for --debug).
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *_renderer(settings.is_production),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level or settings.log_level,
        force=True,
    )
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Attach fields to every later structlog event in this context (request ids in the API)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
