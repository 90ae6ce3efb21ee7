"""
Upwork job feed collector.

Fetches the public job-search RSS feed per keyword. Every entry is kept;
budget figures are pulled out of the description rather than used as a
filter. A failing feed only skips its own keyword.

Targets:
    any  the value is a search keyword

Signal payload: title, description, budget_min, budget_max, link,
pub_date.
"""

import logging
import re
from datetime import datetime, timezone
from urllib.parse import quote_plus

import feedparser

from problem_vault.collectors.base import BaseCollector, CollectionRun, clean_text, html_to_text
from problem_vault.collectors.http_client import HttpFetchError, RetryConfig
from problem_vault.collectors.schemas import CollectorTarget, SourceType

logger = logging.getLogger(__name__)

FEED_URL = "https://www.upwork.com/ab/feed/jobs/rss?q={query}&sort=recency"

BUDGET_PATTERN = re.compile(r"\$([\d,]+(?:\.\d{2})?)")


def extract_budget(description: str | None) -> tuple[str, str]:
    """
    Pull (min, max) dollar amounts out of a job description.

    The first amount is the minimum and a second one, if present, the
    maximum. Missing amounts come back as empty strings.
    """
    if not description or not description.strip():
        return "", ""
    amounts = [match.replace(",", "") for match in BUDGET_PATTERN.findall(description)[:2]]
    budget_min = amounts[0] if amounts else ""
    budget_max = amounts[1] if len(amounts) > 1 else ""
    return budget_min, budget_max


def published_iso(entry) -> str:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return ""
    return datetime(*parsed[:6], tzinfo=timezone.utc).isoformat()


class UpworkCollector(BaseCollector):
    """Collects Upwork job postings for each keyword target."""

    retry_config = RetryConfig(max_retries=1, base_delay=1.0, schedule="fixed")
    target_delay = 1.0
    target_errors = (HttpFetchError, ValueError)

    @property
    def source_type(self) -> SourceType:
        return SourceType.UPWORK

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        response = await run.fetcher.get(FEED_URL.format(query=quote_plus(identifier)))
        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            raise ValueError(f"unreadable feed: {feed.get('bozo_exception')}")

        for entry in feed.entries:
            if run.should_stop:
                break

            link = entry.get("link")
            source_id = link or entry.get("id")
            if not source_id:
                continue

            description = html_to_text(entry.get("description") or entry.get("summary"))
            budget_min, budget_max = extract_budget(description)
            payload = {
                "title": clean_text(entry.get("title")),
                "description": description,
                "budget_min": budget_min,
                "budget_max": budget_max,
                "link": link or "",
                "pub_date": published_iso(entry),
            }
            await self._store(run, source_id, payload)
