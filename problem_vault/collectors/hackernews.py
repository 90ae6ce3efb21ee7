"""
Hacker News collector.

Uses the Algolia search API. Engagement thresholds are part of the query
itself (``numericFilters``), so every returned hit is accepted.

Targets:
    KEYWORD  comments mentioning the keyword with more than 2 points
    other    Ask HN posts mentioning the value with more than 10 points

Signal payload: title, text, points, url, author, source_url.
"""

import logging

from problem_vault.collectors.base import BaseCollector, CollectionRun, html_to_text
from problem_vault.collectors.http_client import RetryConfig
from problem_vault.collectors.responses import HackerNewsHit, HackerNewsSearchResponse
from problem_vault.collectors.schemas import TARGET_KEYWORD, CollectorTarget, SourceType

logger = logging.getLogger(__name__)

SEARCH_URL = "https://hn.algolia.com/api/v1/search"
ITEM_URL = "https://news.ycombinator.com/item?id={object_id}"
HITS_PER_PAGE = 50
MAX_PAGES = 5


def search_params(target: CollectorTarget, page: int) -> dict:
    if target.target_type == TARGET_KEYWORD:
        tags, numeric_filters = "comment", "points>2"
    else:
        tags, numeric_filters = "ask_hn", "points>10"
    return {
        "query": target.target_value,
        "tags": tags,
        "numericFilters": numeric_filters,
        "hitsPerPage": HITS_PER_PAGE,
        "page": page,
    }


def hit_payload(hit: HackerNewsHit, text: str) -> dict:
    item_url = ITEM_URL.format(object_id=hit.object_id)
    return {
        "title": hit.title or hit.story_title or "",
        "text": text,
        "points": hit.points or 0,
        "url": hit.url or hit.story_url or item_url,
        "author": hit.author or "",
        "source_url": item_url,
    }


class HackerNewsCollector(BaseCollector):
    """Collects Hacker News comments and Ask HN posts page by page."""

    retry_config = RetryConfig(max_retries=2, base_delay=0.5, schedule="linear")

    @property
    def source_type(self) -> SourceType:
        return SourceType.HACKER_NEWS

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        for page in range(MAX_PAGES):
            if run.should_stop:
                break

            response = await run.fetcher.get(SEARCH_URL, params=search_params(target, page))
            result = HackerNewsSearchResponse.model_validate(response.json())
            hits = result.hits or []
            if not hits:
                break

            for hit in hits:
                if run.should_stop:
                    break
                text = html_to_text(hit.comment_text or hit.story_text)
                if not text and not (hit.title or "").strip():
                    run.filtered += 1
                    continue
                await self._store(run, hit.object_id, hit_payload(hit, text))

            run.last_cursor = str(page + 1)

            if page + 1 >= result.nb_pages:
                break
            if self.request_delay and not await run.token.sleep(self.request_delay):
                break
