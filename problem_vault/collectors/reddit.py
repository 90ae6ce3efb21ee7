"""
Reddit collector.

Reads public JSON listings: the hot listing of a subreddit, or a
site-wide relevance search for anything else. Pages are chained with
Reddit's ``after`` token and the run stops when no token comes back.

Targets:
    SUBREDDIT  /r/{value}/hot.json
    other      /search.json?q={value}

Signal payload: title, selftext, score, subreddit, url, author,
num_comments.
"""

import logging
import re

from problem_vault.collectors.base import BaseCollector, CollectionRun, clean_text
from problem_vault.collectors.http_client import RetryConfig
from problem_vault.collectors.responses import RedditListingResponse, RedditPost
from problem_vault.collectors.schemas import TARGET_SUBREDDIT, CollectorTarget, SourceType

logger = logging.getLogger(__name__)

BASE_URL = "https://www.reddit.com"
PAGE_LIMIT = 100
MAX_PAGES = 3
MIN_SCORE = 5
MIN_SELFTEXT_LENGTH = 50


def listing_request(target: CollectorTarget, after: str | None) -> tuple[str, dict]:
    params: dict = {"limit": PAGE_LIMIT, "t": "year", "raw_json": 1}
    if target.target_type == TARGET_SUBREDDIT:
        url = f"{BASE_URL}/r/{target.target_value}/hot.json"
    else:
        url = f"{BASE_URL}/search.json"
        params.update({"q": target.target_value, "sort": "relevance"})
    if after:
        params["after"] = after
    return url, params


def clean_reddit_markdown(text: str) -> str:
    """Strip Reddit markdown down to plain text."""
    text = re.sub(r"^>+\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*{1,2}([^*]+)\*{1,2}", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"```[^`]*```", "", text)
    text = re.sub(r"~~([^~]+)~~", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    return clean_text(text)


def is_accepted(post: RedditPost) -> bool:
    return post.score >= MIN_SCORE and len(post.selftext or "") >= MIN_SELFTEXT_LENGTH


def post_payload(post: RedditPost) -> dict:
    return {
        "title": post.title or "",
        "selftext": clean_reddit_markdown(post.selftext or ""),
        "score": post.score,
        "subreddit": post.subreddit or "",
        "url": f"{BASE_URL}{post.permalink or ''}",
        "author": post.author or "",
        "num_comments": post.num_comments,
    }


class RedditCollector(BaseCollector):
    """Collects self-posts with real engagement and a substantive body."""

    retry_config = RetryConfig(max_retries=2, base_delay=1.0, schedule="linear")
    request_delay = 0.6

    @property
    def source_type(self) -> SourceType:
        return SourceType.REDDIT

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        after: str | None = None

        for _ in range(MAX_PAGES):
            if run.should_stop:
                break

            url, params = listing_request(target, after)
            response = await run.fetcher.get(url, params=params)
            data = RedditListingResponse.model_validate(response.json()).data
            children = (data.children or []) if data else []
            if not children:
                break

            for child in children:
                if run.should_stop:
                    break
                post = child.data
                if post is None:
                    continue
                if not is_accepted(post):
                    run.filtered += 1
                    continue
                await self._store(run, post.id, post_payload(post))

            after = data.after
            run.last_cursor = after
            if not after:
                break
            if not await run.token.sleep(self.request_delay):
                break
