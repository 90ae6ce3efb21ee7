"""
Product Hunt collector.

Queries the v2 GraphQL API for the most voted posts of a topic and keeps
comments on well-received products that read like criticism or a
feature request. Skips the whole run when no developer token is set.

Targets:
    any  the value is a Product Hunt topic slug

Signal payload: product_name, tagline, votes_count, comment_body,
comment_author, topic, product_url, source_url.
"""

import logging

from problem_vault.collectors.base import BaseCollector, CollectionRun, clean_text
from problem_vault.collectors.http_client import RetryConfig, RetryingHttpFetcher
from problem_vault.collectors.responses import (
    ProductHuntComment,
    ProductHuntPost,
    ProductHuntResponse,
)
from problem_vault.collectors.schemas import CollectorTarget, SourceType

logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://api.producthunt.com/v2/api/graphql"
POSTS_PER_TOPIC = 20
MIN_VOTES = 20

CONSTRUCTIVE_KEYWORDS = (
    "wish", "need", "missing", "frustrat", "annoying", "hate", "problem",
    "difficult", "hard to", "can't", "doesn't", "won't", "broken",
    "alternative", "better", "improve", "should", "lack", "pain",
)

POSTS_QUERY = """
query($topic: String!, $first: Int!) {
  posts(topic: $topic, first: $first, order: VOTES) {
    edges {
      node {
        id
        name
        tagline
        description
        url
        votesCount
        comments(first: 10) {
          edges {
            node {
              id
              body
              user { name username }
            }
          }
        }
        topics(first: 3) {
          edges { node { name } }
        }
      }
    }
  }
}
"""


def has_constructive_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in CONSTRUCTIVE_KEYWORDS)


def comment_payload(post: ProductHuntPost, comment: ProductHuntComment, topic: str) -> dict:
    user = comment.user
    return {
        "product_name": post.name or "",
        "tagline": post.tagline or "",
        "votes_count": post.votes_count,
        "comment_body": clean_text(comment.body),
        "comment_author": (user.name or user.username or "") if user else "",
        "topic": topic,
        "product_url": post.url or "",
        "source_url": post.url or "",
    }


class ProductHuntCollector(BaseCollector):
    """Collects constructive comments on popular Product Hunt launches."""

    retry_config = RetryConfig(max_retries=2, base_delay=0.5, schedule="linear")
    target_delay = 2.1

    @property
    def source_type(self) -> SourceType:
        return SourceType.PRODUCT_HUNT

    @property
    def is_configured(self) -> bool:
        return self._config.producthunt_configured

    @property
    def skip_reason(self) -> str:
        return "Product Hunt token not configured"

    def _create_fetcher(self, token) -> RetryingHttpFetcher:
        fetcher = super()._create_fetcher(token)
        fetcher.headers["Authorization"] = (
            f"Bearer {self._config.producthunt_token.get_secret_value()}"
        )
        return fetcher

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        response = await run.fetcher.post(
            GRAPHQL_URL,
            json_body={
                "query": POSTS_QUERY,
                "variables": {"topic": identifier, "first": POSTS_PER_TOPIC},
            },
        )
        data = ProductHuntResponse.model_validate(response.json()).data
        posts = data.posts if data else None
        if posts is None or not posts.edges:
            logger.debug(f"No Product Hunt posts for topic {identifier}")
            return

        for edge in posts.edges:
            if run.should_stop:
                break
            post = edge.node
            if post is None or post.votes_count < MIN_VOTES:
                continue

            for comment_edge in (post.comments.edges or []) if post.comments else []:
                if run.should_stop:
                    break
                comment = comment_edge.node
                if comment is None or not comment.body:
                    continue
                if not has_constructive_keyword(comment.body):
                    run.filtered += 1
                    continue

                source_id = f"{post.id}_{comment.id}"
                await self._store(run, source_id, comment_payload(post, comment, identifier))
