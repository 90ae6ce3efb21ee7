"""
GitHub issue collector.

Searches open issues through the REST search API. Heavily reacted issues
with a given label or topic are the strongest signal of unmet demand.

Targets:
    LABEL  issues carrying the label with more than 10 reactions
    TOPIC  issues mentioning the phrase with more than 5 reactions
    other  plain phrase search over open issues

Signal payload: title, body, reactions, reactions_plus_one, comments,
labels, repo, url.
"""

import logging

from problem_vault.collectors.base import BaseCollector, CollectionRun
from problem_vault.collectors.http_client import RetryConfig
from problem_vault.collectors.responses import GitHubIssue, GitHubSearchResponse
from problem_vault.collectors.schemas import TARGET_LABEL, TARGET_TOPIC, CollectorTarget, SourceType

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.github.com/search/issues"
PER_PAGE = 30
MAX_PAGES = 3
MAX_BODY_LENGTH = 5000


def build_search_query(target: CollectorTarget) -> str:
    value = target.target_value
    if target.target_type == TARGET_LABEL:
        return f'is:issue is:open label:"{value}" reactions:>10 sort:reactions-+1'
    if target.target_type == TARGET_TOPIC:
        return f'is:issue is:open "{value}" reactions:>5 sort:reactions-+1'
    return f'is:issue is:open "{value}"'


def repo_name(repository_url: str | None) -> str:
    """``owner/name`` from an API repository URL."""
    if not repository_url or "/repos/" not in repository_url:
        return ""
    return repository_url.split("/repos/", 1)[1]


def issue_payload(issue: GitHubIssue) -> dict:
    body = issue.body or ""
    if len(body) > MAX_BODY_LENGTH:
        body = body[:MAX_BODY_LENGTH] + "..."
    reactions = issue.reactions
    return {
        "title": issue.title or "",
        "body": body,
        "reactions": reactions.total_count if reactions else 0,
        "reactions_plus_one": reactions.plus_one if reactions else 0,
        "comments": issue.comments,
        "labels": [label.name for label in issue.labels or [] if label.name],
        "repo": repo_name(issue.repository_url),
        "url": issue.html_url or "",
    }


class GitHubIssueCollector(BaseCollector):
    """Collects open GitHub issues, a fixed number of pages per target."""

    # The search API answers 403 (and sometimes 429) when rate limited.
    retry_config = RetryConfig(
        max_retries=2,
        base_delay=1.0,
        schedule="linear",
        rate_limit_statuses=frozenset({403, 429}),
        rate_limit_backoff=60.0,
    )
    request_delay = 2.0

    def __init__(self, *args, target_delay: float | None = None, **kwargs):
        super().__init__(*args, target_delay=target_delay, **kwargs)
        # The search rate limit spans targets, so pace them like pages.
        if target_delay is None:
            self.target_delay = self.request_delay

    def _create_fetcher(self, token):
        fetcher = super()._create_fetcher(token)
        fetcher.headers["Accept"] = "application/vnd.github+json"
        if self._config.github_configured:
            fetcher.headers["Authorization"] = (
                f"Bearer {self._config.github_token.get_secret_value()}"
            )
        return fetcher

    @property
    def source_type(self) -> SourceType:
        return SourceType.GITHUB

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        query = build_search_query(target)
        logger.debug(f"GitHub search: {query}")

        for page in range(1, MAX_PAGES + 1):
            if run.should_stop:
                break

            response = await run.fetcher.get(
                SEARCH_URL,
                params={"q": query, "per_page": PER_PAGE, "page": page},
            )
            issues = GitHubSearchResponse.model_validate(response.json()).items or []
            if not issues:
                break

            for issue in issues:
                if run.should_stop:
                    break
                await self._store(run, str(issue.id), issue_payload(issue))

            run.last_cursor = str(page)

            if page < MAX_PAGES and not await run.token.sleep(self.request_delay):
                break
