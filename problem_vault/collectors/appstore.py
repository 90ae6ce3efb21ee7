"""
App Store review collector.

Pulls the most recent customer reviews per app from Apple's public
review RSS feed (JSON flavour) and keeps the unhappy, substantive ones.

Targets:
    APP_ID    a numeric App Store id, fetched as-is
    CATEGORY  a category name, resolved through CATEGORY_APP_IDS

Signal payload: author, title, content, rating, version, date, app_id,
source_url.
"""

import logging

from problem_vault.collectors.base import BaseCollector, CollectionRun, clean_text, stable_hash
from problem_vault.collectors.http_client import RetryConfig
from problem_vault.collectors.responses import AppStoreEntry, AppStoreReviewsResponse
from problem_vault.collectors.schemas import TARGET_APP_ID, CollectorTarget, SourceType

logger = logging.getLogger(__name__)

REVIEWS_URL = "https://itunes.apple.com/rss/customerreviews/id={app_id}/sortBy=mostRecent/json"
APP_URL = "https://apps.apple.com/app/id{app_id}"

MAX_RATING = 3
MIN_REVIEW_LENGTH = 50
# Reviews without a parseable rating are treated as 5 stars and dropped.
DEFAULT_RATING = 5

# Well-known apps per category, used when a target names a category
# rather than an app.
CATEGORY_APP_IDS: dict[str, list[str]] = {
    "Productivity": ["1274495053", "904280696", "1150188240"],
    "Business": ["507874739", "1176895641", "883919818"],
    "Finance": ["349179070", "1209657334", "310583154"],
    "Education": ["906237743", "1247608645", "568903335"],
    "Health & Fitness": ["1069348216", "1089047252", "1059232953"],
}


def parse_rating(entry: AppStoreEntry) -> int:
    label = entry.rating.label if entry.rating else None
    try:
        return int(label) if label is not None else DEFAULT_RATING
    except ValueError:
        logger.debug(f"Unparseable App Store rating: {label!r}")
        return DEFAULT_RATING


def review_id(entry: AppStoreEntry, content: str) -> str:
    """Apple's review id, else its id label, else a hash of the review itself."""
    if entry.id is not None:
        if entry.id.attributes is not None and entry.id.attributes.im_id:
            return entry.id.attributes.im_id
        if entry.id.label:
            return entry.id.label
    author = entry.author.name.label if entry.author and entry.author.name else ""
    return stable_hash(f"{author}|{content}")


def _label(value) -> str:
    return (value.label or "") if value is not None else ""


class AppStoreCollector(BaseCollector):
    """Collects low-rated App Store reviews, one feed page per app."""

    retry_config = RetryConfig(max_retries=2, base_delay=0.5, schedule="linear")

    @property
    def source_type(self) -> SourceType:
        return SourceType.APP_STORE

    def resolve_target(self, target: CollectorTarget) -> list[str]:
        if target.target_type == TARGET_APP_ID:
            return [target.target_value]
        app_ids = CATEGORY_APP_IDS.get(target.target_value, [])
        if not app_ids:
            logger.warning(f"No known apps for App Store category {target.target_value!r}")
        return app_ids

    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        response = await run.fetcher.get(REVIEWS_URL.format(app_id=identifier))
        feed = AppStoreReviewsResponse.model_validate(response.json()).feed
        entries = feed.entries if feed else []
        if not entries:
            logger.debug(f"No App Store reviews for app {identifier}")
            return

        for entry in entries:
            if run.should_stop:
                break

            rating = parse_rating(entry)
            content = _label(entry.content)
            if rating > MAX_RATING or len(content) <= MIN_REVIEW_LENGTH:
                run.filtered += 1
                continue

            source_id = f"{identifier}_{review_id(entry, content)}"
            payload = {
                "author": _label(entry.author.name) if entry.author else "",
                "title": clean_text(_label(entry.title)),
                "content": clean_text(content),
                "rating": rating,
                "version": _label(entry.version),
                "date": _label(entry.updated),
                "app_id": identifier,
                "source_url": APP_URL.format(app_id=identifier),
            }
            await self._store(run, source_id, payload)
