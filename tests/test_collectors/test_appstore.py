"""Tests for the App Store review collector."""

import httpx
import pytest
import respx

from problem_vault.collectors.appstore import (
    CATEGORY_APP_IDS,
    REVIEWS_URL,
    AppStoreCollector,
    parse_rating,
    review_id,
)
from problem_vault.collectors.base import stable_hash
from problem_vault.collectors.responses import AppStoreEntry
from problem_vault.collectors.schemas import CollectionStatus, CollectorRunConfig, SourceType
from tests.fakes import FAST_RETRY, FakeTargetRepository, make_target

LONG_COMPLAINT = (
    "Sync keeps failing every time I add an attachment and support never answers my tickets."
)


def _entry(rating: str, content: str, review_id: str | None = "9001", author: str = "sam") -> dict:
    entry = {
        "author": {"name": {"label": author}},
        "im:rating": {"label": rating},
        "im:version": {"label": "4.2.1"},
        "title": {"label": "Frustrating"},
        "content": {"label": content},
        "updated": {"label": "2026-01-10T08:00:00-07:00"},
    }
    if review_id:
        entry["id"] = {"label": f"label-{review_id}", "attributes": {"im:id": review_id}}
    return entry


def _collector(targets, signal_repo, collectors_config) -> AppStoreCollector:
    return AppStoreCollector(
        targets, signal_repo, collectors_config, retry_config=FAST_RETRY, target_delay=0
    )


def _config() -> CollectorRunConfig:
    return CollectorRunConfig(source_type=SourceType.APP_STORE, max_items=100)


class TestHelpers:
    def test_parse_rating_defaults_unparseable_to_five(self):
        entry = AppStoreEntry.model_validate({"im:rating": {"label": "n/a"}})
        assert parse_rating(entry) == 5

    def test_parse_rating_missing(self):
        assert parse_rating(AppStoreEntry()) == 5

    def test_review_id_prefers_im_id(self):
        entry = AppStoreEntry.model_validate(_entry("1", LONG_COMPLAINT, review_id="42"))
        assert review_id(entry, LONG_COMPLAINT) == "42"

    def test_review_id_falls_back_to_hash(self):
        entry = AppStoreEntry.model_validate(_entry("1", LONG_COMPLAINT, review_id=None))
        assert review_id(entry, LONG_COMPLAINT) == stable_hash(f"sam|{LONG_COMPLAINT}")


class TestAppStoreCollector:
    @pytest.mark.asyncio
    @respx.mock
    async def test_keeps_low_rated_substantive_reviews(self, signal_repo, collectors_config):
        respx.get(REVIEWS_URL.format(app_id="123")).mock(
            return_value=httpx.Response(
                200,
                json={
                    "feed": {
                        "entry": [
                            _entry("2", LONG_COMPLAINT, review_id="9001"),
                            _entry("5", LONG_COMPLAINT, review_id="9002"),
                            _entry("1", "Meh.", review_id="9003"),
                            _entry("oops", LONG_COMPLAINT, review_id="9004"),
                        ]
                    }
                },
            )
        )
        targets = FakeTargetRepository([make_target(SourceType.APP_STORE, "APP_ID", "123")])

        result = await _collector(targets, signal_repo, collectors_config).collect(_config())

        assert result.status == CollectionStatus.COMPLETED
        assert result.items_collected == 1
        payload = signal_repo.payloads(SourceType.APP_STORE)["123_9001"]
        assert payload["rating"] == 2
        assert payload["app_id"] == "123"
        assert payload["version"] == "4.2.1"
        assert payload["source_url"] == "https://apps.apple.com/app/id123"

    @pytest.mark.asyncio
    @respx.mock
    async def test_single_entry_feed(self, signal_repo, collectors_config):
        respx.get(REVIEWS_URL.format(app_id="123")).mock(
            return_value=httpx.Response(200, json={"feed": {"entry": _entry("1", LONG_COMPLAINT)}})
        )
        targets = FakeTargetRepository([make_target(SourceType.APP_STORE, "APP_ID", "123")])

        result = await _collector(targets, signal_repo, collectors_config).collect(_config())

        assert result.items_collected == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_category_target_fetches_each_known_app(self, signal_repo, collectors_config):
        route = respx.get(url__startswith="https://itunes.apple.com/rss/customerreviews/").mock(
            return_value=httpx.Response(200, json={"feed": {}})
        )
        targets = FakeTargetRepository([make_target(SourceType.APP_STORE, "CATEGORY", "Finance")])

        result = await _collector(targets, signal_repo, collectors_config).collect(_config())

        assert result.status == CollectionStatus.COMPLETED
        assert route.call_count == len(CATEGORY_APP_IDS["Finance"])

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_category_is_empty(self, signal_repo, collectors_config):
        targets = FakeTargetRepository([make_target(SourceType.APP_STORE, "CATEGORY", "Games")])

        result = await _collector(targets, signal_repo, collectors_config).collect(_config())

        assert result.status == CollectionStatus.COMPLETED
        assert result.items_collected == 0
