"""Tests for the retrieval orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import CountingStrategy, FakeBrowser, FakeSession, make_result
from postsnap.core.exceptions import (
    EmptyResultError,
    InvalidUsernameError,
    MalformedResponseError,
    SourceUnavailableError,
)
from postsnap.core.retrieval import RetrievalService, validate_username
from postsnap.core.scrapers.page_scraper import PageScraper
from postsnap.models.data_models import SourceStrategy
from postsnap.storage.cache import CacheStore, make_fingerprint

API = SourceStrategy.STRUCTURED_API
PAGE = SourceStrategy.RENDERED_PAGE


def _service(clock, api, page, **kwargs):
    return RetrievalService(cache=CacheStore(ttl=300, clock=clock), api=api, page=page, **kwargs)


@pytest.mark.asyncio
async def test_api_success_skips_page_and_fallback(clock):
    api = CountingStrategy(API, make_result(API, 3))
    page = CountingStrategy(PAGE, make_result(PAGE, 2))
    service = _service(clock, api, page)

    result = await service.get_recent_posts("alice")

    assert result.source is API
    assert api.calls == ["alice"]
    assert page.calls == []
    assert service.get_stats()["served_by"] == {"STRUCTURED_API": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize("api_error", [
    EmptyResultError("no edges"),
    SourceUnavailableError("API returned 401"),
    MalformedResponseError("not json"),
    RuntimeError("bug in strategy"),
])
async def test_api_failure_tries_page_exactly_once(clock, api_error):
    api = CountingStrategy(API, error=api_error)
    page = CountingStrategy(PAGE, make_result(PAGE, 2, prefix="B"))
    service = _service(clock, api, page)

    result = await service.get_recent_posts("bob")

    assert result.source is PAGE
    assert len(result.items) == 2
    assert page.calls == ["bob"]
    assert service.get_stats()["contained_failures"] == 1


@pytest.mark.asyncio
async def test_empty_result_object_advances_cascade(clock):
    api = CountingStrategy(API, result=None)
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    result = await service.get_recent_posts("bob")

    assert result.source is PAGE


@pytest.mark.asyncio
async def test_carol_both_fail_uses_fallback(clock):
    api = CountingStrategy(API, error=EmptyResultError())
    page = CountingStrategy(PAGE, error=SourceUnavailableError("navigation failed"))
    service = _service(clock, api, page)

    result = await service.get_recent_posts("carol")

    assert result.success is True
    assert result.source is SourceStrategy.FALLBACK
    assert result.primary.permalink == "https://www.instagram.com/carol/"
    assert result.primary.uses_embed_fallback is True
    assert result.primary.media_url == ""
    assert result.items == (result.primary,)
    assert result.error == "No posts found"
    assert api.calls == ["carol"] and page.calls == ["carol"]
    # fallback results are cached as well
    assert service.cache.lookup(make_fingerprint("carol")).result is result


@pytest.mark.asyncio
async def test_unexpected_pipeline_fault_uses_fallback(clock):
    api = CountingStrategy(API, make_result(API, 1))
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    async def broken_cascade(username):
        raise KeyError("boom")

    service._run_cascade = broken_cascade

    result = await service.get_recent_posts("carol")

    assert result.source is SourceStrategy.FALLBACK
    assert result.success is True
    assert "boom" in result.error


@pytest.mark.asyncio
async def test_repeat_within_ttl_is_served_from_cache(clock):
    api = CountingStrategy(API, make_result(API, 3))
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    first = await service.get_recent_posts("alice")
    clock.advance(299)
    second = await service.get_recent_posts("alice")
    third = await service.get_recent_posts("Alice")

    assert second is first
    assert third is first
    assert second.to_dict() == first.to_dict()
    assert api.calls == ["alice"]
    assert service.get_stats()["cache_hits"] == 2


@pytest.mark.asyncio
async def test_after_ttl_cascade_restarts_from_api(clock):
    api = CountingStrategy(API, make_result(API, 3))
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    first = await service.get_recent_posts("alice")
    clock.advance(300)
    second = await service.get_recent_posts("alice")

    assert second is not first
    assert api.calls == ["alice", "alice"]
    assert page.calls == []


@pytest.mark.asyncio
async def test_fallback_is_cached_too(clock):
    api = CountingStrategy(API, error=EmptyResultError())
    page = CountingStrategy(PAGE, error=EmptyResultError())
    service = _service(clock, api, page)

    first = await service.get_recent_posts("carol")
    second = await service.get_recent_posts("carol")

    assert second is first
    assert len(api.calls) == 1 and len(page.calls) == 1


@pytest.mark.asyncio
async def test_item_cap_holds_end_to_end(clock):
    page = PageScraper(
        FakeBrowser(FakeSession("".join(f'<article><a href="/p/P{i}/">x</a></article>' for i in range(8)))),
        selector_timeout=0.01,
        settle_delay=0,
    )
    api = CountingStrategy(API, error=EmptyResultError())
    service = _service(clock, api, page)

    result = await service.get_recent_posts("bob")

    assert result.source is PAGE
    assert len(result.items) == 3


@pytest.mark.asyncio
async def test_page_session_closed_once_when_cascade_falls_back(clock):
    session = FakeSession("<html><body>nothing</body></html>")
    page = PageScraper(FakeBrowser(session), selector_timeout=0.01, settle_delay=0)
    api = CountingStrategy(API, error=SourceUnavailableError())
    service = _service(clock, api, page)

    result = await service.get_recent_posts("carol")

    assert result.source is SourceStrategy.FALLBACK
    assert session.close_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("username", ["", "   ", "a" * 31, "bad name", "../etc", "alice!"])
async def test_invalid_username_is_rejected(clock, username):
    api = CountingStrategy(API, make_result(API, 1))
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    with pytest.raises(InvalidUsernameError):
        await service.get_recent_posts(username)

    assert api.calls == []


def test_validate_username_trims():
    assert validate_username("  @some.user_1 ") == "some.user_1"


@pytest.mark.asyncio
async def test_cancellation_is_not_contained(clock):
    started = asyncio.Event()

    class HangingStrategy(CountingStrategy):
        async def fetch(self, username):
            self.calls.append(username)
            started.set()
            await asyncio.sleep(3600)

    api = HangingStrategy(API)
    page = CountingStrategy(PAGE, make_result(PAGE, 1))
    service = _service(clock, api, page)

    task = asyncio.create_task(service.get_recent_posts("alice"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert page.calls == []
    assert service.cache.get(make_fingerprint("alice")) is None


class GatedStrategy(CountingStrategy):
    """Blocks until released so concurrent requests overlap."""

    def __init__(self, name, result):
        super().__init__(name, result)
        self.release = asyncio.Event()

    async def fetch(self, username):
        self.calls.append(username)
        await self.release.wait()
        return self.result


@pytest.mark.asyncio
async def test_concurrent_same_user_not_coalesced_by_default(clock):
    api = GatedStrategy(API, make_result(API, 1))
    service = _service(clock, api, CountingStrategy(PAGE))

    tasks = [asyncio.create_task(service.get_recent_posts("alice")) for _ in range(2)]
    await asyncio.sleep(0)
    api.release.set()
    await asyncio.gather(*tasks)

    assert len(api.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_same_user_coalesced_when_enabled(clock):
    api = GatedStrategy(API, make_result(API, 1))
    service = _service(clock, api, CountingStrategy(PAGE), coalesce=True)

    tasks = [asyncio.create_task(service.get_recent_posts("alice")) for _ in range(3)]
    await asyncio.sleep(0)
    api.release.set()
    results = await asyncio.gather(*tasks)

    assert len(api.calls) == 1
    assert results[0] is results[1] is results[2]
    assert service._inflight == {}


@pytest.mark.asyncio
async def test_different_users_run_in_parallel(clock):
    api = GatedStrategy(API, make_result(API, 1))
    service = _service(clock, api, CountingStrategy(PAGE))

    tasks = [asyncio.create_task(service.get_recent_posts(name)) for name in ("alice", "bob")]
    await asyncio.sleep(0)
    assert sorted(api.calls) == ["alice", "bob"]
    api.release.set()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_start_and_close_manage_cache_sweeper(clock):
    service = _service(clock, CountingStrategy(API), CountingStrategy(PAGE))

    async with service:
        assert service.cache._sweeper is not None

    assert service.cache._sweeper is None


@pytest.mark.asyncio
async def test_start_starts_and_close_stops_browser_driver(clock):
    browser = MagicMock()
    browser.start = AsyncMock()
    browser.stop = AsyncMock()
    service = _service(clock, CountingStrategy(API), CountingStrategy(PAGE), browser=browser)

    async with service:
        browser.start.assert_awaited_once()

    browser.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_cached_items_cannot_be_mutated_by_callers(clock):
    api = CountingStrategy(API, make_result(API, 2))
    service = _service(clock, api, CountingStrategy(PAGE))

    first = await service.get_recent_posts("alice")
    with pytest.raises(AttributeError):
        first.items.append(first.primary)

    again = await service.get_recent_posts("alice")
    assert len(again.items) == 2
