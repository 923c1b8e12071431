"""
Tests for the per-source fetchers against mocked HTTP transports.

Run with: pytest tests/test_sources.py -v
"""

import json

import httpx
import pytest

from src.archivist.schemas import MonitorSnapshot
from src.common.token_cache import TokenCache
from src.config.settings import settings
from src.harvester.registry import FETCHERS, get_fetcher_class
from src.harvester.sources import DevToFetcher, HackerNewsFetcher, ProductHuntFetcher, RedditFetcher
from src.harvester.sources.devto import to_tag
from src.harvester.sources.hackernews import build_query


def snapshot(**fields) -> MonitorSnapshot:
    fields.setdefault("id", "mon-1")
    fields.setdefault("user_id", "user-1")
    fields.setdefault("name", "Acme watch")
    fields.setdefault("company_name", "Acme")
    fields.setdefault("keywords", ["acme cloud"])
    return MonitorSnapshot(**fields)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHackerNews:

    def test_build_query_quotes_phrases(self):
        assert build_query(["Acme", "acme cloud"]) == 'Acme OR "acme cloud"'

    @pytest.mark.asyncio
    async def test_fetch_maps_and_filters_hits(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"hits": [
                {"objectID": "123", "title": "Acme raises seed", "author": "pg",
                 "created_at_i": 1_790_000_000, "points": 42},
                {"objectID": "124", "title": "Unrelated story", "created_at_i": 1_790_000_001},
                {"objectID": "125", "title": None},
            ]})

        async with HackerNewsFetcher(client=mock_client(handler)) as fetcher:
            items = await fetcher.fetch_candidates(snapshot())

        params = requests[0].url.params
        assert requests[0].url.path == "/api/v1/search_by_date"
        assert params["query"] == 'Acme OR "acme cloud"'
        assert params["tags"] == "story"
        assert params["numericFilters"].startswith("created_at_i>")

        assert len(items) == 1
        assert items[0].source_url == "https://news.ycombinator.com/item?id=123"
        assert items[0].author == "pg"
        assert items[0].posted_at is not None
        assert items[0].metadata["points"] == 42
        assert items[0].metadata["matched_terms"] == ["Acme"]

    @pytest.mark.asyncio
    async def test_no_terms_makes_no_request(self):
        def handler(request):
            raise AssertionError("unexpected request")

        async with HackerNewsFetcher(client=mock_client(handler)) as fetcher:
            assert await fetcher.fetch_candidates(snapshot(company_name=None, keywords=[])) == []

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        async with HackerNewsFetcher(client=mock_client(lambda r: httpx.Response(503))) as fetcher:
            with pytest.raises(httpx.HTTPStatusError):
                await fetcher.fetch_candidates(snapshot())


def listing(*posts):
    return {"data": {"children": [{"data": p} for p in posts]}}


class TestReddit:

    @pytest.mark.asyncio
    async def test_failing_community_is_skipped(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if "/r/saas/" in request.url.path:
                return httpx.Response(500)
            return httpx.Response(200, json=listing(
                {"title": "Anyone tried Acme?", "permalink": "/r/startups/comments/abc/",
                 "author": "founder", "subreddit": "startups", "created_utc": 1_790_000_000},
                {"title": "Hiring thread", "permalink": "/r/startups/comments/def/"},
            ))

        monitor = snapshot(source_config={"reddit": {"communities": ["startups", "r/saas"]}})
        async with RedditFetcher(client=mock_client(handler)) as fetcher:
            items = await fetcher.fetch_candidates(monitor)

        assert paths == ["/r/startups/new.json", "/r/saas/new.json"]
        assert [i.source_url for i in items] == ["https://reddit.com/r/startups/comments/abc/"]
        assert items[0].metadata["subreddit"] == "startups"

    @pytest.mark.asyncio
    async def test_site_search_without_communities(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["q"] = request.url.params["q"]
            return httpx.Response(200, json=listing(
                {"title": "Acme Cloud outage", "permalink": "/r/devops/comments/xyz/"},
            ))

        async with RedditFetcher(client=mock_client(handler)) as fetcher:
            items = await fetcher.fetch_candidates(snapshot())

        assert seen == {"path": "/search.json", "q": 'Acme OR "acme cloud"'}
        assert len(items) == 1


class TestDevTo:

    def test_to_tag(self):
        assert to_tag("Acme Cloud!") == "acmecloud"

    @pytest.mark.asyncio
    async def test_articles_deduplicated_across_tags(self):
        tags = []

        def handler(request: httpx.Request) -> httpx.Response:
            tags.append(request.url.params["tag"])
            return httpx.Response(200, json=[
                {"id": 1, "title": "Building on Acme", "url": "https://dev.to/a/1",
                 "published_at": "2026-10-17T08:00:00Z", "user": {"username": "ann"}},
            ])

        async with DevToFetcher(client=mock_client(handler)) as fetcher:
            items = await fetcher.fetch_candidates(snapshot(keywords=["acme", "Acme Cloud"]))

        assert tags == ["acme", "acmecloud"]
        assert len(items) == 1
        assert items[0].author == "ann"

    @pytest.mark.asyncio
    async def test_search_query_narrows_tag_hits(self):
        def handler(request):
            return httpx.Response(200, json=[
                {"id": 1, "title": "Acme pricing", "url": "https://dev.to/a/1"},
                {"id": 2, "title": "Acme tutorial", "url": "https://dev.to/a/2"},
            ])

        async with DevToFetcher(client=mock_client(handler)) as fetcher:
            items = await fetcher.fetch_candidates(snapshot(search_query="acme -pricing"))

        assert [i.source_url for i in items] == ["https://dev.to/a/2"]


class TestProductHunt:

    @pytest.fixture
    def credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_api_key", "client-id")
        monkeypatch.setattr(settings, "producthunt_api_secret", "client-secret")

    @staticmethod
    def handler(calls, graphql_status=200):
        def _handle(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/oauth/token"):
                calls.append("token")
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            calls.append(request.headers["Authorization"])
            if graphql_status != 200:
                return httpx.Response(graphql_status)
            return httpx.Response(200, json={"data": {"posts": {"edges": [
                {"node": {"id": "9", "name": "Acme 2.0", "tagline": "Faster widgets",
                          "url": "https://www.producthunt.com/posts/acme-2",
                          "createdAt": "2026-10-18T07:00:00Z", "votesCount": 120}},
                {"node": {"id": "10", "name": "Other thing", "tagline": "Nothing related"}},
            ]}}})
        return _handle

    @pytest.mark.asyncio
    async def test_token_reused_across_fetches(self, credentials):
        calls = []
        async with ProductHuntFetcher(client=mock_client(self.handler(calls))) as fetcher:
            first = await fetcher.fetch_candidates(snapshot())
            await fetcher.fetch_candidates(snapshot(id="mon-2"))

        assert calls == ["token", "Bearer tok", "Bearer tok"]
        assert [i.title for i in first] == ["Acme 2.0"]
        assert first[0].body == "Faster widgets"
        assert first[0].metadata["votes"] == 120

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token(self, credentials):
        calls = []
        cache = TokenCache()
        fetcher = ProductHuntFetcher(client=mock_client(self.handler(calls, 401)), token_cache=cache)
        async with fetcher:
            with pytest.raises(httpx.HTTPStatusError):
                await fetcher.fetch_candidates(snapshot())

        assert cache.get("producthunt") is None

    @pytest.mark.asyncio
    async def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_api_key", "")

        def handler(request):
            raise AssertionError("unexpected request")

        async with ProductHuntFetcher(client=mock_client(handler)) as fetcher:
            assert await fetcher.fetch_candidates(snapshot()) == []


class TestRegistry:

    def test_registered_sources(self):
        assert set(FETCHERS) == {"hackernews", "reddit", "devto", "producthunt"}
        assert get_fetcher_class("reddit") is RedditFetcher
        assert get_fetcher_class("youtube") is None

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = mock_client(lambda r: httpx.Response(200, json={"hits": []}))
        async with HackerNewsFetcher(client=client):
            pass
        assert not client.is_closed
        await client.aclose()
