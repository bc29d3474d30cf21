"""Tests for cursor pagination over list endpoints."""

from typing import Any, Dict, List

import pytest

from reconciler.clients.pagination import CursorPage, CursorWalker


def collection(count: int) -> List[Dict[str, Any]]:
    return [{"id": f"obj_{i}"} for i in range(1, count + 1)]


class RecordingFetcher:
    """Serves a fixed collection the way the list endpoints do."""

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(dict(params))
        ids = [item["id"] for item in self.items]
        limit = params.get("limit", 20)

        if "before" in params:
            end = ids.index(params["before"])
            start = max(0, end - limit)
            chunk = self.items[start:end]
            has_more = start > 0
        else:
            start = ids.index(params["after"]) + 1 if "after" in params else 0
            chunk = self.items[start:start + limit]
            has_more = start + limit < len(self.items)

        return {
            "object": "list",
            "data": chunk,
            "first_id": chunk[0]["id"] if chunk else None,
            "last_id": chunk[-1]["id"] if chunk else None,
            "has_more": has_more,
        }


class TestCursorPage:
    """Test CursorPage parsing."""

    def test_from_payload(self):
        page = CursorPage.from_payload({
            "data": collection(2),
            "first_id": "obj_1",
            "last_id": "obj_2",
            "has_more": True,
        })

        assert len(page.items) == 2
        assert page.first_id == "obj_1"
        assert page.last_id == "obj_2"
        assert page.has_more is True

    def test_cursor_ids_derived_from_items(self):
        page = CursorPage.from_payload({"data": collection(3)})

        assert page.first_id == "obj_1"
        assert page.last_id == "obj_3"
        assert page.has_more is False

    def test_empty_page(self):
        page = CursorPage.from_payload({"data": [], "has_more": False})

        assert page.items == []
        assert page.first_id is None


@pytest.mark.asyncio
class TestCursorWalker:
    """Test the lazy walk over a collection."""

    async def test_five_items_in_pages_of_two(self):
        fetcher = RecordingFetcher(collection(5))
        walker = CursorWalker(fetcher, limit=2)

        pages = [page async for page in walker.pages()]

        assert [len(page.items) for page in pages] == [2, 2, 1]
        assert [page.has_more for page in pages] == [True, True, False]
        assert fetcher.calls == [
            {"limit": 2},
            {"limit": 2, "after": "obj_2"},
            {"limit": 2, "after": "obj_4"},
        ]

    async def test_items_preserve_order(self):
        walker = CursorWalker(RecordingFetcher(collection(5)), limit=2)

        items = [item["id"] async for item in walker.items()]

        assert items == ["obj_1", "obj_2", "obj_3", "obj_4", "obj_5"]

    async def test_reverse_walk_uses_before(self):
        fetcher = RecordingFetcher(collection(5))
        walker = CursorWalker(fetcher, limit=2, reverse=True)

        first = await walker.next_page("obj_5")
        second = await walker.next_page(first.first_id)

        assert [item["id"] for item in first.items] == ["obj_3", "obj_4"]
        assert [item["id"] for item in second.items] == ["obj_1", "obj_2"]
        assert fetcher.calls[1]["before"] == "obj_3"

    async def test_find_fetches_lazily(self):
        fetcher = RecordingFetcher(collection(10))
        walker = CursorWalker(fetcher, limit=2)

        found = await walker.find(lambda item: item["id"] == "obj_2")

        assert found == {"id": "obj_2"}
        assert walker.pages_fetched == 1

    async def test_find_returns_none_when_absent(self):
        walker = CursorWalker(RecordingFetcher(collection(3)), limit=2)

        assert await walker.find(lambda item: item["id"] == "missing") is None

    async def test_collect_with_limit(self):
        walker = CursorWalker(RecordingFetcher(collection(5)), limit=2)

        collected = await walker.collect(max_items=3)

        assert [item["id"] for item in collected] == ["obj_1", "obj_2", "obj_3"]

    async def test_exhausted_walker_yields_nothing(self):
        fetcher = RecordingFetcher(collection(3))
        walker = CursorWalker(fetcher, limit=5)

        assert len(await walker.collect()) == 3
        assert await walker.collect() == []
        assert len(fetcher.calls) == 1

    async def test_extra_params_and_order_are_sent(self):
        fetcher = RecordingFetcher(collection(1))
        walker = CursorWalker(fetcher, limit=10, order="asc", extra_params={"emails": ["a@example.com"]})

        await walker.collect()

        assert fetcher.calls[0] == {"emails": ["a@example.com"], "limit": 10, "order": "asc"}

    async def test_walker_over_client(self, client, fake_api):
        fake_api.add("GET", "/files", {"data": collection(2), "has_more": False})

        items = await client.walker("/files", limit=2).collect()

        assert [item["id"] for item in items] == ["obj_1", "obj_2"]
        assert fake_api.requests[0].url.params["limit"] == "2"
