"""Cursor pagination over ``after``/``before``/``limit`` list endpoints."""

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

PageFetcher = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class CursorPage(BaseModel):
    """A single page returned by a list endpoint."""

    items: List[Dict[str, Any]] = Field(default_factory=list)
    first_id: Optional[str] = None
    last_id: Optional[str] = None
    has_more: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CursorPage":
        """Build a page from a ``{data, first_id, last_id, has_more}`` body.

        Some endpoints omit ``first_id``/``last_id``; they are derived from
        the ids of the first and last items in that case.
        """
        items = list(payload.get("data") or [])
        first_id = payload.get("first_id")
        last_id = payload.get("last_id")
        if first_id is None and items:
            first_id = items[0].get("id")
        if last_id is None and items:
            last_id = items[-1].get("id")
        return cls(
            items=items,
            first_id=first_id,
            last_id=last_id,
            has_more=bool(payload.get("has_more", False)),
        )


class CursorWalker:
    """Lazy, forward-only walk over a cursor-paginated collection.

    The remote API gives no snapshot isolation: a collection mutated while
    it is walked may yield duplicated or skipped items. To restart, discard
    the walker and build a new one.
    """

    def __init__(
        self,
        fetch: PageFetcher,
        limit: Optional[int] = None,
        order: Optional[str] = None,
        reverse: bool = False,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the walker.

        Args:
            fetch: Coroutine function fetching one raw page for given params
            limit: Page size sent as ``limit``
            order: Optional ``asc``/``desc`` sort order
            reverse: Walk backwards using ``before=<first_id>``
            extra_params: Extra query parameters sent with every page
        """
        self._fetch = fetch
        self.limit = limit
        self.order = order
        self.reverse = reverse
        self.extra_params = dict(extra_params or {})
        self.pages_fetched = 0
        self._exhausted = False

    def _params(self, cursor: Optional[str]) -> Dict[str, Any]:
        params = dict(self.extra_params)
        if self.limit is not None:
            params["limit"] = self.limit
        if self.order is not None:
            params["order"] = self.order
        if cursor:
            params["before" if self.reverse else "after"] = cursor
        return params

    async def next_page(self, cursor: Optional[str] = None) -> CursorPage:
        """Fetch the page following ``cursor`` (or the first page when empty).

        Args:
            cursor: ``last_id`` of the previous page (``first_id`` in reverse)

        Returns:
            The next CursorPage
        """
        payload = await self._fetch(self._params(cursor))
        self.pages_fetched += 1
        page = CursorPage.from_payload(payload)
        logger.debug(
            "Fetched list page",
            page=self.pages_fetched,
            items=len(page.items),
            has_more=page.has_more,
        )
        return page

    async def pages(self) -> AsyncIterator[CursorPage]:
        """Yield pages until the collection reports ``has_more = false``."""
        if self._exhausted:
            return
        cursor: Optional[str] = None
        while True:
            page = await self.next_page(cursor)
            yield page
            if not page.has_more or not page.items:
                break
            cursor = page.first_id if self.reverse else page.last_id
        self._exhausted = True

    async def items(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield items across all pages in order."""
        async for page in self.pages():
            for item in page.items:
                yield item

    async def collect(self, max_items: Optional[int] = None) -> List[Dict[str, Any]]:
        """Gather items into a list, optionally stopping after ``max_items``."""
        collected: List[Dict[str, Any]] = []
        async for item in self.items():
            collected.append(item)
            if max_items is not None and len(collected) >= max_items:
                break
        return collected

    async def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        """Return the first item matching ``predicate``, fetching lazily."""
        async for item in self.items():
            if predicate(item):
                return item
        return None
