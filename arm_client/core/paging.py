"""
Lazily paginated result sequences.

`PagedSequence` and `AsyncPagedSequence` turn a page fetcher,
``fetch(cursor) -> Page``, into a single forward-only stream of items. Pages are
fetched on demand, one at a time, and never ahead of the consumer. Cursors are
opaque: they are forwarded to the fetcher exactly as the server returned them.

A sequence is single pass. To traverse again, build a new one (optionally from
a saved `continuation_token`). Calls on one sequence must be sequential.
"""

from dataclasses import replace
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Final,
    Generic,
    Iterator,
    TypeVar,
)

from loguru import logger

from arm_client.core.effects import FetchPage, Flow
from arm_client.core.models import Page
from arm_client.core.runner import run_async, run_sync
from arm_client.exceptions.operations import MalformedServerResponse
from arm_client.utils.cancellation import CancellationToken

T = TypeVar("T")

PageFetcher = Callable[[str | None], Page[T]]
AsyncPageFetcher = Callable[[str | None], Awaitable[Page[T]]]


class _EndOfSequence:
    def __repr__(self) -> str:
        return "END_OF_SEQUENCE"


END_OF_SEQUENCE: Final = _EndOfSequence()


class PagingState(Generic[T]):
    def __init__(
        self,
        fetcher: Callable[[str | None], Any],
        first_page: Page[T] | None = None,
        continuation_token: str | None = None,
    ) -> None:
        if first_page is not None and continuation_token is not None:
            raise ValueError("Pass either first_page or continuation_token, not both")

        self._fetcher = fetcher
        self._current_page: Page[T] | None = first_page
        self._position = 0
        self._page_delivered = False
        self.pages_fetched = 0
        if first_page is None:
            self._cursor = continuation_token
            self._exhausted = False
        else:
            self._cursor = first_page.next_cursor
            self._exhausted = first_page.is_last

    @property
    def continuation_token(self) -> str | None:
        """Cursor the next fetch will use, None once the last page was fetched."""
        return None if self._exhausted else self._cursor

    @property
    def current_page(self) -> Page[T] | None:
        return self._current_page

    def _fetch_flow(self) -> Flow[Page[T]]:
        cursor = self._cursor
        page = yield FetchPage(self._fetcher, cursor)
        if not isinstance(page, Page):
            raise MalformedServerResponse(
                f"Page fetcher returned {type(page).__name__} instead of a Page"
            )

        self._current_page = page
        self._position = 0
        self._page_delivered = False
        self._cursor = page.next_cursor
        self._exhausted = page.is_last
        self.pages_fetched += 1
        logger.debug(
            f"Fetched page {self.pages_fetched} with {len(page.items)} items,"
            f" {'last page' if page.is_last else 'more pages available'}"
        )
        return page

    def next_item_flow(self) -> Flow[T | _EndOfSequence]:
        while True:
            page = self._current_page
            if page is not None and self._position < len(page.items):
                item = page.items[self._position]
                self._position += 1
                return item
            if self._exhausted:
                return END_OF_SEQUENCE
            # An empty page that still has a cursor is not the end.
            yield from self._fetch_flow()

    def next_page_flow(self) -> Flow[Page[T] | _EndOfSequence]:
        page = self._current_page
        if page is not None and not self._page_delivered:
            consumed = self._position
            if consumed == 0 or consumed < len(page.items):
                self._mark_delivered()
                if consumed == 0:
                    return page
                return replace(page, items=page.items[consumed:])

        if self._exhausted:
            return END_OF_SEQUENCE
        page = yield from self._fetch_flow()
        self._mark_delivered()
        return page

    def _mark_delivered(self) -> None:
        self._page_delivered = True
        self._position = len(self._current_page.items) if self._current_page else 0


class PagedSequence(PagingState[T], Iterator[T]):
    def __init__(
        self,
        fetcher: PageFetcher[T],
        first_page: Page[T] | None = None,
        continuation_token: str | None = None,
    ) -> None:
        super().__init__(fetcher, first_page, continuation_token)

    def __iter__(self) -> "PagedSequence[T]":
        return self

    def __next__(self) -> T:
        return self.next_item()

    def next_item(self, cancel_token: CancellationToken | None = None) -> T:
        item = run_sync(self.next_item_flow(), cancel_token=cancel_token)
        if isinstance(item, _EndOfSequence):
            raise StopIteration
        return item

    def next_page(self, cancel_token: CancellationToken | None = None) -> Page[T]:
        page = run_sync(self.next_page_flow(), cancel_token=cancel_token)
        if isinstance(page, _EndOfSequence):
            raise StopIteration
        return page

    def by_page(self, cancel_token: CancellationToken | None = None) -> Iterator[Page[T]]:
        while True:
            try:
                page = self.next_page(cancel_token)
            except StopIteration:
                return
            yield page


class AsyncPagedSequence(PagingState[T], AsyncIterator[T]):
    def __init__(
        self,
        fetcher: AsyncPageFetcher[T],
        first_page: Page[T] | None = None,
        continuation_token: str | None = None,
    ) -> None:
        super().__init__(fetcher, first_page, continuation_token)

    def __aiter__(self) -> "AsyncPagedSequence[T]":
        return self

    async def __anext__(self) -> T:
        return await self.next_item()

    async def next_item(self, cancel_token: CancellationToken | None = None) -> T:
        item = await run_async(self.next_item_flow(), cancel_token=cancel_token)
        if isinstance(item, _EndOfSequence):
            raise StopAsyncIteration
        return item

    async def next_page(self, cancel_token: CancellationToken | None = None) -> Page[T]:
        page = await run_async(self.next_page_flow(), cancel_token=cancel_token)
        if isinstance(page, _EndOfSequence):
            raise StopAsyncIteration
        return page

    async def by_page(
        self, cancel_token: CancellationToken | None = None
    ) -> AsyncIterator[Page[T]]:
        while True:
            try:
                page = await self.next_page(cancel_token)
            except StopAsyncIteration:
                return
            yield page


def start_paged_sequence(
    fetcher: PageFetcher[T],
    first_page: Page[T] | None = None,
    continuation_token: str | None = None,
) -> PagedSequence[T]:
    return PagedSequence(fetcher, first_page, continuation_token)


def start_async_paged_sequence(
    fetcher: AsyncPageFetcher[T],
    first_page: Page[T] | None = None,
    continuation_token: str | None = None,
) -> AsyncPagedSequence[T]:
    return AsyncPagedSequence(fetcher, first_page, continuation_token)
