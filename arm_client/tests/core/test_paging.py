import threading
import time

import pytest

from arm_client.core.models import Page
from arm_client.core.paging import PagedSequence, start_paged_sequence
from arm_client.exceptions.operations import MalformedServerResponse, OperationCancelled
from arm_client.exceptions.transport import TransientTransportError
from arm_client.utils.cancellation import CancellationToken


class RecordingFetcher:
    def __init__(self, pages: dict[str | None, Page[str] | Exception]) -> None:
        self.pages = pages
        self.cursors: list[str | None] = []

    def __call__(self, cursor: str | None) -> Page[str]:
        self.cursors.append(cursor)
        page = self.pages[cursor]
        if isinstance(page, Exception):
            # Fail once, then serve the page on the next attempt.
            self.pages[cursor] = self.pages.pop(f"retry:{cursor}")
            raise page
        return page


def test_items_are_concatenated_in_page_order() -> None:
    fetcher = RecordingFetcher(
        {None: Page(["a", "b"], "c2"), "c2": Page(["c"])}
    )

    assert list(start_paged_sequence(fetcher)) == ["a", "b", "c"]
    assert fetcher.cursors == [None, "c2"]


def test_many_pages_fetch_exactly_once_each() -> None:
    pages = {
        None: Page(["p0"], "1"),
        "1": Page(["p1a", "p1b"], "2"),
        "2": Page(["p2"], "3"),
        "3": Page(["p3"]),
    }
    fetcher = RecordingFetcher(pages)
    sequence = start_paged_sequence(fetcher)

    assert list(sequence) == ["p0", "p1a", "p1b", "p2", "p3"]
    assert fetcher.cursors == [None, "1", "2", "3"]
    assert sequence.pages_fetched == 4

    with pytest.raises(StopIteration):
        next(sequence)
    assert len(fetcher.cursors) == 4


def test_empty_middle_page_does_not_end_the_sequence() -> None:
    fetcher = RecordingFetcher(
        {None: Page(["a"], "p2"), "p2": Page([], "p3"), "p3": Page(["b"])}
    )
    sequence = start_paged_sequence(fetcher)

    assert sequence.next_item() == "a"
    assert sequence.next_item() == "b"
    assert fetcher.cursors == [None, "p2", "p3"]


def test_empty_last_page_ends_immediately() -> None:
    fetcher = RecordingFetcher({None: Page([])})

    assert list(start_paged_sequence(fetcher)) == []
    assert fetcher.cursors == [None]


def test_pages_are_fetched_on_demand_only() -> None:
    fetcher = RecordingFetcher({None: Page(["a", "b"], "c2"), "c2": Page(["c"])})
    sequence = start_paged_sequence(fetcher)

    assert next(sequence) == "a"
    assert next(sequence) == "b"

    assert fetcher.cursors == [None]
    assert sequence.continuation_token == "c2"


def test_provided_first_page_is_not_refetched() -> None:
    fetcher = RecordingFetcher({"c2": Page(["c"])})
    sequence = start_paged_sequence(fetcher, first_page=Page(["a", "b"], "c2"))

    assert list(sequence) == ["a", "b", "c"]
    assert fetcher.cursors == ["c2"]


def test_last_first_page_needs_no_fetch() -> None:
    fetcher = RecordingFetcher({})

    assert list(start_paged_sequence(fetcher, first_page=Page(["only"]))) == ["only"]
    assert fetcher.cursors == []


def test_resume_from_continuation_token() -> None:
    fetcher = RecordingFetcher({"c2": Page(["c"])})
    sequence = start_paged_sequence(fetcher, continuation_token="c2")

    assert list(sequence) == ["c"]
    assert sequence.continuation_token is None
    assert fetcher.cursors == ["c2"]


def test_first_page_and_continuation_token_are_exclusive() -> None:
    with pytest.raises(ValueError):
        PagedSequence(RecordingFetcher({}), Page(["a"], "x"), "x")


def test_cursors_are_passed_through_verbatim() -> None:
    cursor = "https://management.azure.com/subs?api-version=2021&%24skiptoken=a%3D%3D&x=1"
    fetcher = RecordingFetcher({None: Page([1], cursor), cursor: Page([2])})

    assert list(start_paged_sequence(fetcher)) == [1, 2]
    assert fetcher.cursors == [None, cursor]


def test_failed_fetch_keeps_position_and_can_be_retried() -> None:
    fetcher = RecordingFetcher(
        {
            None: Page(["a", "b"], "c2"),
            "c2": TransientTransportError("reset"),
            "retry:c2": Page(["c"]),
        }
    )
    sequence = start_paged_sequence(fetcher)
    assert [next(sequence), next(sequence)] == ["a", "b"]

    with pytest.raises(TransientTransportError):
        next(sequence)

    assert sequence.continuation_token == "c2"
    assert next(sequence) == "c"
    assert fetcher.cursors == [None, "c2", "c2"]


def test_fetcher_must_return_pages() -> None:
    sequence = start_paged_sequence(lambda cursor: ["a", "b"])  # type: ignore[arg-type,return-value]

    with pytest.raises(MalformedServerResponse):
        next(sequence)


def test_by_page_yields_whole_pages() -> None:
    first = Page(["a", "b"], "c2")
    second = Page(["c"])
    fetcher = RecordingFetcher({None: first, "c2": second})

    assert list(start_paged_sequence(fetcher).by_page()) == [first, second]


def test_next_page_after_items_returns_the_remainder() -> None:
    fetcher = RecordingFetcher({None: Page(["a", "b", "c"], "c2"), "c2": Page(["d"])})
    sequence = start_paged_sequence(fetcher)

    assert sequence.next_item() == "a"
    remainder = sequence.next_page()
    assert list(remainder.items) == ["b", "c"]
    assert remainder.next_cursor == "c2"

    assert sequence.next_item() == "d"
    with pytest.raises(StopIteration):
        sequence.next_page()


def test_next_item_after_page_moves_to_next_page() -> None:
    fetcher = RecordingFetcher({None: Page(["a", "b"], "c2"), "c2": Page(["c"])})
    sequence = start_paged_sequence(fetcher)

    assert list(sequence.next_page().items) == ["a", "b"]
    assert sequence.next_item() == "c"


def test_cancelled_token_prevents_fetch() -> None:
    fetcher = RecordingFetcher({None: Page(["a"])})
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        start_paged_sequence(fetcher).next_item(cancel_token=token)
    assert fetcher.cursors == []


def test_cancel_abandons_slow_fetch() -> None:
    release = threading.Event()

    def slow_fetcher(cursor: str | None) -> Page[str]:
        release.wait(5)
        return Page(["late"])

    sequence = start_paged_sequence(slow_fetcher)
    token = CancellationToken()
    threading.Timer(0.05, token.cancel).start()

    started = time.monotonic()
    try:
        with pytest.raises(OperationCancelled):
            sequence.next_item(cancel_token=token)
    finally:
        release.set()

    assert time.monotonic() - started < 2
    assert sequence.pages_fetched == 0
