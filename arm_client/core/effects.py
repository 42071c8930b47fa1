"""
Effects yielded by the polling and paging flows.

A flow is a generator that never performs I/O itself: it yields one of the
effects below and is resumed with its outcome (or has the failure thrown into
it). `arm_client.core.runner` holds the only code that actually sends, fetches
or sleeps, once for blocking callers and once for asyncio callers.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generator, TypeVar, Union

import httpx

from arm_client.core.models import Page

R = TypeVar("R")


@dataclass(frozen=True)
class SendRequest:
    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes | None = None


@dataclass(frozen=True)
class FetchPage:
    fetcher: Callable[[str | None], Union[Page[Any], Awaitable[Page[Any]]]]
    cursor: str | None


@dataclass(frozen=True)
class Sleep:
    seconds: float


Effect = Union[SendRequest, FetchPage, Sleep]
Flow = Generator[Effect, Any, R]
