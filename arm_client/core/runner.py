"""
Drivers for the polling and paging flows.

`run_sync` and `run_async` walk the same flow, performing each yielded effect
and feeding the outcome back in. They differ only in how they wait: a blocking
caller parks its thread, an asyncio caller yields to the event loop. Both check
the cancellation token before every effect, wake up early from sleeps when it
fires, and abandon an in-flight request instead of waiting for it to finish.
"""

import asyncio
import inspect
import threading
import time
from concurrent.futures import Future
from functools import partial
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from arm_client.core.effects import Effect, FetchPage, Flow, SendRequest, Sleep
from arm_client.core.transport import AsyncTransport, Transport
from arm_client.exceptions.operations import DeadlineExceeded
from arm_client.utils.cancellation import CancellationToken

R = TypeVar("R")


def _start_call(func: Callable[[], Any]) -> "Future[Any]":
    """Run `func` on its own daemon thread.

    An abandoned call keeps only its own thread busy until the transport
    returns, so it never holds up calls made by other handles or sequences.
    """
    future: Future[Any] = Future()

    def _run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = func()
        except BaseException as exc:  # delivered to whoever waits on the future
            future.set_exception(exc)
        else:
            future.set_result(result)

    threading.Thread(target=_run, name="arm-client-call", daemon=True).start()
    return future


def _call_abandonable(
    func: Callable[[], Any], cancel_token: CancellationToken | None
) -> Any:
    if cancel_token is None:
        return func()

    cancel_token.raise_if_cancelled()
    future = _start_call(func)
    wake = threading.Event()
    future.add_done_callback(lambda _: wake.set())
    remove_callback = cancel_token.add_callback(wake.set)
    try:
        wake.wait(cancel_token.remaining())
    finally:
        remove_callback()

    if future.done():
        return future.result()

    logger.debug("Abandoning in-flight call after cancellation")
    cancel_token.raise_if_cancelled()
    raise DeadlineExceeded()


def _sleep(seconds: float, cancel_token: CancellationToken | None) -> None:
    if cancel_token is None:
        if seconds > 0:
            time.sleep(seconds)
        return

    cancel_token.raise_if_cancelled()
    remaining = cancel_token.remaining()
    if remaining is not None and remaining < seconds:
        cancel_token.wait(remaining)
        cancel_token.raise_if_cancelled()
        raise DeadlineExceeded()

    if cancel_token.wait(seconds):
        cancel_token.raise_if_cancelled()


def _perform(
    effect: Effect,
    transport: Transport | None,
    cancel_token: CancellationToken | None,
) -> Any:
    if isinstance(effect, SendRequest):
        if transport is None:
            raise TypeError("A transport is required to send requests")
        return _call_abandonable(
            partial(
                transport.send, effect.method, effect.url, effect.headers, effect.body
            ),
            cancel_token,
        )
    if isinstance(effect, FetchPage):
        return _call_abandonable(partial(effect.fetcher, effect.cursor), cancel_token)
    if isinstance(effect, Sleep):
        _sleep(effect.seconds, cancel_token)
        return None
    raise TypeError(f"Unknown effect: {effect!r}")


def run_sync(
    flow: Flow[R],
    transport: Transport | None = None,
    cancel_token: CancellationToken | None = None,
) -> R:
    try:
        effect = next(flow)
        while True:
            try:
                outcome = _perform(effect, transport, cancel_token)
            except Exception as exc:
                effect = flow.throw(exc)
            else:
                effect = flow.send(outcome)
    except StopIteration as stop:
        return stop.value


def _consume_result(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled():
        task.exception()


def _resolve(future: "asyncio.Future[None]") -> None:
    if not future.done():
        future.set_result(None)


async def _race(
    make_awaitable: Callable[[], Awaitable[Any]],
    cancel_token: CancellationToken | None,
) -> Any:
    if cancel_token is None:
        return await make_awaitable()

    cancel_token.raise_if_cancelled()
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(make_awaitable())
    cancelled: asyncio.Future[None] = loop.create_future()
    remove_callback = cancel_token.add_callback(
        lambda: loop.call_soon_threadsafe(_resolve, cancelled)
    )
    try:
        await asyncio.wait(
            {task, cancelled},
            timeout=cancel_token.remaining(),
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        remove_callback()
        cancelled.cancel()

    if task.done():
        return task.result()

    task.add_done_callback(_consume_result)
    task.cancel()
    logger.debug("Abandoning in-flight call after cancellation")
    cancel_token.raise_if_cancelled()
    raise DeadlineExceeded()


async def _async_sleep(seconds: float, cancel_token: CancellationToken | None) -> None:
    if cancel_token is None:
        await asyncio.sleep(seconds)
        return
    await _race(partial(asyncio.sleep, seconds), cancel_token)


def _is_async_callable(func: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )


async def _fetch_page_async(effect: FetchPage) -> Any:
    if _is_async_callable(effect.fetcher):
        return await effect.fetcher(effect.cursor)  # type: ignore[misc]

    # Blocking fetchers run off the loop, where cancellation can abandon them.
    result = await asyncio.wrap_future(
        _start_call(partial(effect.fetcher, effect.cursor))
    )
    if inspect.isawaitable(result):
        return await result
    return result


async def _perform_async(
    effect: Effect,
    transport: AsyncTransport | None,
    cancel_token: CancellationToken | None,
) -> Any:
    if isinstance(effect, SendRequest):
        if transport is None:
            raise TypeError("A transport is required to send requests")
        return await _race(
            partial(
                transport.send, effect.method, effect.url, effect.headers, effect.body
            ),
            cancel_token,
        )
    if isinstance(effect, FetchPage):
        return await _race(partial(_fetch_page_async, effect), cancel_token)
    if isinstance(effect, Sleep):
        await _async_sleep(effect.seconds, cancel_token)
        return None
    raise TypeError(f"Unknown effect: {effect!r}")


async def run_async(
    flow: Flow[R],
    transport: AsyncTransport | None = None,
    cancel_token: CancellationToken | None = None,
) -> R:
    try:
        effect = next(flow)
        while True:
            try:
                outcome = await _perform_async(effect, transport, cancel_token)
            except Exception as exc:
                effect = flow.throw(exc)
            else:
                effect = flow.send(outcome)
    except StopIteration as stop:
        return stop.value
