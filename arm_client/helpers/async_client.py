from typing import Any, Type

import httpx
from loguru import logger

from arm_client.config.settings import get_settings
from arm_client.core.transport import AsyncHttpxTransport, HttpxTransport
from arm_client.helpers.retry import RetryConfig, RetryTransport


class _RetryingClientMixin:
    """
    Builds the client's own transports (including proxy mounts) wrapped in a
    RetryTransport, so every default httpx client behaviour survives. Passing
    an explicit `transport=` bypasses the wrapping.
    """

    _http_transport_class: Type[Any]

    def __init__(
        self,
        transport_class: Type[RetryTransport] = RetryTransport,
        retry_config: RetryConfig | None = None,
        **kwargs: Any,
    ):
        self._transport_class = transport_class
        self._retry_config = retry_config
        super().__init__(**kwargs)

    def _retrying_transport(self, **kwargs: Any) -> RetryTransport:
        return self._transport_class(
            wrapped_transport=self._http_transport_class(**kwargs),
            retry_config=self._retry_config,
            logger=logger,
        )

    def _init_transport(self, transport: Any = None, **kwargs: Any) -> Any:
        if transport is not None:
            return super()._init_transport(transport=transport, **kwargs)  # type: ignore[misc]
        return self._retrying_transport(**kwargs)

    def _init_proxy_transport(self, proxy: httpx.Proxy, **kwargs: Any) -> Any:
        return self._retrying_transport(proxy=proxy, **kwargs)


class ArmAsyncClient(_RetryingClientMixin, httpx.AsyncClient):
    _http_transport_class = httpx.AsyncHTTPTransport


class ArmHttpClient(_RetryingClientMixin, httpx.Client):
    _http_transport_class = httpx.HTTPTransport


def _resolve_retry_config(retry: bool | RetryConfig) -> RetryConfig | None:
    if isinstance(retry, RetryConfig):
        return retry
    if retry:
        return RetryConfig(max_attempts=get_settings().retry_max_attempts)
    return None


def create_transport(
    retry: bool | RetryConfig = False, **client_kwargs: Any
) -> HttpxTransport:
    """Blocking transport; requests are retried only when `retry` is set."""
    client_kwargs.setdefault("timeout", get_settings().request_timeout)
    retry_config = _resolve_retry_config(retry)
    if retry_config is None:
        return HttpxTransport(httpx.Client(**client_kwargs))
    return HttpxTransport(ArmHttpClient(retry_config=retry_config, **client_kwargs))


def create_async_transport(
    retry: bool | RetryConfig = False, **client_kwargs: Any
) -> AsyncHttpxTransport:
    client_kwargs.setdefault("timeout", get_settings().request_timeout)
    retry_config = _resolve_retry_config(retry)
    if retry_config is None:
        return AsyncHttpxTransport(httpx.AsyncClient(**client_kwargs))
    return AsyncHttpxTransport(
        ArmAsyncClient(retry_config=retry_config, **client_kwargs)
    )
