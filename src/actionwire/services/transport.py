"""HTTP transport used by effects to talk to the backend.

``Transport.call`` sends one request and returns the decoded response body.
Failures are categorized so that the ``@@ERROR`` handler can tell a server
rejection (:class:`APIException`) from a request that never got a usable
answer (:class:`NetworkConnectionException`). Only the latter are retried.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any, Mapping
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.errors import APIException, NetworkConnectionException
from .settings import Settings

__all__ = ["Transport", "parse_with_date", "url_params"]

LOGGER = logging.getLogger(__name__)

_ISO_DATE_FORMAT = re.compile(
    r"^\d{4}-[01]\d-[0-3]\d(T[0-2]\d:[0-5]\d:[0-5]\d(\.\d+)?(Z|[+-][01]\d:[0-5]\d)?)?$"
)
_QUERY_METHODS = frozenset({"GET", "DELETE"})
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_GATEWAY_STATUSES = frozenset({502, 504})


def url_params(pattern: str, params: Mapping[str, Any] | None) -> str:
    """Substitute ``:name`` segments of ``pattern`` with URL-encoded values.

    >>> url_params("/users/:id/orders/:orderId", {"id": "a b", "orderId": 7})
    '/users/a%20b/orders/7'
    """

    if not params:
        return pattern
    url = pattern
    for name, value in params.items():
        url = url.replace(f":{name}", quote(_to_text(value), safe="!~*'()"), 1)
    return url


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_with_date(text: str) -> Any:
    """Decode JSON, turning ISO-8601 date strings into ``datetime`` values."""

    return _revive(json.loads(text))


def _revive(value: Any) -> Any:
    if isinstance(value, str):
        if _ISO_DATE_FORMAT.match(value):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return value
        return value
    if isinstance(value, dict):
        return {key: _revive(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_revive(item) for item in value]
    return value


class Transport:
    """Async request helper built on :class:`httpx.AsyncClient`."""

    def __init__(self, settings: Settings | None = None, *, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or Settings()
        self._client = client or self._build_client(self._settings)
        self._owns_client = client is None

    @property
    def settings(self) -> Settings:
        return self._settings

    async def call(
        self,
        method: str,
        path: str,
        path_params: Mapping[str, Any] | None = None,
        request: Any = None,
    ) -> Any:
        """Send one request and return the decoded body.

        Args:
            method: HTTP method.
            path: Path template with ``:name`` placeholders.
            path_params: Values for the placeholders.
            request: Query parameters for GET/DELETE, JSON body for
                POST/PUT/PATCH.

        Raises:
            APIException: The server answered with an error status.
            NetworkConnectionException: No usable answer after all attempts.
        """

        method = method.upper()
        url = url_params(path, path_params)
        kwargs: dict[str, Any] = {}
        if request is not None:
            if method in _QUERY_METHODS:
                kwargs["params"] = request
            elif method in _BODY_METHODS:
                kwargs["json"] = request

        async for attempt in self._retrying():
            with attempt:
                return await self._send(method, url, kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _send(self, method: str, url: str, kwargs: dict[str, Any]) -> Any:
        LOGGER.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkConnectionException(
                message=f"failed to connect to {url}",
                request_url=url,
                original_error=exc,
            ) from exc
        data = _decode(response)
        if response.is_error:
            raise _categorize(response.status_code, url, data)
        return data

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(NetworkConnectionException),
        )

    @staticmethod
    def _build_client(settings: Settings) -> httpx.AsyncClient:
        headers = dict(settings.default_headers)
        if settings.api_token:
            headers.setdefault("Authorization", f"Bearer {settings.api_token}")
        return httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            headers=headers,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _decode(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("application/json"):
        return response.text
    if not response.content:
        return None
    try:
        return parse_with_date(response.text)
    except json.JSONDecodeError:
        LOGGER.warning("Response declared JSON but could not be decoded")
        return response.text


def _categorize(status_code: int, url: str, data: Any) -> Exception:
    body = data if isinstance(data, Mapping) else {}
    error_id = body.get("id") or None
    if error_id is None and status_code in _GATEWAY_STATUSES:
        return NetworkConnectionException(message=f"gateway error ({status_code})", request_url=url)
    return APIException(
        message=body.get("message") or "[No response message]",
        status_code=status_code,
        request_url=url,
        response_data=data,
        error_id=error_id,
        error_code=body.get("errorCode") or None,
    )
