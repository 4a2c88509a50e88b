"""Outbound request pipeline with one-shot refresh-and-replay.

Every call carries its own ``CallState``. A call starts at ``Attempt.FIRST``
and is promoted to ``Attempt.RETRIED`` before it is replayed, and only a call
still at ``FIRST`` is eligible for a refresh. That caps every request at two
sends no matter how the refresh endpoint behaves.

Concurrent calls that all fail on the same stale token each trigger their own
refresh unless the owning ``SessionClient`` was built with
``coalesce_refresh=True``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from skillcast.client.errors import AuthRejected, NetworkFailure, SessionExpired, has_bearer_challenge

if TYPE_CHECKING:
    from skillcast.client.session import SessionClient


class Attempt(str, Enum):
    FIRST = 'first'
    RETRIED = 'retried'


@dataclass
class CallState:
    method: str
    url: str
    options: dict[str, Any] = field(default_factory=dict)
    attempt: Attempt = Attempt.FIRST

    @property
    def can_retry(self) -> bool:
        return self.attempt is Attempt.FIRST

    def mark_retried(self) -> None:
        if not self.can_retry:
            raise RuntimeError(f"{self.method} {self.url} was already replayed")
        self.attempt = Attempt.RETRIED


class RequestInterceptor:
    def __init__(self, session: SessionClient, http: httpx.AsyncClient) -> None:
        self._session = session
        self._http = http

    async def request(self, method: str, url: str, **options: Any) -> httpx.Response:
        return await self._dispatch(CallState(method=method.upper(), url=url, options=options))

    async def get(self, url: str, **options: Any) -> httpx.Response:
        return await self.request('GET', url, **options)

    async def post(self, url: str, **options: Any) -> httpx.Response:
        return await self.request('POST', url, **options)

    async def put(self, url: str, **options: Any) -> httpx.Response:
        return await self.request('PUT', url, **options)

    async def patch(self, url: str, **options: Any) -> httpx.Response:
        return await self.request('PATCH', url, **options)

    async def delete(self, url: str, **options: Any) -> httpx.Response:
        return await self.request('DELETE', url, **options)

    async def _dispatch(self, call: CallState) -> httpx.Response:
        response = await self._send(call)
        if not self._should_refresh(call, response):
            return response

        call.mark_retried()
        try:
            await self._session.refresh()
        except AuthRejected as exc:
            logger.warning("Token refresh failed, forcing logout: {}", exc)
            self._session.expire()
            raise SessionExpired(exc.status_code, exc.detail) from exc
        return await self._dispatch(call)

    async def _send(self, call: CallState) -> httpx.Response:
        options = dict(call.options)
        headers = dict(options.pop('headers', None) or {})
        token = self._session.access_token
        if token:
            headers['Authorization'] = f"Bearer {token}"
        try:
            return await self._http.request(call.method, call.url, headers=headers, **options)
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{call.method} {call.url} failed: {exc}") from exc

    def _should_refresh(self, call: CallState, response: httpx.Response) -> bool:
        return call.can_retry and has_bearer_challenge(response) and self._session.refresh_token is not None
