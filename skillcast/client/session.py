"""Client-side session holder.

A ``SessionClient`` is an explicit handle: build one per application, pass it
to whatever needs it, and drive its lifecycle with ``initialize()`` (or
``start()``) and ``logout()``. State moves
UNKNOWN -> AUTHENTICATING -> AUTHENTICATED | ANONYMOUS.

Only an authentication-layer rejection from the server ever ends a session.
Transport failures are logged and the cached state is kept, so a flaky
network cannot log anyone out; ``logout()`` on the other hand clears local
state even when the server cannot be told.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from loguru import logger

from skillcast.client.errors import (
    ApiError,
    AuthRejected,
    NetworkFailure,
    SessionError,
    has_bearer_challenge,
    raise_for_api_error,
)
from skillcast.client.interceptor import RequestInterceptor
from skillcast.client.storage import MemoryStorage, SessionStorage, StoredSession
from skillcast.schemas.user import UserOut, UserSummary

LogoutHook = Callable[[], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    UNKNOWN = 'unknown'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'
    ANONYMOUS = 'anonymous'


class SessionClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        storage: Optional[SessionStorage] = None,
        on_logout: Optional[LogoutHook] = None,
        coalesce_refresh: bool = False,
    ) -> None:
        self._http = http
        self._storage = storage or MemoryStorage()
        self._on_logout = on_logout
        self._coalesce_refresh = coalesce_refresh
        self._refresh_task: Optional[asyncio.Task[str]] = None
        self._init_task: Optional[asyncio.Task[SessionState]] = None
        self._pending_refreshes: set[asyncio.Future] = set()
        self._rejected_refreshes: set[asyncio.Future] = set()
        self._hook_tasks: set[asyncio.Future] = set()

        self.state = SessionState.UNKNOWN
        self.user: Optional[UserSummary] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.api = RequestInterceptor(self, http)

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    # lifecycle

    def hydrate(self) -> None:
        """Load cached identity and tokens so a UI can render before the network answers."""
        stored = self._storage.load()
        self.user = stored.user
        self.access_token = stored.access_token
        self.refresh_token = stored.refresh_token
        self.state = SessionState.AUTHENTICATING if self.refresh_token else SessionState.ANONYMOUS

    async def initialize(self) -> SessionState:
        self.hydrate()
        return await self.silent_refresh()

    def start(self) -> asyncio.Task[SessionState]:
        """Hydrate now and run the silent refresh in the background."""
        self.hydrate()
        self._init_task = asyncio.ensure_future(self.silent_refresh())
        return self._init_task

    async def wait_ready(self) -> SessionState:
        if self._init_task is not None:
            return await self._init_task
        return self.state

    async def silent_refresh(self) -> SessionState:
        if not self.refresh_token:
            self.clear()
            return self.state

        self.state = SessionState.AUTHENTICATING
        try:
            await self.refresh()
        except AuthRejected as exc:
            logger.warning("Silent refresh rejected, clearing session: {}", exc)
            self.clear()
        except (NetworkFailure, ApiError) as exc:
            logger.warning("Silent refresh failed, keeping cached session: {}", exc)
            self.state = SessionState.AUTHENTICATED if self.user else SessionState.ANONYMOUS
        else:
            self.state = SessionState.AUTHENTICATED
        return self.state

    def clear(self) -> None:
        self.user = None
        self.access_token = None
        self.refresh_token = None
        self.state = SessionState.ANONYMOUS
        self._storage.clear()

    def expire(self) -> None:
        """Tear the session down and hand control to the login surface."""
        self.clear()
        self._notify_logout()

    # credential operations

    async def refresh(self) -> str:
        if not self._coalesce_refresh:
            task = asyncio.ensure_future(self._request_refresh())
            self._pending_refreshes.add(task)
            task.add_done_callback(self._pending_refreshes.discard)
            return await task
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._request_refresh())
            task.add_done_callback(self._forget_refresh_task)
            self._refresh_task = task
        return await task

    async def login(self, email: str, password: str) -> UserSummary:
        previous = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            data = await self._post('/auth/login', {'email': email, 'password': password})
        except SessionError:
            self.state = previous if previous is SessionState.AUTHENTICATED else SessionState.ANONYMOUS
            raise

        self.user = UserSummary.model_validate(data['user'])
        self.access_token = data['accessToken']
        self.refresh_token = data['refreshToken']
        self._persist()
        self.state = SessionState.AUTHENTICATED
        logger.info("Logged in as {}", self.user.username)
        return self.user

    async def register(self, username: str, email: str, password: str, name: Optional[str] = None) -> UserOut:
        payload: dict[str, Any] = {'username': username, 'email': email, 'password': password}
        if name is not None:
            payload['name'] = name
        return UserOut.model_validate(await self._post('/auth/register', payload))

    async def logout(self) -> None:
        access_token, refresh_token = self.access_token, self.refresh_token
        self.clear()
        self._notify_logout()
        if not refresh_token:
            return
        try:
            await self._revoke_on_server(access_token, refresh_token)
        except SessionError as exc:
            logger.warning("Server logout failed; local session already cleared: {}", exc)

    async def change_password(self, current_password: str, new_password: str) -> None:
        response = await self.api.post(
            '/auth/change-password',
            json={'currentPassword': current_password, 'newPassword': new_password},
        )
        raise_for_api_error(response)
        # The server revoked every refresh token we could still be holding.
        self.expire()

    # internals

    async def _request_refresh(self) -> str:
        token = self.refresh_token
        if not token:
            raise AuthRejected(401, 'No refresh token available')
        try:
            data = await self._post('/auth/refresh', {'token': token})
        except AuthRejected:
            if not await self._rotated_elsewhere(token):
                raise
            logger.debug("Refresh token was rotated in flight; reusing the newer access token")
            return self.access_token
        if self.refresh_token is None:
            # Logged out while the call was in flight; do not resurrect the session.
            return data['accessToken']
        self.access_token = data['accessToken']
        if data.get('refreshToken'):
            self.refresh_token = data['refreshToken']
        self._persist()
        return self.access_token

    async def _rotated_elsewhere(self, token: str) -> bool:
        """Whether a concurrent refresh replaced ``token`` with a newer pair.

        With rotation enabled on the server, a second use of the same refresh
        token loses to the first. Waits for the other refreshes still running,
        skipping those that already lost, then compares tokens.
        """
        current = asyncio.current_task()
        self._rejected_refreshes.add(current)
        try:
            others = [
                task for task in self._pending_refreshes
                if task is not current and task not in self._rejected_refreshes
            ]
            if others:
                await asyncio.wait(others)
        finally:
            self._rejected_refreshes.discard(current)
        return bool(self.refresh_token and self.refresh_token != token and self.access_token)

    def _forget_refresh_task(self, task: asyncio.Task[str]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _revoke_on_server(self, access_token: Optional[str], refresh_token: str) -> None:
        response = await self._send('/auth/logout', {'token': refresh_token}, access_token)
        if has_bearer_challenge(response):
            # Stale access token: mint one from the refresh token we still hold and retry once.
            data = await self._post('/auth/refresh', {'token': refresh_token})
            refresh_token = data.get('refreshToken') or refresh_token
            response = await self._send('/auth/logout', {'token': refresh_token}, data['accessToken'])
        raise_for_api_error(response)

    async def _send(self, path: str, payload: dict[str, Any], access_token: Optional[str] = None) -> httpx.Response:
        headers = {'Authorization': f"Bearer {access_token}"} if access_token else None
        try:
            return await self._http.post(path, json=payload, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkFailure(f"POST {path} failed: {exc}") from exc

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self._send(path, payload)
        raise_for_api_error(response)
        return response.json()

    def _persist(self) -> None:
        self._storage.save(
            StoredSession(user=self.user, access_token=self.access_token, refresh_token=self.refresh_token)
        )

    def _notify_logout(self) -> None:
        if self._on_logout is None:
            return
        result = self._on_logout()
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._hook_tasks.add(task)
            task.add_done_callback(self._finish_hook)

    def _finish_hook(self, task: asyncio.Future) -> None:
        self._hook_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("on_logout hook failed")
