import asyncio
from datetime import timedelta

import anyio
import httpx
import pytest
from loguru import logger

from helpers import PASSWORD, RecordingTransport, asgi_client, new_credentials, unreachable
from skillcast.client.errors import AuthRejected
from skillcast.client.session import SessionClient, SessionState
from skillcast.client.storage import FileStorage, MemoryStorage, StoredSession
from skillcast.main import app
from skillcast.schemas.user import UserSummary
from skillcast.services.token_service import create_access_token

CACHED_USER = UserSummary(id='cached-id', username='cached', role='member')


async def _logged_in(http: httpx.AsyncClient, storage=None, **options) -> tuple[SessionClient, dict]:
    session = SessionClient(http, storage or MemoryStorage(), **options)
    creds = new_credentials()
    await session.register(**creds)
    await session.login(creds['email'], PASSWORD)
    return session, creds


@pytest.mark.anyio
async def test_initialize_without_stored_session_is_anonymous():
    async with asgi_client() as http:
        session = SessionClient(http)
        assert session.state is SessionState.UNKNOWN
        assert await session.initialize() is SessionState.ANONYMOUS
        assert session.user is None


@pytest.mark.anyio
async def test_login_persists_identity_and_tokens():
    storage = MemoryStorage()
    async with asgi_client() as http:
        session, creds = await _logged_in(http, storage)
        assert session.is_authenticated
        assert session.user.username == creds['username']
        stored = storage.load()
        assert stored.user == session.user
        assert stored.access_token == session.access_token
        assert stored.refresh_token == session.refresh_token


@pytest.mark.anyio
async def test_login_failure_surfaces_server_error():
    async with asgi_client() as http:
        session = SessionClient(http)
        with pytest.raises(AuthRejected) as excinfo:
            await session.login('nobody@skillcast.io', 'wrong-password')
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail == 'Invalid Credentials'
        assert session.state is SessionState.ANONYMOUS


@pytest.mark.anyio
async def test_start_hydrates_before_silent_refresh_completes(tmp_path):
    storage = FileStorage(tmp_path / 'session.json')
    async with asgi_client() as http:
        first, _ = await _logged_in(http, storage)
        old_access = first.access_token

        restarted = SessionClient(http, storage)
        task = restarted.start()
        # Cached identity is available before the refresh round-trip finishes.
        assert restarted.user == first.user
        assert restarted.state is SessionState.AUTHENTICATING

        assert await restarted.wait_ready() is SessionState.AUTHENTICATED
        assert task.done()
        assert restarted.access_token != old_access
        assert storage.load().access_token == restarted.access_token


@pytest.mark.anyio
async def test_silent_refresh_with_revoked_token_clears_everything(tmp_path):
    storage = FileStorage(tmp_path / 'session.json')
    async with asgi_client() as http:
        first, _ = await _logged_in(http, storage)
        await http.post(
            '/auth/logout',
            json={'token': first.refresh_token},
            headers={'Authorization': f"Bearer {first.access_token}"},
        )

        restarted = SessionClient(http, storage)
        assert await restarted.initialize() is SessionState.ANONYMOUS
        assert restarted.user is None
        assert restarted.refresh_token is None
        assert not storage.path.exists()


@pytest.mark.anyio
async def test_silent_refresh_network_failure_keeps_cached_session():
    stored = StoredSession(user=CACHED_USER, access_token='cached-access', refresh_token='cached-refresh')
    storage = MemoryStorage(stored)
    async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable), base_url='http://testserver') as http:
        session = SessionClient(http, storage)
        assert await session.initialize() is SessionState.AUTHENTICATED
        assert session.refresh_token == 'cached-refresh'
        assert storage.load() == stored


@pytest.mark.anyio
async def test_logout_clears_locally_even_when_server_unreachable():
    calls = []
    storage = MemoryStorage(StoredSession(user=CACHED_USER, access_token='a', refresh_token='r'))
    async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable), base_url='http://testserver') as http:
        session = SessionClient(http, storage, on_logout=lambda: calls.append('logout'))
        session.hydrate()
        await session.logout()
        assert session.state is SessionState.ANONYMOUS
        assert session.access_token is None and session.refresh_token is None
        assert storage.load() == StoredSession()
        assert calls == ['logout']


@pytest.mark.anyio
async def test_logout_revokes_refresh_token_on_server():
    async with asgi_client() as http:
        session, _ = await _logged_in(http)
        token = session.refresh_token
        await session.logout()
        after = await http.post('/auth/refresh', json={'token': token})
        assert after.status_code == 403


@pytest.mark.anyio
async def test_concurrent_refreshes_each_hit_the_server_by_default():
    transport = RecordingTransport(httpx.ASGITransport(app=app))
    async with asgi_client(transport) as http:
        session, _ = await _logged_in(http)
        transport.paths.clear()
        async with anyio.create_task_group() as tg:
            for _ in range(3):
                tg.start_soon(session.refresh)
        assert transport.paths.count('/api/v1/auth/refresh') == 3


@pytest.mark.anyio
async def test_concurrent_refreshes_share_one_call_when_coalescing():
    transport = RecordingTransport(httpx.ASGITransport(app=app))
    async with asgi_client(transport) as http:
        session, _ = await _logged_in(http, coalesce_refresh=True)
        transport.paths.clear()
        results = []

        async def _refresh():
            results.append(await session.refresh())

        async with anyio.create_task_group() as tg:
            for _ in range(3):
                tg.start_soon(_refresh)
        assert transport.paths.count('/api/v1/auth/refresh') == 1
        assert len(set(results)) == 1
        assert results[0] == session.access_token


@pytest.mark.anyio
async def test_change_password_ends_the_local_session():
    calls = []
    async with asgi_client() as http:
        session, creds = await _logged_in(http, on_logout=lambda: calls.append('logout'))
        old_refresh = session.refresh_token
        await session.change_password(PASSWORD, 'brand-new-pass')
        assert session.state is SessionState.ANONYMOUS
        assert calls == ['logout']
        assert (await http.post('/auth/refresh', json={'token': old_refresh})).status_code == 403
        await session.login(creds['email'], 'brand-new-pass')
        assert session.is_authenticated


@pytest.mark.anyio
async def test_change_password_with_wrong_current_keeps_session():
    async with asgi_client() as http:
        session, _ = await _logged_in(http)
        with pytest.raises(AuthRejected):
            await session.change_password('not-my-password', 'brand-new-pass')
        assert session.is_authenticated
        assert (await http.post('/auth/refresh', json={'token': session.refresh_token})).status_code == 200


@pytest.mark.anyio
async def test_logout_with_expired_access_token_still_revokes_on_server():
    async with asgi_client() as http:
        session, _ = await _logged_in(http)
        token = session.refresh_token
        session.access_token = create_access_token(
            session.user.id, session.user.role, expires_delta=timedelta(seconds=-30)
        )
        await session.logout()
        assert session.state is SessionState.ANONYMOUS
        after = await http.post('/auth/refresh', json={'token': token})
        assert after.status_code == 403
        assert after.json()['detail'] == 'Token revoked'


@pytest.mark.anyio
async def test_async_logout_hook_runs_to_completion():
    calls = []

    async def on_logout():
        await asyncio.sleep(0)
        calls.append('logout')

    storage = MemoryStorage(StoredSession(user=CACHED_USER, access_token='a', refresh_token='r'))
    async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable), base_url='http://testserver') as http:
        session = SessionClient(http, storage, on_logout=on_logout)
        session.hydrate()
        await session.logout()
        for _ in range(5):
            await asyncio.sleep(0)
        assert calls == ['logout']
        assert not session._hook_tasks


@pytest.mark.anyio
async def test_failing_async_logout_hook_is_logged_not_raised():
    messages = []
    sink_id = logger.add(messages.append, level='ERROR', format='{message}')

    async def on_logout():
        raise RuntimeError('hook exploded')

    try:
        async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable), base_url='http://testserver') as http:
            session = SessionClient(http, on_logout=on_logout)
            session.expire()
            for _ in range(5):
                await asyncio.sleep(0)
            assert not session._hook_tasks
    finally:
        logger.remove(sink_id)
    assert any('on_logout hook failed' in str(message) for message in messages)
