from typing import Optional
from uuid import uuid4

import httpx
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from skillcast.db.session import engine
from skillcast.main import app
from skillcast.models.enums import UserRole
from skillcast.models.user import User

PASSWORD = 'secret123'
API_BASE_URL = 'http://testserver/api/v1'


def new_credentials() -> dict:
    suffix = uuid4().hex[:10]
    return {'username': f"user_{suffix}", 'email': f"{suffix}@skillcast.io", 'password': PASSWORD}


def register_and_login(client: TestClient) -> tuple[dict, dict]:
    creds = new_credentials()
    client.post('/api/v1/auth/register', json=creds)
    login = client.post('/api/v1/auth/login', json={'email': creds['email'], 'password': PASSWORD})
    assert login.status_code == 200
    return creds, login.json()


def bearer(token: str) -> dict:
    return {'Authorization': f"Bearer {token}"}


def promote_to_admin(email: str) -> None:
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == email)).one()
        user.role = UserRole.ADMIN
        session.add(user)
        session.commit()


class RecordingTransport(httpx.AsyncBaseTransport):
    """Delegates to another transport and remembers every path it was asked for."""

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self.inner = inner
        self.paths: list[str] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        return await self.inner.handle_async_request(request)


def asgi_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport or httpx.ASGITransport(app=app), base_url=API_BASE_URL)


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError('connection refused', request=request)
