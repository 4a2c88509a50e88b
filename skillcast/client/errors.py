from typing import Any, Optional

import httpx


class SessionError(Exception):
    """Base class for every failure the client surfaces."""


class NetworkFailure(SessionError):
    """The server could not be reached. Never evidence that a session is invalid."""


class ApiError(SessionError):
    def __init__(self, status_code: int, detail: Any = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


class AuthRejected(ApiError):
    """The server's authentication layer refused the request."""


class SessionExpired(AuthRejected):
    """Refreshing failed while replaying a request; the local session was torn down."""


def has_bearer_challenge(response: httpx.Response) -> bool:
    if response.status_code not in (401, 403):
        return False
    return response.headers.get('www-authenticate', '').lower().startswith('bearer')


def _detail(response: httpx.Response) -> Optional[Any]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or None
    if isinstance(payload, dict):
        return payload.get('detail', payload)
    return payload


def raise_for_api_error(response: httpx.Response) -> httpx.Response:
    if response.is_success:
        return response
    detail = _detail(response)
    if response.status_code in (401, 403):
        raise AuthRejected(response.status_code, detail)
    raise ApiError(response.status_code, detail)
