"""Authentication error taxonomy.

Every error is an ``HTTPException`` so FastAPI renders it as ``{"detail": ...}``
without a custom handler. Credential failures carry an RFC 6750 challenge:
clients key their refresh-and-replay decision off that header, which is what
separates "your token is bad" from "your role is not allowed".
"""

from typing import Optional

from fastapi import HTTPException, status

BEARER_CHALLENGE = 'Bearer'
INVALID_TOKEN_CHALLENGE = 'Bearer error="invalid_token"'


class AuthError(HTTPException):
    status_code: int = status.HTTP_401_UNAUTHORIZED
    default_detail: str = 'Authentication failed'
    challenge: Optional[str] = None

    def __init__(self, detail: Optional[str] = None) -> None:
        headers = {'WWW-Authenticate': self.challenge} if self.challenge else None
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class Unauthenticated(AuthError):
    """No credential was presented at all."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Access Denied: No token provided'
    challenge = BEARER_CHALLENGE


class InvalidCredential(AuthError):
    """Malformed token, bad signature, wrong token type or expired."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Invalid or expired token'
    challenge = INVALID_TOKEN_CHALLENGE


class Revoked(AuthError):
    """Refresh token is well-formed but no longer in the store."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Token revoked'
    challenge = INVALID_TOKEN_CHALLENGE


class InvalidCredentials(AuthError):
    """Wrong email/password pair, or wrong current password."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid Credentials'


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Access Denied: Admins only'


class ServerMisconfigured(AuthError):
    """Signing secrets are absent. Fatal for the service, never retryable."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Server misconfigured'
