"""Credential issuing and verification.

Access and refresh tokens are signed with two different secrets, so leaking
one key cannot be used to mint the other token type. Verification is purely
cryptographic and temporal here; refresh-token authority (store membership)
lives in ``refresh_store``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from jose import ExpiredSignatureError, JWTError, jwt
from loguru import logger

from skillcast.core.config import settings
from skillcast.core.errors import InvalidCredential, ServerMisconfigured
from skillcast.models.enums import UserRole
from skillcast.models.user import User
from skillcast.schemas.user import Identity

ACCESS_TOKEN_TYPE = 'access'
REFRESH_TOKEN_TYPE = 'refresh'


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


def _signing_secrets() -> tuple[str, str]:
    access_secret = settings.JWT_SECRET
    refresh_secret = settings.JWT_REFRESH_SECRET
    if not access_secret or not refresh_secret:
        logger.error("JWT_SECRET and JWT_REFRESH_SECRET must both be configured")
        raise ServerMisconfigured()
    if access_secret == refresh_secret:
        logger.error("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        raise ServerMisconfigured()
    return access_secret, refresh_secret


def _create_token(claims: dict, token_type: str, secret: str, expires_delta: timedelta) -> tuple[str, datetime]:
    now = datetime.now(timezone.utc)
    expires = now + expires_delta
    payload = {
        **claims,
        'type': token_type,
        # Two tokens minted for the same user in the same second must still differ.
        'jti': uuid4().hex,
        'iat': now,
        'exp': expires,
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM), expires


def create_access_token(user_id: str, role: UserRole, expires_delta: Optional[timedelta] = None) -> str:
    access_secret, _ = _signing_secrets()
    token, _ = _create_token(
        {'sub': user_id, 'role': UserRole(role).value},
        ACCESS_TOKEN_TYPE,
        access_secret,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return token


def create_refresh_token(user_id: str, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
    _, refresh_secret = _signing_secrets()
    return _create_token(
        {'sub': user_id},
        REFRESH_TOKEN_TYPE,
        refresh_secret,
        expires_delta or timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
    )


def issue_credentials(user: User) -> CredentialPair:
    access_token = create_access_token(user.id, user.role)
    refresh_token, expires_at = create_refresh_token(user.id)
    return CredentialPair(access_token=access_token, refresh_token=refresh_token, refresh_expires_at=expires_at)


def _decode(token: str, secret: str, token_type: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise InvalidCredential('Token expired') from exc
    except JWTError as exc:
        raise InvalidCredential() from exc
    if payload.get('type') != token_type:
        raise InvalidCredential('Invalid token type')
    if not payload.get('sub'):
        raise InvalidCredential()
    return payload


def verify_access_token(token: str) -> Identity:
    access_secret, _ = _signing_secrets()
    payload = _decode(token, access_secret, ACCESS_TOKEN_TYPE)
    try:
        role = UserRole(payload.get('role'))
    except ValueError as exc:
        raise InvalidCredential() from exc
    return Identity(id=payload['sub'], role=role)


def verify_refresh_token(token: str) -> str:
    _, refresh_secret = _signing_secrets()
    payload = _decode(token, refresh_secret, REFRESH_TOKEN_TYPE)
    return payload['sub']
