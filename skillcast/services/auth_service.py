from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from passlib.context import CryptContext
from sqlmodel import Session, or_, select

from skillcast.core.config import settings
from skillcast.core.errors import Forbidden, InvalidCredential, InvalidCredentials, Revoked, Unauthenticated
from skillcast.db.session import get_session
from skillcast.models.user import User
from skillcast.schemas.user import Identity
from skillcast.services.refresh_store import RefreshStore
from skillcast.services.token_service import (
    CredentialPair,
    create_access_token,
    create_refresh_token,
    issue_credentials,
    verify_access_token,
    verify_refresh_token,
)

pwd_context = CryptContext(schemes=['pbkdf2_sha256'], deprecated='auto')
# auto_error=False so a missing header becomes our 401 rather than FastAPI's default.
security = HTTPBearer(auto_error=False)

# Equalizes login timing when the email is unknown.
_DUMMY_HASH = pwd_context.hash('skillcast-timing-guard')


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


def _validate_new_password(password: str) -> None:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Password must be at least {settings.PASSWORD_MIN_LENGTH} characters',
        )


def create_user(
    session: Session,
    username: str,
    email: str,
    password: str,
    name: Optional[str] = None,
) -> User:
    _validate_new_password(password)
    existing = session.exec(select(User).where(or_(User.email == email, User.username == username))).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email or username already registered')
    user = User(username=username, email=email, name=name, hashed_password=hash_password(password))
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user {}", user.id)
    return user


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


def login(session: Session, store: RefreshStore, email: str, password: str) -> tuple[User, CredentialPair]:
    user = authenticate_user(session, email, password)
    if not user:
        logger.warning("Rejected login attempt")
        raise InvalidCredentials()
    credentials = issue_credentials(user)
    store.persist(credentials.refresh_token, user.id, credentials.refresh_expires_at)
    logger.info("User {} logged in", user.id)
    return user, credentials


def refresh_access(session: Session, store: RefreshStore, token: str) -> tuple[str, Optional[str]]:
    """Mint a new access token from a refresh token.

    Store membership is checked before the signature: a revoked token is
    reported as revoked even when it is also expired or tampered with.
    Returns ``(access_token, new_refresh_token)``; the second item is None
    unless rotation is enabled.
    """
    if not store.is_valid(token):
        raise Revoked()
    try:
        user_id = verify_refresh_token(token)
    except InvalidCredential:
        # The row is useless once its signature no longer checks out.
        store.revoke(token)
        raise

    user = session.exec(select(User).where(User.id == user_id)).first()
    if not user or not user.is_active:
        store.revoke(token)
        raise Revoked()

    access_token = create_access_token(user.id, user.role)
    if not settings.REFRESH_TOKEN_ROTATION:
        return access_token, None

    new_refresh, expires_at = create_refresh_token(user.id)
    if not store.rotate(token, new_refresh, user.id, expires_at):
        raise Revoked()
    return access_token, new_refresh


def logout(store: RefreshStore, token: str) -> None:
    # The outcome is deliberately not surfaced to the caller.
    store.revoke(token)


def change_password(
    session: Session,
    store: RefreshStore,
    user: User,
    current_password: str,
    new_password: str,
) -> int:
    if not verify_password(current_password, user.hashed_password):
        logger.warning("Rejected password change for user {}", user.id)
        raise InvalidCredentials()
    _validate_new_password(new_password)
    user.hashed_password = hash_password(new_password)
    session.add(user)
    # The new hash and the session-wide revocation land in one commit.
    try:
        revoked = store.revoke_all(user.id, commit=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("User {} changed password", user.id)
    return revoked


def get_current_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return verify_access_token(credentials.credentials)


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    session: Session = Depends(get_session),
) -> User:
    user = session.exec(select(User).where(User.id == identity.id)).first()
    if not user or not user.is_active:
        raise InvalidCredential('User not found')
    return user


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise Forbidden()
    return identity
