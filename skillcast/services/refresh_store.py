from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends
from loguru import logger
from sqlalchemy import delete, func
from sqlmodel import Session, select

from skillcast.db.session import get_session
from skillcast.models.refresh_token import RefreshToken


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class RefreshStore:
    """Persisted registry of refresh tokens that are still allowed to mint access tokens.

    Revocation is a single-row ``DELETE``, and validity a single-row ``SELECT``,
    so a refresh racing a logout either sees the row or does not; there is no
    window where a deleted token is read back as present.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def persist(self, token: str, user_id: str, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(token=token, user_id=user_id, expires_at=_ensure_utc(expires_at))
        self._session.add(record)
        self._session.commit()
        self._session.refresh(record)
        return record

    def get(self, token: str) -> Optional[RefreshToken]:
        return self._session.exec(select(RefreshToken).where(RefreshToken.token == token)).first()

    def is_valid(self, token: str) -> bool:
        # Membership only; expiry is enforced by the token signature check.
        return self.get(token) is not None

    def revoke(self, token: str) -> bool:
        result = self._session.exec(delete(RefreshToken).where(RefreshToken.token == token))
        self._session.commit()
        return bool(result.rowcount)

    def revoke_all(self, user_id: str, commit: bool = True) -> int:
        result = self._session.exec(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        if commit:
            self._session.commit()
        count = result.rowcount or 0
        logger.info("Revoked {} refresh token(s) for user {}", count, user_id)
        return count

    def rotate(self, old_token: str, new_token: str, user_id: str, expires_at: datetime) -> bool:
        """Swap ``old_token`` for ``new_token`` in one transaction.

        Returns False without inserting when ``old_token`` was already gone,
        which is how a concurrent second use of the same token loses the race.
        """
        result = self._session.exec(delete(RefreshToken).where(RefreshToken.token == old_token))
        if not result.rowcount:
            self._session.rollback()
            return False
        self._session.add(RefreshToken(token=new_token, user_id=user_id, expires_at=_ensure_utc(expires_at)))
        self._session.commit()
        return True

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        cutoff = now or datetime.now(timezone.utc)
        result = self._session.exec(delete(RefreshToken).where(RefreshToken.expires_at <= cutoff))
        self._session.commit()
        return result.rowcount or 0

    def count_for_user(self, user_id: str) -> int:
        statement = select(func.count()).select_from(RefreshToken).where(RefreshToken.user_id == user_id)
        return self._session.exec(statement).one()


def get_refresh_store(session: Session = Depends(get_session)) -> RefreshStore:
    return RefreshStore(session)
