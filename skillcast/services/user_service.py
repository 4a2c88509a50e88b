from typing import Optional
from sqlmodel import Session, select

from skillcast.models.user import User
from skillcast.schemas.user import UserOut, UserSummary


def to_user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        is_active=user.is_active,
        role=user.role,
    )


def to_user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, username=user.username, role=user.role)


def get_user(session: Session, user_id: str) -> Optional[User]:
    return session.exec(select(User).where(User.id == user_id)).first()


def list_users(session: Session, limit: Optional[int] = 50, offset: int = 0) -> list[User]:
    statement = select(User).order_by(User.created_at)
    if offset:
        statement = statement.offset(offset)
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.exec(statement).all())
