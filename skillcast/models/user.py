from typing import Optional
from sqlmodel import Field, SQLModel
from skillcast.models.base import IDModel, TimestampModel
from skillcast.models.enums import UserRole, enum_column


class User(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'users'

    username: str = Field(index=True, unique=True, max_length=50)
    email: str = Field(index=True, unique=True, max_length=100)
    hashed_password: str
    name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = None
    is_active: bool = True
    role: UserRole = Field(default=UserRole.MEMBER, sa_column=enum_column(UserRole, 'user_role'))
