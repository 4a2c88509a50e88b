from typing import Optional
from pydantic import BaseModel, EmailStr
from skillcast.models.enums import UserRole


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr
    name: Optional[str] = None
    is_active: bool
    role: UserRole


class UserSummary(BaseModel):
    """The identity slice a client caches to render before its first refresh."""

    id: str
    username: str
    role: UserRole


class Identity(BaseModel):
    """Decoded access-credential claims attached to a request."""

    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
