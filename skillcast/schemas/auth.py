from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from skillcast.schemas.user import UserSummary


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., max_length=255)


class TokenRequest(CamelModel):
    token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., max_length=255)
    new_password: str = Field(..., min_length=1, max_length=255)


class LoginResponse(CamelModel):
    access_token: str
    refresh_token: str
    user: UserSummary


class RefreshResponse(CamelModel):
    access_token: str
    # Only populated when refresh-token rotation is enabled.
    refresh_token: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
