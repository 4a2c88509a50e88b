from typing import Annotated, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PROJECT_NAME = "SkillCast API"
DEFAULT_API_V1_PREFIX = "/api/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    PROJECT_NAME: str = DEFAULT_PROJECT_NAME
    API_V1_PREFIX: str = DEFAULT_API_V1_PREFIX
    ENV: str = 'development'
    DEBUG: bool = False

    DATABASE_URL: str = 'sqlite:///./skillcast.db'
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False
    # NoDecode: the validator below parses comma-separated values itself.
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ['*']

    # No defaults: a missing secret is a deployment fault, not something to paper over.
    JWT_SECRET: Optional[str] = None
    JWT_REFRESH_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_ROTATION: bool = False

    PASSWORD_MIN_LENGTH: int = 8
    AUTO_CREATE_TABLES: bool = False

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return []
            if value == '*':
                return ['*']
            return [item.strip() for item in value.split(',') if item.strip()]
        return value

    @field_validator('JWT_SECRET', 'JWT_REFRESH_SECRET', mode='before')
    @classmethod
    def blank_secret_is_missing(cls, value):  # type: ignore[override]
        if isinstance(value, str) and not value.strip():
            return None
        return value


settings = Settings()
