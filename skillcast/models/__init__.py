from skillcast.models.base import CreatedAtModel, IDModel, TimestampModel
from skillcast.models.user import User
from skillcast.models.refresh_token import RefreshToken

__all__ = [
    'CreatedAtModel',
    'IDModel',
    'TimestampModel',
    'User',
    'RefreshToken',
]
