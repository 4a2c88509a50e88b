from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel
from skillcast.models.base import CreatedAtModel


class RefreshToken(CreatedAtModel, SQLModel, table=True):
    __tablename__ = 'refresh_tokens'

    # The row's presence is the authority for the token; deleting it revokes the session.
    token: str = Field(primary_key=True)
    user_id: str = Field(index=True, foreign_key='users.id', ondelete='CASCADE')
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), sa_column_kwargs={"nullable": False})
