import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from skillcast.schemas.user import UserSummary


class StoredSession(BaseModel):
    user: Optional[UserSummary] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class SessionStorage(ABC):
    """Where a client keeps its credentials between runs."""

    @abstractmethod
    def load(self) -> StoredSession: ...

    @abstractmethod
    def save(self, stored: StoredSession) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class MemoryStorage(SessionStorage):
    def __init__(self, stored: Optional[StoredSession] = None) -> None:
        self._stored = stored or StoredSession()

    def load(self) -> StoredSession:
        return self._stored.model_copy()

    def save(self, stored: StoredSession) -> None:
        self._stored = stored.model_copy()

    def clear(self) -> None:
        self._stored = StoredSession()


class FileStorage(SessionStorage):
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> StoredSession:
        if not self.path.exists():
            return StoredSession()
        try:
            return StoredSession.model_validate_json(self.path.read_text(encoding='utf-8'))
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable session file {}: {}", self.path, exc)
            return StoredSession()

    def save(self, stored: StoredSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        tmp_path.write_text(json.dumps(stored.model_dump(mode='json')), encoding='utf-8')
        os.chmod(tmp_path, 0o600)
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
