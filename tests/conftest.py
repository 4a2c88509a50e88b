import os
import tempfile
from pathlib import Path

import pytest

_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix='skillcast-tests-'))
TEST_DB_URL = os.getenv("TEST_DB_URL", f"sqlite:///{_TEST_DB_DIR / 'skillcast-test.db'}")
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-fedcba9876543210"

from skillcast.core.config import settings
from skillcast.db.init_db import init_db

settings.DATABASE_URL = TEST_DB_URL


@pytest.fixture(autouse=True, scope="session")
def _configure_test_database():
    init_db(drop_all=True)
    yield


@pytest.fixture
def anyio_backend():
    return "asyncio"
