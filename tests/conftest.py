import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture
async def db(database_url):
    database = Database(database_url)
    await database.open()
    yield database
    await database.close()


@pytest.fixture
def client(database_url):
    app = create_app(Settings(database_url=database_url, log_level="WARNING"))
    # Entering the context runs the startup/shutdown handlers
    with TestClient(app) as test_client:
        yield test_client
