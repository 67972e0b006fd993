import os

import pytest
import pytest_asyncio
from dotenv import load_dotenv

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

# Load test environment variables from .env.test in the project root
dotenv_path = os.path.join(project_root, '.env.test')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)

from ticker_sentiment.models import Base
from ticker_sentiment.storage.database import create_engine_from_url, create_session_factory, init_db
from ticker_sentiment.storage.repository import SQLAlchemyIngestionRepository


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database per test, with all tables created."""
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_engine_from_url(url)
    await init_db(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory):
    return SQLAlchemyIngestionRepository(session_factory)
