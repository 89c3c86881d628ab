import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from bookservice import db
from bookservice.config import Settings
from bookservice.main import create_app
from bookservice.seed import seed

BOOKS = [
    {
        "id": "book-dune",
        "name": "Dune",
        "author": "Frank Herbert",
        "description": "Spice and sand.",
        "price": 10,
        "image": "https://example.com/dune.jpg",
    },
    {
        "id": "book-emma",
        "name": "Emma",
        "author": "Jane Austen",
        "description": "Matchmaking in Highbury.",
        "price": 25,
        "image": "https://example.com/emma.jpg",
    },
    {
        "id": "book-neuromancer",
        "name": "Neuromancer",
        "author": "William Gibson",
        "description": "The sky above the port.",
        "price": 40,
        "image": "https://example.com/neuromancer.jpg",
    },
]


class RecordingRedis:
    """publish されたメッセージを記録するだけの Redis 代替"""

    def __init__(self):
        self.messages = []

    async def publish(self, channel, message):
        self.messages.append((channel, json.loads(message)))
        return 1

    async def aclose(self):
        pass

    def event_types(self, channel=None):
        return [
            message["event_type"]
            for ch, message in self.messages
            if channel is None or ch == channel
        ]


@pytest.fixture
def redis():
    return RecordingRedis()


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookstore.db'}")


@pytest.fixture
async def engine(settings):
    engine = db.create_engine(settings)
    await db.init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(engine):
    return db.create_session_factory(engine)


@pytest.fixture
async def session(async_session):
    async with async_session() as session:
        yield session


@pytest.fixture
def seeded_settings(settings):
    asyncio.run(seed(settings, BOOKS))
    return settings


@pytest.fixture
def client(seeded_settings, redis):
    app = create_app(seeded_settings, redis=redis)
    with TestClient(app) as client:
        yield client
