"""Pytest configuration and fixtures."""

import zlib
from typing import Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from config.settings import Settings
from supportdesk.cache.cache_layer import CacheLayer
from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.retrieval.vector_index import VectorIndex
from supportdesk.sessions.store import SessionStore
from supportdesk.storage.local_ticket_file import LocalTicketFile
from supportdesk.storage.ticket_store import TicketStore

EMBEDDING_DIM = 16


async def hashed_embedding(text: str) -> List[float]:
    """Deterministic bag-of-words embedding for tests."""
    vector = [0.0] * EMBEDDING_DIM
    for word in text.lower().split():
        vector[zlib.crc32(word.strip(".,?!").encode()) % EMBEDDING_DIM] += 1.0
    return vector


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class InMemoryRedis:
    """Minimal stand-in for redis.asyncio.Redis used by SessionStore."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise RedisConnectionError("Connection refused")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        if self.fail_writes:
            raise RedisConnectionError("Connection refused")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def aclose(self):
        pass


# Test settings
@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with every backend local to the test directory."""
    return Settings(
        GEMINI_API_KEY="test-key",
        ELASTICSEARCH_URL="",
        REDIS_URL="redis://localhost:6379",
        DATA_DIR=str(tmp_path),
        SEED_VECTOR_STORE=False,
        LOG_LEVEL="DEBUG"
    )


@pytest.fixture
def embedding():
    return hashed_embedding


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def session_store(redis_client) -> SessionStore:
    return SessionStore(redis_client, chat_ttl=86400, call_ttl=3600)


@pytest.fixture
def local_tickets(tmp_path) -> LocalTicketFile:
    return LocalTicketFile(str(tmp_path / "tickets.json"))


@pytest.fixture
def ticket_store(local_tickets) -> TicketStore:
    """Ticket store with no primary backend configured."""
    return TicketStore(fallback=local_tickets, timeout=0.5)


@pytest.fixture
def cache_layer(fake_clock) -> CacheLayer:
    return CacheLayer(response_ttl=600, intent_ttl=1800, clock=fake_clock)


@pytest.fixture
async def vector_index(tmp_path) -> VectorIndex:
    """Local-only vector index seeded with three help documents."""
    index = VectorIndex(
        embed=hashed_embedding,
        local=LocalVectorStore(str(tmp_path / "vectors.json"))
    )
    await index.initialize(seed_documents=[
        "To share a page click the Share button and enter email addresses",
        "Duplicate a template with the Duplicate button and include content",
        "Change the language under Settings language and region",
    ])
    return index
