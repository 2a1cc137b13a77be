import asyncio
import logging
from typing import Optional

from elasticsearch import AsyncElasticsearch

from config.settings import Settings

logger = logging.getLogger(__name__)


TICKETS_MAPPING = {
    "mappings": {
        "dynamic": True,
        "properties": {
            "id": {"type": "keyword"},
            "query": {"type": "text", "analyzer": "standard"},
            "email": {"type": "keyword"},
            "subject": {"type": "text"},
            "source": {"type": "keyword"},
            "status": {"type": "keyword"},
            "reply": {"type": "text"},
            "intent": {"type": "keyword"},
            "created_at": {"type": "date"},
            "updated_at": {"type": "date"}
        }
    },
    "settings": {
        "number_of_shards": 1,
        "number_of_replicas": 0
    }
}


def knowledge_mapping(embedding_dim: int) -> dict:
    return {
        "mappings": {
            "properties": {
                "text": {"type": "text", "analyzer": "standard"},
                "metadata": {"type": "object", "enabled": False},
                "seq": {"type": "long"},
                "embedding": {
                    "type": "dense_vector",
                    "dims": embedding_dim,
                    "index": True,
                    "similarity": "cosine"
                }
            }
        },
        "settings": {
            "number_of_shards": 1,
            "number_of_replicas": 0
        }
    }


class ElasticsearchService:
    """Owns the Elasticsearch connection shared by tickets and knowledge."""

    def __init__(self, settings: Settings,
                 client: Optional[AsyncElasticsearch] = None):
        self.es_url = settings.ELASTICSEARCH_URL
        self.index_name = settings.ELASTICSEARCH_INDEX
        self.tickets_index = settings.TICKETS_INDEX
        self.embedding_dim = settings.EMBEDDING_DIMENSION
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.es_url) or self.client is not None

    def get_client(self) -> Optional[AsyncElasticsearch]:
        if self.client is None and self.es_url:
            self.client = AsyncElasticsearch([self.es_url])
        return self.client

    async def ping(self, timeout: float) -> bool:
        """Bounded reachability check; never raises."""
        client = self.get_client()
        if client is None:
            return False
        try:
            return bool(await asyncio.wait_for(client.ping(), timeout))
        except Exception as e:
            logger.warning(f"Elasticsearch ping failed: {e!r}")
            return False

    async def initialize(self) -> bool:
        """Create the tickets and knowledge indexes if missing."""
        client = self.get_client()
        if client is None:
            logger.warning("Elasticsearch not configured; using local stores")
            return False
        try:
            info = await client.info()
            logger.info(
                f"Connected to Elasticsearch: {info['version']['number']}")
            await self.create_index(self.tickets_index, TICKETS_MAPPING)
            await self.create_index(self.index_name,
                                    knowledge_mapping(self.embedding_dim))
            return True
        except Exception as e:
            logger.error(f"Error connecting to Elasticsearch: {e}")
            return False

    async def create_index(self, name: str, mapping: dict):
        client = self.get_client()
        if await client.indices.exists(index=name):
            logger.info(f"Index {name} already exists")
            return
        await client.indices.create(index=name,
                                    mappings=mapping["mappings"],
                                    settings=mapping["settings"])
        logger.info(f"Created index: {name}")

    async def close(self):
        """Close Elasticsearch connections"""
        if self.client:
            await self.client.close()
