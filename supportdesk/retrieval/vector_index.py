import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from elasticsearch import BadRequestError

from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.services.capabilities import EmbedFn
from supportdesk.services.elasticsearch_service import ElasticsearchService
from supportdesk.utils.timeouts import run_bounded

logger = logging.getLogger(__name__)

QueryInput = Union[str, Sequence[float]]

DEFAULT_DOCUMENTS = [
    'To duplicate a Notion template, click the "Duplicate" button in the top right corner of the template page. Make sure to select "Include content" if you want all the template content.',
    "If you're having trouble with Notion loading, try clearing your browser cache and cookies, or try using a different browser.",
    "Notion supports multiple languages. You can change your language settings by going to Settings & Members > My account > Language & region.",
    'To share a Notion page, click the "Share" button in the top right corner and enter the email addresses of the people you want to share with.',
    "Notion's free plan includes unlimited pages and blocks for personal use, but has limitations on collaboration features.",
]


class RemoteVectorIndex(Protocol):
    async def add(self, embedding: Sequence[float], text: str,
                  metadata: Dict[str, Any]) -> None: ...

    async def query(self, embedding: Sequence[float],
                    top_k: int) -> List[str]: ...


class ElasticsearchVectorIndex:
    """kNN search over the knowledge index's dense_vector field."""

    def __init__(self, es: ElasticsearchService):
        self.es = es
        self.index_name = es.index_name

    def _client(self):
        client = self.es.get_client()
        if client is None:
            raise RuntimeError("Elasticsearch is not configured")
        return client

    async def add(self, embedding: Sequence[float], text: str,
                  metadata: Dict[str, Any]) -> None:
        await self._client().index(
            index=self.index_name,
            document={
                "text": text,
                "metadata": metadata,
                "seq": time.time_ns(),
                "embedding": list(embedding)
            }
        )

    async def query(self, embedding: Sequence[float],
                    top_k: int) -> List[str]:
        response = await self._client().search(
            index=self.index_name,
            knn={
                "field": "embedding",
                "query_vector": list(embedding),
                "k": top_k,
                "num_candidates": max(100, top_k)
            },
            size=top_k,
            source=["text"]
        )
        return [hit["_source"]["text"] for hit in response["hits"]["hits"]]


class VectorIndex:
    """Top-K document retrieval with a remote index and a local fallback.

    The first remote failure switches this instance to the local store for the
    rest of the process; the remote side is not retried. Vectors whose length
    does not match the local store are rejected before the remote is called,
    and a request the remote rejects as malformed does not count as a failure.
    """

    def __init__(self,
                 embed: EmbedFn,
                 local: LocalVectorStore,
                 remote: Optional[RemoteVectorIndex] = None,
                 timeout: float = 5.0):
        self.embed = embed
        self.local = local
        self.remote = remote
        self.timeout = timeout
        self._remote_failed = False

    @property
    def remote_available(self) -> bool:
        return self.remote is not None and not self._remote_failed

    def _remote_failed_with(self, error: Exception, operation: str):
        # A rejected request is the caller's fault, not the backend's
        if isinstance(error, BadRequestError):
            logger.warning(f"Remote vector {operation} rejected, using local "
                           f"vector database for this call: {error!r}")
            return
        self._downgrade(error)

    def _downgrade(self, error: Exception):
        self._remote_failed = True
        logger.error(f"Remote vector index failed, using local vector "
                     f"database from now on: {error!r}")

    async def initialize(self, seed_documents: Optional[List[str]] = None):
        """Load the local store and seed it when it is empty."""
        await self.local.load()
        if len(self.local) == 0 and seed_documents:
            logger.info("Initializing local vector database with sample data")
            for doc in seed_documents:
                embedding = await self.embed(doc)
                await self.local.add(embedding, doc, {"source": "seed"})
            logger.info(f"Seeded {len(seed_documents)} documents")

    async def _as_vector(self, query: QueryInput) -> List[float]:
        if isinstance(query, str):
            return list(await self.embed(query))
        return list(query)

    async def add(self, text: str,
                  metadata: Optional[Dict[str, Any]] = None):
        metadata = metadata or {}
        embedding = await self.embed(text)
        self.local.check_dimension(embedding)

        if self.remote_available:
            try:
                await run_bounded(self.remote.add(embedding, text, metadata),
                                  self.timeout, "remote vector add")
            except Exception as e:
                self._remote_failed_with(e, "add")

        await self.local.add(embedding, text, metadata)
        logger.info("Added document to vector index")

    async def query(self, query: QueryInput, top_k: int = 3) -> List[str]:
        """Most similar document texts, best first."""
        started = time.perf_counter()
        embedding = await self._as_vector(query)
        self.local.check_dimension(embedding)

        if self.remote_available:
            try:
                docs = await run_bounded(self.remote.query(embedding, top_k),
                                         self.timeout, "remote vector query")
                duration = (time.perf_counter() - started) * 1000
                logger.info(f"Remote vector query successful in "
                            f"{duration:.0f}ms")
                return docs
            except Exception as e:
                self._remote_failed_with(e, "query")

        docs = await self.local.query(embedding, top_k)
        duration = (time.perf_counter() - started) * 1000
        logger.info(f"Local vector database query completed in "
                    f"{duration:.0f}ms")
        return docs
