"""Tests for cosine retrieval and the remote/local vector index."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import BadRequestError

from supportdesk.errors import DimensionMismatchError
from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.retrieval.similarity import cosine_similarity
from supportdesk.retrieval.vector_index import VectorIndex

DOCUMENT_VECTORS = {
    "sharing": [1.0, 0.0, 0.0],
    "templates": [0.0, 1.0, 0.0],
    "languages": [0.0, 0.0, 1.0],
}


async def table_embedding(text: str):
    return DOCUMENT_VECTORS.get(text, [0.9, 0.1, 0.0])


def bad_request() -> BadRequestError:
    meta = ApiResponseMeta(status=400, http_version="1.1",
                           headers=HttpHeaders(), duration=0.0,
                           node=NodeConfig("http", "localhost", 9200))
    return BadRequestError(message="illegal_argument_exception", meta=meta,
                           body={"error": "query vector has wrong dimension"})


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0],
                                 [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0],
                                 [-1.0, -2.0, -3.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_length_mismatch(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


class TestLocalVectorStore:

    @pytest.fixture
    async def store(self, tmp_path):
        store = LocalVectorStore(str(tmp_path / "vectors.json"))
        await store.load()
        for text, vector in DOCUMENT_VECTORS.items():
            await store.add(vector, text, {"topic": text})
        return store

    @pytest.mark.asyncio
    async def test_top_result_is_most_similar(self, store):
        results = await store.query([0.9, 0.1, 0.0], top_k=1)

        assert results == ["sharing"]

    @pytest.mark.asyncio
    async def test_exact_match_is_returned(self, store):
        results = await store.query(DOCUMENT_VECTORS["templates"], top_k=1)

        assert results == ["templates"]

    @pytest.mark.asyncio
    async def test_results_ordered_best_first(self, store):
        results = await store.query([0.1, 0.7, 0.3], top_k=3)

        assert results == ["templates", "languages", "sharing"]

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self, store):
        results = await store.query([1.0, 1.0, 1.0], top_k=3)

        assert results == ["sharing", "templates", "languages"]

    @pytest.mark.asyncio
    async def test_top_k_larger_than_collection(self, store):
        assert len(await store.query([1.0, 0.0, 0.0], top_k=10)) == 3

    @pytest.mark.asyncio
    async def test_empty_store_returns_nothing(self, tmp_path):
        store = LocalVectorStore(str(tmp_path / "empty.json"))
        await store.load()

        assert await store.query([1.0, 0.0], top_k=3) == []

    @pytest.mark.asyncio
    async def test_dimension_mismatch_on_add(self, store):
        with pytest.raises(DimensionMismatchError) as excinfo:
            await store.add([1.0, 0.0], "short", {})

        assert excinfo.value.expected == 3
        assert excinfo.value.actual == 2
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_dimension_mismatch_on_query(self, store):
        with pytest.raises(DimensionMismatchError):
            await store.query([1.0, 0.0, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_persists_after_every_add(self, store, tmp_path):
        with open(tmp_path / "vectors.json", encoding="utf-8") as f:
            saved = json.load(f)
        assert [item["text"] for item in saved] == list(DOCUMENT_VECTORS)

        reloaded = LocalVectorStore(str(tmp_path / "vectors.json"))
        assert await reloaded.load() == 3
        assert await reloaded.query([0.0, 0.0, 1.0], top_k=1) == ["languages"]


class TestVectorIndex:

    @pytest.fixture
    def local(self, tmp_path):
        return LocalVectorStore(str(tmp_path / "vectors.json"))

    @pytest.mark.asyncio
    async def test_seeds_empty_local_store(self, local):
        index = VectorIndex(table_embedding, local)

        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        assert len(local) == 3
        assert await index.query("templates", top_k=1) == ["templates"]

    @pytest.mark.asyncio
    async def test_does_not_reseed_existing_store(self, local):
        await local.add([1.0, 0.0, 0.0], "existing", {})
        index = VectorIndex(table_embedding, local)

        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        assert len(local) == 1

    @pytest.mark.asyncio
    async def test_accepts_precomputed_vector(self, local):
        index = VectorIndex(table_embedding, local)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        assert await index.query([0.0, 0.0, 1.0], top_k=1) == ["languages"]

    @pytest.mark.asyncio
    async def test_uses_remote_while_healthy(self, local):
        remote = AsyncMock()
        remote.query.return_value = ["remote answer"]
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)

        assert await index.query("sharing") == ["remote answer"]
        assert index.remote_available is True
        remote.query.assert_awaited_once_with([1.0, 0.0, 0.0], 3)

    @pytest.mark.asyncio
    async def test_remote_failure_downgrades_permanently(self, local):
        remote = AsyncMock()
        remote.query.side_effect = ConnectionError("index unreachable")
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        first = await index.query("sharing", top_k=1)
        remote.query.side_effect = None
        remote.query.return_value = ["remote answer"]
        second = await index.query("templates", top_k=1)

        assert first == ["sharing"]
        assert second == ["templates"]
        assert index.remote_available is False
        assert remote.query.await_count == 1

    @pytest.mark.asyncio
    async def test_remote_timeout_uses_local(self, local):
        async def hang(embedding, top_k):
            await asyncio.sleep(0.3)
            return ["too late"]

        remote = AsyncMock()
        remote.query.side_effect = hang
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.05)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        assert await index.query("languages", top_k=1) == ["languages"]
        assert index.remote_available is False

    @pytest.mark.asyncio
    async def test_add_writes_remote_and_local(self, local):
        remote = AsyncMock()
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize()

        await index.add("sharing", {"source": "faq"})

        remote.add.assert_awaited_once_with([1.0, 0.0, 0.0], "sharing",
                                            {"source": "faq"})
        assert len(local) == 1

    @pytest.mark.asyncio
    async def test_failed_remote_add_still_stores_locally(self, local):
        remote = AsyncMock()
        remote.add.side_effect = ConnectionError("index unreachable")
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize()

        await index.add("sharing")

        assert len(local) == 1
        assert index.remote_available is False

    @pytest.mark.asyncio
    async def test_wrong_dimension_query_keeps_remote(self, local):
        remote = AsyncMock()
        remote.query.side_effect = bad_request()
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        with pytest.raises(DimensionMismatchError):
            await index.query([1.0, 0.0], top_k=1)

        remote.query.assert_not_called()
        assert index.remote_available is True

    @pytest.mark.asyncio
    async def test_wrong_dimension_add_touches_neither_store(self, local):
        async def short_embedding(text):
            return [1.0, 0.0]

        remote = AsyncMock()
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))
        index.embed = short_embedding

        with pytest.raises(DimensionMismatchError):
            await index.add("too short")

        remote.add.assert_not_called()
        assert len(local) == 3
        assert index.remote_available is True

    @pytest.mark.asyncio
    async def test_rejected_remote_request_does_not_downgrade(self, local):
        remote = AsyncMock()
        remote.query.side_effect = [bad_request(), ["remote answer"]]
        index = VectorIndex(table_embedding, local, remote=remote, timeout=0.5)
        await index.initialize(seed_documents=list(DOCUMENT_VECTORS))

        first = await index.query("sharing", top_k=1)
        second = await index.query("templates", top_k=1)

        assert first == ["sharing"]
        assert second == ["remote answer"]
        assert index.remote_available is True
