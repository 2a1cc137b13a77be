"""
Document retrieval

VectorIndex answers top-K cosine similarity queries from Elasticsearch while
it is healthy and from a file-backed local store afterwards.
"""

from supportdesk.retrieval.similarity import cosine_similarity
from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.retrieval.vector_index import (
    DEFAULT_DOCUMENTS,
    ElasticsearchVectorIndex,
    VectorIndex
)

__all__ = [
    "cosine_similarity",
    "LocalVectorStore",
    "DEFAULT_DOCUMENTS",
    "ElasticsearchVectorIndex",
    "VectorIndex"
]
