"""
External capability adapters

- LLM Service: Google Gemini intent classification and reply generation
- Embedding Service: sentence-transformers embeddings for retrieval
- Elasticsearch Service: shared connection for tickets and knowledge

The heavy adapters are imported from their modules directly so that the core
can run without the model libraries loaded.
"""

from supportdesk.services.capabilities import (
    ClassifyFn,
    EmbedFn,
    GenerateFn,
    TranscribeFn,
    NotifyFn,
    VisualAidFn
)

__all__ = [
    "ClassifyFn",
    "EmbedFn",
    "GenerateFn",
    "TranscribeFn",
    "NotifyFn",
    "VisualAidFn"
]
