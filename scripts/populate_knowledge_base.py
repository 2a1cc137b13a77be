#!/usr/bin/env python3
"""
Script to populate the vector index with sample knowledge base documents.
Documents go to Elasticsearch while it is reachable and always to the local
vector store, so the fallback can answer the same queries.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from config.settings import settings
from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.retrieval.vector_index import ElasticsearchVectorIndex, VectorIndex
from supportdesk.services.elasticsearch_service import ElasticsearchService
from supportdesk.services.embedding_service import EmbeddingService


def print_status(message):
    """Print status message"""
    print(f"✅ {message}")


def print_error(message):
    """Print error message"""
    print(f"❌ {message}")


def print_info(message):
    """Print info message"""
    print(f"ℹ️  {message}")


def print_progress(current, total, item_name="items"):
    """Print progress"""
    percent = (current / total) * 100
    print(f"📊 Progress: {current}/{total} {item_name} ({percent:.1f}%)")


def load_sample_data() -> List[Dict[str, Any]]:
    """Load sample knowledge base data"""
    data_file = project_root / "data" / "sample_knowledge_base.json"

    if not data_file.exists():
        print_error(f"Sample data file not found: {data_file}")
        return []

    try:
        with open(data_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        print_status(f"Loaded {len(data)} sample documents")
        return data

    except Exception as e:
        print_error(f"Failed to load sample data: {e}")
        return []


async def populate(index: VectorIndex, documents: List[Dict[str, Any]]) -> int:
    """Add every document to the index"""
    success_count = 0

    for i, doc in enumerate(documents):
        try:
            await index.add(doc["text"], doc.get("metadata", {}))
            success_count += 1
        except Exception as e:
            print_error(f"Failed to add document {i + 1}: {e}")
        print_progress(i + 1, len(documents), "documents")

    return success_count


async def verify(index: VectorIndex) -> bool:
    """Run a test query against whichever side of the index is live"""
    try:
        results = await index.query("How do I share a page?", top_k=1)
    except Exception as e:
        print_error(f"Knowledge base verification failed: {e}")
        return False

    if not results:
        print_error("Knowledge base verification failed - no results found")
        return False

    print_info(f"Top result: '{results[0][:80]}'")
    return True


async def main():
    """Main function"""
    print("📚 Knowledge Base Population Script")
    print("=" * 50)

    documents = load_sample_data()
    if not documents:
        print_error("No sample data to process")
        sys.exit(1)

    es_service = None
    remote = None
    if settings.elasticsearch_enabled:
        es_service = ElasticsearchService(settings)
        if await es_service.initialize():
            remote = ElasticsearchVectorIndex(es_service)
            print_status("Elasticsearch connection OK")
        else:
            print_info("Elasticsearch unavailable; populating the local "
                       "vector store only")

    embedding_service = EmbeddingService(settings)
    index = VectorIndex(
        embed=embedding_service.encode_text,
        local=LocalVectorStore(settings.data_path(settings.VECTOR_FILE)),
        remote=remote,
        timeout=settings.VECTOR_QUERY_TIMEOUT
    )

    try:
        await index.initialize()
        success_count = await populate(index, documents)
        print_status(f"Successfully added {success_count}/{len(documents)} "
                     f"documents")

        if success_count == 0 or not await verify(index):
            print_error("Knowledge base population completed with errors")
            sys.exit(1)
    finally:
        if es_service is not None:
            await es_service.close()

    print("\n" + "=" * 50)
    print_status("Knowledge base population completed successfully!")
    print(f"Remote index used: {'yes' if index.remote_available else 'no'}")


if __name__ == "__main__":
    asyncio.run(main())
