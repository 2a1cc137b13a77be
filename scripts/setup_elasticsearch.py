#!/usr/bin/env python3
"""
Script to prepare Elasticsearch for the Omnichannel Support Resolver.
Creates the tickets index and the knowledge (dense_vector) index if missing.
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from config.settings import settings
from supportdesk.services.elasticsearch_service import (
    TICKETS_MAPPING,
    ElasticsearchService,
    knowledge_mapping
)


def print_status(message):
    """Print status message"""
    print(f"✅ {message}")


def print_error(message):
    """Print error message"""
    print(f"❌ {message}")


def print_info(message):
    """Print info message"""
    print(f"ℹ️  {message}")


async def create_indexes(es_service: ElasticsearchService) -> bool:
    """Create both indexes, reporting each one"""
    indexes = [
        (es_service.tickets_index, TICKETS_MAPPING),
        (es_service.index_name, knowledge_mapping(es_service.embedding_dim))
    ]

    for name, mapping in indexes:
        try:
            await es_service.create_index(name, mapping)
            print_status(f"Index ready: {name}")
        except Exception as e:
            print_error(f"Failed to create index {name}: {e}")
            return False
    return True


async def main():
    """Main setup function"""
    print("🔧 Elasticsearch Setup for Omnichannel Support Resolver")
    print("=" * 50)

    if not settings.elasticsearch_enabled:
        print_error("ELASTICSEARCH_URL is empty; tickets and vectors will "
                    "use the local fallback stores")
        sys.exit(1)

    es_service = ElasticsearchService(settings)
    try:
        print_info(f"Connecting to {settings.ELASTICSEARCH_URL}...")
        if not await es_service.ping(settings.TICKET_STORE_TIMEOUT):
            print_error("Could not reach Elasticsearch")
            print_info("Start it with discovery.type=single-node and "
                       "xpack.security.enabled=false for development")
            sys.exit(1)
        print_status("Elasticsearch is reachable")

        if not await create_indexes(es_service):
            sys.exit(1)
    finally:
        await es_service.close()

    print("\n" + "=" * 50)
    print_status("Elasticsearch setup complete!")
    print("\nNext steps:")
    print("1. Load the knowledge base: python scripts/populate_knowledge_base.py")
    print("2. Start the API: python -m uvicorn supportdesk.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
