import logging
from typing import Optional

import redis.asyncio as redis

from config.settings import Settings
from supportdesk.agents.classifier_agent import ClassifierAgent
from supportdesk.agents.resolution_agent import ResolutionAgent
from supportdesk.cache.cache_layer import CacheLayer
from supportdesk.errors import ExternalServiceError
from supportdesk.retrieval.local_store import LocalVectorStore
from supportdesk.retrieval.vector_index import (
    DEFAULT_DOCUMENTS,
    ElasticsearchVectorIndex,
    VectorIndex
)
from supportdesk.services.capabilities import (
    ClassifyFn,
    EmbedFn,
    GenerateFn,
    NotifyFn,
    TranscribeFn,
    VisualAidFn
)
from supportdesk.services.elasticsearch_service import ElasticsearchService
from supportdesk.services.embedding_service import EmbeddingService
from supportdesk.services.llm_service import GeminiLLMService
from supportdesk.sessions.chat_service import ChatSessionService
from supportdesk.sessions.store import SessionStore
from supportdesk.sessions.voice_service import VoiceCallService
from supportdesk.storage.elasticsearch_tickets import ElasticsearchTicketBackend
from supportdesk.storage.local_ticket_file import LocalTicketFile
from supportdesk.storage.ticket_store import TicketStore
from supportdesk.workflows.support_workflow import CustomerSupportWorkflow

logger = logging.getLogger(__name__)


async def transcription_unavailable(recording_url: str) -> str:
    raise ExternalServiceError("No speech-to-text service is configured")


async def log_notification(recipient: str, text: str) -> None:
    logger.info(f"Notification for {recipient}: {text}")


class Container:
    """
    Composition root wiring settings, adapters, stores and services.

    Capabilities that are not passed in are built from the default adapters:
    Gemini for classification and generation, sentence-transformers for
    embeddings. Tests pass plain async callables and in-memory clients.
    """

    def __init__(self,
                 settings: Optional[Settings] = None,
                 classify: Optional[ClassifyFn] = None,
                 embed: Optional[EmbedFn] = None,
                 generate: Optional[GenerateFn] = None,
                 transcribe: Optional[TranscribeFn] = None,
                 notify: Optional[NotifyFn] = None,
                 visual_aid: Optional[VisualAidFn] = None,
                 redis_client=None,
                 es_service: Optional[ElasticsearchService] = None):
        # Configuration
        self.settings = settings or Settings()
        s = self.settings

        # External capabilities
        if classify is None or generate is None:
            self.llm_service = GeminiLLMService(s)
            classify = classify or self.llm_service.classify_intent
            generate = generate or self.llm_service.generate_reply
        if embed is None:
            self.embedding_service = EmbeddingService(s)
            embed = self.embedding_service.encode_text

        # Infrastructure
        if es_service is None and s.elasticsearch_enabled:
            es_service = ElasticsearchService(s)
        self.es_service = es_service
        self.redis = redis_client or redis.from_url(s.REDIS_URL,
                                                    decode_responses=True)

        # Stores
        primary = None
        remote = None
        if self.es_service is not None:
            primary = ElasticsearchTicketBackend(self.es_service,
                                                 s.TICKET_STORE_TIMEOUT)
            remote = ElasticsearchVectorIndex(self.es_service)

        self.ticket_store = TicketStore(
            fallback=LocalTicketFile(s.data_path(s.TICKETS_FILE)),
            primary=primary,
            timeout=s.TICKET_STORE_TIMEOUT
        )
        self.vector_index = VectorIndex(
            embed=embed,
            local=LocalVectorStore(s.data_path(s.VECTOR_FILE)),
            remote=remote,
            timeout=s.VECTOR_QUERY_TIMEOUT
        )
        self.cache = CacheLayer(
            response_ttl=s.RESPONSE_CACHE_TTL,
            intent_ttl=s.INTENT_CACHE_TTL,
            max_size=s.CACHE_MAX_SIZE
        )
        self.session_store = SessionStore(
            self.redis,
            chat_ttl=s.CHAT_SESSION_TTL,
            call_ttl=s.CALL_SESSION_TTL
        )

        # Agents
        self.classifier = ClassifierAgent(classify, cache=self.cache)
        self.resolver = ResolutionAgent(self.vector_index, generate,
                                        knowledge_limit=s.KNOWLEDGE_SEARCH_LIMIT)

        # Channels
        self.workflow = CustomerSupportWorkflow(
            ticket_store=self.ticket_store,
            cache=self.cache,
            classifier=self.classifier,
            resolver=self.resolver,
            vector_index=self.vector_index,
            refund_reply=s.REFUND_TEMPLATE,
            missing_info_reply=s.MISSING_INFO_TEMPLATE,
            max_content_length=s.MAX_CONTENT_LENGTH
        )
        self.voice_service = VoiceCallService(
            self.session_store,
            self.vector_index,
            generate,
            transcribe or transcription_unavailable,
            knowledge_limit=s.KNOWLEDGE_SEARCH_LIMIT
        )
        self.chat_service = ChatSessionService(
            self.session_store,
            self.vector_index,
            classify=self.classifier.classify_label,
            generate=generate,
            notify=notify or log_notification,
            visual_aid=visual_aid,
            visual_aid_intents=s.VISUAL_AID_INTENTS,
            escalation_message=s.ESCALATION_TEMPLATE,
            error_message=s.CHAT_ERROR_TEMPLATE,
            knowledge_limit=s.KNOWLEDGE_SEARCH_LIMIT
        )

    async def startup(self):
        """Prepare indexes and the local vector store"""
        if self.es_service is not None:
            await self.es_service.initialize()
        seed = DEFAULT_DOCUMENTS if self.settings.SEED_VECTOR_STORE else None
        await self.vector_index.initialize(seed_documents=seed)

    async def shutdown(self):
        if self.es_service is not None:
            await self.es_service.close()
        await self.redis.aclose()
