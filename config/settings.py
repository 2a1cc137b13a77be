import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # ---------------------------
    # ✅ API Keys
    # ---------------------------
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    # ---------------------------
    # ✅ Elasticsearch Configuration
    # ---------------------------
    # An empty URL means "not configured": tickets and vectors stay local.
    ELASTICSEARCH_URL: str = os.getenv("ELASTICSEARCH_URL", "http://localhost:9200")
    ELASTICSEARCH_INDEX: str = os.getenv("ELASTICSEARCH_INDEX", "customer_support_kb")
    TICKETS_INDEX: str = os.getenv("TICKETS_INDEX", "support_tickets")
    TICKET_STORE_TIMEOUT: float = 3.0
    VECTOR_QUERY_TIMEOUT: float = 5.0

    # ---------------------------
    # ✅ Local Fallback Storage
    # ---------------------------
    DATA_DIR: str = os.getenv("DATA_DIR", "./data")
    TICKETS_FILE: str = "tickets.json"
    VECTOR_FILE: str = "vector-db/support-vectors.json"
    SEED_VECTOR_STORE: bool = True

    # ---------------------------
    # ✅ Redis (session store)
    # ---------------------------
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    CHAT_SESSION_TTL: int = 86400
    CALL_SESSION_TTL: int = 3600

    # ---------------------------
    # ✅ Cache Configuration
    # ---------------------------
    RESPONSE_CACHE_TTL: int = 600
    INTENT_CACHE_TTL: int = 1800
    CACHE_MAX_SIZE: int = 5000

    # ---------------------------
    # ✅ Embedding Model Configuration
    # ---------------------------
    EMBEDDING_MODEL: str = "mixedbread-ai/mxbai-embed-large-v1"
    EMBEDDING_DIMENSION: int = 1024

    # ---------------------------
    # ✅ LLM Configuration
    # ---------------------------
    GEMINI_MODEL: str = "gemini-1.5-pro"
    TEMPERATURE: float = 0.1
    MAX_TOKENS: int = 1000

    # ---------------------------
    # ✅ Application Configuration
    # ---------------------------
    FASTAPI_HOST: str = "0.0.0.0"
    FASTAPI_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ---------------------------
    # ✅ Request Handling
    # ---------------------------
    MAX_CONTENT_LENGTH: int = 5000
    KNOWLEDGE_SEARCH_LIMIT: int = 3

    # Intents for which a visual walkthrough can be captured
    VISUAL_AID_INTENTS: list[str] = [
        "template_issue", "vpn_connection", "screen_share_issue",
        "notion_basics"
    ]

    # ---------------------------
    # ✅ Response Templates
    # ---------------------------
    REFUND_TEMPLATE: str = "I see you're asking about a refund. This request has been escalated to our billing team who will contact you shortly."
    MISSING_INFO_TEMPLATE: str = "Thank you for your message. Could you please provide more details about your issue so we can better assist you?"
    ESCALATION_TEMPLATE: str = "I'm transferring you to a human agent who will assist you shortly. Thank you for your patience."
    CHAT_ERROR_TEMPLATE: str = "Sorry, I encountered an error processing your request. Please try again later."

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def elasticsearch_enabled(self) -> bool:
        return bool(self.ELASTICSEARCH_URL)

    def data_path(self, name: str) -> str:
        return os.path.join(self.DATA_DIR, name)


# Global settings instance
settings = Settings()
