from sentence_transformers import SentenceTransformer
from typing import List
import asyncio
import logging

from config.settings import Settings
from supportdesk.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class EmbeddingService:
    def __init__(self, settings: Settings):
        self.model_name = settings.EMBEDDING_MODEL
        self.model = None

    def _load_model(self):
        """Load the configured embedding model, falling back to a small one"""
        try:
            self.model = SentenceTransformer(self.model_name)
            logger.info(f"Loaded embedding model: {self.model_name}")
        except Exception as e:
            logger.error(f"Error loading embedding model: {e}")
            try:
                self.model = SentenceTransformer('all-MiniLM-L6-v2')
                logger.info("Loaded fallback embedding model: all-MiniLM-L6-v2")
            except Exception as fallback_error:
                raise ExternalServiceError(
                    f"Failed to load any embedding model: {fallback_error}")

    async def encode_text(self, text: str) -> List[float]:
        """Generate embeddings for a single text"""
        if self.model is None:
            await asyncio.to_thread(self._load_model)

        try:
            embedding = await asyncio.to_thread(
                self.model.encode,
                self.prepare_text_for_embedding(text),
                convert_to_numpy=True
            )
            return embedding.tolist()
        except Exception as e:
            raise ExternalServiceError(f"Error generating embedding: {str(e)}")

    def prepare_text_for_embedding(self, text: str) -> str:
        """Collapse whitespace and truncate to the model's practical limit"""
        text = " ".join(text.split())

        max_length = 2000
        if len(text) > max_length:
            text = text[:max_length]

        return text
