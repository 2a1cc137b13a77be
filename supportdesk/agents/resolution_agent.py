import logging
from typing import List, NamedTuple

from supportdesk.models.schemas import Intent
from supportdesk.retrieval.vector_index import VectorIndex
from supportdesk.services.capabilities import (
    ESCALATE_MARKER,
    VISUAL_AID_MARKER,
    GenerateFn
)

logger = logging.getLogger(__name__)

TEMPLATE_FALLBACK_REPLY = (
    "I see you're having trouble with your Notion template. Try these steps: "
    "1) Make sure you selected 'Include content' when duplicating. "
    "2) Check your internet connection. 3) Clear your browser cache. "
    "4) Try using a different browser. If the issue persists, please provide "
    "more details about the specific problem you're experiencing."
)


class Resolution(NamedTuple):
    reply: str
    escalate: bool = False


class ResolutionAgent:
    """Agent responsible for generating replies from retrieved documentation"""

    def __init__(self, vector_index: VectorIndex, generate: GenerateFn,
                 knowledge_limit: int = 3):
        self.name = "Resolution Agent"
        self.vector_index = vector_index
        self.generate = generate
        self.knowledge_limit = knowledge_limit

    async def retrieve(self, content: str) -> List[str]:
        docs = await self.vector_index.query(content, self.knowledge_limit)
        logger.info(f"Retrieved {len(docs)} relevant documents")
        return docs

    async def generate_resolution(self, content: str,
                                  intent: Intent) -> Resolution:
        """
        Retrieve documentation and generate a reply.

        ``escalate`` is set when the generated reply asked for a human agent.
        Retrieval or generation failures never propagate; the caller gets a
        fallback reply instead.
        """
        try:
            docs = await self.retrieve(content)
            reply = await self.generate(content, docs, None, None)
            return Resolution(self._post_process_response(reply),
                              escalate=ESCALATE_MARKER in reply)
        except Exception as e:
            logger.error(f"Error with vector search or response "
                         f"generation: {e!r}")
            logger.info(f"Using fallback response for intent {intent.value}")
            return Resolution(self._get_fallback_response(content, intent))

    def _post_process_response(self, response: str) -> str:
        """
        Strip control markers from the reply shown to the customer
        """
        for marker in (ESCALATE_MARKER, VISUAL_AID_MARKER):
            response = response.replace(marker, "")
        return response.strip()

    def _get_fallback_response(self, content: str, intent: Intent) -> str:
        if intent == Intent.TEMPLATE_ISSUE:
            return TEMPLATE_FALLBACK_REPLY

        return (f'Thank you for your message about "{content[:30]}...". '
                f"Our team will review your request and get back to you soon.")
