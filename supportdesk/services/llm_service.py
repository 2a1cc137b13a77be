import google.generativeai as genai
from typing import Dict, List, Optional
import asyncio
import logging

from config.settings import Settings
from supportdesk.errors import ExternalServiceError
from supportdesk.models.schemas import Intent
from supportdesk.services.capabilities import ESCALATE_MARKER, VISUAL_AID_MARKER

logger = logging.getLogger(__name__)

INTENT_LABELS = ", ".join(intent.value for intent in Intent)


class GeminiLLMService:
    def __init__(self, settings: Settings):
        self.settings = settings
        genai.configure(api_key=settings.GEMINI_API_KEY)
        self.model = genai.GenerativeModel(settings.GEMINI_MODEL)

    async def generate_response(self, prompt: str, **kwargs) -> str:
        """Generate response using Gemini model"""
        try:
            response = await asyncio.to_thread(
                self.model.generate_content,
                prompt,
                generation_config=genai.types.GenerationConfig(
                    temperature=kwargs.get('temperature',
                                           self.settings.TEMPERATURE),
                    max_output_tokens=kwargs.get('max_tokens',
                                                 self.settings.MAX_TOKENS),
                )
            )
            return response.text
        except Exception as e:
            raise ExternalServiceError(f"Error generating response: {str(e)}")

    async def classify_intent(self, content: str) -> str:
        """Classify a support request into one of the known intents"""
        prompt = f"""
        Classify the following support request into one of these categories:
        {INTENT_LABELS}

        Request: {content}

        Return ONLY the category name.
        """

        response = await self.generate_response(prompt, temperature=0.0)
        label = response.strip()
        logger.debug(f"Gemini classified request as: {label}")
        return label

    async def generate_reply(self,
                             content: str,
                             docs: List[str],
                             history: Optional[List[Dict[str, str]]] = None,
                             system_prompt: Optional[str] = None) -> str:
        """Generate a reply grounded on retrieved documentation"""
        docs_text = "\n\n".join(docs)

        instructions = system_prompt or (
            "You are a Notion support agent. Use these docs to help answer "
            "the user's question. If you don't know the answer, or if this "
            "is a refund request, politely say you'll escalate to a human "
            "agent."
        )

        history_text = ""
        if history:
            history_text = "\n".join(
                f"{turn['role']}: {turn['content']}" for turn in history
            )

        prompt = f"""
        {instructions}

        Documentation:
        {docs_text if docs_text.strip() else "No relevant documentation found"}

        Conversation so far:
        {history_text or "(new conversation)"}

        If screenshots or a visual guide would help, include {VISUAL_AID_MARKER} in your reply.
        If you cannot help, include {ESCALATE_MARKER} in your reply.

        User: {content}
        """

        return await self.generate_response(prompt)
