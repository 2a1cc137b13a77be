import logging
from typing import Dict, List, Optional

from supportdesk.cache.cache_layer import CacheLayer
from supportdesk.models.schemas import Intent
from supportdesk.services.capabilities import ClassifyFn

logger = logging.getLogger(__name__)


class ClassifierAgent:
    """Agent responsible for mapping a support request onto an intent"""

    def __init__(self, classify: ClassifyFn,
                 cache: Optional[CacheLayer] = None):
        self.name = "Classifier Agent"
        self.classify_fn = classify
        self.cache = cache
        self.intent_indicators: Dict[Intent, List[str]] = {
            Intent.REFUND: ["refund", "money back", "charged twice",
                            "cancel my subscription"],
            Intent.TEMPLATE_ISSUE: ["template", "duplicate"],
            Intent.VPN_CONNECTION: ["vpn", "proxy", "firewall"],
            Intent.SCREEN_SHARE_ISSUE: ["screen share", "screen sharing",
                                        "screenshare"],
            Intent.MULTI_LANG: ["language", "translate", "translation"],
            Intent.NOTION_BASICS: ["how do i", "how to", "create a page",
                                   "share a page", "workspace"]
        }

    async def classify(self, content: str) -> Intent:
        """
        Classify the request, reusing a cached label for identical content
        """
        if self.cache is not None:
            cached = await self.cache.get_intent(content)
            if cached is not None:
                logger.info(f"Using cached intent classification: {cached}")
                return Intent.from_label(cached)

        try:
            label = await self.classify_fn(content)
        except Exception as e:
            # Keyword fallback results are not cached
            intent = self._keyword_intent(content)
            logger.error(f"Intent classification failed, using keyword "
                         f"match {intent.value}: {e!r}")
            return intent

        intent = Intent.from_label(label)
        if self.cache is not None:
            await self.cache.put_intent(content, intent.value)
        logger.info(f"Intent classified as: {intent.value}")
        return intent

    async def classify_label(self, content: str) -> str:
        """ClassifyFn compatible wrapper used by the chat channel"""
        intent = await self.classify(content)
        return intent.value

    def _keyword_intent(self, content: str) -> Intent:
        """
        Pick the intent whose indicators match the request most often
        """
        text = content.lower()

        best, best_strength = Intent.OTHER, 0
        for intent, keywords in self.intent_indicators.items():
            strength = sum(1 for kw in keywords if kw in text)
            if strength > best_strength:
                best, best_strength = intent, strength

        return best
