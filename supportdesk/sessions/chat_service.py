import asyncio
import logging
import weakref
from typing import List, Optional, Sequence

from supportdesk.models.schemas import (
    ChatTurnResult,
    Intent,
    Session,
    SessionChannel,
    SessionState,
    TranscriptRole
)
from supportdesk.retrieval.vector_index import VectorIndex
from supportdesk.services.capabilities import (
    ESCALATE_MARKER,
    VISUAL_AID_MARKER,
    ClassifyFn,
    GenerateFn,
    NotifyFn,
    VisualAidFn
)
from supportdesk.sessions.store import SessionStore

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT = """You are a helpful customer support agent for Notion.
The user's intent is: {intent}.
Keep responses concise and clear."""


def chat_session_id(channel: str, user: str) -> str:
    return f"{channel}:{user}"


class ChatSessionService:
    """Multi-turn chat conversations (WhatsApp and similar channels).

    One call to ``handle_message`` is one turn: exactly one user entry and one
    assistant entry are appended to the session transcript. Turns on the same
    session are serialised so that concurrent messages cannot overwrite each
    other's transcript entries.
    """

    def __init__(self,
                 store: SessionStore,
                 vector_index: VectorIndex,
                 classify: ClassifyFn,
                 generate: GenerateFn,
                 notify: Optional[NotifyFn] = None,
                 visual_aid: Optional[VisualAidFn] = None,
                 visual_aid_intents: Sequence[str] = (),
                 escalation_message: str = "",
                 error_message: str = "",
                 knowledge_limit: int = 3):
        self.store = store
        self.vector_index = vector_index
        self.classify = classify
        self.generate = generate
        self.notify = notify
        self.visual_aid = visual_aid
        self.visual_aid_intents = set(visual_aid_intents)
        self.escalation_message = escalation_message
        self.error_message = error_message
        self.knowledge_limit = knowledge_limit
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def handle_message(self, channel: str, user: str, text: str,
                             media_url: Optional[str] = None) -> ChatTurnResult:
        session_id = chat_session_id(channel, user)
        lock = self._lock_for(session_id)
        async with lock:
            return await self._turn(session_id, user, text, media_url)

    async def _turn(self, session_id: str, user: str, text: str,
                    media_url: Optional[str]) -> ChatTurnResult:
        logger.info(f"Processing {session_id} message: {text[:50]}...")

        session = await self.store.get_or_create(
            session_id, SessionChannel.CHAT, SessionState.ACTIVE, caller=user)
        history = session.history()
        session.append(TranscriptRole.USER, text, media_url=media_url)

        intent = await self._intent(session, text)
        docs = await self._docs(text)

        attachments: List[str] = []
        escalated_now = False
        try:
            reply = await self.generate(
                text, docs, history,
                CHAT_SYSTEM_PROMPT.format(intent=intent.value))

            if VISUAL_AID_MARKER in reply:
                reply = reply.replace(VISUAL_AID_MARKER, "")
                attachments = await self._visual_aid(intent, session_id)

            if ESCALATE_MARKER in reply:
                reply = reply.replace(ESCALATE_MARKER, "")
                escalated_now = await self._escalate(session)

            reply = reply.strip()
        except Exception as e:
            logger.error(f"Error processing message for {session_id}: {e!r}")
            reply = self.error_message

        session.append(TranscriptRole.ASSISTANT, reply,
                       attachments=attachments)
        persisted = await self.store.save(session)

        return ChatTurnResult(
            session_id=session_id,
            intent=intent,
            reply=reply,
            attachments=attachments,
            escalated=escalated_now,
            persisted=persisted
        )

    async def _intent(self, session: Session, text: str) -> Intent:
        if session.intent is not None:
            logger.info(f"Using existing intent: {session.intent.value}")
            return session.intent

        try:
            label = await self.classify(text)
        except Exception as e:
            # Left unset so the next turn tries again
            logger.error(f"Intent classification failed: {e!r}")
            return Intent.OTHER

        session.intent = Intent.from_label(label)
        logger.info(f"Classified intent as: {session.intent.value}")
        return session.intent

    async def _docs(self, text: str) -> List[str]:
        try:
            return await self.vector_index.query(text, self.knowledge_limit)
        except Exception as e:
            logger.error(f"Knowledge retrieval failed: {e!r}")
            return []

    async def _visual_aid(self, intent: Intent, session_id: str) -> List[str]:
        if self.visual_aid is None or intent.value not in self.visual_aid_intents:
            return []
        try:
            return list(await self.visual_aid(intent.value, session_id) or [])
        except Exception as e:
            logger.error(f"Visual aid capture failed for {session_id}: {e!r}")
            return []

    async def _escalate(self, session: Session) -> bool:
        """Notify the user once per session; True if this turn escalated."""
        if session.escalated:
            return False

        logger.info(f"Escalating conversation {session.id} to human support")
        session.escalated = True
        if self.notify is not None:
            try:
                await self.notify(session.id, self.escalation_message)
            except Exception as e:
                logger.error(f"Error notifying {session.id} of escalation: {e!r}")
        return True
