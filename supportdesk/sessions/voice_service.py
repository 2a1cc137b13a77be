import logging
from typing import List, Optional

from supportdesk.models.schemas import (
    Session,
    SessionChannel,
    SessionState,
    TranscriptRole,
    utcnow
)
from supportdesk.retrieval.vector_index import VectorIndex
from supportdesk.services.capabilities import GenerateFn, TranscribeFn
from supportdesk.sessions.ivr import (
    CATEGORY_CONTEXT,
    DEFAULT_CATEGORY,
    CallStarted,
    Effect,
    Event,
    Hangup,
    ProcessRecording,
    ReplyGenerated,
    ReportDuration,
    Say,
    resume_state,
    transition
)
from supportdesk.sessions.store import SessionStore

logger = logging.getLogger(__name__)

VOICE_SYSTEM_PROMPT = """You are a helpful customer support agent for {category}.
Keep your responses concise and clear for voice communication.
If you need more information, ask a specific question.
If you cannot help, offer to connect to a human agent."""

PROCESSING_ERROR_PROMPT = ("We encountered an issue processing your request. "
                           "Please try again later.")
FALLBACK_VOICE_REPLY = ("I'm sorry, I could not find an answer right now. "
                        "A human agent can help you with this issue.")


def call_session_id(call_sid: str) -> str:
    return f"call:{call_sid}"


class VoiceCallService:
    """Drives phone calls through the IVR state machine.

    Each inbound transport event loads the call session, applies the pure
    transition, performs the processing step when the machine asks for it and
    saves the session. The returned effects are rendered by the transport.
    """

    def __init__(self,
                 store: SessionStore,
                 vector_index: VectorIndex,
                 generate: GenerateFn,
                 transcribe: TranscribeFn,
                 knowledge_limit: int = 3):
        self.store = store
        self.vector_index = vector_index
        self.generate = generate
        self.transcribe = transcribe
        self.knowledge_limit = knowledge_limit

    async def _load(self, call_sid: str, event: Event) -> Session:
        session_id = call_session_id(call_sid)
        if isinstance(event, CallStarted):
            # A new inbound call always starts over at the menu
            session = Session(id=session_id, channel=SessionChannel.VOICE,
                              state=SessionState.MENU, caller=event.caller)
            logger.info(f"Incoming call from: {event.caller}, SID: {call_sid}")
            return session

        return await self.store.get_or_create(
            session_id, SessionChannel.VOICE, resume_state(event))

    def _apply(self, session: Session, event: Event) -> List[Effect]:
        step = transition(session.state, event)
        logger.info(f"Call {session.id}: {session.state.value} -> "
                    f"{step.state.value} on {type(event).__name__}")
        session.state = step.state
        if step.category is not None:
            session.category = step.category
        return step.effects

    async def handle_event(self, call_sid: str, event: Event) -> List[Effect]:
        """Apply one transport event to the call and return the effects."""
        session = await self._load(call_sid, event)
        pending = self._apply(session, event)

        effects: List[Effect] = []
        for effect in pending:
            if isinstance(effect, ProcessRecording):
                effects.extend(await self._process_recording(session, effect))
            elif isinstance(effect, ReportDuration):
                effects.append(self._complete(session))
            else:
                effects.append(effect)

        await self.store.save(session)
        return effects

    async def start_call(self, call_sid: str,
                         caller: Optional[str] = None) -> List[Effect]:
        return await self.handle_event(call_sid, CallStarted(caller=caller))

    async def _process_recording(self, session: Session,
                                 effect: ProcessRecording) -> List[Effect]:
        session.recording_url = effect.recording_url
        logger.info(f"Processing recording for {session.id}: "
                    f"{effect.recording_url}")

        try:
            transcription = await self.transcribe(effect.recording_url)
        except Exception as e:
            logger.error(f"Error transcribing recording for {session.id}: {e!r}")
            return [Say(PROCESSING_ERROR_PROMPT), Hangup()]

        logger.info(f"Transcription: {transcription}")
        session.append(TranscriptRole.USER, transcription,
                       media_url=effect.recording_url)

        reply = await self._answer(session, transcription)
        session.append(TranscriptRole.ASSISTANT, reply)

        return self._apply(session, ReplyGenerated(reply))

    async def _answer(self, session: Session, transcription: str) -> str:
        category = CATEGORY_CONTEXT[session.category or DEFAULT_CATEGORY]
        system_prompt = VOICE_SYSTEM_PROMPT.format(category=category)

        try:
            docs = await self.vector_index.query(transcription,
                                                 self.knowledge_limit)
        except Exception as e:
            logger.error(f"Knowledge retrieval failed for {session.id}: {e!r}")
            docs = []

        try:
            return await self.generate(transcription, docs, None, system_prompt)
        except Exception as e:
            logger.error(f"Reply generation failed for {session.id}: {e!r}")
            return FALLBACK_VOICE_REPLY

    def _complete(self, session: Session) -> ReportDuration:
        session.completed_at = utcnow()
        seconds = session.duration.total_seconds()
        logger.info(f"Call {session.id} completed. Duration: "
                    f"{seconds * 1000:.0f}ms")
        return ReportDuration(seconds=seconds)
