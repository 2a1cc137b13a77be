import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from supportdesk.errors import SessionBackendError
from supportdesk.models.schemas import Session, SessionChannel, SessionState, utcnow

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class SessionStore:
    """Expiring session persistence on Redis.

    Sessions are stored as one JSON string per key with ``SET ... EX``; an
    expired key is indistinguishable from one that never existed.
    """

    def __init__(self, redis_client, chat_ttl: int = 86400,
                 call_ttl: int = 3600):
        self.redis = redis_client
        self.chat_ttl = chat_ttl
        self.call_ttl = call_ttl

    def ttl_for(self, channel: SessionChannel) -> int:
        return self.call_ttl if channel == SessionChannel.VOICE else self.chat_ttl

    async def load(self, session_id: str) -> Optional[Session]:
        """Stored session or None. Raises SessionBackendError if Redis fails."""
        try:
            raw = await self.redis.get(session_id)
        except BACKEND_ERRORS as e:
            raise SessionBackendError(
                f"Error loading session {session_id}: {str(e)}") from e

        if raw is None:
            return None

        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable session {session_id}: {e}")
            return None

    async def save(self, session: Session) -> bool:
        """Persist ``session``; failures are logged, never raised."""
        if session.ephemeral:
            return False

        session.updated_at = utcnow()
        try:
            await self.redis.set(session.id, session.model_dump_json(),
                                 ex=self.ttl_for(session.channel))
            return True
        except BACKEND_ERRORS as e:
            logger.error(f"Error saving session {session.id}: {e!r}")
            return False

    async def get_or_create(self, session_id: str,
                            channel: SessionChannel,
                            initial_state: SessionState,
                            caller: Optional[str] = None) -> Session:
        """Load a session, creating it on first contact.

        When Redis cannot be read the caller gets a fresh ephemeral session
        that lives for this call only.
        """
        try:
            session = await self.load(session_id)
        except SessionBackendError as e:
            logger.error(f"{e}; continuing with an in-memory session")
            session = Session(id=session_id, channel=channel,
                              state=initial_state, caller=caller,
                              ephemeral=True)
            return session

        if session is not None:
            return session

        session = Session(id=session_id, channel=channel,
                          state=initial_state, caller=caller)
        await self.save(session)
        logger.info(f"Created session {session_id}")
        return session
