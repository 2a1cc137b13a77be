"""
Conversation state for the voice (IVR) and chat channels.
"""

from supportdesk.sessions.store import SessionStore
from supportdesk.sessions.voice_service import VoiceCallService, call_session_id
from supportdesk.sessions.chat_service import ChatSessionService, chat_session_id

__all__ = [
    "SessionStore",
    "VoiceCallService",
    "ChatSessionService",
    "call_session_id",
    "chat_session_id"
]
