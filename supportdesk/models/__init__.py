"""
Data Models and Schemas

Pydantic models for tickets, vector records, conversation sessions and
API payloads.
"""

from supportdesk.models.schemas import (
    SourceChannel,
    TicketStatus,
    Intent,
    Ticket,
    VectorRecord,
    SessionChannel,
    SessionState,
    TranscriptRole,
    TranscriptEntry,
    Session,
    SupportResponse,
    ChatTurnResult,
    APIResponse
)

__all__ = [
    "SourceChannel",
    "TicketStatus",
    "Intent",
    "Ticket",
    "VectorRecord",
    "SessionChannel",
    "SessionState",
    "TranscriptRole",
    "TranscriptEntry",
    "Session",
    "SupportResponse",
    "ChatTurnResult",
    "APIResponse"
]
