from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta, timezone
from enum import Enum

from supportdesk.errors import InvalidTransitionError, TicketValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceChannel(str, Enum):
    EMAIL = "email"
    VOICE = "voice"
    WHATSAPP = "whatsapp"
    API = "api"


class TicketStatus(str, Enum):
    OPEN = "open"
    PROCESSED = "processed"
    ESCALATED = "escalated"
    NEEDS_INFO = "needs_info"

    @property
    def is_terminal(self) -> bool:
        # Terminal for the automated pipeline; reopening is a human action.
        return self in (TicketStatus.PROCESSED, TicketStatus.ESCALATED)


class Intent(str, Enum):
    TEMPLATE_ISSUE = "template_issue"
    REFUND = "refund"
    MULTI_LANG = "multi_lang"
    MISSING_INFO = "missing_info"
    NOTION_BASICS = "notion_basics"
    VPN_CONNECTION = "vpn_connection"
    SCREEN_SHARE_ISSUE = "screen_share_issue"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Intent":
        """Map a free-form classifier label onto the closed intent set."""
        if not label:
            return cls.OTHER
        normalized = label.strip().strip(".\"'`").lower().replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER


IMMUTABLE_TICKET_FIELDS = ("id", "created_at")


class Ticket(BaseModel):
    """A support request and its processing outcome.

    Unknown keys supplied on creation are kept so that channel specific data
    (call sids, message ids) survives a round trip through either backend.
    """
    model_config = ConfigDict(extra="allow", use_enum_values=False)

    id: str
    query: str
    email: Optional[str] = None
    subject: Optional[str] = None
    source: SourceChannel = SourceChannel.API
    status: TicketStatus = TicketStatus.OPEN
    reply: Optional[str] = None
    intent: Optional[Intent] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(cls, ticket_id: str, data: Dict[str, Any]) -> "Ticket":
        """Build a fresh ticket from caller supplied data."""
        query = data.get("query")
        if not isinstance(query, str) or not query.strip():
            raise TicketValidationError("Ticket query is required")
        payload = {k: v for k, v in data.items()
                   if k not in ("id", "created_at", "updated_at")}
        now = utcnow()
        payload.setdefault("status", TicketStatus.OPEN)
        return cls(id=ticket_id, created_at=now, updated_at=now, **payload)

    def merged(self, partial: Dict[str, Any]) -> "Ticket":
        """Return a copy with ``partial`` merged in and ``updated_at`` refreshed."""
        touched = [k for k in IMMUTABLE_TICKET_FIELDS
                   if k in partial and partial[k] != getattr(self, k)]
        if touched:
            raise TicketValidationError(
                f"Immutable ticket fields cannot change: {', '.join(touched)}")

        changes = {k: v for k, v in partial.items()
                   if k not in IMMUTABLE_TICKET_FIELDS and k != "updated_at"}
        if "status" in changes and changes["status"] is None:
            del changes["status"]
        if "status" in changes:
            try:
                new_status = TicketStatus(changes["status"])
            except ValueError:
                raise TicketValidationError(
                    f"Unknown ticket status: {changes['status']!r}")
            if self.status.is_terminal and new_status != self.status:
                raise InvalidTransitionError(
                    f"Ticket {self.id} is {self.status.value}; "
                    f"cannot move to {new_status.value}")
        if "query" in changes and not str(changes["query"] or "").strip():
            raise TicketValidationError("Ticket query cannot be blank")

        data = self.model_dump()
        data.update(changes)
        # updated_at is strictly increasing even on coarse clocks
        now = utcnow()
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        data["updated_at"] = now
        return Ticket.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class VectorRecord(BaseModel):
    embedding: List[float]
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionChannel(str, Enum):
    VOICE = "voice"
    CHAT = "chat"


class SessionState(str, Enum):
    # voice / IVR
    MENU = "menu"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    # chat
    ACTIVE = "active"


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TranscriptEntry(BaseModel):
    role: TranscriptRole
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    attachments: List[str] = Field(default_factory=list)
    media_url: Optional[str] = None


class Session(BaseModel):
    id: str
    channel: SessionChannel
    state: SessionState
    category: Optional[str] = None
    intent: Optional[Intent] = None
    caller: Optional[str] = None
    recording_url: Optional[str] = None
    escalated: bool = False
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    # Set when the backend failed and this session only lives for one call
    ephemeral: bool = Field(default=False, exclude=True)

    def append(self, role: TranscriptRole, text: str,
               **extra: Any) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, text=text, **extra)
        self.transcript.append(entry)
        return entry

    def history(self) -> List[Dict[str, str]]:
        """Transcript as role/content pairs for the generator."""
        return [{"role": entry.role.value, "content": entry.text}
                for entry in self.transcript]

    @property
    def duration(self) -> Optional[timedelta]:
        if self.completed_at is None:
            return None
        return self.completed_at - self.created_at


class SupportResponse(BaseModel):
    ticket_id: str
    reply: str
    status: TicketStatus
    intent: Intent
    remote_index_available: bool = False
    cached: bool = False


class ChatTurnResult(BaseModel):
    session_id: str
    intent: Intent
    reply: str
    attachments: List[str] = Field(default_factory=list)
    escalated: bool = False
    persisted: bool = True


class APIResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None
