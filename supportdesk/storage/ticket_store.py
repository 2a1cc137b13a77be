import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar

from pydantic import ValidationError

from supportdesk.errors import InvalidTransitionError, TicketValidationError
from supportdesk.models.schemas import Ticket
from supportdesk.storage.local_ticket_file import LocalTicketFile
from supportdesk.utils.timeouts import run_bounded

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rejected at the boundary; retrying them on the fallback would not help
HARD_ERRORS = (TicketValidationError, InvalidTransitionError, ValidationError)


class TicketBackend(Protocol):
    async def is_available(self) -> bool: ...

    async def create(self, data: Dict[str, Any]) -> Ticket: ...

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]: ...

    async def update(self, ticket_id: str,
                     partial: Dict[str, Any]) -> Optional[Ticket]: ...

    async def list(self, limit: int, offset: int) -> List[Ticket]: ...


class TicketStore:
    """Durable ticket storage over a primary backend and a local fallback.

    The backend is chosen on every call: when the primary is configured and
    answers a bounded ping it is used, otherwise the local file is. A primary
    that recovers is therefore picked up again on the next call.
    """

    def __init__(self,
                 fallback: LocalTicketFile,
                 primary: Optional[TicketBackend] = None,
                 timeout: float = 3.0):
        self.fallback = fallback
        self.primary = primary
        self.timeout = timeout

    async def _primary_ready(self) -> bool:
        if self.primary is None:
            return False
        try:
            return await run_bounded(self.primary.is_available(),
                                     self.timeout, "ticket backend ping")
        except Exception as e:
            logger.warning(f"Primary ticket backend unreachable: {e!r}")
            return False

    async def _with_fallback(self,
                             operation: str,
                             primary_call: Callable[[], Awaitable[T]],
                             fallback_call: Callable[[], Awaitable[T]],
                             writes: bool = False) -> T:
        if not await self._primary_ready():
            return await fallback_call()

        try:
            return await run_bounded(primary_call(), self.timeout,
                                     f"primary ticket {operation}")
        except HARD_ERRORS:
            raise
        except Exception as primary_error:
            logger.error(f"Primary ticket {operation} failed, "
                         f"using local fallback: {primary_error!r}")
            if writes:
                logger.warning(f"Primary ticket {operation} may still have "
                               f"been applied; it is not rolled back")
            try:
                return await fallback_call()
            except Exception as fallback_error:
                logger.error(f"Fallback ticket {operation} failed: "
                             f"{fallback_error!r}")
                raise primary_error from fallback_error

    async def create(self, data: Dict[str, Any]) -> Ticket:
        """Create a ticket with status ``open`` unless one is supplied."""
        return await self._with_fallback(
            "create",
            lambda: self.primary.create(data),
            lambda: self.fallback.create(data),
            writes=True
        )

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Return the ticket or ``None`` when no backend knows the id."""
        return await self._with_fallback(
            "read",
            lambda: self.primary.get_by_id(ticket_id),
            lambda: self._fallback_read(ticket_id)
        )

    async def _fallback_read(self, ticket_id: str) -> Optional[Ticket]:
        ticket = await self.fallback.get_by_id(ticket_id)
        if ticket is None and self.primary is not None:
            # The local file never holds primary ids
            logger.warning(f"Ticket {ticket_id} not in the local store; it may "
                           f"still exist on the unreachable primary backend")
        return ticket

    async def update(self, ticket_id: str,
                     partial: Dict[str, Any]) -> Optional[Ticket]:
        """Merge ``partial`` into the ticket and refresh ``updated_at``."""
        return await self._with_fallback(
            "update",
            lambda: self.primary.update(ticket_id, partial),
            lambda: self.fallback.update(ticket_id, partial),
            writes=True
        )

    async def list(self, limit: int = 10, offset: int = 0) -> List[Ticket]:
        return await self._with_fallback(
            "list",
            lambda: self.primary.list(limit, offset),
            lambda: self.fallback.list(limit, offset)
        )
