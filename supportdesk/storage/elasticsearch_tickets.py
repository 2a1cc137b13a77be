import logging
import uuid
from typing import Any, Dict, List, Optional

from elasticsearch import ConflictError, NotFoundError

from supportdesk.errors import BackendUnavailableError
from supportdesk.models.schemas import Ticket
from supportdesk.services.elasticsearch_service import ElasticsearchService

logger = logging.getLogger(__name__)


class ElasticsearchTicketBackend:
    """Primary ticket backend: one document per ticket in the tickets index."""

    def __init__(self, es: ElasticsearchService, timeout: float):
        self.es = es
        self.index_name = es.tickets_index
        self.timeout = timeout
        self.max_conflict_retries = 3

    async def is_available(self) -> bool:
        if not self.es.configured:
            return False
        return await self.es.ping(self.timeout)

    async def create(self, data: Dict[str, Any]) -> Ticket:
        ticket = Ticket.new(str(uuid.uuid4()), data)
        await self.es.get_client().index(
            index=self.index_name,
            id=ticket.id,
            document=ticket.to_document(),
            refresh="wait_for"
        )
        return ticket

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        try:
            response = await self.es.get_client().get(
                index=self.index_name, id=ticket_id)
        except NotFoundError:
            return None
        return Ticket.model_validate(response["_source"])

    async def update(self, ticket_id: str,
                     partial: Dict[str, Any]) -> Optional[Ticket]:
        client = self.es.get_client()
        for attempt in range(self.max_conflict_retries):
            try:
                response = await client.get(index=self.index_name,
                                            id=ticket_id)
            except NotFoundError:
                return None

            current = Ticket.model_validate(response["_source"])
            updated = current.merged(partial)
            try:
                # Only applies if nobody wrote the ticket since our read
                await client.index(
                    index=self.index_name,
                    id=ticket_id,
                    document=updated.to_document(),
                    if_seq_no=response["_seq_no"],
                    if_primary_term=response["_primary_term"],
                    refresh="wait_for"
                )
                return updated
            except ConflictError:
                logger.info(f"Ticket {ticket_id} changed concurrently, "
                            f"retrying (attempt {attempt + 1})")
        raise BackendUnavailableError(
            f"Ticket {ticket_id} kept changing during update")

    async def list(self, limit: int = 10, offset: int = 0) -> List[Ticket]:
        response = await self.es.get_client().search(
            index=self.index_name,
            query={"match_all": {}},
            sort=[{"created_at": {"order": "asc"}}],
            from_=offset,
            size=limit
        )
        return [Ticket.model_validate(hit["_source"])
                for hit in response["hits"]["hits"]]
