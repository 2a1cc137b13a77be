"""File-backed fallback ticket collection.

The whole collection lives in one JSON document. Every operation reads the
document, mutates it in memory and writes it back, all inside one lock that
covers the entire collection, so concurrent updates cannot overwrite each
other with a stale copy.
"""

import asyncio
import json
import logging
import os
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from supportdesk.models.schemas import Ticket

logger = logging.getLogger(__name__)


def mint_local_id() -> str:
    # Never a valid UUID4, so it cannot collide with primary identifiers.
    return f"local-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


class LocalTicketFile:
    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not hold a ticket list")
        return data

    def _write(self, tickets: List[Dict[str, Any]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent,
                                        prefix=".tickets-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(tickets, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def create(self, data: Dict[str, Any]) -> Ticket:
        ticket = Ticket.new(mint_local_id(), data)
        async with self._lock:
            tickets = await asyncio.to_thread(self._read)
            tickets.append(ticket.to_document())
            await asyncio.to_thread(self._write, tickets)
        logger.info(f"Created ticket {ticket.id} in local store")
        return ticket

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        async with self._lock:
            tickets = await asyncio.to_thread(self._read)
        for doc in tickets:
            if doc.get("id") == ticket_id:
                return Ticket.model_validate(doc)
        return None

    async def update(self, ticket_id: str,
                     partial: Dict[str, Any]) -> Optional[Ticket]:
        async with self._lock:
            tickets = await asyncio.to_thread(self._read)
            for index, doc in enumerate(tickets):
                if doc.get("id") == ticket_id:
                    break
            else:
                logger.warning(f"Ticket {ticket_id} not found in local store")
                return None

            updated = Ticket.model_validate(tickets[index]).merged(partial)
            tickets[index] = updated.to_document()
            await asyncio.to_thread(self._write, tickets)
        return updated

    async def list(self, limit: int = 10, offset: int = 0) -> List[Ticket]:
        async with self._lock:
            tickets = await asyncio.to_thread(self._read)
        return [Ticket.model_validate(doc)
                for doc in tickets[offset:offset + limit]]

    async def count(self) -> int:
        async with self._lock:
            return len(await asyncio.to_thread(self._read))
