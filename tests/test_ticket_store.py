"""Tests for the fallback-aware ticket store."""

import asyncio
import json
import logging
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from supportdesk.errors import (
    BackendUnavailableError,
    InvalidTransitionError,
    TicketValidationError
)
from supportdesk.models.schemas import Intent, Ticket, TicketStatus
from supportdesk.storage.ticket_store import TicketStore


def primary_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.is_available.return_value = True
    return backend


class TestLocalTicketStore:
    """Behaviour when only the local file is available."""

    @pytest.mark.asyncio
    async def test_create_then_read_round_trip(self, ticket_store):
        created = await ticket_store.create(
            {"query": "Template won't load", "email": "a@b.com"})

        fetched = await ticket_store.get_by_id(created.id)

        assert fetched == created
        assert fetched.status == TicketStatus.OPEN

    @pytest.mark.asyncio
    async def test_page_scenario(self, ticket_store):
        """Create, then mark processed with an intent."""
        ticket = await ticket_store.create(
            {"query": "How do I create a page?", "email": "a@b.com"})
        assert ticket.status == TicketStatus.OPEN

        updated = await ticket_store.update(
            ticket.id, {"status": "processed", "intent": "notion_basics"})

        assert updated.status == TicketStatus.PROCESSED
        assert updated.intent == Intent.NOTION_BASICS
        assert updated.updated_at > updated.created_at
        assert updated.created_at == ticket.created_at

    @pytest.mark.asyncio
    async def test_local_ids_are_namespaced(self, ticket_store):
        ticket = await ticket_store.create({"query": "hello"})

        assert ticket.id.startswith("local-")
        with pytest.raises(ValueError):
            uuid.UUID(ticket.id)

    @pytest.mark.asyncio
    async def test_unknown_id_is_absent(self, ticket_store):
        assert await ticket_store.get_by_id("local-0-missing") is None
        assert await ticket_store.update("local-0-missing",
                                         {"status": "processed"}) is None

    @pytest.mark.asyncio
    async def test_query_is_required(self, ticket_store):
        with pytest.raises(TicketValidationError):
            await ticket_store.create({"email": "a@b.com"})
        with pytest.raises(TicketValidationError):
            await ticket_store.create({"query": "   "})

    @pytest.mark.asyncio
    async def test_id_cannot_change(self, ticket_store):
        ticket = await ticket_store.create({"query": "hello"})

        with pytest.raises(TicketValidationError):
            await ticket_store.update(ticket.id, {"id": "something-else"})

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, ticket_store):
        ticket = await ticket_store.create({"query": "refund please"})
        await ticket_store.update(ticket.id, {"status": "escalated"})

        with pytest.raises(InvalidTransitionError):
            await ticket_store.update(ticket.id, {"status": "open"})

        # Re-asserting the same status is allowed
        again = await ticket_store.update(ticket.id, {"status": "escalated"})
        assert again.status == TicketStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_extra_fields_survive(self, ticket_store):
        ticket = await ticket_store.create(
            {"query": "call me back", "call_sid": "CA123"})

        fetched = await ticket_store.get_by_id(ticket.id)

        assert fetched.model_extra["call_sid"] == "CA123"

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, ticket_store,
                                                   local_tickets):
        ticket = await ticket_store.create({"query": "busy ticket"})

        await asyncio.gather(*[
            ticket_store.update(ticket.id, {f"note_{i}": i})
            for i in range(20)
        ])

        final = await ticket_store.get_by_id(ticket.id)
        for i in range(20):
            assert final.model_extra[f"note_{i}"] == i

        with open(local_tickets.path, encoding="utf-8") as f:
            assert len(json.load(f)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_updates_to_distinct_tickets(self, ticket_store):
        tickets = [await ticket_store.create({"query": f"question {i}"})
                   for i in range(10)]

        await asyncio.gather(*[
            ticket_store.update(ticket.id, {"status": "processed"})
            for ticket in tickets
        ])

        for ticket in tickets:
            stored = await ticket_store.get_by_id(ticket.id)
            assert stored.status == TicketStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_list_pages_in_creation_order(self, ticket_store):
        for i in range(5):
            await ticket_store.create({"query": f"question {i}"})

        page = await ticket_store.list(limit=2, offset=1)

        assert [t.query for t in page] == ["question 1", "question 2"]


class TestPrimaryFallback:
    """Backend selection and failure handling with a primary backend."""

    @pytest.mark.asyncio
    async def test_uses_primary_when_reachable(self, local_tickets):
        stored = Ticket.new(str(uuid.uuid4()), {"query": "hello"})
        primary = primary_backend()
        primary.create.return_value = stored
        store = TicketStore(local_tickets, primary, timeout=0.5)

        ticket = await store.create({"query": "hello"})

        assert ticket is stored
        assert await local_tickets.count() == 0

    @pytest.mark.asyncio
    async def test_unreachable_primary_uses_fallback(self, local_tickets):
        primary = primary_backend()
        primary.is_available.return_value = False
        store = TicketStore(local_tickets, primary, timeout=0.5)

        ticket = await store.create({"query": "hello"})

        primary.create.assert_not_called()
        assert ticket.id.startswith("local-")

    @pytest.mark.asyncio
    async def test_selection_is_made_per_call(self, local_tickets):
        stored = Ticket.new(str(uuid.uuid4()), {"query": "second"})
        primary = primary_backend()
        primary.is_available.side_effect = [False, True]
        primary.create.return_value = stored
        store = TicketStore(local_tickets, primary, timeout=0.5)

        first = await store.create({"query": "first"})
        second = await store.create({"query": "second"})

        assert first.id.startswith("local-")
        assert second is stored

    @pytest.mark.asyncio
    async def test_primary_error_falls_back(self, local_tickets):
        primary = primary_backend()
        primary.create.side_effect = BackendUnavailableError("cluster red")
        store = TicketStore(local_tickets, primary, timeout=0.5)

        ticket = await store.create({"query": "hello"})

        assert ticket.id.startswith("local-")
        assert await local_tickets.get_by_id(ticket.id) == ticket

    @pytest.mark.asyncio
    async def test_slow_primary_times_out_to_fallback(self, local_tickets):
        async def slow_create(data):
            await asyncio.sleep(0.3)

        primary = primary_backend()
        primary.create.side_effect = slow_create
        store = TicketStore(local_tickets, primary, timeout=0.05)

        ticket = await store.create({"query": "hello"})

        assert ticket.id.startswith("local-")

    @pytest.mark.asyncio
    async def test_double_failure_raises_primary_error(self):
        primary_error = BackendUnavailableError("primary down")
        primary = primary_backend()
        primary.update.side_effect = primary_error
        fallback = MagicMock()
        fallback.update = AsyncMock(side_effect=OSError("disk full"))
        store = TicketStore(fallback, primary, timeout=0.5)

        with pytest.raises(BackendUnavailableError) as excinfo:
            await store.update("some-id", {"status": "processed"})

        assert excinfo.value is primary_error

    @pytest.mark.asyncio
    async def test_hard_errors_do_not_fall_back(self):
        primary = primary_backend()
        primary.update.side_effect = InvalidTransitionError("terminal")
        fallback = MagicMock()
        fallback.update = AsyncMock()
        store = TicketStore(fallback, primary, timeout=0.5)

        with pytest.raises(InvalidTransitionError):
            await store.update("some-id", {"status": "open"})

        fallback.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_primary_ticket_is_absent(self, local_tickets):
        primary = primary_backend()
        primary.get_by_id.return_value = None
        store = TicketStore(local_tickets, primary, timeout=0.5)

        assert await store.get_by_id(str(uuid.uuid4())) is None

    @pytest.mark.asyncio
    async def test_failed_primary_read_warns_ticket_may_exist(self,
                                                              local_tickets,
                                                              caplog):
        primary = primary_backend()
        primary.get_by_id.side_effect = BackendUnavailableError("cluster red")
        store = TicketStore(local_tickets, primary, timeout=0.5)
        ticket_id = str(uuid.uuid4())

        with caplog.at_level(logging.WARNING,
                             logger="supportdesk.storage.ticket_store"):
            assert await store.get_by_id(ticket_id) is None

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any(ticket_id in r.getMessage() for r in warnings)
