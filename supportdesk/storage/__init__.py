"""
Ticket storage

TicketStore routes every call to the Elasticsearch tickets index when it is
reachable and to a JSON file on local disk otherwise.
"""

from supportdesk.storage.local_ticket_file import LocalTicketFile
from supportdesk.storage.ticket_store import TicketStore, TicketBackend

__all__ = [
    "LocalTicketFile",
    "TicketStore",
    "TicketBackend"
]
