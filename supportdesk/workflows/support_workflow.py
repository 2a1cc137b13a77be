import logging
import re
import time
from typing import Any, Dict, List, Optional

from langgraph.graph import StateGraph, END
from typing_extensions import TypedDict

from supportdesk.agents.classifier_agent import ClassifierAgent
from supportdesk.agents.resolution_agent import ResolutionAgent
from supportdesk.cache.cache_layer import CacheLayer
from supportdesk.errors import (
    InvalidTransitionError,
    SupportRequestError,
    TicketValidationError
)
from supportdesk.models.schemas import (
    Intent,
    SourceChannel,
    SupportResponse,
    Ticket,
    TicketStatus
)
from supportdesk.retrieval.vector_index import VectorIndex
from supportdesk.storage.ticket_store import TicketStore

logger = logging.getLogger(__name__)

HTML_TAG_PATTERN = re.compile(r"<[^>]*>?")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_REFUND_REPLY = (
    "I see you're asking about a refund. This request has been escalated to "
    "our billing team who will contact you shortly."
)
DEFAULT_MISSING_INFO_REPLY = (
    "Thank you for your message. Could you please provide more details about "
    "your issue so we can better assist you?"
)


class SupportWorkflowState(TypedDict, total=False):
    """State for the support workflow"""
    request: Dict[str, Any]
    content: str
    ticket: Ticket
    cached: Optional[Dict[str, Any]]
    intent: Intent
    reply: str
    status: TicketStatus
    error_messages: List[str]


def validate_request(request: Dict[str, Any],
                     max_length: int = 5000) -> Dict[str, Any]:
    """
    Check and sanitise an inbound support request.

    Returns a copy with HTML stripped from ``content``; raises
    TicketValidationError listing every problem found.
    """
    errors = []
    cleaned = dict(request)
    content = cleaned.get("content")

    if not content:
        errors.append("Content is required")
    elif not isinstance(content, str):
        errors.append("Content must be a string")
    elif len(content) > max_length:
        errors.append(f"Content is too long (max {max_length} characters)")

    if isinstance(content, str):
        cleaned["content"] = HTML_TAG_PATTERN.sub("", content).strip()
        if content and not cleaned["content"]:
            errors.append("Content is required")

    ticket_id = cleaned.get("ticket_id")
    if ticket_id is not None and not isinstance(ticket_id, str):
        errors.append("TicketId must be a string")

    email = cleaned.get("email")
    if email is not None:
        if not isinstance(email, str):
            errors.append("Email must be a string")
        elif not EMAIL_PATTERN.match(email):
            errors.append("Email must be a valid email address")

    if errors:
        raise TicketValidationError("; ".join(errors))
    return cleaned


class CustomerSupportWorkflow:
    """LangGraph workflow answering one support request end to end"""

    def __init__(self,
                 ticket_store: TicketStore,
                 cache: CacheLayer,
                 classifier: ClassifierAgent,
                 resolver: ResolutionAgent,
                 vector_index: VectorIndex,
                 refund_reply: str = DEFAULT_REFUND_REPLY,
                 missing_info_reply: str = DEFAULT_MISSING_INFO_REPLY,
                 max_content_length: int = 5000):
        self.ticket_store = ticket_store
        self.cache = cache
        self.classifier = classifier
        self.resolver = resolver
        self.vector_index = vector_index
        self.refund_reply = refund_reply
        self.missing_info_reply = missing_info_reply
        self.max_content_length = max_content_length
        self.workflow = self._build_workflow()

    def _build_workflow(self):
        """Build the LangGraph workflow"""
        workflow = StateGraph(SupportWorkflowState)

        workflow.add_node("validate", self._validate_node)
        workflow.add_node("open_ticket", self._open_ticket_node)
        workflow.add_node("check_cache", self._check_cache_node)
        workflow.add_node("classify", self._classify_node)
        workflow.add_node("escalate_refund", self._escalate_refund_node)
        workflow.add_node("request_info", self._request_info_node)
        workflow.add_node("generate_resolution",
                          self._generate_resolution_node)
        workflow.add_node("finalize", self._finalize_node)

        workflow.set_entry_point("validate")
        workflow.add_edge("validate", "open_ticket")
        workflow.add_edge("open_ticket", "check_cache")

        workflow.add_conditional_edges(
            "check_cache",
            self._cache_route,
            {
                "hit": "finalize",
                "miss": "classify"
            }
        )

        workflow.add_conditional_edges(
            "classify",
            self._intent_route,
            {
                "refund": "escalate_refund",
                "missing_info": "request_info",
                "resolve": "generate_resolution"
            }
        )

        workflow.add_edge("escalate_refund", "finalize")
        workflow.add_edge("request_info", "finalize")
        workflow.add_edge("generate_resolution", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    async def _validate_node(self,
                             state: SupportWorkflowState) -> SupportWorkflowState:
        request = validate_request(state["request"], self.max_content_length)
        state["request"] = request
        state["content"] = request["content"]
        return state

    async def _open_ticket_node(self,
                                state: SupportWorkflowState) -> SupportWorkflowState:
        """Reuse the caller's ticket when it exists, otherwise open one"""
        request = state["request"]
        ticket = None

        if request.get("ticket_id"):
            ticket = await self.ticket_store.get_by_id(request["ticket_id"])
            if ticket is None:
                logger.info(f"Ticket {request['ticket_id']} not found; "
                            f"opening a new one")
            elif ticket.status.is_terminal:
                logger.info(f"Ticket {ticket.id} is {ticket.status.value}; "
                            f"opening a new one for the follow-up")
                ticket = None

        if ticket is None:
            ticket = await self.ticket_store.create({
                "query": state["content"],
                "email": request.get("email"),
                "subject": request.get("subject"),
                "source": request.get("source") or SourceChannel.API
            })

        state["ticket"] = ticket
        return state

    async def _check_cache_node(self,
                                state: SupportWorkflowState) -> SupportWorkflowState:
        state["cached"] = await self.cache.get_response(state["content"])
        if state["cached"] is not None:
            state["reply"] = state["cached"]["reply"]
            state["status"] = TicketStatus(state["cached"]["status"])
            state["intent"] = Intent(state["cached"]["intent"])
        return state

    async def _classify_node(self,
                             state: SupportWorkflowState) -> SupportWorkflowState:
        state["intent"] = await self.classifier.classify(state["content"])
        return state

    async def _escalate_refund_node(self,
                                    state: SupportWorkflowState) -> SupportWorkflowState:
        state["reply"] = self.refund_reply
        state["status"] = TicketStatus.ESCALATED
        logger.info(f"Handled refund request for ticket {state['ticket'].id}")
        return state

    async def _request_info_node(self,
                                 state: SupportWorkflowState) -> SupportWorkflowState:
        state["reply"] = self.missing_info_reply
        state["status"] = TicketStatus.NEEDS_INFO
        logger.info(f"Requested more info for ticket {state['ticket'].id}")
        return state

    async def _generate_resolution_node(self,
                                        state: SupportWorkflowState) -> SupportWorkflowState:
        resolution = await self.resolver.generate_resolution(
            state["content"], state["intent"])
        state["reply"] = resolution.reply
        if resolution.escalate:
            logger.info(f"Reply for ticket {state['ticket'].id} asked for "
                        f"a human agent; escalating")
            state["status"] = TicketStatus.ESCALATED
        else:
            state["status"] = TicketStatus.PROCESSED
        return state

    async def _finalize_node(self,
                             state: SupportWorkflowState) -> SupportWorkflowState:
        """Record the outcome on the ticket and cache fresh replies"""
        ticket = state["ticket"]
        updated = await self.ticket_store.update(ticket.id, {
            "status": state["status"],
            "intent": state["intent"],
            "reply": state["reply"]
        })
        if updated is None:
            state["error_messages"].append(
                f"Ticket {ticket.id} disappeared before it could be updated")
            logger.warning(f"Ticket {ticket.id} not found when recording "
                           f"its reply")
        else:
            state["ticket"] = updated

        if state.get("cached") is None:
            await self.cache.put_response(state["content"], {
                "reply": state["reply"],
                "status": state["status"].value,
                "intent": state["intent"].value
            })
        return state

    def _cache_route(self, state: SupportWorkflowState) -> str:
        return "hit" if state.get("cached") is not None else "miss"

    def _intent_route(self, state: SupportWorkflowState) -> str:
        intent = state["intent"]
        if intent == Intent.REFUND:
            return "refund"
        if intent == Intent.MISSING_INFO:
            return "missing_info"
        return "resolve"

    async def process_request(self, request: Dict[str, Any]) -> SupportResponse:
        """Process one support request through the workflow"""
        metrics = self.cache.request_metrics
        metrics.record_request()
        started = time.perf_counter()

        try:
            final_state = await self.workflow.ainvoke(
                SupportWorkflowState(request=request, error_messages=[]))
        except (TicketValidationError, InvalidTransitionError):
            metrics.record_failure()
            raise
        except Exception as e:
            metrics.record_failure()
            logger.error(f"Error handling support request: {e!r}")
            raise SupportRequestError("Internal server error") from e

        duration = (time.perf_counter() - started) * 1000
        metrics.record_success(duration)

        ticket = final_state["ticket"]
        logger.info(f"Successfully handled ticket {ticket.id} in "
                    f"{duration:.0f}ms")

        return SupportResponse(
            ticket_id=ticket.id,
            reply=final_state["reply"],
            status=final_state["status"],
            intent=final_state["intent"],
            remote_index_available=self.vector_index.remote_available,
            cached=final_state.get("cached") is not None
        )
