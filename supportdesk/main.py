import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from config.settings import settings
from supportdesk.container import Container
from supportdesk.errors import (
    InvalidTransitionError,
    SupportRequestError,
    TicketValidationError
)
from supportdesk.models.schemas import APIResponse
from supportdesk.sessions.ivr import (
    CallStarted,
    DigitPressed,
    Event,
    FollowUpSelected,
    MenuTimeout,
    RecordingFinished,
    effect_to_dict
)
from supportdesk.utils.logging import setup_logging

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    text: str
    media_url: Optional[str] = None


def parse_call_event(name: str, payload: Dict[str, Any]) -> Event:
    """Map a telephony webhook onto a state machine event"""
    if name == "start":
        return CallStarted(caller=payload.get("from"))
    if name == "digit":
        return DigitPressed(digit=str(payload.get("digits", "")))
    if name == "timeout":
        return MenuTimeout()
    if name == "recording":
        if not payload.get("recording_url"):
            raise HTTPException(status_code=400,
                                detail="recording_url is required")
        return RecordingFinished(recording_url=payload["recording_url"])
    if name == "follow-up":
        return FollowUpSelected(digit=str(payload.get("digits", "")))
    raise HTTPException(status_code=404, detail=f"Unknown call event: {name}")


def get_container(request: Request) -> Container:
    return request.app.state.container


def create_app(container_factory: Callable[[], Container] = Container) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        setup_logging(settings.LOG_LEVEL)
        logger.info("Starting Omnichannel Support Resolver API...")
        container = container_factory()
        await container.startup()
        app.state.container = container
        logger.info("API startup complete")

        yield

        logger.info("Shutting down API...")
        await container.shutdown()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="Omnichannel Support Resolver",
        description="Fallback-aware ticketing, retrieval, caching and "
                    "conversation state for email, voice and chat support",
        version="1.0.0",
        lifespan=lifespan
    )

    @app.get("/", response_model=APIResponse)
    async def root():
        """Root endpoint"""
        return APIResponse(
            success=True,
            message="Omnichannel Support Resolver API is running",
            data={"version": "1.0.0", "status": "healthy"}
        )

    @app.get("/health", response_model=APIResponse)
    async def health_check(container: Container = Depends(get_container)):
        """Health check endpoint"""
        es = container.es_service
        es_connected = (await es.ping(container.settings.TICKET_STORE_TIMEOUT)
                        if es is not None else False)

        health_data = {
            "api": "healthy",
            "elasticsearch": "connected" if es_connected else "disconnected",
            "vector_index": ("remote" if container.vector_index.remote_available
                             else "local"),
            "local_documents": len(container.vector_index.local)
        }

        return APIResponse(
            success=True,
            message="Health check complete",
            data=health_data
        )

    @app.post("/support", response_model=APIResponse)
    async def handle_support_request(request_data: dict,
                                     container: Container = Depends(get_container)):
        """Answer a support request from any channel"""
        try:
            response = await container.workflow.process_request(request_data)
        except TicketValidationError as e:
            raise HTTPException(status_code=400, detail={
                "error": "Validation failed",
                "details": str(e).split("; ")
            })
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except SupportRequestError as e:
            raise HTTPException(status_code=500, detail=str(e))

        return APIResponse(
            success=True,
            message="Support request handled",
            data=response.model_dump(mode="json")
        )

    @app.post("/tickets", response_model=APIResponse)
    async def create_ticket(ticket_data: dict,
                            container: Container = Depends(get_container)):
        """Create a new customer ticket"""
        try:
            ticket = await container.ticket_store.create(ticket_data)
        except (TicketValidationError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500,
                                detail=f"Failed to create ticket: {str(e)}")

        return APIResponse(
            success=True,
            message="Ticket created successfully",
            data={"ticket_id": ticket.id, "ticket": ticket.to_document()}
        )

    @app.get("/tickets", response_model=APIResponse)
    async def list_tickets(limit: int = 10, offset: int = 0,
                           container: Container = Depends(get_container)):
        """List tickets"""
        try:
            tickets = await container.ticket_store.list(limit, offset)
        except Exception as e:
            raise HTTPException(status_code=500,
                                detail=f"Failed to list tickets: {str(e)}")

        return APIResponse(
            success=True,
            message=f"Retrieved {len(tickets)} tickets",
            data={
                "tickets": [ticket.to_document() for ticket in tickets],
                "limit": limit,
                "offset": offset
            }
        )

    @app.get("/tickets/{ticket_id}", response_model=APIResponse)
    async def get_ticket(ticket_id: str,
                         container: Container = Depends(get_container)):
        """Get ticket details"""
        try:
            ticket = await container.ticket_store.get_by_id(ticket_id)
        except Exception as e:
            raise HTTPException(status_code=500,
                                detail=f"Failed to read ticket: {str(e)}")

        if ticket is None:
            raise HTTPException(status_code=404, detail="Ticket not found")

        return APIResponse(
            success=True,
            message="Ticket retrieved successfully",
            data={"ticket": ticket.to_document()}
        )

    @app.patch("/tickets/{ticket_id}", response_model=APIResponse)
    async def update_ticket(ticket_id: str, changes: dict,
                            container: Container = Depends(get_container)):
        """Merge changes into a ticket"""
        try:
            ticket = await container.ticket_store.update(ticket_id, changes)
        except (TicketValidationError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500,
                                detail=f"Failed to update ticket: {str(e)}")

        if ticket is None:
            raise HTTPException(status_code=404, detail="Ticket not found")

        return APIResponse(
            success=True,
            message="Ticket updated successfully",
            data={"ticket": ticket.to_document()}
        )

    @app.post("/chat/{channel}/{user}", response_model=APIResponse)
    async def chat_message(channel: str, user: str, message: ChatMessage,
                           container: Container = Depends(get_container)):
        """Handle one inbound chat message"""
        result = await container.chat_service.handle_message(
            channel, user, message.text, media_url=message.media_url)

        return APIResponse(
            success=True,
            message="Message processed",
            data=result.model_dump(mode="json")
        )

    @app.post("/voice/{call_sid}/{event}", response_model=APIResponse)
    async def voice_event(call_sid: str, event: str,
                          payload: Optional[dict] = None,
                          container: Container = Depends(get_container)):
        """Advance a phone call and return the effects to render"""
        call_event = parse_call_event(event, payload or {})
        try:
            effects = await container.voice_service.handle_event(call_sid,
                                                                 call_event)
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return APIResponse(
            success=True,
            message="Call event processed",
            data={"effects": [effect_to_dict(effect) for effect in effects]}
        )

    @app.get("/metrics", response_model=APIResponse)
    async def get_metrics(container: Container = Depends(get_container)):
        """Request counters and cache statistics"""
        return APIResponse(
            success=True,
            message="Metrics retrieved successfully",
            data=container.cache.metrics()
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "supportdesk.main:app",
        host=settings.FASTAPI_HOST,
        port=settings.FASTAPI_PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
