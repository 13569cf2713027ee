"""FastAPI application bridging the tutor orchestrator to a browser over WebSocket."""
from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from tutor_session.api.client import TutorAPIClient, TutorAPIError
from tutor_session.config import settings
from tutor_session.models.events import ClientCommand, ServerEvent
from tutor_session.models.schemas import CollaborativeSettings
from tutor_session.orchestrator.tutor_orchestrator import SendInProgressError, TutorOrchestrator
from tutor_session.pulse.tracker import PulseRejectedError
from typing import Any, Dict, Optional, Set
import asyncio
import logging

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Tutor Session Orchestrator",
    description="Mode switching, optimistic messaging and staggered multi-tutor replies over WebSocket",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Active WebSocket connections
active_connections: Dict[str, WebSocket] = {}

# Errors reported back to the client instead of closing the connection
USER_ERRORS = (TutorAPIError, ValueError, PulseRejectedError, SendInProgressError)


def create_api_client(token: Optional[str]) -> TutorAPIClient:
    """Backend client for one connection."""
    return TutorAPIClient(token=token)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Tutor Session Orchestrator",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "api_base_url": settings.api_base_url,
        "connections": len(active_connections)
    }


async def handle_command(orchestrator: TutorOrchestrator, command: ClientCommand):
    """
    Apply one client command.

    Args:
        orchestrator: Connection's orchestrator
        command: Parsed command
    """
    if command.type == "set_mode":
        await orchestrator.change_mode(command.mode or "")
    elif command.type == "select_agent":
        if command.agent_id is None:
            raise ValueError("agent_id is required")
        await orchestrator.select_agent(command.agent_id)
    elif command.type == "send_message":
        settings_override = None
        if command.collaborative_settings:
            settings_override = CollaborativeSettings.model_validate(command.collaborative_settings)
        await orchestrator.send_message(command.content or "", settings_override)
    elif command.type == "clear_conversation":
        await orchestrator.clear_conversation()
    elif command.type == "pulse":
        await orchestrator.submit_pulse(command.emotion or "")
    elif command.type == "refresh":
        await orchestrator.refresh()
    elif command.type == "pulse_history":
        await orchestrator.pulse_history()


@app.websocket("/ws/{session_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    session_id: str,
    token: Optional[str] = Query(default=None),
    agent: Optional[int] = Query(default=None),
    course_routing_mode: Optional[str] = Query(default=None, alias="courseRoutingMode")
):
    """
    WebSocket endpoint for one learner's tutor session.

    Args:
        websocket: WebSocket connection
        session_id: Unique connection identifier
        token: Backend bearer token
        agent: Agent requested by deep link
        course_routing_mode: Course routing policy
    """
    await websocket.accept()
    active_connections[session_id] = websocket
    logger.info(f"WebSocket connection established for session: {session_id}")

    async def emit(event_type: str, agent_id: Optional[int], data: Dict[str, Any]):
        event = ServerEvent(type=event_type, session_id=session_id, agent_id=agent_id, data=data)
        await websocket.send_json(event.model_dump(by_alias=True))

    async def report(error: Exception):
        logger.error(f"Command failed for {session_id}: {error}")
        await emit("error", orchestrator.active_agent_id, {"content": str(error)})

    async def run_command(command: ClientCommand):
        try:
            await handle_command(orchestrator, command)
        except USER_ERRORS as e:
            await report(e)
        except Exception as e:
            logger.exception(f"Unexpected error handling {command.type} for {session_id}")
            await emit("error", orchestrator.active_agent_id, {"content": f"Unexpected error: {e}"})

    api_client = create_api_client(token)
    orchestrator = TutorOrchestrator(api_client, emit=emit)
    background: Set[asyncio.Task] = set()

    try:
        await emit("system", None, {"content": "Connected to tutor session."})

        try:
            await orchestrator.initialize(agent, course_routing_mode)
        except TutorAPIError as e:
            await report(e)

        while True:
            data = await websocket.receive_text()
            try:
                command = ClientCommand.model_validate_json(data)
            except ValidationError as e:
                await emit("error", None, {"content": f"Invalid command: {e.error_count()} errors"})
                continue

            logger.info(f"Received {command.type} from {session_id}")

            if command.type == "send_message":
                # Sends run in the background so agent/mode switches are not blocked
                task = asyncio.create_task(run_command(command))
                background.add(task)
                task.add_done_callback(background.discard)
            else:
                await run_command(command)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for session: {session_id}")

    finally:
        for task in list(background):
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await orchestrator.close()
        await api_client.aclose()
        active_connections.pop(session_id, None)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tutor_session.main:app",
        host=settings.ws_host,
        port=settings.ws_port,
        reload=True
    )
