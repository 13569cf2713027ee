"""WebSocket command and event envelopes."""
from pydantic import Field
from typing import Optional, Dict, Any, Literal
from tutor_session.models.schemas import WireModel


CommandType = Literal[
    "set_mode",
    "select_agent",
    "send_message",
    "clear_conversation",
    "pulse",
    "refresh",
    "pulse_history",
]

EventType = Literal[
    "system",
    "session",
    "conversation",
    "message_pending",
    "message_confirmed",
    "message_failed",
    "typing",
    "reveal",
    "reveal_complete",
    "conversation_cleared",
    "pulse_logged",
    "pulse_state",
    "pulse_history",
    "error",
]


class ClientCommand(WireModel):
    """Command received from the browser; camelCase and snake_case keys are both accepted."""
    type: CommandType = Field(description="Command name")
    mode: Optional[str] = Field(default=None, description="Target mode for set_mode")
    agent_id: Optional[int] = Field(default=None, description="Target agent for select_agent")
    content: Optional[str] = Field(default=None, description="Message text for send_message")
    collaborative_settings: Optional[Dict[str, Any]] = Field(default=None, description="Team settings for send_message")
    emotion: Optional[str] = Field(default=None, description="Emotion for pulse")


class ServerEvent(WireModel):
    """Event pushed to the browser, serialized with camelCase keys."""
    type: EventType = Field(description="Type of event")
    session_id: str = Field(description="Connection identifier")
    agent_id: Optional[int] = Field(default=None, description="Conversation the event belongs to")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
