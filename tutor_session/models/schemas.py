"""Data models for the tutor backend payloads.

The backend speaks camelCase JSON; every model accepts both the wire names
and the Python field names, and ``model_dump(by_alias=True)`` produces the
wire form again.
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal, Union
from datetime import datetime


TutorMode = Literal["manual", "router", "collaborative", "random"]
CollaborativeStyle = Literal["parallel", "sequential", "debate", "random"]
EmotionType = Literal[
    "productive",
    "stimulated",
    "frustrated",
    "learning",
    "enjoying",
    "bored",
    "quitting",
]
PulseContext = Literal["chatbot", "lesson", "assignment"]

TUTOR_MODES = ("manual", "router", "collaborative", "random")
TEAM_MODES = ("router", "collaborative", "random")
EMOTIONS = ("productive", "stimulated", "frustrated", "learning", "enjoying", "bored", "quitting")


class WireModel(BaseModel):
    """Base model for camelCase backend payloads."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Session(WireModel):
    """Per-user tutor session."""
    id: int = Field(description="Session identifier")
    user_id: Optional[int] = Field(default=None, description="Owning user")
    mode: TutorMode = Field(default="manual", description="Current interaction mode")
    active_agent_id: Optional[int] = Field(default=None, description="Agent selected in manual mode")
    created_at: Optional[datetime] = Field(default=None, description="Creation time")
    updated_at: Optional[datetime] = Field(default=None, description="Last update time")


class Agent(WireModel):
    """Tutor agent persona, read-only on the client."""
    id: int = Field(description="Agent identifier")
    name: str = Field(description="Internal agent name")
    display_name: str = Field(description="Name shown to learners")
    description: Optional[str] = Field(default=None, description="Agent description")
    avatar_url: Optional[str] = Field(default=None, description="Avatar reference")
    welcome_message: Optional[str] = Field(default=None, description="Greeting for empty conversations")
    personality: Optional[str] = Field(default=None, description="Personality tag")
    temperature: Optional[float] = Field(default=None, description="Sampling temperature")
    system_prompt: str = Field(default="", description="System prompt")
    is_active: bool = Field(default=True, description="Whether the agent is enabled")


class AgentSummary(WireModel):
    """Agent fields embedded in conversation previews."""
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    welcome_message: Optional[str] = None
    personality: Optional[str] = None


class MessagePreview(WireModel):
    """Last message shown in the sidebar."""
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime


class Conversation(WireModel):
    """Thread between the user and one agent."""
    id: int = Field(description="Conversation identifier")
    session_id: Optional[int] = Field(default=None, description="Owning session")
    agent_id: int = Field(alias="chatbotId", description="Agent this thread belongs to")
    last_message_at: Optional[datetime] = Field(default=None, description="Time of the latest confirmed message")
    message_count: int = Field(default=0, description="Number of confirmed messages")
    created_at: Optional[datetime] = Field(default=None, description="Creation time")
    agent: Optional[AgentSummary] = Field(default=None, alias="chatbot", description="Agent summary")
    last_message: Optional[MessagePreview] = Field(default=None, description="Preview of the latest message")


class AgentRef(WireModel):
    """Minimal agent reference."""
    id: int
    name: str
    display_name: str


class RoutingAlternative(WireModel):
    """Agent the router considered but did not pick."""
    agent_id: int
    agent_name: str
    score: float


class RoutingInfo(WireModel):
    """Routing decision attached to a router-mode reply."""
    selected_agent: AgentRef = Field(description="Agent that answered")
    reason: str = Field(default="", description="Explanation of the routing decision")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence in the routing decision (0-1)")
    alternatives: Optional[List[RoutingAlternative]] = Field(default=None, description="Other candidates with scores")


class AgentContribution(WireModel):
    """One agent's part of a collaborative turn."""
    agent_id: int = Field(description="Contributing agent")
    agent_name: str = Field(default="", description="Internal agent name")
    agent_display_name: str = Field(default="", description="Name shown to learners")
    avatar_url: Optional[str] = Field(default=None, description="Avatar reference")
    contribution: str = Field(default="", description="Contribution text")
    response_time_ms: int = Field(default=0, description="Time the agent took to answer")
    round: Optional[int] = Field(default=None, description="Round number for debate/sequential styles")


class CollaborativeInfo(WireModel):
    """Per-agent breakdown of a collaborative turn."""
    style: CollaborativeStyle = Field(default="parallel", description="Collaboration style")
    agent_contributions: List[AgentContribution] = Field(default_factory=list, description="Ordered contributions")
    synthesis: Optional[str] = Field(default=None, description="Synthesized answer")
    mentioned_agents: Optional[List[str]] = Field(default=None, description="Agents mentioned in the synthesis")
    total_rounds: Optional[int] = Field(default=None, description="Rounds run for debate/sequential styles")
    synthesized_by: Optional[str] = Field(default=None, description="Synthesis engine label")


class CollaborativeSettings(WireModel):
    """Team settings resent with every collaborative turn."""
    style: CollaborativeStyle = Field(default="parallel", description="Collaboration style")
    selected_agent_ids: Optional[List[int]] = Field(default=None, description="Explicit subset of agents")
    max_agents: Optional[int] = Field(default=None, ge=1, description="Maximum agents to involve")
    max_response_length: Optional[int] = Field(default=None, ge=1, description="Maximum characters per contribution")
    show_individual_responses: Optional[bool] = Field(default=None, description="Whether to show each contribution")


class Message(WireModel):
    """Conversation message, confirmed or optimistic."""
    id: Union[int, str] = Field(description="Server id, or a local id for optimistic messages")
    conversation_id: Optional[int] = Field(default=None, description="Owning conversation")
    role: Literal["user", "assistant"] = Field(description="Message role")
    content: str = Field(description="Message content")
    created_at: datetime = Field(description="Creation time")
    ai_model: Optional[str] = None
    ai_provider: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    response_time_ms: Optional[int] = None
    temperature: Optional[float] = None
    routing_reason: Optional[str] = None
    routing_confidence: Optional[float] = None
    synthesized_from: Optional[str] = Field(default=None, description="Raw synthesis blob (JSON)")

    # Client-side only
    routing_info: Optional[RoutingInfo] = Field(default=None, description="Decoded routing decision")
    collaborative_info: Optional[CollaborativeInfo] = Field(default=None, description="Decoded collaborative breakdown")
    optimistic: bool = Field(default=False, description="True until the backend confirms the turn")


class SessionBundle(WireModel):
    """Session together with its agents and conversation previews."""
    session: Session
    agents: List[Agent] = Field(default_factory=list)
    conversations: List[Conversation] = Field(default_factory=list)


class ConversationWithMessages(WireModel):
    """Conversation with full message history."""
    id: int
    session_id: Optional[int] = None
    agent_id: int = Field(alias="chatbotId")
    last_message_at: Optional[datetime] = None
    message_count: int = 0
    created_at: Optional[datetime] = None
    messages: List[Message] = Field(default_factory=list)


class SendMessageResponse(WireModel):
    """Backend answer to a user turn."""
    user_message: Message
    assistant_message: Message
    routing_info: Optional[RoutingInfo] = None
    collaborative_info: Optional[CollaborativeInfo] = None


class EmotionalPulse(WireModel):
    """Logged mood signal."""
    id: Optional[int] = None
    user_id: Optional[int] = None
    emotion: EmotionType
    context: PulseContext = "chatbot"
    context_id: Optional[int] = None
    agent_id: Optional[int] = None
    created_at: Optional[datetime] = None


class PulseHistory(WireModel):
    """Time-ordered pulse history."""
    pulses: List[EmotionalPulse] = Field(default_factory=list)
    total: int = 0
    limit: Optional[int] = None
    offset: Optional[int] = None


class ModeCount(WireModel):
    mode: Optional[TutorMode] = None
    count: int = 0


class AgentCount(WireModel):
    agent: Optional[str] = None
    count: int = 0


class TutorStats(WireModel):
    """Aggregate tutor usage."""
    total_sessions: int = 0
    total_messages: int = 0
    messages_by_mode: List[ModeCount] = Field(default_factory=list)
    messages_by_agent: List[AgentCount] = Field(default_factory=list)
    avg_response_time_ms: Optional[float] = None


class InteractionLog(WireModel):
    """One tutor interaction log row (subset of the backend record)."""
    id: int
    user_id: int
    session_id: Optional[int] = None
    conversation_id: Optional[int] = None
    message_id: Optional[int] = None
    chatbot_id: Optional[int] = None
    chatbot_name: Optional[str] = None
    event_type: str
    mode: Optional[TutorMode] = None
    response_time_ms: Optional[int] = None
    routing_reason: Optional[str] = None
    routing_confidence: Optional[float] = None
    error_message: Optional[str] = None
    timestamp: datetime
