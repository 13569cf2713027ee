"""Models package initialization."""
from tutor_session.models.schemas import (
    TutorMode,
    CollaborativeStyle,
    EmotionType,
    PulseContext,
    TUTOR_MODES,
    TEAM_MODES,
    EMOTIONS,
    Session,
    Agent,
    Conversation,
    Message,
    RoutingInfo,
    AgentContribution,
    CollaborativeInfo,
    CollaborativeSettings,
    SessionBundle,
    ConversationWithMessages,
    SendMessageResponse,
    EmotionalPulse,
    PulseHistory,
    TutorStats,
    InteractionLog,
)
from tutor_session.models.events import ClientCommand, ServerEvent

__all__ = [
    'TutorMode',
    'CollaborativeStyle',
    'EmotionType',
    'PulseContext',
    'TUTOR_MODES',
    'TEAM_MODES',
    'EMOTIONS',
    'Session',
    'Agent',
    'Conversation',
    'Message',
    'RoutingInfo',
    'AgentContribution',
    'CollaborativeInfo',
    'CollaborativeSettings',
    'SessionBundle',
    'ConversationWithMessages',
    'SendMessageResponse',
    'EmotionalPulse',
    'PulseHistory',
    'TutorStats',
    'InteractionLog',
    'ClientCommand',
    'ServerEvent',
]
