"""Client-side orchestration of AI tutor sessions."""
from tutor_session.orchestrator.tutor_orchestrator import TutorOrchestrator
from tutor_session.api.client import TutorAPIClient, TutorAPIError

__all__ = ['TutorOrchestrator', 'TutorAPIClient', 'TutorAPIError']

__version__ = "1.0.0"
