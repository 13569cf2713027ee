"""Backend API package initialization."""
from tutor_session.api.client import TutorAPIClient, TutorAPIError

__all__ = ['TutorAPIClient', 'TutorAPIError']
