"""Orchestrator package initialization."""
from tutor_session.orchestrator.tutor_orchestrator import SendInProgressError, TutorOrchestrator

__all__ = ['SendInProgressError', 'TutorOrchestrator']
