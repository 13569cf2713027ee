"""Collaborative reveal package initialization."""
from tutor_session.reveal.engine import (
    CollaborativeRevealEngine,
    RevealState,
    RevealStep,
    advance,
    build_schedule,
    should_reveal_immediately,
)

__all__ = [
    'CollaborativeRevealEngine',
    'RevealState',
    'RevealStep',
    'advance',
    'build_schedule',
    'should_reveal_immediately',
]
