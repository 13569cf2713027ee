"""Emotional pulse package initialization."""
from tutor_session.pulse.tracker import (
    EmotionalPulseTracker,
    PulsePhase,
    PulseRejectedError,
    PulseState,
    transition,
)

__all__ = ['EmotionalPulseTracker', 'PulsePhase', 'PulseRejectedError', 'PulseState', 'transition']
