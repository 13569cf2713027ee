"""Session state and its pure transition rules."""
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple
from tutor_session.models.schemas import Agent, Conversation, Session, TEAM_MODES, TUTOR_MODES


# Course-level routing policy -> session mode; other policies keep the stored mode
COURSE_ROUTING_MODES = {
    "collaborative": "collaborative",
    "smart": "router",
    "random": "random",
}


@dataclass(frozen=True)
class SessionState:
    """Locally applied session view."""
    session: Session
    agents: List[Agent] = field(default_factory=list)
    conversations: List[Conversation] = field(default_factory=list)
    mode: str = "manual"
    active_agent: Optional[Agent] = None
    course_override_applied: bool = False

    @property
    def active_agent_id(self) -> Optional[int]:
        return self.active_agent.id if self.active_agent else None

    @property
    def is_team_mode(self) -> bool:
        return self.mode in TEAM_MODES


def validate_mode(mode: str) -> str:
    """Reject values outside the mode set."""
    if mode not in TUTOR_MODES:
        raise ValueError(f"Invalid mode '{mode}'. Must be one of: {', '.join(TUTOR_MODES)}")
    return mode


def map_course_routing_mode(course_routing_mode: Optional[str]) -> Optional[str]:
    """Session mode forced by a course routing policy, if any."""
    if not course_routing_mode:
        return None
    return COURSE_ROUTING_MODES.get(course_routing_mode)


def resolve_initial_mode(
    stored_mode: str,
    course_routing_mode: Optional[str],
    override_applied: bool
) -> Tuple[str, bool]:
    """
    Decide the effective mode on session load.

    Args:
        stored_mode: Mode persisted in the session
        course_routing_mode: Course routing policy, if in a course context
        override_applied: Whether the policy was already applied this load

    Returns:
        (effective mode, whether the override must be pushed to the backend)
    """
    if override_applied:
        return stored_mode, False

    forced = map_course_routing_mode(course_routing_mode)
    if forced and forced != stored_mode:
        return forced, True
    return stored_mode, False


def _find_agent(agents: List[Agent], agent_id: Optional[int]) -> Optional[Agent]:
    if agent_id is None:
        return None
    return next((a for a in agents if a.id == agent_id), None)


def select_active_agent(
    mode: str,
    agents: List[Agent],
    requested_agent_id: Optional[int] = None,
    session_agent_id: Optional[int] = None
) -> Optional[Agent]:
    """
    Agent-selection rule for a mode.

    Team modes always use the first agent as the team entry point. Manual
    mode prefers the requested agent, then the session's active agent.

    Returns:
        Selected agent, or None
    """
    validate_mode(mode)
    if not agents:
        return None

    if mode in TEAM_MODES:
        return agents[0]

    return _find_agent(agents, requested_agent_id) or _find_agent(agents, session_agent_id)


def apply_mode_change(state: SessionState, mode: str) -> SessionState:
    """Switch mode; team modes reset the target to the first agent."""
    validate_mode(mode)
    session = state.session.model_copy(update={"mode": mode})

    if mode in TEAM_MODES:
        active_agent = state.agents[0] if state.agents else None
    else:
        active_agent = state.active_agent

    return replace(state, session=session, mode=mode, active_agent=active_agent)


def apply_agent_selection(state: SessionState, agent_id: int) -> SessionState:
    """Select an agent in manual mode."""
    if state.is_team_mode:
        raise ValueError(f"Agent selection is not available in {state.mode} mode")

    agent = _find_agent(state.agents, agent_id)
    if agent is None:
        raise ValueError(f"Unknown agent: {agent_id}")

    session = state.session.model_copy(update={"active_agent_id": agent.id})
    return replace(state, session=session, active_agent=agent)
