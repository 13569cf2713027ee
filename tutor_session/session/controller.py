"""Session controller: mode and active-agent management."""
from typing import List, Optional
from dataclasses import replace
from tutor_session.api.client import TutorAPIClient, TutorAPIError
from tutor_session.models.schemas import Agent, Session
from tutor_session.session.state import (
    SessionState,
    apply_agent_selection,
    apply_mode_change,
    resolve_initial_mode,
    select_active_agent,
    validate_mode,
)
import logging

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the current mode and the active agent or team target."""

    def __init__(self, api_client: TutorAPIClient):
        """
        Initialize the controller.

        Args:
            api_client: Backend client
        """
        self.api_client = api_client
        self._state: Optional[SessionState] = None

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise RuntimeError("Session has not been loaded")
        return self._state

    @property
    def loaded(self) -> bool:
        return self._state is not None

    @property
    def mode(self) -> str:
        return self.state.mode

    @property
    def active_agent(self) -> Optional[Agent]:
        return self.state.active_agent

    @property
    def agents(self) -> List[Agent]:
        return self.state.agents

    async def load(
        self,
        requested_agent_id: Optional[int] = None,
        course_routing_mode: Optional[str] = None
    ) -> SessionState:
        """
        Load the session bundle and decide mode and active agent.

        A course routing policy is applied at most once per load. Failing to
        persist it is logged and otherwise ignored.

        Args:
            requested_agent_id: Agent asked for explicitly (deep link)
            course_routing_mode: Course routing policy, if in a course context

        Returns:
            Loaded session state
        """
        bundle = await self.api_client.get_session()
        session = bundle.session

        mode, push_override = resolve_initial_mode(session.mode, course_routing_mode, False)
        if push_override:
            logger.info(f"Course policy '{course_routing_mode}' overrides session mode {session.mode} -> {mode}")
            session = session.model_copy(update={"mode": mode})
            try:
                session = await self.api_client.set_mode(mode)
            except TutorAPIError as e:
                logger.warning(f"Failed to persist course mode override: {e}")

        active_agent = select_active_agent(
            mode,
            bundle.agents,
            requested_agent_id=requested_agent_id,
            session_agent_id=session.active_agent_id
        )

        self._state = SessionState(
            session=session,
            agents=bundle.agents,
            conversations=bundle.conversations,
            mode=mode,
            active_agent=active_agent,
            course_override_applied=True
        )

        logger.info(
            f"Loaded session {session.id}: mode={mode}, "
            f"agents={len(bundle.agents)}, active_agent={self._state.active_agent_id}"
        )
        return self._state

    async def refresh(self) -> SessionState:
        """
        Re-fetch agents and conversation previews.

        The course override is not re-applied and the local mode and
        selection are kept; a selection whose agent disappeared falls back
        to the mode's selection rule.
        """
        bundle = await self.api_client.get_session()
        state = self.state

        active_agent = select_active_agent(
            state.mode,
            bundle.agents,
            requested_agent_id=state.active_agent_id,
            session_agent_id=bundle.session.active_agent_id
        )

        self._state = replace(
            state,
            session=bundle.session.model_copy(update={"mode": state.mode}),
            agents=bundle.agents,
            conversations=bundle.conversations,
            active_agent=active_agent
        )
        return self._state

    async def change_mode(self, mode: str) -> SessionState:
        """
        Switch the interaction mode.

        The new mode is applied locally before it is persisted.

        Args:
            mode: New mode

        Returns:
            Updated state

        Raises:
            ValueError: For an unknown mode (nothing changes)
            TutorAPIError: If persisting failed (local state already updated)
        """
        validate_mode(mode)
        previous = self.state.mode
        self._state = apply_mode_change(self.state, mode)
        logger.info(f"Mode changed {previous} -> {mode}, active agent {self._state.active_agent_id}")

        session: Session = await self.api_client.set_mode(mode)
        self._state = replace(self._state, session=session.model_copy(update={"mode": mode}))
        return self._state

    async def select_agent(self, agent_id: int) -> SessionState:
        """
        Select an agent in manual mode.

        Args:
            agent_id: Agent to activate

        Returns:
            Updated state

        Raises:
            ValueError: In a team mode or for an unknown agent
            TutorAPIError: If persisting failed (local state already updated)
        """
        self._state = apply_agent_selection(self.state, agent_id)
        logger.info(f"Active agent set to {agent_id}")

        session: Session = await self.api_client.set_active_agent(agent_id)
        self._state = replace(
            self._state,
            session=session.model_copy(update={"mode": self._state.mode, "active_agent_id": agent_id})
        )
        return self._state
