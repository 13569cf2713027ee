"""Tutor orchestrator: one learner's session, conversations, reveals and pulses."""
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from tutor_session.api.client import TutorAPIClient, TutorAPIError
from tutor_session.conversation.dispatcher import DispatchResult, MessageDispatcher
from tutor_session.conversation.store import ConversationStore
from tutor_session.models.schemas import CollaborativeSettings, Message
from tutor_session.pulse.tracker import EmotionalPulseTracker, PulseState
from tutor_session.reveal.engine import CollaborativeRevealEngine, RevealState
from tutor_session.session.controller import SessionController
import asyncio
import logging

logger = logging.getLogger(__name__)

EventEmitter = Callable[[str, Optional[int], Dict[str, Any]], Awaitable[None]]


def dump_message(message: Message) -> Dict[str, Any]:
    """JSON-ready camelCase form of a message."""
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)


class SendInProgressError(Exception):
    """Raised when a send is attempted while another one is outstanding."""


class TutorOrchestrator:
    """Coordinates the session controller, dispatcher, reveal engines and pulse tracker."""

    def __init__(
        self,
        api_client: TutorAPIClient,
        emit: Optional[EventEmitter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[Callable[[float, float], float]] = None
    ):
        """
        Initialize the orchestrator with all components.

        Args:
            api_client: Backend client
            emit: Coroutine receiving (event type, agent id, payload)
            sleep: Coroutine used for reveal delays and cooldown ticks
            rng: Random source for reveal delays
        """
        self.api_client = api_client
        self._emit_fn = emit
        self._sleep = sleep
        self._rng = rng

        self.controller = SessionController(api_client)
        self.store = ConversationStore()
        self.dispatcher = MessageDispatcher(api_client, self.store, listener=self._on_dispatch_event)
        self.pulse_tracker = EmotionalPulseTracker(api_client, on_change=self._on_pulse_state, sleep=sleep)
        self.collaborative_settings = CollaborativeSettings()

        self._reveals: Dict[Union[int, str], CollaborativeRevealEngine] = {}
        self._sending = False

    @property
    def active_agent_id(self) -> Optional[int]:
        if not self.controller.loaded:
            return None
        return self.controller.state.active_agent_id

    @property
    def is_sending(self) -> bool:
        return self._sending

    @property
    def reveals(self) -> Dict[Union[int, str], CollaborativeRevealEngine]:
        return dict(self._reveals)

    async def _emit(self, event_type: str, agent_id: Optional[int] = None, **data):
        if self._emit_fn is None:
            return
        try:
            await self._emit_fn(event_type, agent_id, data)
        except Exception as e:
            logger.error(f"Failed to emit {event_type}: {e}")

    def _session_payload(self) -> Dict[str, Any]:
        state = self.controller.state
        return {
            "mode": state.mode,
            "activeAgentId": state.active_agent_id,
            "agents": [a.model_dump(mode="json", by_alias=True) for a in state.agents],
            "conversations": [
                c.model_dump(mode="json", by_alias=True, exclude_none=True)
                for c in self.store.conversations()
            ],
        }

    # Session

    async def initialize(
        self,
        requested_agent_id: Optional[int] = None,
        course_routing_mode: Optional[str] = None
    ):
        """
        Load the session and the active conversation.

        Args:
            requested_agent_id: Agent from a deep link
            course_routing_mode: Course routing policy, if in a course context
        """
        state = await self.controller.load(requested_agent_id, course_routing_mode)
        self.store.set_conversations(state.conversations)
        await self._emit("session", **self._session_payload())

        if state.active_agent is not None:
            await self.load_conversation(state.active_agent.id)

    async def refresh(self):
        """Re-fetch agents and conversation previews."""
        state = await self.controller.refresh()
        self.store.set_conversations(state.conversations)
        await self._emit("session", **self._session_payload())

    async def load_conversation(self, agent_id: int):
        """Fetch history for an agent and start reveals for fresh collaborative turns."""
        self.cancel_reveals()
        conversation = await self.api_client.get_conversation(agent_id)
        thread = self.store.load_history(agent_id, conversation)

        await self._emit(
            "conversation",
            agent_id,
            conversationId=conversation.id,
            messages=[dump_message(m) for m in thread]
        )

        if agent_id != self.active_agent_id:
            return
        for message in thread:
            self._start_reveal(agent_id, message)

    async def _after_target_change(self, error: Optional[Exception]):
        await self._emit("session", **self._session_payload())

        active = self.active_agent_id
        if active is not None:
            await self.load_conversation(active)

        if error is not None:
            raise error

    async def change_mode(self, mode: str):
        """
        Switch interaction mode; pending reveals of the old target are cancelled.

        Raises:
            ValueError: For an unknown mode
            TutorAPIError: If persisting failed (the switch still applies locally)
        """
        error = None
        try:
            await self.controller.change_mode(mode)
        except TutorAPIError as e:
            logger.error(f"Failed to persist mode {mode}: {e}")
            error = e

        self.cancel_reveals()
        await self._after_target_change(error)

    async def select_agent(self, agent_id: int):
        """
        Select an agent in manual mode; pending reveals are cancelled.

        Raises:
            ValueError: In a team mode or for an unknown agent
            TutorAPIError: If persisting failed (the selection still applies locally)
        """
        error = None
        try:
            await self.controller.select_agent(agent_id)
        except TutorAPIError as e:
            logger.error(f"Failed to persist active agent {agent_id}: {e}")
            error = e

        self.cancel_reveals()
        await self._after_target_change(error)

    # Messages

    async def _on_dispatch_event(self, event: str, agent_id: int, message: Message):
        await self._emit(event, agent_id, message=dump_message(message))

    async def send_message(
        self,
        text: str,
        collaborative_settings: Optional[CollaborativeSettings] = None
    ) -> DispatchResult:
        """
        Send a turn to the active target.

        Team settings are only sent in collaborative mode. The target agent is
        captured before the request, so switching agents while waiting does
        not redirect the reply.

        Args:
            text: Message text
            collaborative_settings: Overrides the orchestrator's team settings

        Returns:
            Confirmed messages

        Raises:
            SendInProgressError: While another send is outstanding
            ValueError: Without an active agent or for empty text
            TutorAPIError: If the backend call failed
        """
        if self._sending:
            raise SendInProgressError("A message is already being sent")

        agent_id = self.active_agent_id
        if agent_id is None:
            raise ValueError("No tutor selected")

        team_settings = None
        if self.controller.mode == "collaborative":
            team_settings = collaborative_settings or self.collaborative_settings

        self._sending = True
        try:
            result = await self.dispatcher.send(agent_id, text, team_settings)
        finally:
            self._sending = False

        if agent_id == self.active_agent_id:
            self._start_reveal(agent_id, result["assistant_message"])
        else:
            logger.info(f"Reply for agent {agent_id} arrived after switching to {self.active_agent_id}")

        try:
            await self.refresh()
        except TutorAPIError as e:
            logger.warning(f"Failed to refresh session after send: {e}")

        return result

    async def clear_conversation(self):
        """Delete the active conversation's messages."""
        agent_id = self.active_agent_id
        if agent_id is None:
            raise ValueError("No tutor selected")

        await self.api_client.clear_conversation(agent_id)
        self.cancel_reveals()
        self.store.clear(agent_id)
        await self._emit("conversation_cleared", agent_id)

    def set_collaborative_settings(self, collaborative_settings: CollaborativeSettings):
        self.collaborative_settings = collaborative_settings

    # Reveal

    def _start_reveal(self, agent_id: int, message: Message) -> Optional[CollaborativeRevealEngine]:
        info = message.collaborative_info
        if message.role != "assistant" or info is None or not info.agent_contributions:
            return None

        message_id = message.id
        contributions = info.agent_contributions
        shown = {"count": 0}

        async def on_change(state: RevealState):
            while shown["count"] < state.revealed:
                contribution = contributions[shown["count"]]
                await self._emit(
                    "reveal",
                    agent_id,
                    messageId=message_id,
                    index=shown["count"],
                    contribution=contribution.model_dump(mode="json", by_alias=True, exclude_none=True)
                )
                shown["count"] += 1
            if state.typing_agent:
                await self._emit("typing", agent_id, messageId=message_id, agentName=state.typing_agent)

        async def on_complete():
            self._reveals.pop(message_id, None)
            await self._emit("reveal_complete", agent_id, messageId=message_id, style=info.style)

        engine = CollaborativeRevealEngine(
            contributions,
            created_at=message.created_at,
            on_change=on_change,
            on_complete=on_complete,
            sleep=self._sleep,
            rng=self._rng
        )
        if engine.immediate:
            return engine

        self._reveals[message_id] = engine
        engine.start()
        return engine

    def cancel_reveals(self):
        """Cancel every pending reveal."""
        for engine in self._reveals.values():
            engine.cancel()
        self._reveals.clear()

    # Emotional pulse

    async def _on_pulse_state(self, state: PulseState):
        await self._emit(
            "pulse_state",
            self.active_agent_id,
            phase=state.phase.value,
            remainingMs=state.remaining_ms,
            emotion=state.emotion
        )

    async def submit_pulse(self, emotion: str):
        """
        Log a pulse for the active conversation and refresh the history view.

        Raises:
            PulseRejectedError: During cooldown or while submitting
            TutorAPIError: If logging failed
        """
        agent_id = self.active_agent_id
        conversation = self.store.conversation(agent_id) if agent_id is not None else None

        await self.pulse_tracker.submit(
            emotion,
            context_id=conversation.id if conversation else None,
            agent_id=agent_id
        )
        await self._emit("pulse_logged", agent_id, emotion=emotion, refresh=self.pulse_tracker.refresh_counter)

        try:
            await self.pulse_history()
        except TutorAPIError as e:
            logger.warning(f"Failed to refresh pulse history: {e}")

    async def pulse_history(self):
        """Emit the pulse history for the active agent."""
        agent_id = self.active_agent_id
        history = await self.pulse_tracker.history(agent_id=agent_id)
        await self._emit(
            "pulse_history",
            agent_id,
            **history.model_dump(mode="json", by_alias=True, exclude_none=True)
        )

    async def close(self):
        """Stop all timers."""
        self.cancel_reveals()
        self.pulse_tracker.dispose()
        logger.info("Tutor orchestrator closed")
