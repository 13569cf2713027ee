"""Emotional pulse submission with a client-side cooldown."""
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional
from tutor_session.api.client import TutorAPIClient
from tutor_session.config import settings
from tutor_session.models.schemas import EMOTIONS, EmotionalPulse, PulseHistory
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

PULSE_CONTEXTS = ("chatbot", "lesson", "assignment")


class PulsePhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class PulseState:
    """Tracker state; ``remaining_ms`` is only meaningful during cooldown."""
    phase: PulsePhase = PulsePhase.IDLE
    remaining_ms: int = 0
    emotion: Optional[str] = None


class PulseRejectedError(Exception):
    """Raised when a pulse is submitted while submitting or cooling down."""


def transition(state: PulseState, event: str, value: int = 0, emotion: Optional[str] = None) -> PulseState:
    """
    Pure transition function of the pulse state machine.

    Args:
        state: Current state
        event: ``submit``, ``succeeded`` (value = cooldown ms), ``failed`` or
            ``tick`` (value = elapsed ms)
        value: Event argument
        emotion: Emotion for ``submit``

    Returns:
        Next state

    Raises:
        PulseRejectedError: On ``submit`` outside the idle phase
    """
    if event == "submit":
        if state.phase != PulsePhase.IDLE:
            raise PulseRejectedError(f"Pulse rejected while {state.phase.value}")
        return PulseState(phase=PulsePhase.SUBMITTING, emotion=emotion)

    if event == "succeeded":
        if value <= 0:
            return PulseState()
        return PulseState(phase=PulsePhase.COOLDOWN, remaining_ms=value, emotion=state.emotion)

    if event == "failed":
        return PulseState()

    if event == "tick":
        if state.phase != PulsePhase.COOLDOWN:
            return state
        remaining = state.remaining_ms - value
        if remaining <= 0:
            return PulseState()
        return PulseState(phase=PulsePhase.COOLDOWN, remaining_ms=remaining, emotion=state.emotion)

    raise ValueError(f"Unknown pulse event: {event}")


class EmotionalPulseTracker:
    """Submits mood signals for the active conversation."""

    def __init__(
        self,
        api_client: TutorAPIClient,
        context: str = "chatbot",
        cooldown_ms: Optional[int] = None,
        tick_ms: Optional[int] = None,
        on_change: Optional[Callable[[PulseState], Optional[Awaitable[None]]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the tracker.

        Args:
            api_client: Backend client
            context: Pulse context type
            cooldown_ms: Cooldown after a successful pulse
            tick_ms: Countdown granularity
            on_change: Called with every new state
            sleep: Coroutine used to wait, in seconds
        """
        if context not in PULSE_CONTEXTS:
            raise ValueError(f"Invalid pulse context: {context}")

        self.api_client = api_client
        self.context = context
        self.cooldown_ms = settings.pulse_cooldown_ms if cooldown_ms is None else cooldown_ms
        self.tick_ms = tick_ms or settings.pulse_tick_ms
        self.on_change = on_change
        self._sleep = sleep
        self._state = PulseState()
        self._cooldown_task: Optional[asyncio.Task] = None
        self.refresh_counter = 0

    @property
    def state(self) -> PulseState:
        return self._state

    @property
    def can_submit(self) -> bool:
        return self._state.phase == PulsePhase.IDLE

    async def _set_state(self, state: PulseState):
        self._state = state
        if self.on_change is None:
            return
        try:
            result = self.on_change(state)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Pulse state callback failed: {e}")

    async def submit(
        self,
        emotion: str,
        context_id: Optional[int] = None,
        agent_id: Optional[int] = None
    ) -> Optional[EmotionalPulse]:
        """
        Log a pulse and start the cooldown.

        Args:
            emotion: Emotion tag
            context_id: Conversation id
            agent_id: Agent the learner is talking to

        Returns:
            The stored pulse, if returned by the backend

        Raises:
            ValueError: For an unknown emotion
            PulseRejectedError: While submitting or cooling down
            TutorAPIError: If logging failed (tracker is idle again)
        """
        if emotion not in EMOTIONS:
            raise ValueError(f"Unknown emotion: {emotion}")

        await self._set_state(transition(self._state, "submit", emotion=emotion))

        try:
            pulse = await self.api_client.log_pulse(
                emotion,
                context=self.context,
                context_id=context_id,
                agent_id=agent_id
            )
        except Exception as e:
            logger.error(f"Failed to log emotional pulse: {e}")
            await self._set_state(transition(self._state, "failed"))
            raise

        await self._set_state(transition(self._state, "succeeded", self.cooldown_ms))
        self.refresh_counter += 1
        logger.info(f"Logged pulse '{emotion}' for agent {agent_id}, cooldown {self.cooldown_ms}ms")

        if self._state.phase == PulsePhase.COOLDOWN:
            self._cooldown_task = asyncio.ensure_future(self._run_cooldown())
        return pulse

    async def _run_cooldown(self):
        """Count the cooldown down one tick at a time."""
        while self._state.phase == PulsePhase.COOLDOWN:
            await self._sleep(self.tick_ms / 1000)
            await self._set_state(transition(self._state, "tick", self.tick_ms))

    async def history(self, agent_id: Optional[int] = None, limit: Optional[int] = None) -> PulseHistory:
        """Fetch the learner's pulse history for this context."""
        return await self.api_client.get_pulse_history(
            context=self.context,
            agent_id=agent_id,
            limit=limit or settings.pulse_history_limit
        )

    def dispose(self):
        """Cancel the cooldown timer."""
        if self._cooldown_task is not None and not self._cooldown_task.done():
            self._cooldown_task.cancel()
        self._cooldown_task = None
