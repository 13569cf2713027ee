"""Staggered reveal of collaborative contributions.

A collaborative turn arrives with every agent's contribution at once. To keep
the feel of a live group chat, contributions are shown one at a time: a
typing indicator names the next agent, a delay passes, the contribution
appears. Messages loaded from history skip the animation.

The module is split into a pure part (``RevealState``, ``RevealStep``,
``advance``, ``build_schedule``) and ``CollaborativeRevealEngine``, which
plays a schedule on the event loop and can be cancelled at any point.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Literal, Optional
from tutor_session.config import settings
from tutor_session.models.schemas import AgentContribution
import asyncio
import inspect
import logging
import random

logger = logging.getLogger(__name__)

RevealEvent = Literal["typing", "revealed", "reveal_all"]
StateCallback = Callable[["RevealState"], Optional[Awaitable[None]]]
CompleteCallback = Callable[[], Optional[Awaitable[None]]]


@dataclass(frozen=True)
class RevealState:
    """How much of a collaborative turn is visible."""
    total: int
    revealed: int = 0
    typing_agent: Optional[str] = None
    completed: bool = False


@dataclass(frozen=True)
class RevealStep:
    """Wait ``delay_ms`` while ``agent_display_name`` types, then show ``reveal_index``."""
    delay_ms: float
    reveal_index: int
    agent_display_name: str


def advance(state: RevealState, event: RevealEvent, agent_name: Optional[str] = None) -> RevealState:
    """
    Pure transition function of the reveal state machine.

    Args:
        state: Current state
        event: ``typing`` (show indicator for ``agent_name``), ``revealed``
            (one more contribution visible) or ``reveal_all``
        agent_name: Display name for the typing indicator

    Returns:
        Next state
    """
    if state.completed:
        return state

    if event == "reveal_all":
        return RevealState(total=state.total, revealed=state.total, typing_agent=None, completed=True)

    if event == "typing":
        return replace(state, typing_agent=agent_name)

    if event == "revealed":
        revealed = min(state.revealed + 1, state.total)
        if revealed >= state.total:
            return RevealState(total=state.total, revealed=revealed, typing_agent=None, completed=True)
        return replace(state, revealed=revealed, typing_agent=None)

    raise ValueError(f"Unknown reveal event: {event}")


def build_schedule(
    contributions: List[AgentContribution],
    rng: Optional[Callable[[float, float], float]] = None,
    first_delay_ms: Optional[float] = None,
    min_delay_ms: Optional[float] = None,
    max_delay_ms: Optional[float] = None
) -> List[RevealStep]:
    """
    Build the delay schedule for an animated reveal.

    The first contribution appears after a short fixed delay, every later one
    after a uniformly random delay in ``[min_delay_ms, max_delay_ms)``.

    Args:
        contributions: Ordered contributions
        rng: ``uniform(a, b)``-style callable, defaults to ``random.uniform``
        first_delay_ms: Delay before the first contribution
        min_delay_ms: Lower bound for later delays
        max_delay_ms: Upper bound for later delays

    Returns:
        One step per contribution, in order
    """
    rng = rng or random.uniform
    first = settings.reveal_first_delay_ms if first_delay_ms is None else first_delay_ms
    low = settings.reveal_min_delay_ms if min_delay_ms is None else min_delay_ms
    high = settings.reveal_max_delay_ms if max_delay_ms is None else max_delay_ms

    schedule = []
    for index, contribution in enumerate(contributions):
        if index == 0:
            delay = first
        else:
            delay = rng(low, high)
            # random.uniform may return the upper bound itself
            if delay >= high:
                delay = low
        schedule.append(
            RevealStep(
                delay_ms=delay,
                reveal_index=index,
                agent_display_name=contribution.agent_display_name or contribution.agent_name
            )
        )
    return schedule


def message_age_ms(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Age of a message in milliseconds; naive timestamps are taken as UTC."""
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - created_at).total_seconds() * 1000


def should_reveal_immediately(
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
    threshold_ms: Optional[float] = None
) -> bool:
    """Whether a message is old enough to count as settled history."""
    if created_at is None:
        return True
    threshold = settings.reveal_immediate_after_ms if threshold_ms is None else threshold_ms
    return message_age_ms(created_at, now) > threshold


class CollaborativeRevealEngine:
    """Plays the reveal schedule of one collaborative message."""

    def __init__(
        self,
        contributions: List[AgentContribution],
        created_at: Optional[datetime] = None,
        immediate: Optional[bool] = None,
        on_change: Optional[StateCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[Callable[[float, float], float]] = None,
        now: Optional[datetime] = None
    ):
        """
        Initialize the engine.

        Args:
            contributions: Ordered contributions of the message
            created_at: Message creation time, used for the immediate check
            immediate: Force (or forbid) immediate mode, overriding the age check
            on_change: Called with every new state
            on_complete: Called once when an animated reveal finishes
            sleep: Coroutine used to wait, in seconds
            rng: Random source for later delays
            now: Reference time for the age check
        """
        self.contributions = list(contributions)
        self.on_change = on_change
        self.on_complete = on_complete
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._disposed = False
        self._completion_fired = False

        if immediate is None:
            immediate = should_reveal_immediately(created_at, now)
        self.immediate = immediate

        state = RevealState(total=len(self.contributions))
        if immediate:
            state = advance(state, "reveal_all")
        self._state = state
        self.schedule = [] if immediate else build_schedule(self.contributions, rng)

    @property
    def state(self) -> RevealState:
        return self._state

    @property
    def visible_contributions(self) -> List[AgentContribution]:
        """Contributions currently shown."""
        return self.contributions[:self._state.revealed]

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def _call(self, callback, *args):
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Reveal callback failed: {e}")

    async def _set_state(self, state: RevealState):
        if self._disposed:
            return
        self._state = state
        await self._call(self.on_change, state)

    async def _complete(self):
        if self._completion_fired or self._disposed:
            return
        self._completion_fired = True
        await self._call(self.on_complete)

    async def run(self) -> RevealState:
        """
        Play the schedule to the end (or until cancelled).

        Returns:
            Final state
        """
        if self.immediate or self._state.completed:
            return self._state

        if not self.contributions:
            await self._set_state(advance(self._state, "reveal_all"))
            await self._complete()
            return self._state

        for step in self.schedule:
            if self._disposed:
                return self._state
            await self._set_state(advance(self._state, "typing", step.agent_display_name))
            await self._sleep(step.delay_ms / 1000)
            if self._disposed:
                return self._state
            await self._set_state(advance(self._state, "revealed"))

        await self._complete()
        return self._state

    def start(self) -> asyncio.Task:
        """Run the schedule in a background task."""
        if self._task is None:
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def cancel(self):
        """Stop the reveal; no state change or callback happens afterwards."""
        self._disposed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Cancelled pending reveal")
