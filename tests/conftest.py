"""
Pytest configuration and fixtures.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from tutor_session.api.client import TutorAPIError
from tutor_session.models.schemas import (
    Agent,
    AgentContribution,
    CollaborativeInfo,
    CollaborativeSettings,
    Conversation,
    ConversationWithMessages,
    EmotionalPulse,
    Message,
    PulseHistory,
    SendMessageResponse,
    Session,
    SessionBundle,
)


OLD = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_agent(agent_id: int, name: str) -> Agent:
    return Agent(
        id=agent_id,
        name=name.lower(),
        display_name=name,
        description=f"{name} tutor",
        welcome_message=f"Hi, I am {name}."
    )


def make_contributions(*names: str) -> List[AgentContribution]:
    return [
        AgentContribution(
            agent_id=index + 1,
            agent_name=name.lower(),
            agent_display_name=name,
            contribution=f"{name} says hello",
            response_time_ms=100 * (index + 1)
        )
        for index, name in enumerate(names)
    ]


class FakeTutorAPI:
    """In-memory stand-in for TutorAPIClient."""

    def __init__(self, mode: str = "manual", active_agent_id: Optional[int] = 2):
        self.agents = [make_agent(1, "Socrates"), make_agent(2, "Ada"), make_agent(3, "Feynman")]
        self.session = Session(id=7, user_id=42, mode=mode, active_agent_id=active_agent_id)
        self.histories: Dict[int, List[Message]] = {a.id: [] for a in self.agents}
        self.calls: List[tuple] = []
        self.fail: set = set()
        self.send_gate: Optional[asyncio.Event] = None
        self.reply_contributions: Optional[List[AgentContribution]] = None
        self.reply_style = "parallel"
        self.pulses: List[EmotionalPulse] = []
        self.closed = False
        self._next_id = 1000

    def _check(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise TutorAPIError(f"{name} failed", 500)

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def conversation_id(self, agent_id: int) -> int:
        return 100 + agent_id

    def _conversations(self) -> List[Conversation]:
        return [
            Conversation(
                id=self.conversation_id(agent_id),
                session_id=self.session.id,
                agent_id=agent_id,
                message_count=len(messages),
                last_message_at=messages[-1].created_at if messages else None
            )
            for agent_id, messages in self.histories.items()
        ]

    async def get_session(self) -> SessionBundle:
        self._check("get_session")
        return SessionBundle(session=self.session, agents=self.agents, conversations=self._conversations())

    async def set_mode(self, mode: str) -> Session:
        self._check("set_mode", mode)
        self.session = self.session.model_copy(update={"mode": mode})
        return self.session

    async def set_active_agent(self, agent_id: int) -> Session:
        self._check("set_active_agent", agent_id)
        self.session = self.session.model_copy(update={"active_agent_id": agent_id})
        return self.session

    async def get_conversation(self, agent_id: int) -> ConversationWithMessages:
        self._check("get_conversation", agent_id)
        messages = self.histories.get(agent_id, [])
        return ConversationWithMessages(
            id=self.conversation_id(agent_id),
            session_id=self.session.id,
            agent_id=agent_id,
            message_count=len(messages),
            messages=list(messages)
        )

    async def clear_conversation(self, agent_id: int):
        self._check("clear_conversation", agent_id)
        self.histories[agent_id] = []

    async def send_message(
        self,
        agent_id: int,
        message: str,
        collaborative_settings: Optional[CollaborativeSettings] = None
    ) -> SendMessageResponse:
        self._check("send_message", agent_id, message, collaborative_settings)

        # The user turn is stored before the reply is generated
        self._next_id += 2
        user = Message(
            id=self._next_id - 1,
            conversation_id=self.conversation_id(agent_id),
            role="user",
            content=message,
            created_at=datetime.now(timezone.utc)
        )
        history = self.histories.setdefault(agent_id, [])
        history.append(user)

        if self.send_gate is not None:
            await self.send_gate.wait()

        assistant = Message(
            id=self._next_id,
            conversation_id=self.conversation_id(agent_id),
            role="assistant",
            content=f"Reply to: {message}",
            created_at=datetime.now(timezone.utc) + timedelta(milliseconds=1)
        )
        collaborative_info = None
        if self.reply_contributions:
            collaborative_info = CollaborativeInfo(
                style=self.reply_style,
                agent_contributions=self.reply_contributions
            )

        history.append(assistant)
        return SendMessageResponse(
            user_message=user,
            assistant_message=assistant,
            collaborative_info=collaborative_info
        )

    async def log_pulse(
        self,
        emotion: str,
        context: str = "chatbot",
        context_id: Optional[int] = None,
        agent_id: Optional[int] = None
    ) -> EmotionalPulse:
        self._check("log_pulse", emotion, context, context_id, agent_id)
        pulse = EmotionalPulse(
            id=len(self.pulses) + 1,
            emotion=emotion,
            context=context,
            context_id=context_id,
            agent_id=agent_id
        )
        self.pulses.insert(0, pulse)
        return pulse

    async def get_pulse_history(self, context=None, context_id=None, agent_id=None, limit=None, offset=None):
        self._check("get_pulse_history", context, agent_id, limit)
        pulses = [p for p in self.pulses if agent_id is None or p.agent_id == agent_id]
        return PulseHistory(pulses=pulses[:limit], total=len(pulses), limit=limit, offset=offset or 0)

    async def aclose(self):
        self.closed = True


class RecordingSleep:
    """Sleep replacement that records delays and yields control once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        await asyncio.sleep(0)


class ManualSleep:
    """Sleep replacement that blocks until the test releases it."""

    def __init__(self):
        self.delays: List[float] = []
        self._waiters: List[asyncio.Future] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        await future

    @property
    def waiting(self) -> int:
        return len([f for f in self._waiters if not f.done()])

    async def release(self, count: int = 1):
        """Wake the oldest ``count`` sleepers and let them run."""
        for _ in range(count):
            pending = [f for f in self._waiters if not f.done()]
            if not pending:
                break
            pending[0].set_result(None)
            for _ in range(5):
                await asyncio.sleep(0)


class EventRecorder:
    """Collects (type, agent_id, data) triples emitted by the orchestrator."""

    def __init__(self):
        self.events: List[tuple] = []

    async def __call__(self, event_type: str, agent_id: Optional[int], data: Dict[str, Any]):
        self.events.append((event_type, agent_id, data))

    def of_type(self, event_type: str) -> List[tuple]:
        return [e for e in self.events if e[0] == event_type]

    def types(self) -> List[str]:
        return [e[0] for e in self.events]


@pytest.fixture
def fake_api() -> FakeTutorAPI:
    """Fake backend with three agents and an empty manual-mode session."""
    return FakeTutorAPI()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


async def wait_until(predicate, attempts: int = 500):
    """Yield to the event loop until ``predicate()`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
