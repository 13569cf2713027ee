"""Message dispatch with optimistic insertion, built as a LangGraph workflow."""
from typing import TypedDict, Optional, Literal, Callable, Awaitable, Any
from datetime import datetime, timezone
from langgraph.graph import StateGraph, END
from tutor_session.api.client import TutorAPIClient
from tutor_session.conversation.decoder import decode_message
from tutor_session.conversation.store import ConversationStore
from tutor_session.models.schemas import CollaborativeSettings, Message, SendMessageResponse
import inspect
import logging
import uuid

logger = logging.getLogger(__name__)

DispatchListener = Callable[[str, int, Message], Optional[Awaitable[None]]]


class DispatchState(TypedDict):
    """State for the dispatch graph."""
    agent_id: int
    text: str
    collaborative_settings: Optional[CollaborativeSettings]
    optimistic_id: str
    response: Optional[SendMessageResponse]
    error: Optional[Exception]


class DispatchResult(TypedDict):
    """Confirmed messages of one turn."""
    agent_id: int
    user_message: Message
    assistant_message: Message


def new_optimistic_id() -> str:
    """Locally-unique id for a message the backend has not confirmed yet."""
    return f"local-{uuid.uuid4().hex}"


class MessageDispatcher:
    """Sends user turns and reconciles the conversation store."""

    def __init__(
        self,
        api_client: TutorAPIClient,
        store: ConversationStore,
        listener: Optional[DispatchListener] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            api_client: Backend client
            store: Store holding the threads to update
            listener: Optional callback receiving (event, agent_id, message)
                for message_pending, message_confirmed and message_failed
        """
        self.api_client = api_client
        self.store = store
        self.listener = listener
        self.graph = self._build_graph()

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(DispatchState)

        # Add nodes
        workflow.add_node("insert_optimistic", self._insert_optimistic)
        workflow.add_node("send_to_backend", self._send_to_backend)
        workflow.add_node("confirm_messages", self._confirm_messages)
        workflow.add_node("rollback_optimistic", self._rollback_optimistic)

        # Add edges
        workflow.set_entry_point("insert_optimistic")
        workflow.add_edge("insert_optimistic", "send_to_backend")
        workflow.add_conditional_edges(
            "send_to_backend",
            self._outcome,
            {
                "confirmed": "confirm_messages",
                "failed": "rollback_optimistic"
            }
        )
        workflow.add_edge("confirm_messages", END)
        workflow.add_edge("rollback_optimistic", END)

        return workflow.compile()

    async def _notify(self, event: str, agent_id: int, message: Message):
        if self.listener is None:
            return
        try:
            result = self.listener(event, agent_id, message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Dispatch listener failed on {event}: {e}")

    async def _insert_optimistic(self, state: DispatchState) -> DispatchState:
        """Show the user's turn immediately."""
        message = Message(
            id=state["optimistic_id"],
            conversation_id=None,
            role="user",
            content=state["text"],
            created_at=datetime.now(timezone.utc),
            optimistic=True
        )
        self.store.append(state["agent_id"], message)
        await self._notify("message_pending", state["agent_id"], message)
        return state

    async def _send_to_backend(self, state: DispatchState) -> DispatchState:
        """Send the turn; failures are recorded rather than raised."""
        try:
            state["response"] = await self.api_client.send_message(
                state["agent_id"],
                state["text"],
                state["collaborative_settings"]
            )
        except Exception as e:
            logger.error(f"Failed to send message to agent {state['agent_id']}: {e}")
            state["error"] = e
        return state

    def _outcome(self, state: DispatchState) -> Literal["confirmed", "failed"]:
        if state["error"] is None and state["response"] is not None:
            return "confirmed"
        return "failed"

    async def _confirm_messages(self, state: DispatchState) -> DispatchState:
        """Swap the optimistic message for the confirmed pair."""
        agent_id = state["agent_id"]
        response = state["response"]

        assistant = response.assistant_message.model_copy(
            update={
                "routing_info": response.routing_info,
                "collaborative_info": response.collaborative_info,
            }
        )
        assistant = decode_message(assistant)

        self.store.append(agent_id, response.user_message, assistant)
        self.store.remove(agent_id, state["optimistic_id"])

        logger.info(f"Confirmed turn {response.user_message.id} -> {assistant.id} for agent {agent_id}")
        await self._notify("message_confirmed", agent_id, response.user_message)
        await self._notify("message_confirmed", agent_id, assistant)
        return state

    async def _rollback_optimistic(self, state: DispatchState) -> DispatchState:
        """Remove the optimistic message after a failed send."""
        optimistic = self.store.find(state["agent_id"], state["optimistic_id"])
        self.store.remove(state["agent_id"], state["optimistic_id"])
        if optimistic is not None:
            await self._notify("message_failed", state["agent_id"], optimistic)
        return state

    async def send(
        self,
        agent_id: int,
        text: str,
        collaborative_settings: Optional[CollaborativeSettings] = None
    ) -> DispatchResult:
        """
        Send one user turn.

        Args:
            agent_id: Agent whose conversation receives the turn
            text: Message text
            collaborative_settings: Team settings (collaborative mode only)

        Returns:
            Confirmed user and assistant messages

        Raises:
            ValueError: If the text is empty after trimming
            TutorAPIError: If the backend call failed (after rollback)
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message text must not be empty")

        initial_state: DispatchState = {
            "agent_id": agent_id,
            "text": text,
            "collaborative_settings": collaborative_settings,
            "optimistic_id": new_optimistic_id(),
            "response": None,
            "error": None
        }

        try:
            final_state: Any = await self.graph.ainvoke(initial_state)
        finally:
            # Covers cancellation mid-flight as well
            self.store.remove(agent_id, initial_state["optimistic_id"])

        if final_state["error"] is not None:
            raise final_state["error"]

        response: SendMessageResponse = final_state["response"]
        thread = self.store.messages(agent_id)
        assistant = next(
            (m for m in reversed(thread) if m.id == response.assistant_message.id),
            response.assistant_message
        )
        return {
            "agent_id": agent_id,
            "user_message": response.user_message,
            "assistant_message": assistant,
        }
