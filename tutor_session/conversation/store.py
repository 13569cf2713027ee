"""In-memory message threads, one per agent conversation."""
from typing import Dict, List, Optional, Union
from tutor_session.models.schemas import Conversation, ConversationWithMessages, Message, MessagePreview
from tutor_session.conversation.decoder import decode_history
import logging

logger = logging.getLogger(__name__)


class ConversationStore:
    """Holds message threads and conversation previews keyed by agent id."""

    def __init__(self):
        """Initialize empty store."""
        self._threads: Dict[int, List[Message]] = {}
        self._conversations: Dict[int, Conversation] = {}

    def messages(self, agent_id: int) -> List[Message]:
        """Get a copy of the thread for an agent."""
        return list(self._threads.get(agent_id, []))

    def pending(self, agent_id: int) -> List[Message]:
        """Optimistic messages still waiting for confirmation."""
        return [m for m in self._threads.get(agent_id, []) if m.optimistic]

    def find(self, agent_id: int, message_id: Union[int, str]) -> Optional[Message]:
        for message in self._threads.get(agent_id, []):
            if message.id == message_id:
                return message
        return None

    def load_history(self, agent_id: int, conversation: ConversationWithMessages) -> List[Message]:
        """
        Replace a thread with server history.

        Optimistic messages that are still in flight are kept after the
        fetched history so a refetch cannot drop them.

        Args:
            agent_id: Agent the conversation belongs to
            conversation: Fetched conversation with messages

        Returns:
            The reconciled thread
        """
        history = sorted(decode_history(conversation.messages), key=lambda m: m.created_at)
        thread = history + self.pending(agent_id)
        self._threads[agent_id] = thread

        existing = self._conversations.get(agent_id)
        self._conversations[agent_id] = Conversation(
            id=conversation.id,
            session_id=conversation.session_id,
            agent_id=agent_id,
            last_message_at=conversation.last_message_at,
            message_count=conversation.message_count,
            created_at=conversation.created_at,
            agent=existing.agent if existing else None,
            last_message=self._preview(history[-1]) if history else None
        )

        logger.info(f"Loaded {len(history)} messages for agent {agent_id}")
        return list(thread)

    def append(self, agent_id: int, *messages: Message):
        """
        Append messages to a thread, updating the preview for confirmed ones.

        A message whose id is already in the thread (e.g. a confirmed turn
        that arrived with a history refetch) replaces the stored copy in
        place and does not advance the preview again.
        """
        thread = self._threads.setdefault(agent_id, [])
        for message in messages:
            index = next((i for i, m in enumerate(thread) if m.id == message.id), None)
            if index is not None:
                thread[index] = message
                continue
            thread.append(message)
            if not message.optimistic:
                self._touch(agent_id, message)

    def remove(self, agent_id: int, message_id: Union[int, str]) -> bool:
        """
        Remove a message by id.

        Returns:
            True if a message was removed
        """
        thread = self._threads.get(agent_id, [])
        kept = [m for m in thread if m.id != message_id]
        removed = len(kept) != len(thread)
        self._threads[agent_id] = kept
        return removed

    def clear(self, agent_id: int):
        """Drop all messages of a thread."""
        self._threads[agent_id] = []
        conversation = self._conversations.get(agent_id)
        if conversation:
            self._conversations[agent_id] = conversation.model_copy(
                update={"message_count": 0, "last_message": None, "last_message_at": None}
            )

    def set_conversations(self, conversations: List[Conversation]):
        """Replace conversation previews with the server's list."""
        self._conversations = {c.agent_id: c for c in conversations}

    def conversation(self, agent_id: int) -> Optional[Conversation]:
        return self._conversations.get(agent_id)

    def conversations(self) -> List[Conversation]:
        """Previews ordered by most recent activity."""
        return sorted(
            self._conversations.values(),
            key=lambda c: c.last_message_at.timestamp() if c.last_message_at else 0.0,
            reverse=True
        )

    @staticmethod
    def _preview(message: Message) -> MessagePreview:
        return MessagePreview(role=message.role, content=message.content, created_at=message.created_at)

    def _touch(self, agent_id: int, message: Message):
        """Advance preview metadata for a confirmed message."""
        conversation = self._conversations.get(agent_id)
        if conversation is None:
            if message.conversation_id is None:
                return
            conversation = Conversation(id=message.conversation_id, agent_id=agent_id)

        self._conversations[agent_id] = conversation.model_copy(
            update={
                "message_count": conversation.message_count + 1,
                "last_message_at": message.created_at,
                "last_message": self._preview(message),
            }
        )
