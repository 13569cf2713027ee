"""
Test the in-memory conversation store.
"""

from datetime import timedelta

from tutor_session.conversation.store import ConversationStore
from tutor_session.models.schemas import Conversation, ConversationWithMessages, Message
from tests.conftest import OLD


def message(message_id, role="user", content="hi", minutes=0, **extra) -> Message:
    return Message(id=message_id, role=role, content=content, created_at=OLD + timedelta(minutes=minutes), **extra)


def history(*messages, conversation_id=11) -> ConversationWithMessages:
    return ConversationWithMessages(
        id=conversation_id,
        agent_id=1,
        message_count=len(messages),
        last_message_at=messages[-1].created_at if messages else None,
        messages=list(messages)
    )


class TestConversationStore:

    def test_history_is_sorted_and_decoded(self):
        store = ConversationStore()
        thread = store.load_history(1, history(
            message(2, "assistant", "later", minutes=1, synthesized_from='[{"agentId":1}]'),
            message(1, "user", "first"),
        ))
        assert [m.id for m in thread] == [1, 2]
        assert thread[1].collaborative_info is not None

        conversation = store.conversation(1)
        assert conversation.id == 11
        assert conversation.last_message.content == "later"

    def test_refetch_keeps_pending_messages(self):
        store = ConversationStore()
        store.load_history(1, history(message(1)))
        store.append(1, message("local-a", content="in flight", minutes=5, optimistic=True))

        thread = store.load_history(1, history(message(1), message(2, "assistant", minutes=1)))

        assert [m.id for m in thread] == [1, 2, "local-a"]
        assert [m.id for m in store.pending(1)] == ["local-a"]

    def test_confirm_after_refetch_does_not_duplicate(self):
        store = ConversationStore()
        store.append(1, message("local-a", content="question", optimistic=True))
        store.load_history(1, history(message(7, content="question")))

        store.append(1, message(7, content="question"), message(8, "assistant", "answer", minutes=1))
        store.remove(1, "local-a")

        assert [m.id for m in store.messages(1)] == [7, 8]
        conversation = store.conversation(1)
        assert conversation.message_count == 2
        assert conversation.last_message.content == "answer"

    def test_optimistic_messages_do_not_touch_preview(self):
        store = ConversationStore()
        store.set_conversations([Conversation(id=11, agent_id=1, message_count=0)])

        store.append(1, message("local-a", optimistic=True))
        assert store.conversation(1).message_count == 0
        assert store.conversation(1).last_message is None

        store.append(1, message(5, content="confirmed", minutes=2))
        conversation = store.conversation(1)
        assert conversation.message_count == 1
        assert conversation.last_message.content == "confirmed"
        assert conversation.last_message_at == OLD + timedelta(minutes=2)

    def test_confirmed_message_creates_missing_preview(self):
        store = ConversationStore()
        store.append(3, message(9, conversation_id=33))
        assert store.conversation(3).id == 33
        assert store.conversation(3).message_count == 1

    def test_remove(self):
        store = ConversationStore()
        store.append(1, message("local-a", optimistic=True), message("local-b", optimistic=True))

        assert store.remove(1, "local-a")
        assert not store.remove(1, "local-a")
        assert not store.remove(2, "local-b")
        assert [m.id for m in store.messages(1)] == ["local-b"]

    def test_clear(self):
        store = ConversationStore()
        store.load_history(1, history(message(1), message(2, minutes=1)))
        store.clear(1)

        assert store.messages(1) == []
        assert store.conversation(1).message_count == 0
        assert store.conversation(1).last_message is None

    def test_messages_returns_a_copy(self):
        store = ConversationStore()
        store.append(1, message(1))
        store.messages(1).clear()
        assert len(store.messages(1)) == 1

    def test_conversations_ordered_by_recency(self):
        store = ConversationStore()
        store.set_conversations([
            Conversation(id=11, agent_id=1, last_message_at=OLD),
            Conversation(id=12, agent_id=2),
            Conversation(id=13, agent_id=3, last_message_at=OLD + timedelta(days=1)),
        ])
        assert [c.agent_id for c in store.conversations()] == [3, 1, 2]
