"""
Test optimistic dispatch through the LangGraph workflow.
"""

import asyncio
import json
import pytest

from tutor_session.api.client import TutorAPIError
from tutor_session.conversation.dispatcher import MessageDispatcher, new_optimistic_id
from tutor_session.conversation.store import ConversationStore
from tutor_session.models.schemas import CollaborativeSettings
from tests.conftest import make_contributions, wait_until


def local_ids(store: ConversationStore, agent_id: int):
    return [m.id for m in store.messages(agent_id) if isinstance(m.id, str) and m.id.startswith("local-")]


def test_optimistic_ids_are_unique():
    ids = {new_optimistic_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("local-") for i in ids)


@pytest.mark.asyncio
class TestMessageDispatcher:

    async def test_successful_send(self, fake_api):
        store = ConversationStore()
        events = []
        dispatcher = MessageDispatcher(fake_api, store, listener=lambda e, a, m: events.append((e, a, m)))

        result = await dispatcher.send(2, "  What is recursion?  ")

        assert result["agent_id"] == 2
        assert result["user_message"].content == "What is recursion?"
        assert result["assistant_message"].role == "assistant"

        thread = store.messages(2)
        assert [m.role for m in thread] == ["user", "assistant"]
        assert local_ids(store, 2) == []
        assert store.conversation(2).message_count == 2

        assert [e[0] for e in events] == ["message_pending", "message_confirmed", "message_confirmed"]
        assert events[0][2].optimistic
        assert events[0][2].content == "What is recursion?"

    async def test_failed_send_rolls_back(self, fake_api):
        store = ConversationStore()
        events = []
        dispatcher = MessageDispatcher(fake_api, store, listener=lambda e, a, m: events.append(e))
        fake_api.fail.add("send_message")

        with pytest.raises(TutorAPIError):
            await dispatcher.send(2, "hello")

        assert store.messages(2) == []
        assert events == ["message_pending", "message_failed"]

    async def test_pending_message_visible_while_waiting(self, fake_api):
        store = ConversationStore()
        dispatcher = MessageDispatcher(fake_api, store)
        fake_api.send_gate = asyncio.Event()

        task = asyncio.create_task(dispatcher.send(1, "hello"))
        await wait_until(lambda: fake_api.called("send_message"))

        pending = store.pending(1)
        assert len(pending) == 1
        assert pending[0].content == "hello"

        fake_api.send_gate.set()
        await task
        assert store.pending(1) == []
        assert len(store.messages(1)) == 2

    async def test_cancelled_send_leaves_no_optimistic_message(self, fake_api):
        store = ConversationStore()
        dispatcher = MessageDispatcher(fake_api, store)
        fake_api.send_gate = asyncio.Event()

        task = asyncio.create_task(dispatcher.send(1, "hello"))
        await wait_until(lambda: fake_api.called("send_message"))
        assert len(store.pending(1)) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.messages(1) == []

    async def test_empty_text_is_rejected(self, fake_api):
        dispatcher = MessageDispatcher(fake_api, ConversationStore())
        with pytest.raises(ValueError):
            await dispatcher.send(1, "   ")
        assert fake_api.called("send_message") == []

    async def test_settings_are_forwarded(self, fake_api):
        dispatcher = MessageDispatcher(fake_api, ConversationStore())
        team = CollaborativeSettings(style="debate", max_agents=2)

        await dispatcher.send(1, "hello", team)

        assert fake_api.called("send_message")[0][3] == team

    async def test_collaborative_info_is_attached(self, fake_api):
        fake_api.reply_contributions = make_contributions("Socrates", "Ada")
        fake_api.reply_style = "sequential"
        store = ConversationStore()
        dispatcher = MessageDispatcher(fake_api, store)

        result = await dispatcher.send(1, "hello")

        info = result["assistant_message"].collaborative_info
        assert info.style == "sequential"
        assert len(info.agent_contributions) == 2
        assert store.messages(1)[-1].collaborative_info == info

    async def test_stored_blob_is_decoded(self, fake_api):
        original = fake_api.send_message

        async def send_with_blob(agent_id, message, collaborative_settings=None):
            response = await original(agent_id, message, collaborative_settings)
            blob = json.dumps([{"agentId": 3, "contribution": "From the blob"}])
            return response.model_copy(update={
                "assistant_message": response.assistant_message.model_copy(update={"synthesized_from": blob})
            })

        fake_api.send_message = send_with_blob
        result = await MessageDispatcher(fake_api, ConversationStore()).send(1, "hello")

        info = result["assistant_message"].collaborative_info
        assert info.style == "parallel"
        assert info.agent_contributions[0].contribution == "From the blob"

    async def test_broken_listener_does_not_break_send(self, fake_api):
        def listener(event, agent_id, message):
            raise RuntimeError("boom")

        store = ConversationStore()
        result = await MessageDispatcher(fake_api, store, listener=listener).send(1, "hello")
        assert result["user_message"].content == "hello"
        assert len(store.messages(1)) == 2
