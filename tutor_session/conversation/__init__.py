"""Conversation package initialization."""
from tutor_session.conversation.store import ConversationStore
from tutor_session.conversation.dispatcher import MessageDispatcher
from tutor_session.conversation.decoder import decode_history, decode_message, decode_synthesis, encode_synthesis

__all__ = [
    'ConversationStore',
    'MessageDispatcher',
    'decode_history',
    'decode_message',
    'decode_synthesis',
    'encode_synthesis',
]
