"""
Chat
====

In-memory conversations and messages between buyers and sellers.

A conversation links two users, optionally about one listing, and keeps a
per-participant unread counter. There is no real-time transport here: callers
poll `conversations_for` and `messages`.
"""

from __future__ import annotations

import datetime as dt
import threading
import uuid
from dataclasses import dataclass, field, replace

import structlog

from .listings import utcnow

log = structlog.get_logger(__name__)


class ChatError(ValueError):
    """Raised for chat operations that cannot be performed."""


class ConversationNotFoundError(ChatError):
    pass


@dataclass(frozen=True)
class ChatMessage:
    id: str
    chat_id: str
    sender_id: str
    receiver_id: str
    text: str
    timestamp: dt.datetime
    is_read: bool = False


@dataclass
class Conversation:
    id: str
    participant_uids: tuple[str, str]
    listing_id: str | None = None
    last_message: ChatMessage | None = None
    unread_count: dict[str, int] = field(default_factory=dict)
    created_at: dt.datetime = field(default_factory=utcnow)
    updated_at: dt.datetime = field(default_factory=utcnow)

    def other_participant(self, uid: str) -> str:
        if uid not in self.participant_uids:
            raise ChatError(f"User {uid!r} is not part of conversation {self.id!r}")
        first, second = self.participant_uids
        return second if uid == first else first


def _snapshot(conversation: Conversation) -> Conversation:
    """Copy a stored conversation so callers never hold the store's mutable state."""
    return replace(conversation, unread_count=dict(conversation.unread_count))


class InMemoryChatStore:
    """Conversation and message store guarded by a re-entrant lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[ChatMessage]] = {}

    def _get(self, chat_id: str) -> Conversation:
        try:
            return self._conversations[chat_id]
        except KeyError:
            raise ConversationNotFoundError(f"Conversation not found: {chat_id!r}") from None

    def get_conversation(self, chat_id: str) -> Conversation:
        with self._lock:
            return _snapshot(self._get(chat_id))

    def start_conversation(
        self, user_uid: str, other_uid: str, listing_id: str | None = None
    ) -> Conversation:
        """
        Return the conversation between two users about a listing, creating it if needed.
        """
        if user_uid == other_uid:
            raise ChatError("Cannot chat with yourself")

        participants = tuple(sorted((user_uid, other_uid)))
        with self._lock:
            for conversation in self._conversations.values():
                if (
                    conversation.participant_uids == participants
                    and conversation.listing_id == listing_id
                ):
                    log.debug("Existing conversation found", chat_id=conversation.id)
                    return _snapshot(conversation)

            conversation = Conversation(
                id=uuid.uuid4().hex,
                participant_uids=participants,
                listing_id=listing_id,
                unread_count={uid: 0 for uid in participants},
            )
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
            snapshot = _snapshot(conversation)
        log.info(
            "Conversation created",
            chat_id=conversation.id,
            listing_id=listing_id,
        )
        return snapshot

    def send_message(self, chat_id: str, sender_uid: str, text: str) -> ChatMessage:
        if not text or not text.strip():
            raise ChatError("Message text must not be empty")

        with self._lock:
            conversation = self._get(chat_id)
            receiver_uid = conversation.other_participant(sender_uid)
            message = ChatMessage(
                id=uuid.uuid4().hex,
                chat_id=chat_id,
                sender_id=sender_uid,
                receiver_id=receiver_uid,
                text=text.strip(),
                timestamp=utcnow(),
            )
            self._messages[chat_id].append(message)
            conversation.last_message = message
            conversation.updated_at = message.timestamp
            conversation.unread_count[receiver_uid] = (
                conversation.unread_count.get(receiver_uid, 0) + 1
            )
            conversation.unread_count[sender_uid] = 0
        log.debug("Message sent", chat_id=chat_id, message_id=message.id)
        return message

    def mark_read(self, chat_id: str, uid: str) -> None:
        """Mark every message addressed to ``uid`` as read."""
        with self._lock:
            conversation = self._get(chat_id)
            conversation.other_participant(uid)
            self._messages[chat_id] = [
                replace(message, is_read=True)
                if message.receiver_id == uid and not message.is_read
                else message
                for message in self._messages[chat_id]
            ]
            if conversation.last_message is not None:
                conversation.last_message = self._messages[chat_id][-1]
            conversation.unread_count[uid] = 0

    def conversations_for(self, uid: str) -> list[Conversation]:
        """Return the user's conversations, most recently updated first."""
        with self._lock:
            conversations = [
                _snapshot(conversation)
                for conversation in self._conversations.values()
                if uid in conversation.participant_uids
            ]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    def messages(self, chat_id: str) -> list[ChatMessage]:
        with self._lock:
            self._get(chat_id)
            return list(self._messages[chat_id])
