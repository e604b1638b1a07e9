"""Conversation orchestration: persist turns around agent runs."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from saiman.models.messages import MAX_ATTACHMENTS_PER_MESSAGE, Attachment, Conversation, Message, generate_tool_usage_summary
from saiman.services.attachments import AttachmentStore
from saiman.services.session_manager import AgentSessionManager
from saiman.services.store import ConversationStore
from saiman.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationError(Exception):
    """Base class for rejected conversation operations."""


class EmptyMessageError(ConversationError):
    def __init__(self) -> None:
        super().__init__("Message must contain text or at least one image")


class TooManyAttachmentsError(ConversationError):
    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Maximum {MAX_ATTACHMENTS_PER_MESSAGE} images allowed (got {count})")


class ConversationNotFoundError(ConversationError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ConversationBusyError(ConversationError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"A request is already in progress for conversation {conversation_id}")


@dataclass
class PendingAttachment:
    """An image the user is about to send."""

    filename: str
    data: bytes


@dataclass
class ExchangeResult:
    """Outcome of one send: the assistant message is ``None`` when the run was cancelled."""

    conversation: Conversation
    user_message: Message
    assistant_message: Message | None = None


@dataclass
class CancelledRequest:
    """What the user had sent, handed back so the input can be restored."""

    text: str
    attachments: list[PendingAttachment] = field(default_factory=list)
    conversation_deleted: bool = False


@dataclass
class _PendingMessage:
    text: str
    message_id: str
    attachments: list[Attachment]


class ConversationService:
    """Sends user messages through per-conversation agent sessions and stores the results."""

    def __init__(
        self,
        store: ConversationStore,
        attachments: AttachmentStore,
        sessions: AgentSessionManager,
        stale_timeout_minutes: int = 15,
    ):
        self.store = store
        self.attachments = attachments
        self.sessions = sessions
        self.stale_timeout_minutes = stale_timeout_minutes
        self._pending: dict[str, _PendingMessage] = {}

    def is_loading(self, conversation_id: str) -> bool:
        session = self.sessions.get_session(conversation_id)
        return session is not None and session.is_running

    async def send_message(
        self,
        conversation_id: str | None,
        text: str,
        attachments: Sequence[PendingAttachment] = (),
    ) -> ExchangeResult:
        """Persist the user's message, run the agent and persist its reply.

        A new conversation is created when ``conversation_id`` is ``None``.

        Raises:
            EmptyMessageError: Neither text nor attachments
            TooManyAttachmentsError: More images than one message may carry
            ConversationNotFoundError: Unknown ``conversation_id``
            ConversationBusyError: The conversation already has a run in flight
        """
        text = text.strip()
        if not text and not attachments:
            raise EmptyMessageError()
        if len(attachments) > MAX_ATTACHMENTS_PER_MESSAGE:
            raise TooManyAttachmentsError(len(attachments))

        if conversation_id is None:
            conversation = Conversation()
            is_new = True
        else:
            existing = self.store.get_conversation(conversation_id)
            if existing is None:
                raise ConversationNotFoundError(conversation_id)
            conversation = existing
            is_new = False

        if self.is_loading(conversation.id):
            raise ConversationBusyError(conversation.id)

        saved_attachments = [
            self.attachments.save(pending.data, pending.filename, conversation.id) for pending in attachments
        ]
        user_message = Message(
            conversation_id=conversation.id,
            role="user",
            content=text,
            attachments=saved_attachments or None,
        )

        # Stored before the run so the message survives the window closing
        if is_new:
            self.store.create_conversation(conversation)
        self.store.create_message(user_message)
        self._pending[conversation.id] = _PendingMessage(text, user_message.id, saved_attachments)

        session = self.sessions.get_or_create_session(conversation.id)
        history = self.store.get_messages(conversation.id)
        logger.info(f"Running agent for conversation {conversation.id} with {len(history)} messages")
        result = await session.ask(history)

        if result is None:
            logger.info(f"Request for conversation {conversation.id} was cancelled")
            return ExchangeResult(conversation=conversation, user_message=user_message)

        # Tool calls belong to this turn only; the summary is kept for display
        assistant_message = Message(
            conversation_id=conversation.id,
            role="assistant",
            content=result.text,
            tool_usage_summary=generate_tool_usage_summary(result.tool_calls),
        )
        self.store.create_message(assistant_message)
        self._pending.pop(conversation.id, None)

        conversation = conversation.model_copy(update={"updated_at": datetime.now(UTC)})
        self.store.update_conversation(conversation)

        title = await session.generate_title(self.store.get_messages(conversation.id))
        if title:
            conversation = conversation.model_copy(update={"title": title})
            self.store.update_conversation(conversation)

        return ExchangeResult(conversation=conversation, user_message=user_message, assistant_message=assistant_message)

    def cancel_request(self, conversation_id: str) -> CancelledRequest | None:
        """Cancel the in-flight run and withdraw the message that started it.

        Returns the withdrawn text and images, or ``None`` if nothing was pending.
        A conversation left without messages is deleted.
        """
        session = self.sessions.get_session(conversation_id)
        if session is not None:
            session.cancel()

        pending = self._pending.pop(conversation_id, None)
        if pending is None:
            return None

        restored: list[PendingAttachment] = []
        for attachment in pending.attachments:
            data = self.attachments.load_bytes(attachment)
            if data is not None:
                restored.append(PendingAttachment(filename=attachment.filename, data=data))
            self.attachments.delete(attachment)

        self.store.delete_message(pending.message_id)

        deleted = False
        if not self.store.get_messages(conversation_id):
            self.sessions.delete_session(conversation_id)
            self.attachments.delete_all(conversation_id)
            self.store.delete_conversation(conversation_id)
            deleted = True

        logger.info(f"Cancelled request for conversation {conversation_id}")
        return CancelledRequest(text=pending.text, attachments=restored, conversation_deleted=deleted)

    def delete_conversation(self, conversation_id: str) -> None:
        """Cancel any run, then remove the conversation, its messages and its files.

        Raises:
            ConversationNotFoundError: Unknown ``conversation_id``
        """
        if self.store.get_conversation(conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)
        self.sessions.delete_session(conversation_id)
        self._pending.pop(conversation_id, None)
        self.attachments.delete_all(conversation_id)
        self.store.delete_conversation(conversation_id)
        logger.info(f"Deleted conversation {conversation_id}")

    def load_most_recent_conversation(self, now: datetime | None = None) -> Conversation | None:
        """The most recently updated conversation, unless it has gone stale."""
        conversation = self.store.get_most_recent_conversation()
        if conversation is None or conversation.is_stale(self.stale_timeout_minutes, now):
            return None
        return conversation

    def search_conversations(self, query: str) -> list[Conversation]:
        query = query.strip()
        if not query:
            return self.store.get_all_conversations()
        return self.store.search_conversations(query)
