"""Conversation data models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import Field

from needlebench.models.llm import USER_SENDER, CamelModel, Message, new_id
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationStatus(str, Enum):
    """Lifecycle state of a conversation."""

    CREATED = "created"
    ACTIVE = "active"
    STOPPED = "stopped"  # Stopped on request
    COMPLETED = "completed"  # Reached the message ceiling
    EXHAUSTED = "exhausted"  # No credentialed models, or too many empty turns


TERMINAL_STATUSES = frozenset({ConversationStatus.STOPPED, ConversationStatus.COMPLETED, ConversationStatus.EXHAUSTED})


@dataclass
class Conversation:
    """Shared transcript and turn state for a multi-model conversation."""

    owner_id: str
    participants: list[str]
    id: str = field(default_factory=new_id)
    messages: list[Message] = field(default_factory=list)
    initial_goal: str | None = None
    current_turn_index: int = 0
    status: ConversationStatus = ConversationStatus.CREATED
    consecutive_empty_responses: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.participants:
            raise ValueError("A conversation needs at least one participant")
        self.participants = list(self.participants)

    @property
    def is_active(self) -> bool:
        """Whether turns are still being taken."""
        return self.status == ConversationStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        """Whether the conversation has ended for good."""
        return self.status in TERMINAL_STATUSES

    def append(self, message: Message) -> Message:
        """Append a message, capturing the goal from the first user message."""
        if message.sender_id == USER_SENDER and self.initial_goal is None:
            self.initial_goal = message.content
            logger.info(f"Set goal for conversation {self.id}: {message.content[:80]!r}")
        self.messages.append(message)
        return message

    def history(self, window: int) -> list[Message]:
        """Return the most recent messages, at most ``window`` of them."""
        return self.messages[-window:] if window > 0 else []

    def as_dict(self) -> dict:
        """Return a summary of the conversation as a dictionary."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "participants": self.participants,
            "status": self.status.value,
            "message_count": len(self.messages),
            "current_turn_index": self.current_turn_index,
            "consecutive_empty_responses": self.consecutive_empty_responses,
        }


class StartConversationRequest(CamelModel):
    """Request to start a conversation between models."""

    participants: list[str] = Field(min_length=1)
    initial_prompt: str = ""


class StopConversationRequest(CamelModel):
    """Request to stop a running conversation."""

    conversation_id: str
