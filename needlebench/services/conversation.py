"""Conversation orchestration: registered models take turns on one transcript."""

import asyncio
import json
from enum import Enum

from needlebench.clients.base import GenerationConfig
from needlebench.config import Settings, get_settings
from needlebench.errors import EMPTY_RESULT_ERRORS, ProviderError
from needlebench.models.conversation import Conversation, ConversationStatus
from needlebench.models.llm import Message, placeholder_message, user_message
from needlebench.services.llm import LLMService, get_llm_service
from needlebench.services.sink import EventSink
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_OPENING_PROMPT = "Hello"

STOPPED_BY_USER = "Stopped by user"
MESSAGE_LIMIT_REACHED = "Message limit reached"
NO_CREDENTIALED_MODELS = "No models with credentials available"
TOO_MANY_EMPTY_RESPONSES = "Too many empty/failed responses"
CONVERSATION_FAILED = "Conversation failed unexpectedly"


class TurnOutcome(str, Enum):
    """What a single turn step did to the conversation."""

    REPLIED = "replied"
    EMPTY = "empty"
    FAILED = "failed"
    ENDED = "ended"


class ConversationStore:
    """In-memory conversation storage keyed by conversation id."""

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}

    def create(self, owner_id: str, participants: list[str]) -> Conversation:
        """Create and store a new conversation.

        Args:
            owner_id: Caller whose credentials the models use
            participants: Model ids in speaking order

        Returns:
            The new conversation, still in the created state
        """
        conversation = Conversation(owner_id=owner_id, participants=participants)
        self.conversations[conversation.id] = conversation
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by id."""
        return self.conversations.get(conversation_id)

    def get_conversation_count(self) -> int:
        """Get current number of stored conversations."""
        return len(self.conversations)

    def get_active_count(self) -> int:
        """Get current number of conversations still taking turns."""
        return sum(1 for conversation in self.conversations.values() if conversation.is_active)


class ConversationService:
    """Runs conversations as background tasks, one provider call at a time each.

    Every conversation gets its own worker task. The worker is the only code
    that mutates the transcript, turn index and empty counter, and it finishes
    a turn completely before sleeping and checking whether to take another.
    """

    def __init__(
        self,
        llm_service: LLMService | None = None,
        store: ConversationStore | None = None,
        settings: Settings | None = None,
    ):
        self.llm_service = llm_service or get_llm_service()
        self.store = store or ConversationStore()
        self.settings = settings or get_settings()
        self._workers: dict[str, asyncio.Task] = {}
        self._sinks: dict[str, EventSink] = {}

    async def start(
        self,
        owner_id: str,
        participants: list[str],
        initial_prompt: str,
        sink: EventSink,
    ) -> Conversation:
        """Start a conversation and schedule its turns.

        Args:
            owner_id: Caller whose credentials the models use
            participants: Model ids in speaking order
            initial_prompt: Opening user message, a greeting is used when blank
            sink: Receiver for every event of this conversation

        Returns:
            The active conversation

        Raises:
            ValueError: If no participant is given or one is not registered
        """
        if not participants:
            raise ValueError("Please select at least one model")
        unknown = [model_id for model_id in participants if model_id not in self.llm_service.registry]
        if unknown:
            raise ValueError(f"Unknown model: {', '.join(unknown)}")

        conversation = self.store.create(owner_id, participants)
        conversation.status = ConversationStatus.ACTIVE
        self._sinks[conversation.id] = sink

        logger.info(
            f"Starting conversation {conversation.id} for caller {owner_id} with {', '.join(participants)}"
        )
        await sink.conversation_started(conversation.id)

        prompt = initial_prompt if initial_prompt and initial_prompt.strip() else DEFAULT_OPENING_PROMPT
        opening = conversation.append(user_message(prompt))
        await sink.new_message(conversation.id, opening)

        worker = asyncio.create_task(self._run(conversation, sink), name=f"conversation-{conversation.id}")
        self._workers[conversation.id] = worker
        worker.add_done_callback(lambda _, conversation_id=conversation.id: self._forget(conversation_id))
        return conversation

    async def stop(self, conversation_id: str, owner_id: str | None = None) -> bool:
        """Stop a conversation on request.

        The worker notices at its next check. A provider call already in
        flight is not cancelled.

        Returns:
            True if the conversation was active and is now stopped
        """
        conversation = self.store.get(conversation_id)
        if conversation is None or (owner_id is not None and conversation.owner_id != owner_id):
            logger.warning(f"Stop requested for unknown conversation {conversation_id} by {owner_id}")
            return False
        if conversation.is_terminal:
            return False

        await self._finish(conversation, ConversationStatus.STOPPED, STOPPED_BY_USER, self._sinks.get(conversation_id))
        return True

    def halt(self, conversation_id: str) -> bool:
        """Stop a conversation without notifying anyone, e.g. after a disconnect."""
        conversation = self.store.get(conversation_id)
        if conversation is None or not conversation.is_active:
            return False
        conversation.status = ConversationStatus.STOPPED
        logger.info(f"Conversation {conversation_id} stopped due to disconnect")
        return True

    async def wait(self, conversation_id: str) -> None:
        """Wait until the conversation's worker has exited."""
        worker = self._workers.get(conversation_id)
        if worker is not None:
            await asyncio.gather(worker, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running worker."""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
            logger.info(f"Cancelled {len(workers)} conversation workers")

    def next_speaker(self, conversation: Conversation) -> str | None:
        """First participant from the current index on whose provider has a credential."""
        count = len(conversation.participants)
        for offset in range(count):
            model_id = conversation.participants[(conversation.current_turn_index + offset) % count]
            if self.llm_service.has_credential(model_id, conversation.owner_id):
                return model_id
        return None

    async def take_turn(self, conversation: Conversation, sink: EventSink) -> TurnOutcome:
        """Let the next eligible model speak once."""
        model_id = self.next_speaker(conversation)
        if model_id is None:
            await self._finish(conversation, ConversationStatus.EXHAUSTED, NO_CREDENTIALED_MODELS, sink)
            return TurnOutcome.ENDED

        history = conversation.history(self.settings.conversation_history_window)
        logger.info(
            f"Conversation {conversation.id} turn {conversation.current_turn_index}: "
            f"{model_id} with {len(history)} messages of history"
        )
        await sink.model_thinking(model_id)

        try:
            text = await self.llm_service.generate(
                model_id,
                history,
                conversation.owner_id,
                GenerationConfig(
                    temperature=self.settings.conversation_temperature,
                    max_tokens=self.settings.conversation_max_tokens,
                ),
                goal=conversation.initial_goal,
            )
        except EMPTY_RESULT_ERRORS as e:
            logger.warning(f"Conversation {conversation.id}: no usable output from {model_id} ({e.kind})")
            return await self._record_empty(conversation, model_id, sink)
        except ProviderError as e:
            return await self._record_failure(conversation, model_id, e.message, sink)
        except Exception as e:
            logger.error(f"Conversation {conversation.id}: unexpected failure from {model_id}: {e}", exc_info=True)
            return await self._record_failure(conversation, model_id, str(e), sink)

        if not text or not text.strip():
            logger.warning(f"Conversation {conversation.id}: empty response from {model_id}")
            return await self._record_empty(conversation, model_id, sink)

        conversation.consecutive_empty_responses = 0
        message = conversation.append(Message(sender_id=model_id, content=text))
        conversation.current_turn_index += 1
        await sink.new_message(conversation.id, message)
        return TurnOutcome.REPLIED

    async def _record_empty(self, conversation: Conversation, model_id: str, sink: EventSink) -> TurnOutcome:
        placeholder = conversation.append(placeholder_message(model_id))
        conversation.consecutive_empty_responses += 1
        conversation.current_turn_index += 1
        await sink.new_message(conversation.id, placeholder)

        if conversation.consecutive_empty_responses >= self.settings.conversation_max_empty_responses:
            logger.warning(
                f"Conversation {conversation.id}: {conversation.consecutive_empty_responses} empty responses in a row"
            )
            await self._finish(conversation, ConversationStatus.EXHAUSTED, TOO_MANY_EMPTY_RESPONSES, sink)
            return TurnOutcome.ENDED
        return TurnOutcome.EMPTY

    async def _record_failure(
        self, conversation: Conversation, model_id: str, error: str, sink: EventSink
    ) -> TurnOutcome:
        logger.warning(f"Conversation {conversation.id}: skipping {model_id} after error: {error}")
        conversation.current_turn_index += 1
        await sink.error(f"Error with {model_id}: {error}", model_id)
        return TurnOutcome.FAILED

    async def _run(self, conversation: Conversation, sink: EventSink) -> None:
        try:
            while conversation.is_active:
                if len(conversation.messages) >= self.settings.conversation_max_messages:
                    await self._finish(conversation, ConversationStatus.COMPLETED, MESSAGE_LIMIT_REACHED, sink)
                    break

                outcome = await self.take_turn(conversation, sink)
                if outcome == TurnOutcome.ENDED:
                    break

                if outcome == TurnOutcome.REPLIED:
                    await asyncio.sleep(self.settings.conversation_turn_delay)
                else:
                    await asyncio.sleep(self.settings.conversation_failure_delay)
        except asyncio.CancelledError:
            logger.info(f"Conversation {conversation.id} worker cancelled")
            raise
        except Exception as e:
            logger.error(f"Conversation {conversation.id} failed: {e}", exc_info=True)
            await self._finish(conversation, ConversationStatus.STOPPED, CONVERSATION_FAILED, sink)

        logger.info(
            f"Conversation {conversation.id} finished as {conversation.status.value} "
            f"after {len(conversation.messages)} messages"
        )

    async def _finish(
        self,
        conversation: Conversation,
        status: ConversationStatus,
        reason: str,
        sink: EventSink | None,
    ) -> None:
        if conversation.is_terminal:
            return
        conversation.status = status
        logger.info(f"Conversation ended: {reason} {json.dumps(conversation.as_dict())}")
        if sink is not None:
            await sink.conversation_ended(conversation.id, reason)

    def _forget(self, conversation_id: str) -> None:
        self._workers.pop(conversation_id, None)
        self._sinks.pop(conversation_id, None)


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create conversation service instance."""
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service
