"""Observer interface for events produced by the orchestrators."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from needlebench.models.llm import Message
from needlebench.models.needle import NeedleResult


class Event(str, Enum):
    """Outbound event names, as seen by real-time clients."""

    CONNECTED = "connected"
    API_KEY_SET = "apiKeySet"
    AI_THINKING = "aiThinking"
    NEEDLE_RESULT = "needleTestResult"
    NEEDLE_ERROR = "needleTestError"
    ALL_TESTS_COMPLETE = "allTestsComplete"
    NEW_MESSAGE = "newMessage"
    CONVERSATION_STARTED = "conversationStarted"
    CONVERSATION_ENDED = "conversationEnded"
    TEST_CONTENT_GENERATED = "testContentGenerated"
    ERROR = "error"


class EventSink(Protocol):
    """Receives every notification the orchestrators emit."""

    async def model_thinking(self, model_id: str) -> None: ...

    async def needle_result(self, result: NeedleResult) -> None: ...

    async def needle_error(self, model_id: str, message: str) -> None: ...

    async def all_tests_complete(self, test_id: str) -> None: ...

    async def new_message(self, conversation_id: str, message: Message) -> None: ...

    async def conversation_started(self, conversation_id: str) -> None: ...

    async def conversation_ended(self, conversation_id: str, reason: str) -> None: ...

    async def error(self, message: str, model_id: str | None = None) -> None: ...


class EventPayloads:
    """Builds the JSON payload for each outbound event."""

    @staticmethod
    def model_thinking(model_id: str) -> dict[str, Any]:
        return {"modelId": model_id}

    @staticmethod
    def needle_result(result: NeedleResult) -> dict[str, Any]:
        return result.model_dump(mode="json", by_alias=True)

    @staticmethod
    def needle_error(model_id: str, message: str) -> dict[str, Any]:
        return {"modelId": model_id, "error": message}

    @staticmethod
    def all_tests_complete(test_id: str) -> dict[str, Any]:
        return {"testId": test_id}

    @staticmethod
    def new_message(conversation_id: str, message: Message) -> dict[str, Any]:
        return {"conversationId": conversation_id, **message.model_dump(mode="json", by_alias=True)}

    @staticmethod
    def conversation_started(conversation_id: str) -> dict[str, Any]:
        return {"conversationId": conversation_id}

    @staticmethod
    def conversation_ended(conversation_id: str, reason: str) -> dict[str, Any]:
        return {"conversationId": conversation_id, "reason": reason}

    @staticmethod
    def error(message: str, model_id: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": message}
        if model_id is not None:
            payload["modelId"] = model_id
        return payload


@dataclass
class RecordedEvent:
    """One event captured by a collecting sink."""

    event: Event
    data: dict[str, Any]


@dataclass
class CollectingEventSink:
    """Sink that keeps every event in memory, in emission order."""

    events: list[RecordedEvent] = field(default_factory=list)

    def _record(self, event: Event, data: dict[str, Any]) -> None:
        self.events.append(RecordedEvent(event, data))

    def named(self, event: Event) -> list[dict[str, Any]]:
        """Payloads of every recorded event with the given name."""
        return [recorded.data for recorded in self.events if recorded.event == event]

    async def model_thinking(self, model_id: str) -> None:
        self._record(Event.AI_THINKING, EventPayloads.model_thinking(model_id))

    async def needle_result(self, result: NeedleResult) -> None:
        self._record(Event.NEEDLE_RESULT, EventPayloads.needle_result(result))

    async def needle_error(self, model_id: str, message: str) -> None:
        self._record(Event.NEEDLE_ERROR, EventPayloads.needle_error(model_id, message))

    async def all_tests_complete(self, test_id: str) -> None:
        self._record(Event.ALL_TESTS_COMPLETE, EventPayloads.all_tests_complete(test_id))

    async def new_message(self, conversation_id: str, message: Message) -> None:
        self._record(Event.NEW_MESSAGE, EventPayloads.new_message(conversation_id, message))

    async def conversation_started(self, conversation_id: str) -> None:
        self._record(Event.CONVERSATION_STARTED, EventPayloads.conversation_started(conversation_id))

    async def conversation_ended(self, conversation_id: str, reason: str) -> None:
        self._record(Event.CONVERSATION_ENDED, EventPayloads.conversation_ended(conversation_id, reason))

    async def error(self, message: str, model_id: str | None = None) -> None:
        self._record(Event.ERROR, EventPayloads.error(message, model_id))
