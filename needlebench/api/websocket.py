"""Real-time event channel between the browser client and the orchestrators."""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from needlebench.errors import ContentGenerationError, InvalidCredentialError, RateLimitExceededError
from needlebench.models.conversation import StartConversationRequest, StopConversationRequest
from needlebench.models.events import ApiKeySetResponse, EventEnvelope, SetApiKeyRequest
from needlebench.models.llm import Message, new_id
from needlebench.models.needle import GenerateTestContentRequest, NeedleResult, NeedleTestRequest
from needlebench.services.conversation import ConversationService, get_conversation_service
from needlebench.services.credentials import CredentialStore, get_credential_store
from needlebench.services.needle_test import NeedleTestService, get_needle_test_service
from needlebench.services.rate_limit import CallerRateLimiter, get_rate_limiter
from needlebench.services.sink import Event, EventPayloads
from needlebench.services.test_content import ContentGenerationService, get_content_generation_service
from needlebench.utils.logging import get_logger, mask_secrets

logger = get_logger(__name__)

router = APIRouter()


class WebSocketEventSink:
    """Sends orchestrator events to one connected client.

    Once the connection is gone, further events are dropped so a running
    test or conversation never fails because its observer left.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.closed = False
        self._lock = asyncio.Lock()

    async def send(self, event: Event, data: dict[str, Any]) -> None:
        """Send one event envelope."""
        if self.closed:
            return
        async with self._lock:
            try:
                await self.websocket.send_json(EventEnvelope(event=event.value, data=data).model_dump())
            except (WebSocketDisconnect, RuntimeError) as e:
                self.closed = True
                logger.info(f"Dropping {event.value} event, client is gone: {e}")

    async def model_thinking(self, model_id: str) -> None:
        await self.send(Event.AI_THINKING, EventPayloads.model_thinking(model_id))

    async def needle_result(self, result: NeedleResult) -> None:
        await self.send(Event.NEEDLE_RESULT, EventPayloads.needle_result(result))

    async def needle_error(self, model_id: str, message: str) -> None:
        await self.send(Event.NEEDLE_ERROR, EventPayloads.needle_error(model_id, message))

    async def all_tests_complete(self, test_id: str) -> None:
        await self.send(Event.ALL_TESTS_COMPLETE, EventPayloads.all_tests_complete(test_id))

    async def new_message(self, conversation_id: str, message: Message) -> None:
        await self.send(Event.NEW_MESSAGE, EventPayloads.new_message(conversation_id, message))

    async def conversation_started(self, conversation_id: str) -> None:
        await self.send(Event.CONVERSATION_STARTED, EventPayloads.conversation_started(conversation_id))

    async def conversation_ended(self, conversation_id: str, reason: str) -> None:
        await self.send(Event.CONVERSATION_ENDED, EventPayloads.conversation_ended(conversation_id, reason))

    async def error(self, message: str, model_id: str | None = None) -> None:
        await self.send(Event.ERROR, EventPayloads.error(message, model_id))


Handler = Callable[[dict[str, Any]], Awaitable[None]]


class EventChannelHandler:
    """Dispatches inbound events for one connection.

    Long operations (needle tests, content generation) run as background
    tasks so the receive loop keeps reading, which is what lets a stop
    request reach a running conversation.
    """

    def __init__(
        self,
        caller_id: str,
        sink: WebSocketEventSink,
        credentials: CredentialStore,
        needle_tests: NeedleTestService,
        conversations: ConversationService,
        content_generator: ContentGenerationService,
        rate_limiter: CallerRateLimiter,
    ):
        self.caller_id = caller_id
        self.sink = sink
        self.credentials = credentials
        self.needle_tests = needle_tests
        self.conversations = conversations
        self.content_generator = content_generator
        self.rate_limiter = rate_limiter
        self.conversation_ids: list[str] = []
        self._tasks: set[asyncio.Task] = set()
        self.handlers: dict[str, Handler] = {
            "setApiKey": self.set_api_key,
            "runNeedleTest": self.run_needle_test,
            "startConversation": self.start_conversation,
            "stopConversation": self.stop_conversation,
            "generateTestContent": self.generate_test_content,
        }

    async def dispatch(self, raw: str) -> None:
        """Parse one inbound message and run its handler.

        Problems with the message itself are reported back as ``error``
        events and never close the connection.
        """
        logger.debug(f"Received from {self.caller_id}: {mask_secrets(raw[:200])}")

        try:
            envelope = EventEnvelope.model_validate_json(raw)
        except ValidationError:
            await self.sink.error('Malformed message, expected {"event": ..., "data": {...}}')
            return

        handler = self.handlers.get(envelope.event)
        if handler is None:
            await self.sink.error(f"Unknown event: {envelope.event}")
            return

        try:
            await handler(envelope.data)
        except ValidationError as e:
            problem = e.errors()[0]
            field = ".".join(str(part) for part in problem["loc"]) or "payload"
            await self.sink.error(f"Invalid {envelope.event} request: {field}: {problem['msg']}")
        except (RateLimitExceededError, ValueError) as e:
            logger.warning(f"Rejected {envelope.event} from {self.caller_id}: {e}")
            await self.sink.error(str(e))
        except Exception as e:
            logger.error(f"Error handling {envelope.event} from {self.caller_id}: {e}", exc_info=True)
            await self.sink.error(f"Failed to handle {envelope.event}")

    async def set_api_key(self, data: dict[str, Any]) -> None:
        request = SetApiKeyRequest.model_validate(data)
        try:
            self.credentials.set(request.provider, request.api_key, self.caller_id)
        except InvalidCredentialError as e:
            logger.warning(f"Rejected {request.provider} API key for {self.caller_id}: {e}")
            response = ApiKeySetResponse(
                provider=request.provider, success=False, session_id=self.caller_id, error=str(e)
            )
        else:
            response = ApiKeySetResponse(
                provider=request.provider,
                success=True,
                session_id=self.caller_id,
                available_providers=self.credentials.providers_for(self.caller_id),
            )
        await self.sink.send(Event.API_KEY_SET, response.model_dump(by_alias=True, exclude_none=True))

    async def run_needle_test(self, data: dict[str, Any]) -> None:
        request = NeedleTestRequest.model_validate(data)
        self.rate_limiter.check(self.caller_id, "runNeedleTest")
        self.needle_tests.validate(request)
        self._spawn(self.needle_tests.run(self.caller_id, request, self.sink), "Needle test")

    async def start_conversation(self, data: dict[str, Any]) -> None:
        request = StartConversationRequest.model_validate(data)
        self.rate_limiter.check(self.caller_id, "startConversation")
        conversation = await self.conversations.start(
            self.caller_id, request.participants, request.initial_prompt, self.sink
        )
        self.conversation_ids.append(conversation.id)

    async def stop_conversation(self, data: dict[str, Any]) -> None:
        request = StopConversationRequest.model_validate(data)
        logger.info(f"Stop conversation requested for {request.conversation_id} by {self.caller_id}")
        await self.conversations.stop(request.conversation_id, owner_id=self.caller_id)

    async def generate_test_content(self, data: dict[str, Any]) -> None:
        request = GenerateTestContentRequest.model_validate(data)
        self.rate_limiter.check(self.caller_id, "generateTestContent")
        self._spawn(self._generate_content(request), "Test content generation")

    async def _generate_content(self, request: GenerateTestContentRequest) -> None:
        try:
            content = await self.content_generator.generate(self.caller_id, request)
        except ContentGenerationError as e:
            logger.warning(f"Test content generation failed for {self.caller_id}: {e}")
            await self.sink.send(Event.TEST_CONTENT_GENERATED, {"success": False, "error": str(e)})
            return
        await self.sink.send(
            Event.TEST_CONTENT_GENERATED,
            {"success": True, **content.model_dump(by_alias=True)},
        )

    def _spawn(self, work: Coroutine[Any, Any, Any], label: str) -> None:
        task = asyncio.create_task(self._guarded(work, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, work: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await work
        except Exception as e:
            logger.error(f"{label} for {self.caller_id} failed: {e}", exc_info=True)
            await self.sink.error(f"{label} failed: {e}")

    def close(self) -> None:
        """Stop conversations started on this connection."""
        self.sink.closed = True
        for conversation_id in self.conversation_ids:
            self.conversations.halt(conversation_id)


@router.websocket("/ws")
async def event_channel(
    websocket: WebSocket,
    session_id: str | None = Query(default=None, alias="sessionId"),
    credentials: CredentialStore = Depends(get_credential_store),
    needle_tests: NeedleTestService = Depends(get_needle_test_service),
    conversations: ConversationService = Depends(get_conversation_service),
    content_generator: ContentGenerationService = Depends(get_content_generation_service),
    rate_limiter: CallerRateLimiter = Depends(get_rate_limiter),
) -> None:
    """Event channel for one browser session.

    The ``sessionId`` query parameter ties reconnects to the same stored
    credentials. Without it a new session id is issued in the ``connected``
    event.
    """
    await websocket.accept()
    caller_id = session_id or new_id()
    sink = WebSocketEventSink(websocket)
    handler = EventChannelHandler(
        caller_id, sink, credentials, needle_tests, conversations, content_generator, rate_limiter
    )
    logger.info(f"Client connected with session {caller_id}")

    await sink.send(
        Event.CONNECTED,
        {"sessionId": caller_id, "availableProviders": credentials.providers_for(caller_id)},
    )

    try:
        while True:
            raw = await websocket.receive_text()
            await handler.dispatch(raw)
    except WebSocketDisconnect:
        logger.info(f"Client with session {caller_id} disconnected")
    finally:
        handler.close()
