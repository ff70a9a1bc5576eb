"""Tests for the HTTP endpoints and the websocket event channel."""

import json

import pytest
from fastapi.testclient import TestClient

from needlebench.errors import ProviderTransportError
from needlebench.main import app
from needlebench.services.conversation import ConversationService, get_conversation_service
from needlebench.services.credentials import CredentialStore, get_credential_store
from needlebench.services.needle_test import NeedleTestService, get_needle_test_service
from needlebench.services.rate_limit import CallerRateLimiter, get_rate_limiter
from needlebench.services.test_content import ContentGenerationService, get_content_generation_service

GENERATED_CONTENT = (
    "```json\n"
    + json.dumps(
        {
            "haystack": "The old lighthouse was kept by Orla Quinn for forty years.",
            "needle": "Who kept the lighthouse?",
            "exactMatch": "Orla Quinn",
        }
    )
    + "\n```"
)

NEEDLE_TEST = {
    "haystack": "The vault code is ZX-81. Everything else is filler text.",
    "needle": "What is the vault code?",
    "exactMatch": "ZX-81",
    "models": [{"modelId": "gpt-4"}, {"modelId": "claude-3-haiku", "temperature": 0.2}],
}


def receive_until(websocket, event: str, limit: int = 100) -> list[dict]:
    """Collect messages up to and including the first one named ``event``."""
    received = []
    for _ in range(limit):
        message = websocket.receive_json()
        received.append(message)
        if message["event"] == event:
            return received
    raise AssertionError(f"No {event} event within {limit} messages")


def provide(instance):
    """Dependency override returning a fixed instance."""
    return lambda: instance


@pytest.fixture
def services(scripted_llm, fast_settings):
    """Install service instances backed by a scripted LLM."""
    fast_settings.conversation_max_messages = 3
    llm = scripted_llm(
        replies={
            "gpt-4": ["The code is ZX-81."],
            "claude-3-haiku": [ProviderTransportError("Service unavailable", status_code=503)],
            "o3": [GENERATED_CONTENT],
        }
    )
    installed = {
        get_credential_store: CredentialStore(environ={}),
        get_needle_test_service: NeedleTestService(llm_service=llm, settings=fast_settings),
        get_conversation_service: ConversationService(llm_service=llm, settings=fast_settings),
        get_content_generation_service: ContentGenerationService(llm_service=llm),
        get_rate_limiter: CallerRateLimiter(100),
    }
    for dependency, instance in installed.items():
        app.dependency_overrides[dependency] = provide(instance)
    yield installed
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    """Test client with scripted services."""
    return TestClient(app)


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["active_conversations"] == 0
        assert "timestamp" in data


class TestModelsEndpoint:
    """Tests for the model listing."""

    def test_list_models(self, client):
        """Test that registered models are listed with camelCase fields."""
        models = client.get("/models").json()["models"]

        gpt4 = next(model for model in models if model["id"] == "gpt-4")
        assert gpt4 == {
            "id": "gpt-4",
            "name": "GPT-4",
            "provider": "openai",
            "model": "gpt-4",
            "requestShape": "chat",
        }

    def test_filter_by_provider(self, client):
        """Test the provider filter."""
        models = client.get("/models", params={"provider": "anthropic"}).json()["models"]

        assert models
        assert {model["provider"] for model in models} == {"anthropic"}

    def test_unknown_provider(self, client):
        """Test that an unknown provider filter is a validation error."""
        assert client.get("/models", params={"provider": "mistral"}).status_code == 422


class TestCredentialsEndpoint:
    """Tests for storing API keys over HTTP."""

    def test_store_key(self, client):
        """Test that a valid key is stored for the given session."""
        response = client.post(
            "/credentials", json={"provider": "google", "apiKey": "AIzaTestKey", "sessionId": "session-1"}
        )

        assert response.status_code == 200
        assert response.json()["sessionId"] == "session-1"
        assert response.json()["availableProviders"] == ["google"]

    def test_invalid_key(self, client):
        """Test that a malformed key is rejected."""
        response = client.post("/credentials", json={"provider": "google", "apiKey": "not-a-key"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid google API key format"


class TestNeedleTestEndpoint:
    """Tests for running needle tests over HTTP."""

    def test_run_needle_test(self, client):
        """Test that results and per-model errors are returned together."""
        response = client.post("/needle-tests", json={**NEEDLE_TEST, "sessionId": "session-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == "session-1"
        assert data["testId"]
        assert [result["modelId"] for result in data["results"]] == ["gpt-4"]
        assert data["results"][0]["foundNeedle"] is True
        assert data["errors"] == [{"modelId": "claude-3-haiku", "error": "Service unavailable"}]

    def test_blank_needle(self, client):
        """Test that blank input is a bad request."""
        response = client.post("/needle-tests", json={**NEEDLE_TEST, "needle": "  "})

        assert response.status_code == 400
        assert "needle" in response.json()["detail"]

    def test_rate_limited(self, client, services):
        """Test that callers over the limit get 429."""
        limiter = CallerRateLimiter(1)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter

        first = client.post("/needle-tests", json={**NEEDLE_TEST, "sessionId": "busy"})
        second = client.post("/needle-tests", json={**NEEDLE_TEST, "sessionId": "busy"})

        assert first.status_code == 200
        assert second.status_code == 429

    def test_rescore(self, client):
        """Test scoring returned answers against a new target."""
        results = client.post("/needle-tests", json=NEEDLE_TEST).json()["results"]

        response = client.post("/needle-tests/rescore", json={"exactMatch": "vault", "results": results})

        assert response.status_code == 200
        assert response.json()[0]["foundNeedle"] is False
        assert response.json()[0]["response"] == "The code is ZX-81."


class TestEventChannel:
    """Tests for the websocket event channel."""

    def test_connected_event(self, client):
        """Test that the session id from the query is confirmed."""
        with client.websocket_connect("/ws?sessionId=session-1") as websocket:
            message = websocket.receive_json()

        assert message == {"event": "connected", "data": {"sessionId": "session-1", "availableProviders": []}}

    def test_generated_session_id(self, client):
        """Test that a session id is issued when none is given."""
        with client.websocket_connect("/ws") as websocket:
            message = websocket.receive_json()

        assert message["data"]["sessionId"]

    def test_set_api_key(self, client):
        """Test storing a key through the channel."""
        with client.websocket_connect("/ws?sessionId=session-1") as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "setApiKey", "data": {"provider": "openai", "apiKey": "sk-test-key"}})
            message = websocket.receive_json()

        assert message == {
            "event": "apiKeySet",
            "data": {
                "provider": "openai",
                "success": True,
                "sessionId": "session-1",
                "availableProviders": ["openai"],
            },
        }

    def test_set_invalid_api_key(self, client):
        """Test that a rejected key is reported without closing the channel."""
        with client.websocket_connect("/ws?sessionId=session-1") as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "setApiKey", "data": {"provider": "anthropic", "apiKey": "sk-wrong"}})
            message = websocket.receive_json()

        assert message["data"]["success"] is False
        assert message["data"]["error"] == "Invalid anthropic API key format"

    def test_malformed_message_keeps_connection(self, client):
        """Test that bad input produces an error event and the channel stays usable."""
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_text("this is not json")
            malformed = websocket.receive_json()
            websocket.send_json({"event": "dance", "data": {}})
            unknown = websocket.receive_json()
            websocket.send_json({"event": "runNeedleTest", "data": {}})
            invalid = websocket.receive_json()

        assert malformed["event"] == "error"
        assert unknown == {"event": "error", "data": {"message": "Unknown event: dance"}}
        assert invalid["event"] == "error"
        assert invalid["data"]["message"].startswith("Invalid runNeedleTest request")

    def test_run_needle_test(self, client):
        """Test that results stream in and completion comes last."""
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "runNeedleTest", "data": NEEDLE_TEST})
            received = receive_until(websocket, "allTestsComplete")

        events = [message["event"] for message in received]
        assert events.count("aiThinking") == 2
        assert events.count("needleTestResult") == 1
        assert events.count("needleTestError") == 1
        assert events[-1] == "allTestsComplete"

    def test_conversation(self, client):
        """Test a conversation from start to the message ceiling."""
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_json(
                {"event": "startConversation", "data": {"participants": ["gpt-4"], "initialPrompt": "Tides?"}}
            )
            received = receive_until(websocket, "conversationEnded")

        assert received[0]["event"] == "conversationStarted"
        messages = [message["data"] for message in received if message["event"] == "newMessage"]
        assert [message["senderId"] for message in messages] == ["user", "gpt-4", "gpt-4"]
        assert received[-1]["data"]["reason"] == "Message limit reached"

    def test_stop_conversation(self, client, services):
        """Test stopping a conversation from the channel."""
        conversations = services[get_conversation_service]
        conversations.settings.conversation_max_messages = 30
        conversations.settings.conversation_turn_delay = 0.05

        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "startConversation", "data": {"participants": ["gpt-4"]}})
            started = websocket.receive_json()
            conversation_id = started["data"]["conversationId"]
            websocket.send_json({"event": "stopConversation", "data": {"conversationId": conversation_id}})
            received = receive_until(websocket, "conversationEnded")

        assert received[-1]["data"] == {"conversationId": conversation_id, "reason": "Stopped by user"}

    def test_generate_test_content(self, client):
        """Test that generated content is parsed and sent back."""
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_json(
                {"event": "generateTestContent", "data": {"model": "o3", "wordCount": 200, "topic": "lighthouses"}}
            )
            message = receive_until(websocket, "testContentGenerated")[-1]

        assert message["data"] == {
            "success": True,
            "haystack": "The old lighthouse was kept by Orla Quinn for forty years.",
            "needle": "Who kept the lighthouse?",
            "exactMatch": "Orla Quinn",
        }

    def test_generate_test_content_failure(self, client):
        """Test that a failed generation is reported as unsuccessful."""
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "generateTestContent", "data": {"model": "claude-3-haiku"}})
            message = receive_until(websocket, "testContentGenerated")[-1]

        assert message["data"]["success"] is False
        assert message["data"]["error"] == "Error with claude-3-haiku: Service unavailable"
