"""Shared fixtures for the test suite."""

from unittest.mock import patch

import pytest

from needlebench.config import Settings
from needlebench.services.registry import ModelRegistry


class ScriptedLLMService:
    """Stand-in for LLMService that answers from a per-model script.

    Each model's script is consumed in order and its last entry repeats.
    Exceptions in a script are raised instead of returned.
    """

    def __init__(self, replies: dict | None = None, credentialed: set[str] | None = None):
        self.registry = ModelRegistry()
        self.replies = {model_id: list(script) for model_id, script in (replies or {}).items()}
        self.credentialed = credentialed
        self.calls: list[dict] = []

    def has_credential(self, model_id: str, caller_id: str) -> bool:
        if model_id not in self.registry:
            return False
        return self.credentialed is None or model_id in self.credentialed

    async def generate(self, model_id, history, caller_id, config=None, goal=None):
        self.calls.append(
            {"model_id": model_id, "history": list(history), "caller_id": caller_id, "config": config, "goal": goal}
        )
        script = self.replies.get(model_id)
        if not script:
            reply = f"Reply from {model_id}"
        elif len(script) > 1:
            reply = script.pop(0)
        else:
            reply = script[0]

        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def offline_tokenizer():
    """Keep token estimates from downloading encoding files."""
    with patch("needlebench.services.scoring._tokenizer", return_value=None):
        yield


@pytest.fixture
def fast_settings():
    """Settings without delays between conversation turns."""
    return Settings(conversation_turn_delay=0.0, conversation_failure_delay=0.0)


@pytest.fixture
def scripted_llm():
    """Factory for scripted LLM services."""
    return ScriptedLLMService
