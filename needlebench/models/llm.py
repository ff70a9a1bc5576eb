"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

new_id = cuid_wrapper()

USER_SENDER = "user"
PLACEHOLDER_TEXT = "(Previous turn provided no text output)"

ProviderName = Literal["openai", "google", "anthropic"]
RequestShape = Literal["chat", "responses", "flattened", "messages"]


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with clients."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Message(CamelModel):
    """A single transcript entry written by the user or by a model."""

    id: str = Field(default_factory=new_id)
    sender_id: str
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    role: Literal["user", "ai"]
    placeholder: bool = Field(default=False, exclude=True)

    class Config:
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _derive_role(cls, data: Any) -> Any:
        if isinstance(data, dict) and "role" not in data:
            sender = data.get("sender_id", data.get("senderId"))
            data = {**data, "role": "user" if sender == USER_SENDER else "ai"}
        return data

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Message content must not be empty")
        return value

    @property
    def provider_role(self) -> Literal["user", "assistant"]:
        """Role name as provider chat APIs expect it."""
        return "user" if self.role == "user" else "assistant"

    @property
    def is_placeholder(self) -> bool:
        """Whether this message stands in for a turn without output."""
        return self.placeholder


def user_message(content: str) -> Message:
    """Create a user-authored message."""
    return Message(sender_id=USER_SENDER, content=content)


def placeholder_message(model_id: str) -> Message:
    """Create the stand-in entry for a model turn that produced no text."""
    return Message(sender_id=model_id, content=PLACEHOLDER_TEXT, placeholder=True)


@dataclass(frozen=True)
class ModelSpec:
    """Registry entry mapping a public model id to its provider call."""

    model_id: str
    provider: ProviderName
    native_model: str
    request_shape: RequestShape
    display_name: str

    def as_dict(self) -> dict[str, str]:
        """Return the spec as a dictionary."""
        return {
            "id": self.model_id,
            "name": self.display_name,
            "provider": self.provider,
            "model": self.native_model,
            "requestShape": self.request_shape,
        }
