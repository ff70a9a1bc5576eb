"""Needle-in-a-haystack test models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from pydantic import Field

from needlebench.models.llm import CamelModel, new_id

Difficulty = Literal["elementary", "high-school", "undergraduate", "intermediate", "advanced", "expert", "phd"]


class ModelTestConfig(CamelModel):
    """Generation settings for one model in a needle test."""

    model_id: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1, le=32_000)


class NeedleTestRequest(CamelModel):
    """Request to run a needle test across several models."""

    haystack: str
    needle: str
    exact_match: str
    models: list[ModelTestConfig] = Field(default_factory=list)
    session_id: str | None = None


class NeedleResult(CamelModel):
    """Outcome of one model's attempt at a needle test."""

    model_id: str
    response: str
    found_needle: bool
    response_time_ms: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    word_count: int = 0
    character_count: int = 0
    sentence_count: int = 0
    reading_time: int = 0
    estimated_tokens: int = 0


class NeedleError(CamelModel):
    """A model that failed during a needle test."""

    model_id: str
    error: str


class NeedleTestResponse(CamelModel):
    """Response model for the needle test endpoint."""

    test_id: str
    session_id: str
    results: list[NeedleResult]
    errors: list[NeedleError]


@dataclass
class NeedleTest:
    """State of a needle test while its model calls are in flight."""

    owner_id: str
    haystack: str
    needle: str
    exact_match: str
    model_configs: list[ModelTestConfig]
    id: str = field(default_factory=new_id)
    results: dict[str, NeedleResult] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class GenerateTestContentRequest(CamelModel):
    """Request to have a model write a haystack, needle and exact match."""

    model: str = "gpt-4"
    word_count: int = Field(default=1000, ge=100, le=20_000)
    difficulty: Difficulty = "intermediate"
    topic: str = "general knowledge"


class GeneratedTestContent(CamelModel):
    """Test content produced by a generator model."""

    haystack: str = Field(min_length=1)
    needle: str = Field(min_length=1)
    exact_match: str = Field(min_length=1)
