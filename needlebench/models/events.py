"""Transport-level request and response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from needlebench.models.llm import CamelModel
from needlebench.models.needle import NeedleResult


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    active_conversations: int = 0


class ModelInfo(CamelModel):
    """Public description of a registered model."""

    id: str
    name: str
    provider: str
    model: str
    request_shape: str


class ModelListResponse(CamelModel):
    """Response model for the model listing endpoint."""

    models: list[ModelInfo]


class EventEnvelope(BaseModel):
    """A single real-time message, in either direction."""

    event: str
    data: dict[str, Any] = {}


class SetApiKeyRequest(CamelModel):
    """Request to store an API key for a caller."""

    provider: str
    api_key: str
    session_id: str | None = None


class ApiKeySetResponse(CamelModel):
    """Outcome of storing an API key."""

    provider: str
    success: bool
    session_id: str
    available_providers: list[str] = []
    error: str | None = None


class RescoreRequest(CamelModel):
    """Request to score earlier needle test answers against a new target."""

    exact_match: str
    results: list[NeedleResult]
