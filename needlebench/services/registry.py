"""Static registry of the models the service can call."""

from collections.abc import Iterable

from needlebench.errors import UnknownModelError
from needlebench.models.llm import ModelSpec, ProviderName, RequestShape


def _openai(model_id: str, name: str, native: str | None = None, shape: RequestShape = "chat") -> ModelSpec:
    return ModelSpec(model_id, "openai", native or model_id, shape, name)


def _gemini(model_id: str, name: str) -> ModelSpec:
    return ModelSpec(model_id, "google", model_id, "flattened", name)


def _claude(model_id: str, name: str, native: str) -> ModelSpec:
    return ModelSpec(model_id, "anthropic", native, "messages", name)


MODEL_SPECS: tuple[ModelSpec, ...] = (
    # OpenAI
    _openai("o3", "O3", shape="responses"),
    _openai("o3-mini", "O3 Mini", shape="responses"),
    _openai("o4-mini", "O4 Mini", shape="responses"),
    _openai("o1", "O1", shape="responses"),
    _openai("o1-mini", "O1 Mini", shape="responses"),
    _openai("gpt-4.1", "GPT-4.1", shape="responses"),
    _openai("gpt-4.1-nano", "GPT-4.1 Nano", shape="responses"),
    _openai("gpt-4", "GPT-4"),
    _openai("gpt-4-turbo", "GPT-4 Turbo", native="gpt-4-turbo-preview"),
    _openai("gpt-4o-mini", "GPT-4o Mini"),
    _openai("gpt-3.5-turbo", "GPT-3.5 Turbo"),
    # Google
    _gemini("gemini-2.5-pro", "Gemini 2.5 Pro"),
    _gemini("gemini-2.5-flash", "Gemini 2.5 Flash"),
    _gemini("gemini-2.5-pro-preview-05-06", "Gemini 2.5 Pro Preview 05-06"),
    _gemini("gemini-2.5-flash-preview-05-20", "Gemini 2.5 Flash Preview 05-20"),
    _gemini("gemini-2.5-flash-preview-04-17", "Gemini 2.5 Flash Preview 04-17"),
    _gemini("gemini-2.5-flash-lite-preview-06-17", "Gemini 2.5 Flash-Lite Preview 06-17"),
    _gemini("gemini-2.0-flash", "Gemini 2.0 Flash"),
    _gemini("gemini-2.0-flash-lite", "Gemini 2.0 Flash Lite"),
    _gemini("gemini-1.5-pro", "Gemini 1.5 Pro"),
    _gemini("gemini-1.5-flash", "Gemini 1.5 Flash"),
    # Anthropic
    _claude("claude-opus-4", "Claude Opus 4", "claude-opus-4-20250514"),
    _claude("claude-sonnet-4", "Claude Sonnet 4", "claude-sonnet-4-20250514"),
    _claude("claude-3-7-sonnet", "Claude 3.7 Sonnet", "claude-3-7-sonnet-20250219"),
    _claude("claude-3-5-sonnet-v2", "Claude 3.5 Sonnet v2", "claude-3-5-sonnet-20241022"),
    _claude("claude-3-opus", "Claude 3 Opus", "claude-3-opus-20240229"),
    _claude("claude-3-sonnet", "Claude 3 Sonnet", "claude-3-sonnet-20240229"),
    _claude("claude-3-haiku", "Claude 3 Haiku", "claude-3-haiku-20240307"),
    _claude("claude-instant", "Claude Instant", "claude-instant-1.2"),
)


class ModelRegistry:
    """Read-only lookup from public model ids to provider call details."""

    def __init__(self, specs: Iterable[ModelSpec] = MODEL_SPECS):
        self._specs: dict[str, ModelSpec] = {spec.model_id: spec for spec in specs}

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._specs

    def get(self, model_id: str) -> ModelSpec:
        """Look up a model.

        Raises:
            UnknownModelError: If the id is not registered
        """
        spec = self._specs.get(model_id)
        if spec is None:
            raise UnknownModelError(f"Unknown model: {model_id}", model_id)
        return spec

    def list_models(self, provider: ProviderName | None = None) -> list[ModelSpec]:
        """List registered models, optionally for a single provider."""
        return [spec for spec in self._specs.values() if provider is None or spec.provider == provider]


_model_registry: ModelRegistry | None = None


def get_model_registry() -> ModelRegistry:
    """Get or create model registry instance."""
    global _model_registry
    if _model_registry is None:
        _model_registry = ModelRegistry()
    return _model_registry
