"""LLM service: the single entry point for calling any registered model."""

import hashlib
import json

from needlebench.clients.anthropic import AnthropicClient
from needlebench.clients.base import GenerationConfig, ProviderClient
from needlebench.clients.gemini import GeminiClient
from needlebench.clients.openai import OpenAIClient
from needlebench.errors import MissingCredentialError, ProviderError
from needlebench.models.llm import Message, ProviderName
from needlebench.services.credentials import CredentialStore, get_credential_store
from needlebench.services.registry import ModelRegistry, get_model_registry
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

ClientFactory = type[ProviderClient]

DEFAULT_CLIENTS: dict[ProviderName, ClientFactory] = {
    "openai": OpenAIClient,
    "google": GeminiClient,
    "anthropic": AnthropicClient,
}

DEFAULT_GENERATION = GenerationConfig(temperature=0.7, max_tokens=300)

PROCESS_OWNER = "*"


class LLMService:
    """Provider-agnostic model calls.

    Resolves the model and credential, applies default generation settings and
    hands the history to the provider client. Failures are raised as
    ``ProviderError`` subclasses and never retried here.
    """

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        registry: ModelRegistry | None = None,
        clients: dict[ProviderName, ClientFactory] | None = None,
        defaults: GenerationConfig | None = None,
    ):
        """Initialize LLM service.

        Args:
            credentials: Credential store (defaults to global instance)
            registry: Model registry (defaults to global instance)
            clients: Client class per provider
            defaults: Generation settings used where a call leaves them unset
        """
        self.credentials = credentials or get_credential_store()
        self.registry = registry or get_model_registry()
        self.clients = clients or DEFAULT_CLIENTS
        self.defaults = defaults or DEFAULT_GENERATION
        self._client_cache: dict[tuple[ProviderName, str], tuple[str, ProviderClient]] = {}

    def has_credential(self, model_id: str, caller_id: str) -> bool:
        """Whether the model is registered and its provider has a key for the caller."""
        if model_id not in self.registry:
            return False
        return self.credentials.has_credential(self.registry.get(model_id).provider, caller_id)

    async def _client_for(self, provider: ProviderName, api_key: str, caller_id: str) -> ProviderClient:
        # Process-wide keys share one client, caller keys get one client per caller
        owner = PROCESS_OWNER if api_key == self.credentials.process_credential(provider) else caller_id
        fingerprint = hashlib.sha256(api_key.encode()).hexdigest()

        cached = self._client_cache.get((provider, owner))
        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        client = self.clients[provider](api_key)
        self._client_cache[(provider, owner)] = (fingerprint, client)
        if cached is not None:
            logger.info(f"Replaced {provider} client for {owner} after a key change")
            await cached[1].close()
        return client

    async def close(self) -> None:
        """Close every cached provider client."""
        cached = list(self._client_cache.values())
        self._client_cache.clear()
        for _, client in cached:
            await client.close()
        if cached:
            logger.info(f"Closed {len(cached)} provider clients")

    async def generate(
        self,
        model_id: str,
        history: list[Message],
        caller_id: str,
        config: GenerationConfig | None = None,
        goal: str | None = None,
    ) -> str:
        """Generate a reply from a model.

        Args:
            model_id: Public model identifier from the registry
            history: Ordered transcript, oldest first
            caller_id: Caller whose credentials should be used
            config: Optional overrides for temperature and max tokens
            goal: Original conversation goal, if there is one

        Returns:
            The model's response text

        Raises:
            UnknownModelError: If the model is not registered
            MissingCredentialError: If no key is available for the provider
            ProviderError: For any failure reported by the provider client
        """
        spec = self.registry.get(model_id)

        api_key = self.credentials.resolve(spec.provider, caller_id)
        if not api_key:
            raise MissingCredentialError(f"No API key found for {spec.provider}", model_id)

        resolved = (config or GenerationConfig()).with_defaults(self.defaults)
        client = await self._client_for(spec.provider, api_key, caller_id)

        logger.info(
            f"Generating with {model_id} ({spec.provider}/{spec.native_model}) for caller {caller_id}: "
            f"{len(history)} messages, temperature={resolved.temperature}, max_tokens={resolved.max_tokens}"
        )

        try:
            text = await client.generate(spec, history, resolved, goal=goal)
        except ProviderError as e:
            if e.model_id is None:
                e.model_id = model_id
            logger.warning(f"Provider call failed: {json.dumps(e.as_dict(), default=str)}")
            raise

        logger.debug(f"Generated {len(text)} characters with {model_id}")
        return text


_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create LLM service instance."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
