"""In-memory credential store with process-wide overrides."""

import os
from collections.abc import Mapping

from needlebench.errors import InvalidCredentialError
from needlebench.models.llm import ProviderName
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER_ENV_VARS: dict[ProviderName, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEY",),
}

KEY_PREFIXES: dict[str, str] = {
    "openai": "sk-",
    "google": "AIza",
    "anthropic": "sk-ant-",
}


class CredentialStore:
    """Resolves API keys per provider and caller.

    A key configured for the whole process (through the environment) always
    wins over a key a caller supplied for their own session.
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        """Initialize credential store.

        Args:
            environ: Source of process-wide keys (defaults to os.environ)
        """
        self._environ = environ if environ is not None else os.environ
        self._caller_keys: dict[str, dict[str, str]] = {}

    @staticmethod
    def validate(provider: str, secret: str) -> str:
        """Check an API key's format and return it trimmed.

        Raises:
            InvalidCredentialError: If the provider is unknown or the key is malformed
        """
        prefix = KEY_PREFIXES.get(provider)
        if prefix is None:
            raise InvalidCredentialError(f"Unknown API provider: {provider}")
        if not isinstance(secret, str) or not secret.strip():
            raise InvalidCredentialError("API key must be a non-empty string")

        secret = secret.strip()
        if not secret.startswith(prefix):
            raise InvalidCredentialError(f"Invalid {provider} API key format")
        return secret

    def set(self, provider: str, secret: str, caller_id: str) -> None:
        """Store a caller's key for a provider after validating it."""
        secret = self.validate(provider, secret)
        self._caller_keys.setdefault(caller_id, {})[provider] = secret
        logger.info(f"Stored {provider} API key for caller {caller_id}")

    def process_credential(self, provider: ProviderName) -> str | None:
        """Key configured for the whole process, if any."""
        for env_var in PROVIDER_ENV_VARS.get(provider, ()):
            value = self._environ.get(env_var)
            if value and value.strip():
                return value.strip()
        return None

    def resolve(self, provider: ProviderName, caller_id: str) -> str | None:
        """Return the key to use for ``provider`` on behalf of ``caller_id``."""
        process_key = self.process_credential(provider)
        if process_key:
            return process_key
        return self._caller_keys.get(caller_id, {}).get(provider)

    def has_credential(self, provider: ProviderName, caller_id: str) -> bool:
        """Whether a key can be resolved for the provider and caller."""
        return self.resolve(provider, caller_id) is not None

    def providers_for(self, caller_id: str) -> list[str]:
        """Providers the caller can currently use."""
        return [provider for provider in PROVIDER_ENV_VARS if self.has_credential(provider, caller_id)]


_credential_store: CredentialStore | None = None


def get_credential_store() -> CredentialStore:
    """Get or create credential store instance."""
    global _credential_store
    if _credential_store is None:
        _credential_store = CredentialStore()
    return _credential_store
