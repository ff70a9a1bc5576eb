"""Service configuration loaded from the environment."""

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class Settings:
    """Runtime settings for the API and orchestrators."""

    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    # Conversation turn pacing and limits
    conversation_turn_delay: float = 2.0
    conversation_failure_delay: float = 1.0
    conversation_max_messages: int = 30
    conversation_history_window: int = 20
    conversation_max_empty_responses: int = 5

    # Default generation parameters for conversation turns
    conversation_temperature: float = 0.7
    conversation_max_tokens: int = 300

    rate_limit_per_minute: int = 60
    max_haystack_chars: int = 500_000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
            conversation_turn_delay=_env_float("CONVERSATION_TURN_DELAY", defaults.conversation_turn_delay),
            conversation_failure_delay=_env_float("CONVERSATION_FAILURE_DELAY", defaults.conversation_failure_delay),
            conversation_max_messages=_env_int("CONVERSATION_MAX_MESSAGES", defaults.conversation_max_messages),
            conversation_history_window=_env_int("CONVERSATION_HISTORY_WINDOW", defaults.conversation_history_window),
            conversation_max_empty_responses=_env_int(
                "CONVERSATION_MAX_EMPTY_RESPONSES", defaults.conversation_max_empty_responses
            ),
            conversation_temperature=_env_float("CONVERSATION_TEMPERATURE", defaults.conversation_temperature),
            conversation_max_tokens=_env_int("CONVERSATION_MAX_TOKENS", defaults.conversation_max_tokens),
            rate_limit_per_minute=_env_int("RATE_LIMIT_PER_MINUTE", defaults.rate_limit_per_minute),
            max_haystack_chars=_env_int("MAX_HAYSTACK_CHARS", defaults.max_haystack_chars),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
