"""Failure taxonomy for provider calls and related services."""

from typing import Any


class ProviderError(Exception):
    """Base class for every failure surfaced by the provider adapter."""

    kind: str = "ProviderError"

    def __init__(self, message: str, model_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.model_id = model_id

    def as_dict(self) -> dict[str, Any]:
        """Return the error as a serializable dictionary."""
        return {"kind": self.kind, "message": self.message, "model_id": self.model_id}


class UnknownModelError(ProviderError):
    """The model identifier is not in the registry."""

    kind = "UnknownModel"


class MissingCredentialError(ProviderError):
    """No API key is available for the model's provider."""

    kind = "MissingCredential"


class NoValidInputError(ProviderError):
    """Nothing usable remained in the history after shaping."""

    kind = "NoValidInput"


class EmptyResponseError(ProviderError):
    """The provider answered, but without any text."""

    kind = "EmptyResponse"


class UnexpectedResponseShapeError(ProviderError):
    """No known response shape yielded text."""

    kind = "UnexpectedResponseShape"


class ParameterUnsupportedError(ProviderError):
    """The provider rejected a request parameter for this particular model."""

    kind = "ParameterUnsupported"


class ProviderTransportError(ProviderError):
    """Network or HTTP failure reported by the provider SDK."""

    kind = "ProviderTransportError"

    def __init__(
        self,
        message: str,
        model_id: str | None = None,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message, model_id)
        self.status_code = status_code
        self.payload = payload

    def as_dict(self) -> dict[str, Any]:
        """Return the error, including status and payload, as a dictionary."""
        return {**super().as_dict(), "status_code": self.status_code, "payload": self.payload}


# Failures the conversation treats like a blank generation
EMPTY_RESULT_ERRORS: tuple[type[ProviderError], ...] = (NoValidInputError, EmptyResponseError)


class InvalidCredentialError(ValueError):
    """An API key was rejected before being stored."""


class ContentGenerationError(Exception):
    """Generated test content could not be produced or parsed."""



class RateLimitExceededError(Exception):
    """A caller sent more requests than the throttle allows."""

    def __init__(self, caller_id: str, limit: str):
        super().__init__(f"Too many requests. Limit is {limit}")
        self.caller_id = caller_id
        self.limit = limit
