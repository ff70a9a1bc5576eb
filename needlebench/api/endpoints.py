"""HTTP endpoints for the needle testing service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException

from needlebench import __version__
from needlebench.errors import InvalidCredentialError, RateLimitExceededError
from needlebench.models.events import (
    ApiKeySetResponse,
    HealthResponse,
    ModelInfo,
    ModelListResponse,
    RescoreRequest,
    SetApiKeyRequest,
)
from needlebench.models.llm import ProviderName, new_id
from needlebench.models.needle import NeedleError, NeedleResult, NeedleTestRequest, NeedleTestResponse
from needlebench.services.conversation import ConversationService, get_conversation_service
from needlebench.services.credentials import CredentialStore, get_credential_store
from needlebench.services.needle_test import NeedleTestService, get_needle_test_service, rescore
from needlebench.services.rate_limit import CallerRateLimiter, get_rate_limiter
from needlebench.services.registry import ModelRegistry, get_model_registry
from needlebench.services.sink import CollectingEventSink
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/credentials", response_model=ApiKeySetResponse, tags=["Credentials"])
async def set_api_key(
    request: SetApiKeyRequest,
    credentials: CredentialStore = Depends(get_credential_store),
) -> ApiKeySetResponse:
    """Store an API key for a session, creating the session id when missing."""
    session_id = request.session_id or new_id()
    try:
        credentials.set(request.provider, request.api_key, session_id)
    except InvalidCredentialError as e:
        logger.warning(f"Rejected {request.provider} API key for session {session_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ApiKeySetResponse(
        provider=request.provider,
        success=True,
        session_id=session_id,
        available_providers=credentials.providers_for(session_id),
    )


@router.post("/needle-tests", response_model=NeedleTestResponse, tags=["Needle Tests"])
async def run_needle_test(
    request: NeedleTestRequest,
    service: NeedleTestService = Depends(get_needle_test_service),
    rate_limiter: CallerRateLimiter = Depends(get_rate_limiter),
) -> NeedleTestResponse:
    """Run a needle test and return once every model has answered or failed.

    Failing models are listed under ``errors`` and do not fail the request.
    """
    session_id = request.session_id or new_id()
    try:
        rate_limiter.check(session_id, "needle test")
    except RateLimitExceededError as e:
        raise HTTPException(status_code=429, detail=str(e)) from e

    sink = CollectingEventSink()
    try:
        test = await service.run(session_id, request, sink)
    except ValueError as e:
        logger.warning(f"Needle test validation error for session {session_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    logger.info(f"Needle test {test.id} for session {session_id} produced {len(sink.events)} events")
    return NeedleTestResponse(
        test_id=test.id,
        session_id=session_id,
        results=[test.results[c.model_id] for c in test.model_configs if c.model_id in test.results],
        errors=[NeedleError(model_id=model_id, error=error) for model_id, error in test.errors.items()],
    )


@router.post("/needle-tests/rescore", response_model=list[NeedleResult], tags=["Needle Tests"])
async def rescore_needle_test(request: RescoreRequest) -> list[NeedleResult]:
    """Score earlier answers against a different exact match, without calling any model."""
    if not request.exact_match.strip():
        raise HTTPException(status_code=400, detail="Please provide a non-empty exact match")
    return rescore(request.results, request.exact_match)


@router.get("/models", response_model=ModelListResponse, tags=["Models"])
async def list_models(
    provider: ProviderName | None = None,
    registry: ModelRegistry = Depends(get_model_registry),
) -> ModelListResponse:
    """List the models that can take part in tests and conversations."""
    return ModelListResponse(
        models=[ModelInfo.model_validate(spec.as_dict()) for spec in registry.list_models(provider)]
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    conversations: ConversationService = Depends(get_conversation_service),
) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        active_conversations=conversations.store.get_active_count(),
    )
