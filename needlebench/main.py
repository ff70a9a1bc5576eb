"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from needlebench import __version__
from needlebench.api.endpoints import router
from needlebench.api.websocket import router as websocket_router
from needlebench.config import get_settings
from needlebench.services.conversation import get_conversation_service
from needlebench.services.llm import get_llm_service
from needlebench.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging(LogConfig(level=settings.log_level))
    logger.info(f"Needlebench {__version__} starting, allowed origins: {', '.join(settings.cors_origins)}")
    yield
    await get_conversation_service().shutdown()
    await get_llm_service().close()
    logger.info("Needlebench stopped")


# Create FastAPI application
app = FastAPI(
    title="Needlebench",
    description=(
        "Runs needle in a haystack tests against several language models at once "
        "and hosts conversations where models take turns."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Needle Tests",
            "description": "Ask every selected model the same question about a long text and score the answers.",
        },
        {
            "name": "Models",
            "description": "Registered models and their providers.",
        },
        {
            "name": "Credentials",
            "description": "Store provider API keys for a session.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(websocket_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("needlebench.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
