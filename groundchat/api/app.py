"""FastAPI application factory and configuration.

Wires the conversation store, model adapter and orchestrator together once
per application, registers middleware, error handlers and routers.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groundchat.agent.chat_agent import GeminiAdapter, ModelAdapter, StreamOptions
from groundchat.agent.config import AgentConfig, get_agent_config
from groundchat.api.chat import router as chat_router
from groundchat.chat.errors import BusyError, NotFoundError
from groundchat.chat.orchestrator import ChatOrchestrator
from groundchat.chat.store import ConversationStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    logger.info("Starting groundchat API...")
    yield
    logger.info("Shutting down groundchat API...")


def build_orchestrator(
    adapter: ModelAdapter | None = None,
    config: AgentConfig | None = None,
) -> ChatOrchestrator:
    """Create the store and orchestrator around a model adapter.

    Args:
        adapter: Model adapter to use. A GeminiAdapter is built from the
            configuration when omitted.
        config: Adapter configuration. Loads from environment if not provided.

    Raises:
        ValueError: If no config is given and no API key is set.
    """
    config = config or get_agent_config()
    if adapter is None:
        adapter = GeminiAdapter.from_config(config)

    return ChatOrchestrator(
        ConversationStore(),
        adapter,
        default_model=config.model_name,
        options=StreamOptions(
            enable_grounded_search=config.enable_grounded_search,
            temperature=config.temperature,
        ),
        stream_timeout=config.stream_timeout,
    )


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _busy_handler(request: Request, exc: BusyError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def create_app(
    adapter: ModelAdapter | None = None,
    config: AgentConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        adapter: Optional model adapter (tests inject a scripted one).
        config: Optional adapter configuration.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="groundchat API",
        description=(
            "Chat with Gemini models, optionally attaching an image. Responses "
            "stream as Server-Sent Events carrying the in-progress message and "
            "its grounding sources."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.orchestrator = build_orchestrator(adapter, config)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    application.add_exception_handler(NotFoundError, _not_found_handler)
    application.add_exception_handler(BusyError, _busy_handler)
    application.include_router(chat_router)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Check service health status."""
        return {"status": "healthy", "service": "groundchat"}

    return application
