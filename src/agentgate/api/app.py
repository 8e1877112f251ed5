"""FastAPI application and composition root."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentgate import __version__
from agentgate.api.routes import router as api_router
from agentgate.availability import AvailabilityMonitor
from agentgate.config import Settings, get_settings
from agentgate.llm import LLMClient, create_llm_client
from agentgate.ratelimit import FixedWindowRateLimiter
from agentgate.store import CounterStore, initialize_counter_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    counter_store: CounterStore | None = None,
    llm_client: LLMClient | None = None,
    monitor: AvailabilityMonitor | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Shared clients (counter store, LLM client, availability monitor)
    are built once in the lifespan and kept on ``app.state``. Passing
    them in skips construction; the app then leaves closing them to
    the caller.

    Raises at startup (ConfigurationError) when no LLM client is given
    and no API key is configured.
    """
    cfg = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        logger.info("Starting agentgate API...")

        llm = llm_client or create_llm_client(cfg)
        store: CounterStore | None = counter_store
        try:
            if store is None:
                store = await initialize_counter_store(settings=cfg)
            availability = monitor or AvailabilityMonitor(
                url=cfg.backend_health_url,
                base_interval=cfg.health_check_interval_seconds,
                max_interval=cfg.health_check_max_interval_seconds,
                probe_timeout=cfg.health_probe_timeout_seconds,
            )

            app.state.settings = cfg
            app.state.counter_store = store
            app.state.limiter = FixedWindowRateLimiter(
                store=store,
                limit=cfg.rate_limit,
                window_seconds=cfg.rate_limit_window_seconds,
            )
            app.state.llm_client = llm
            app.state.monitor = availability

            await availability.start()
        except Exception:
            # Release whatever this lifespan created before startup failed
            if llm_client is None:
                await llm.close()
            if counter_store is None and store is not None:
                await store.close()
            raise
        logger.info(
            f"Rate limit {cfg.rate_limit} requests per "
            f"{cfg.rate_limit_window_seconds}s using {store.name} store"
        )
        yield

        # Shutdown
        logger.info("Shutting down agentgate API...")
        await availability.stop()
        if llm_client is None:
            await llm.close()
        if counter_store is None:
            await store.close()

    app = FastAPI(
        title="agentgate",
        description="Rate-limited gateway to a hosted language model",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request body",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    # Include API routes
    app.include_router(api_router, prefix="/v1")

    # Health check
    @app.get("/health")
    async def health_check(request: Request):
        store = getattr(request.app.state, "counter_store", None)
        return {
            "status": "healthy",
            "version": __version__,
            "store": store.name if store else None,
        }

    @app.get("/")
    async def root():
        return {
            "name": "agentgate",
            "version": __version__,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app
