"""
Main FastAPI application for the Fleet Rewards API.
Serves health, referrals, signup credit, reward accounts, withdrawals and metrics.

Run with: uvicorn --factory fleet_rewards.main:create_app
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from fleet_rewards.api.errors import register_exception_handlers
from fleet_rewards.api.routes import health, referrals, rewards, withdrawals
from fleet_rewards.core.config import settings
from fleet_rewards.core.logging import configure_logging
from fleet_rewards.db.session import build_engine, build_session_factory
from fleet_rewards.utils.metrics import router as metrics_router

logger = logging.getLogger("fleet_rewards.http")


def create_app(
    session_factory: sessionmaker | None = None,
    redis_client: redis.Redis | None = None,
) -> FastAPI:
    """
    Build the application. The process owns the engine and Redis client it
    creates here; tests pass their own session factory and Redis double.
    """
    configure_logging()

    engine = None
    if session_factory is None:
        engine = build_engine(settings.database_url)
        session_factory = build_session_factory(engine)
    owns_redis = redis_client is None
    if owns_redis:
        redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if engine is not None:
            engine.dispose()
        if owns_redis:
            redis_client.close()

    app = FastAPI(
        title="Fleet Rewards API",
        description="Referral rewards ledger and withdrawals",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.redis = redis_client

    # CORS
    origins = settings.cors_origins_list
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get(settings.request_id_header) or uuid.uuid4().hex
        started = time.perf_counter()
        response = await call_next(request)
        latency_ms = round((time.perf_counter() - started) * 1000, 1)
        response.headers[settings.request_id_header] = request_id
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": latency_ms,
            },
        )
        return response

    register_exception_handlers(app)

    # Routers
    app.include_router(health.router, tags=["health"])
    app.include_router(referrals.router)
    app.include_router(rewards.router)
    app.include_router(withdrawals.router)
    app.include_router(metrics_router)
    return app
