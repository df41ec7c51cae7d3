"""
AidWatch - humanitarian signal intake, crisis correlation and alert dispatch.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from aidwatch.api.router import api_router
from aidwatch.config import get_settings
from aidwatch.database import dispose_engine, get_session_factory
from aidwatch.services.classifier import LLMClassifier
from aidwatch.services.correlation import CorrelationEngine
from aidwatch.services.email import build_transport
from aidwatch.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)
from aidwatch.utils.redis_client import close_redis
from aidwatch.workers.jobs import build_jobs, schedule_intervals
from aidwatch.workers.orchestrator import JobOrchestrator
from aidwatch.workers.webhook_queue import WebhookProcessingQueue

logger = logging.getLogger("aidwatch")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the pipeline, start the queue and schedules; stop them on shutdown."""
    settings = get_settings()
    logger.info("AidWatch starting up (env=%s)", settings.app_env)

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    if not settings.anthropic_api_key and not settings.openai_api_key:
        logger.warning("No AI provider key configured - every classification will fail")

    session_factory = get_session_factory()
    engine = CorrelationEngine(
        LLMClassifier(),
        stale_after=timedelta(days=settings.stale_event_days),
    )
    transport = build_transport()

    queue = WebhookProcessingQueue(
        session_factory,
        engine,
        workers=settings.webhook_worker_count,
        maxsize=settings.webhook_queue_size,
    )
    orchestrator = JobOrchestrator(build_jobs(session_factory, engine, transport, settings))

    app.state.session_factory = session_factory
    app.state.correlation_engine = engine
    app.state.email_transport = transport
    app.state.webhook_queue = queue
    app.state.orchestrator = orchestrator

    queue.start()
    if settings.scheduler_enabled:
        orchestrator.start(
            schedule_intervals(settings),
            digest_hour_utc=settings.digest_hour_utc,
            weekly_digest_weekday=settings.weekly_digest_weekday,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false); jobs run on manual trigger only")

    yield

    logger.info("AidWatch shutting down")
    await orchestrator.stop()
    await queue.stop()
    await close_redis()
    await dispose_engine()
    logger.info("AidWatch shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="AidWatch",
        description="Humanitarian signal intake, crisis correlation and alert dispatch",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            settings.dashboard_base_url,
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type", "X-Correlation-ID", "X-Webhook-Signature",
            "X-Hub-Signature-256", "Accept", "Origin",
        ],
    )
    # Added after CORS so it runs on every request
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)
    return application


app = create_app()
