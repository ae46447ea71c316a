"""
Hookgate - inbound webhook verification gateway.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from hookgate.api.router import api_router
from hookgate.config import get_settings
from hookgate.services.persistence import LoggingDecisionEventSink, SqlAlchemyDecisionEventSink
from hookgate.services.pipeline import WebhookPipeline
from hookgate.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("hookgate")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


def build_sink(settings):
    """SQL sink when a database is configured, structured logs otherwise."""
    if settings.database_url:
        from hookgate.database import get_session_factory
        return SqlAlchemyDecisionEventSink(get_session_factory())
    logger.warning("DATABASE_URL not set - decision events will only be logged")
    return LoggingDecisionEventSink()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Hookgate starting up (env=%s)", settings.app_env)

    # Initialize Sentry if configured
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

    config = settings.gateway_config()
    if config.signature is None or config.signature.scheme == "none":
        logger.warning(
            "WEBHOOK_SIGNATURE not set - connector %s accepts unsigned webhooks",
            config.connector_id,
        )

    pipeline = WebhookPipeline(config, sink=build_sink(settings))
    await pipeline.start()
    app.state.pipeline = pipeline

    yield

    # Graceful shutdown - stop the sweeper, give persistence time to finish
    logger.info("Hookgate shutting down")
    await pipeline.stop()
    app.state.pipeline = None
    if settings.database_url:
        from hookgate.database import dispose_engine
        await dispose_engine()
    logger.info("Hookgate shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Hookgate",
        description="Inbound webhook verification gateway",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application


app = create_app()
