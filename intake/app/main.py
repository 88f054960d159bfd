from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from intake.app.api.submit import SUBMIT_PATHS, router as submit_router
from intake.app.api.telegram import register_webhook, router as telegram_router
from intake.app.core.config import Settings, settings as default_settings
from intake.app.core.http_client import init_http_client
from intake.app.core.logging import get_logger, setup_logging
from intake.app.exceptions import ConfigError, IntakeException
from intake.app.middleware.rate_limit import IPRateLimiter, RateLimitMiddleware
from intake.app.middleware.request_id import RequestIdMiddleware
from intake.app.middleware.request_size import RequestSizeLimitMiddleware
from intake.app.services.geo import GeoResolver
from intake.app.services.notifier import Notifier, TelegramNotifier
from intake.app.services.submission import SubmissionService


def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    geo: Optional[GeoResolver] = None,
    limiter: Optional[IPRateLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from settings. Without an
    injected notifier the Telegram notifier is created at startup on the
    shared HTTP client.

    Raises:
        ConfigError: If no notifier is injected and Telegram is not configured,
            or the GeoIP database cannot be opened
    """
    config = settings or default_settings
    logger = get_logger(__name__)

    if notifier is None and not config.notifier_configured:
        raise ConfigError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_IDS are required")

    owns_geo = geo is None
    if owns_geo:
        geo = GeoResolver.open(config.geoip_db_path)
    if limiter is None:
        limiter = IPRateLimiter(
            rate=config.rate_limit_rps,
            burst=config.rate_limit_burst,
            ttl=config.rate_limit_ttl_seconds,
            sweep_interval=config.rate_limit_sweep_interval_seconds,
        )

    def build_service(active_notifier: Notifier) -> SubmissionService:
        return SubmissionService(
            active_notifier,
            geo=geo,
            max_body_size=config.max_body_size,
            summary_max_length=config.summary_max_length,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the sweep and outbound client; stop them on shutdown.

        In-flight requests are drained by the server before this exits.
        """
        async with init_http_client(config) as http_client:
            if app.state.submission_service is None:
                telegram = TelegramNotifier(
                    config.telegram_bot_token,
                    config.telegram_chat_ids,
                    http_client=http_client,
                    base_url=config.telegram_api_base_url,
                )
                app.state.submission_service = build_service(telegram)

            if config.telegram_webhook_url and config.telegram_bot_token:
                await register_webhook(config, http_client)

            await limiter.start()
            logger.info(
                "Application startup complete",
                extra={
                    "geoip_enabled": geo.available,
                    "recipients": app.state.submission_service.notifier.recipient_count,
                    "rate_limit_rps": limiter.rate,
                    "rate_limit_burst": limiter.burst,
                },
            )
            try:
                yield
            finally:
                await limiter.stop()
                if notifier is None:
                    app.state.submission_service = None

        if owns_geo:
            geo.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Case Intake Gateway",
        description="Accepts case submissions and forwards them to Telegram recipients",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.limiter = limiter
    app.state.geo = geo
    app.state.submission_service = build_service(notifier) if notifier is not None else None

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(RateLimitMiddleware, limiter=limiter, paths=SUBMIT_PATHS)
    app.add_middleware(RequestIdMiddleware)
    # Body cap (outermost - wraps receive before anything reads the body)
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=config.max_body_size)

    app.include_router(submit_router)
    app.include_router(telegram_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with component status."""
        service = app.state.submission_service
        return {
            "status": "ok" if service is not None else "starting",
            "components": {
                "geoip": {"status": "ok" if geo.available else "disabled"},
                "notifier": {
                    "status": "ok" if service is not None else "not_ready",
                    "recipients": service.notifier.recipient_count if service is not None else 0,
                },
                "rate_limiter": {
                    "status": "ok",
                    "tracked_clients": len(limiter),
                    "sweeping": limiter.running,
                },
            },
        }

    @app.exception_handler(IntakeException)
    async def intake_exception_handler(request: Request, exc: IntakeException) -> PlainTextResponse:
        """Return the exception's status and client-safe message."""
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Full details are logged server-side; the client gets a generic
        message and the request id for correlation.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        content = {"error": "internal_error", "message": "Internal server error", "request_id": request_id}
        if config.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


def run() -> None:
    """Run the gateway under uvicorn."""
    import uvicorn

    setup_logging()
    uvicorn.run(
        "intake.app.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        timeout_keep_alive=default_settings.server_keepalive_timeout,
        log_config=None,
    )


if __name__ == "__main__":
    run()
