"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from marketnotify.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .routes import health, notifications, whatsapp


def create_app() -> FastAPI:
    """Create the notification service HTTP app.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Marketplace Notifications",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(health.router)
    app.include_router(notifications.router)
    app.include_router(whatsapp.router)

    return app
