"""FastAPI application for the Apex protocol engine (operational surface only)."""
from fastapi import FastAPI, Request

from apex.api.routes.jobs import router as jobs_router
from apex.api.routes.notifications import router as notifications_router
from apex.core.config import settings
from apex.core.logging import configure_logging
from apex.core.middleware import RequestIDMiddleware
from apex.observability.client import init_opik
from apex.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(jobs_router)
app.include_router(notifications_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
