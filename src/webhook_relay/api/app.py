"""FastAPI application for the webhook relay.

Routes:
    GET  /healthz  liveness probe
    POST /log      accept one webhook payload into the current batch
    GET  /stats    coordinator and sender statistics
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import PlainTextResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import RelayConfig, get_config_manager
from ..core.errors import ClientError, CoordinatorStoppedError
from ..orchestrator import BatchCoordinator, create_default_coordinator
from .schemas import parse_event


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, endpoint, status and duration of every request."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.bind(
                method=request.method,
                endpoint=request.url.path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
            ).info("Request processed")


def create_app(config: Optional[RelayConfig] = None, coordinator: Optional[BatchCoordinator] = None) -> FastAPI:
    """Build the relay application.

    The coordinator is started when the application starts and stopped,
    flushing its batch in progress, when it shuts down.
    """
    if config is None:
        manager = get_config_manager()
        config = manager.get_config() or manager.load_config()
    if coordinator is None:
        coordinator = create_default_coordinator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        coordinator.start()
        try:
            yield
        finally:
            # stop() waits on delivery threads; keep it off the event loop.
            await run_in_threadpool(coordinator.stop)

    app = FastAPI(title="Webhook Relay", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.coordinator = coordinator
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:  # pylint: disable=unused-variable
        return "OK"

    @app.post("/log")
    async def log_event(request: Request) -> Response:  # pylint: disable=unused-variable
        body = await request.body()
        try:
            event = parse_event(body)
        except ClientError as e:
            logger.bind(error=str(e)).error("Failed to decode JSON payload")
            return Response(status_code=status.HTTP_400_BAD_REQUEST)

        try:
            coordinator.accept(event)
        except CoordinatorStoppedError:
            logger.warning("Rejecting event, coordinator is not accepting events")
            return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(status_code=status.HTTP_200_OK)

    @app.get("/stats")
    async def stats() -> Dict[str, Any]:  # pylint: disable=unused-variable
        payload: Dict[str, Any] = {"coordinator": coordinator.get_stats()}
        get_sender_stats = getattr(coordinator.client, "get_stats", None)
        if callable(get_sender_stats):
            payload["sender"] = get_sender_stats()
        return payload

    return app
