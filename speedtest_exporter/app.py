import logging
import time

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .collector import SpeedtestCollector
from .config import Settings, load_settings
from .refresher import Refresher
from .scheduler import Scheduler
from .speedtest import Backend, SpeedtestClient
from .store import SnapshotCache

HEALTH_URL = "https://clients3.google.com/generate_204"
HEALTH_TIMEOUT_S = 3.0

log = logging.getLogger(__name__)

def create_app(
    settings: Settings | None = None,
    backend: Backend | None = None,
    health_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings if settings is not None else load_settings()
    backend = backend if backend is not None else SpeedtestClient()

    app = FastAPI(title="Speedtest Exporter")

    cache = SnapshotCache()
    refresher = Refresher(backend, cache, settings.server_preference, settings.server_fallback)
    scheduler = Scheduler(refresher, settings.refresh_interval, initial_run=True)
    registry = CollectorRegistry(auto_describe=True)
    registry.register(SpeedtestCollector(cache))

    app.state.settings = settings
    app.state.cache = cache
    app.state.scheduler = scheduler
    app.state.registry = registry

    # Access log + latency
    @app.middleware("http")
    async def access_logger(request: Request, call_next):
        t0 = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            age_s = cache.age_s()
            log.info(
                "access",
                extra={
                    "event": "http.access",
                    "extra_fields": {
                        "path": request.url.path,
                        "method": request.method,
                        "latency_ms": int((time.time() - t0) * 1000),
                        "status": status,
                        "age_s": round(age_s, 3) if age_s is not None else -1,
                    },
                },
            )

    @app.on_event("startup")
    async def _startup():
        log.info(
            "Starting Speedtest Exporter",
            extra={
                "event": "startup",
                "extra_fields": {
                    "port": settings.listen_port,
                    "refresh_interval_seconds": settings.refresh_interval,
                    "server_id": settings.server_id,
                    "server_fallback": settings.server_fallback,
                },
            },
        )
        await scheduler.start()

    @app.on_event("shutdown")
    async def _shutdown():
        log.info("Shutting down gracefully", extra={"event": "shutdown"})
        await scheduler.stop()
        await backend.aclose()

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        try:
            async with httpx.AsyncClient(timeout=HEALTH_TIMEOUT_S, transport=health_transport) as client:
                await client.get(HEALTH_URL)
        except httpx.HTTPError as e:
            log.warning(
                "health check failed",
                extra={"event": "health.error", "extra_fields": {"error": repr(e)}},
            )
            return PlainTextResponse("No Internet Connection", status_code=500)
        return PlainTextResponse("OK")

    @app.get("/ready", response_class=PlainTextResponse)
    async def ready():
        if not cache.is_ready():
            return PlainTextResponse("not ready", status_code=503)
        return PlainTextResponse("ok\n")

    @app.get("/metrics")
    async def metrics():
        if not cache.is_ready():
            return PlainTextResponse("metrics not ready", status_code=503)
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
