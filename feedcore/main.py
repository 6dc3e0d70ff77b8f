"""
Feed Core API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create the DB engine (TiDB) and tables if not present
  3. Start the Kafka producer (event bus)
  4. Connect to Redis
  5. Wire the feed services onto app.state
  6. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from feedcore.config import settings
from feedcore.database import create_engine, create_session_factory, init_db
from feedcore.errors import FeedCoreError
from feedcore.telemetry import LOG_FORMAT, instrument_app, setup_tracing
from feedcore.clients.kafka_producer import EventBus
from feedcore.clients.redis_client import close_redis, init_redis
from feedcore.routers import feed
from feedcore.services import build_services

logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Feed Core API (env=%s)", settings.environment)
    setup_tracing()

    engine = create_engine()
    await init_db(engine)
    event_bus = EventBus()
    await event_bus.start()
    redis = await init_redis()

    services = build_services(redis, create_session_factory(engine), event_bus)
    app.state.services = services

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await services.feed_core.drain_publishes()
    await event_bus.stop()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Feed Core API",
    description=(
        "Feed ranking and caching: sorted-set feeds with cursor pagination, "
        "bloom-filter view tracking and activity-adaptive cache TTLs."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(FeedCoreError)
async def feed_core_error_handler(request: Request, exc: FeedCoreError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"type": exc.kind.value, "detail": exc.message},
    )


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(feed.router, prefix="/feed", tags=["Feed"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
