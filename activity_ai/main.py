"""Main FastAPI application for the activity recommendation service."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from . import __version__
from .config import settings
from .dispatcher import ActivityDispatcher
from .errors import PersistenceFailure
from .gemini_client import GeminiClient
from .generator import RecommendationGenerator
from .kafka_consumer import ConsumerPool
from .logging_config import setup_logging
from .models import HealthStatus, Recommendation
from .retry import RetryPolicy
from .store import RecommendationStore, create_store

logger = structlog.get_logger(__name__)

# Global state
store: Optional[RecommendationStore] = None
consumer_pool: Optional[ConsumerPool] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    global store, consumer_pool

    setup_logging(settings)
    logger.info(
        "Starting activity recommendation service",
        version=__version__,
        environment=settings.environment,
    )

    store = create_store(settings)
    await store.connect()

    generator = RecommendationGenerator(
        GeminiClient(settings),
        policy=RetryPolicy.from_settings(settings),
        attempt_timeout=settings.generation_attempt_timeout_seconds,
    )
    consumer_pool = ConsumerPool(ActivityDispatcher(generator, store), settings)
    pool_task = asyncio.create_task(consumer_pool.run())

    logger.info("Service startup completed", consumers=settings.consumer_concurrency)

    try:
        yield
    finally:
        logger.info("Shutting down activity recommendation service")
        await consumer_pool.stop()
        if not pool_task.done():
            pool_task.cancel()
        await asyncio.gather(pool_task, return_exceptions=True)
        await store.disconnect()
        logger.info("Service shutdown completed")


app = FastAPI(
    title="Activity AI",
    description="Generates AI coaching recommendations for fitness activities",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Liveness probe - simple health check."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


@app.get("/readyz")
async def readiness_check() -> Response:
    """Readiness probe - check consumers and store."""
    checks = {
        "kafka": consumer_pool.is_healthy() if consumer_pool else False,
        "store": await store.health_check() if store else False,
    }
    overall_status = "healthy" if all(checks.values()) else "unhealthy"
    status_code = 200 if overall_status == "healthy" else 503

    return Response(
        content=HealthStatus(status=overall_status, checks=checks).model_dump_json(),
        status_code=status_code,
        media_type="application/json",
    )


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/status")
async def service_status() -> Dict[str, Any]:
    """Service status and processing counters."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "running" if consumer_pool and consumer_pool.is_healthy() else "starting",
        "input_topic": settings.kafka_input_topic,
        "dlq_topic": settings.kafka_dlq_topic,
        "processing": consumer_pool.metrics_summary() if consumer_pool else None,
    }


def _require_store() -> RecommendationStore:
    if store is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return store


async def _lookup(coro) -> Any:
    try:
        return await coro
    except PersistenceFailure as e:
        logger.error("Recommendation lookup failed", error=str(e))
        raise HTTPException(status_code=503, detail="Recommendation store unavailable")


@app.get("/recommendations/{recommendation_id}", response_model=Recommendation)
async def get_recommendation(recommendation_id: str) -> Recommendation:
    found = await _lookup(_require_store().find_by_id(recommendation_id))
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recommendation not found")
    return found


@app.get("/recommendations/activity/{activity_id}", response_model=Recommendation)
async def get_activity_recommendation(activity_id: str) -> Recommendation:
    found = await _lookup(_require_store().find_by_activity_id(activity_id))
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No recommendation found for this activity",
        )
    return found


@app.get("/recommendations/user/{user_id}", response_model=List[Recommendation])
async def get_user_recommendations(user_id: str) -> List[Recommendation]:
    return await _lookup(_require_store().find_by_user_id(user_id))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "activity_ai.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
