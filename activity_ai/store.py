"""Storage for generated recommendations."""

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import asyncpg
import structlog

from .errors import PersistenceFailure
from .models import Recommendation

logger = structlog.get_logger(__name__)


def new_recommendation_id() -> str:
    return uuid.uuid4().hex


class RecommendationStore(ABC):
    """Keyed storage for recommendations.

    At most one recommendation is kept per activity: saving a second one
    for the same activity returns the stored record unchanged, so a
    redelivered event never produces a duplicate.
    """

    async def connect(self) -> None:
        """Open connections. No-op by default."""

    async def disconnect(self) -> None:
        """Release connections. No-op by default."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def save(self, recommendation: Recommendation) -> Recommendation:
        """Persist a recommendation and return it with its id set."""

    @abstractmethod
    async def find_by_id(self, recommendation_id: str) -> Optional[Recommendation]:
        ...

    @abstractmethod
    async def find_by_activity_id(self, activity_id: str) -> Optional[Recommendation]:
        ...

    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> List[Recommendation]:
        ...


class InMemoryRecommendationStore(RecommendationStore):
    """Process-local store, used for development and tests."""

    def __init__(self):
        self._by_id: Dict[str, Recommendation] = {}
        self._by_activity: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, recommendation: Recommendation) -> Recommendation:
        async with self._lock:
            existing_id = self._by_activity.get(recommendation.activity_id)
            if existing_id is not None:
                logger.info(
                    "Recommendation already stored for activity",
                    activity_id=recommendation.activity_id,
                    recommendation_id=existing_id,
                )
                return self._by_id[existing_id].model_copy()

            saved = recommendation.model_copy(
                update={"id": recommendation.id or new_recommendation_id()}
            )
            self._by_id[saved.id] = saved
            self._by_activity[saved.activity_id] = saved.id
            return saved.model_copy()

    async def find_by_id(self, recommendation_id: str) -> Optional[Recommendation]:
        found = self._by_id.get(recommendation_id)
        return found.model_copy() if found else None

    async def find_by_activity_id(self, activity_id: str) -> Optional[Recommendation]:
        recommendation_id = self._by_activity.get(activity_id)
        if recommendation_id is None:
            return None
        return await self.find_by_id(recommendation_id)

    async def find_by_user_id(self, user_id: str) -> List[Recommendation]:
        matches = [r for r in self._by_id.values() if r.user_id == user_id]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy() for r in matches]

    def __len__(self) -> int:
        return len(self._by_id)


CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS recommendations (
    id TEXT PRIMARY KEY,
    activity_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    activity_type TEXT NOT NULL,
    analysis TEXT NOT NULL,
    improvements JSONB NOT NULL,
    suggestions JSONB NOT NULL,
    safety JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    UNIQUE(activity_id)
)
"""

INSERT_SQL = """
INSERT INTO recommendations (
    id, activity_id, user_id, activity_type, analysis,
    improvements, suggestions, safety, created_at
) VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8::jsonb, $9)
ON CONFLICT (activity_id) DO NOTHING
RETURNING *
"""

SELECT_COLUMNS = (
    "SELECT id, activity_id, user_id, activity_type, analysis, "
    "improvements, suggestions, safety, created_at FROM recommendations"
)


class PostgresRecommendationStore(RecommendationStore):
    """Recommendation store backed by PostgreSQL through asyncpg."""

    def __init__(self, database_url: str, min_size: int = 1, max_size: int = 5):
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Connect to the database and create the table if needed."""
        self.pool = await asyncpg.create_pool(
            self.database_url,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=60,
        )
        async with self.pool.acquire() as conn:
            await conn.execute(CREATE_TABLE_SQL)
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_recommendations_user_id "
                "ON recommendations (user_id, created_at DESC)"
            )
        logger.info("Database connection established")

    async def disconnect(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def health_check(self) -> bool:
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise PersistenceFailure("Store not connected")
        return self.pool

    @staticmethod
    def _from_row(row: Any) -> Recommendation:
        def as_list(value: Any) -> List[str]:
            return json.loads(value) if isinstance(value, str) else list(value)

        return Recommendation(
            id=row["id"],
            activity_id=row["activity_id"],
            user_id=row["user_id"],
            activity_type=row["activity_type"],
            analysis=row["analysis"],
            improvements=as_list(row["improvements"]),
            suggestions=as_list(row["suggestions"]),
            safety=as_list(row["safety"]),
            created_at=row["created_at"],
        )

    async def save(self, recommendation: Recommendation) -> Recommendation:
        pool = self._require_pool()
        recommendation_id = recommendation.id or new_recommendation_id()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    INSERT_SQL,
                    recommendation_id,
                    recommendation.activity_id,
                    recommendation.user_id,
                    recommendation.activity_type.value,
                    recommendation.analysis,
                    json.dumps(recommendation.improvements),
                    json.dumps(recommendation.suggestions),
                    json.dumps(recommendation.safety),
                    recommendation.created_at,
                )
                if row is None:
                    logger.info(
                        "Recommendation already stored for activity",
                        activity_id=recommendation.activity_id,
                    )
                    row = await conn.fetchrow(
                        f"{SELECT_COLUMNS} WHERE activity_id = $1",
                        recommendation.activity_id,
                    )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to save recommendation: {e}") from e

        if row is None:
            raise PersistenceFailure(
                f"Recommendation for activity {recommendation.activity_id} vanished"
            )
        return self._from_row(row)

    async def _fetch_one(self, where: str, value: str) -> Optional[Recommendation]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(f"{SELECT_COLUMNS} WHERE {where} = $1", value)
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to load recommendation: {e}") from e
        return self._from_row(row) if row else None

    async def find_by_id(self, recommendation_id: str) -> Optional[Recommendation]:
        return await self._fetch_one("id", recommendation_id)

    async def find_by_activity_id(self, activity_id: str) -> Optional[Recommendation]:
        return await self._fetch_one("activity_id", activity_id)

    async def find_by_user_id(self, user_id: str) -> List[Recommendation]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"{SELECT_COLUMNS} WHERE user_id = $1 ORDER BY created_at DESC",
                    user_id,
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to list recommendations: {e}") from e
        return [self._from_row(row) for row in rows]


def create_store(settings) -> RecommendationStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryRecommendationStore()
    if settings.store_backend == "postgres":
        if not settings.database_url:
            raise ValueError("database_url is required for the postgres store")
        return PostgresRecommendationStore(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
        )
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
