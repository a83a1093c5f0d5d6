"""
Rate window store - durable per-target send counters.

Uses SQLAlchemy for async database operations with SQLite by default.
Each target keeps the start of its current window and how many operations
were sent inside it; a window that has elapsed counts as empty.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import structlog
from sqlalchemy import Column, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from userop_batcher.config import BatcherConfig, get_config

logger = structlog.get_logger(__name__)

Base = declarative_base()


class RateWindowRecord(Base):
    """Database model for a target's rate window."""

    __tablename__ = "rate_windows"

    target = Column(String(64), primary_key=True)
    window_start = Column(Integer, nullable=False)
    sent_count = Column(Integer, nullable=False, default=0)


@dataclass(frozen=True)
class RateWindow:
    """Snapshot of one target's window."""

    target: str
    window_start: int
    sent_count: int

    def sent_in_window(self, now: int, window_seconds: int) -> int:
        """Operations already sent in the window that contains `now`."""
        if now - self.window_start >= window_seconds:
            return 0
        return self.sent_count


class RateWindowStore:
    """
    Async store for per-target rate windows.

    Targets are stored lowercased.
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        database_url: Optional[str] = None,
        window_seconds: Optional[int] = None,
    ):
        """
        Initialize the store.

        Args:
            config: Batcher configuration
            database_url: Overrides config.database_url
            window_seconds: Overrides config.rate_window_seconds
        """
        self.config = config or get_config()
        self.database_url = database_url or self.config.database_url
        self.window_seconds = window_seconds or self.config.rate_window_seconds
        self._engine = None
        self._session_factory = None

    async def connect(self) -> None:
        """Initialize database connection and create tables."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(self.database_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.debug("rate_store_connected", url=self.database_url.split("///")[0])

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.debug("rate_store_disconnected")

    def _get_session(self) -> AsyncSession:
        if not self._session_factory:
            raise RuntimeError("Rate window store not connected")
        return self._session_factory()

    async def get_window(self, target: str) -> Optional[RateWindow]:
        """Load the stored window for a target, if any."""
        async with self._get_session() as session:
            record = await session.get(RateWindowRecord, target.lower())
            if not record:
                return None
            return RateWindow(
                target=record.target,
                window_start=record.window_start,
                sent_count=record.sent_count,
            )

    async def get_sent_counts(self, targets: Iterable[str], now: int) -> Dict[str, int]:
        """
        Get how many operations each target already sent in its current window.

        Args:
            targets: Target addresses to look up
            now: Current time in unix seconds

        Returns:
            Mapping of lowercased target to sent count (0 when unknown or elapsed)
        """
        keys = {t.lower() for t in targets}
        counts = {key: 0 for key in keys}
        if not keys:
            return counts

        async with self._get_session() as session:
            result = await session.execute(
                select(RateWindowRecord).where(RateWindowRecord.target.in_(keys))
            )
            for record in result.scalars().all():
                window = RateWindow(record.target, record.window_start, record.sent_count)
                counts[record.target] = window.sent_in_window(now, self.window_seconds)

        return counts

    async def record_sent(self, counts: Dict[str, int], now: int) -> None:
        """
        Add sent operations to each target's window.

        A target without a live window starts a new one at `now`.

        Args:
            counts: Operations sent per target
            now: Current time in unix seconds
        """
        async with self._get_session() as session:
            for target, sent in counts.items():
                if sent <= 0:
                    continue
                key = target.lower()
                record = await session.get(RateWindowRecord, key)

                if record is None:
                    session.add(RateWindowRecord(target=key, window_start=now, sent_count=sent))
                elif now - record.window_start >= self.window_seconds:
                    record.window_start = now
                    record.sent_count = sent
                else:
                    record.sent_count += sent

            await session.commit()

        logger.debug("rate_windows_recorded", targets=len(counts))
