import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import DeadLetter

logger = structlog.get_logger(__name__)


class DeadLetterRepository:

    @staticmethod
    async def create(db: AsyncSession, dead_letter: DeadLetter) -> DeadLetter:
        db.add(dead_letter)
        await db.commit()
        return dead_letter

    @staticmethod
    async def list_all(db: AsyncSession) -> list[DeadLetter]:
        result = await db.execute(select(DeadLetter).order_by(DeadLetter.created_at.desc(), DeadLetter.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return await db.scalar(select(func.count(DeadLetter.id)))


class DeadLetterStore:
    """Writes dead letters in their own session, outside any request transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def record(self, source: str, payload: str, error: str, attempts: int) -> None:
        try:
            async with self.session_factory() as db:
                await DeadLetterRepository.create(
                    db, DeadLetter(source=source, payload=payload, error=error, attempts=attempts)
                )
        except Exception as e:
            # Last resort: the payload survives in the log line
            logger.error("dead_letter_write_failed", source=source, payload=payload, error=str(e))
            return
        logger.error("notification_dead_lettered", source=source, attempts=attempts, error=error)
