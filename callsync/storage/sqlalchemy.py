"""
SQLAlchemy Storage Adapter

Async SQLAlchemy 2.0 implementation of the snapshot sink.

Compatible with:
- SQLite (aiosqlite)
- PostgreSQL (asyncpg)
- MySQL (aiomysql)

All operations are async. No sync DB calls.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from callsync.storage.ports import (
    SnapshotSink,
    SessionSnapshot,
    PersistenceError,
)
from callsync.storage.models import CallSessionModel


# =============================================================================
# Converters
# =============================================================================

def snapshot_to_model(snapshot: SessionSnapshot) -> CallSessionModel:
    """Convert port record to SQLAlchemy model."""
    return CallSessionModel(
        id=snapshot.id,
        caller_id=snapshot.caller_id,
        callee_id=snapshot.callee_id,
        channel_name=snapshot.channel_name,
        duration_limit=snapshot.duration_limit,
        start_time=snapshot.start_time,
        status=snapshot.status,
        warning_sent=snapshot.warning_sent,
        end_reason=snapshot.end_reason,
        created_at=snapshot.created_at,
        ended_at=snapshot.ended_at,
    )


def model_to_snapshot(model: CallSessionModel) -> SessionSnapshot:
    """Convert SQLAlchemy model to port record."""
    return SessionSnapshot(
        id=model.id,
        caller_id=model.caller_id,
        callee_id=model.callee_id,
        channel_name=model.channel_name,
        duration_limit=model.duration_limit,
        start_time=model.start_time,
        status=model.status,
        warning_sent=model.warning_sent,
        end_reason=model.end_reason,
        created_at=model.created_at,
        ended_at=model.ended_at,
    )


# =============================================================================
# SQLAlchemy Snapshot Sink
# =============================================================================

class SqlAlchemySnapshotSink(SnapshotSink):
    """
    SQLAlchemy implementation of the snapshot sink.

    Upserts via Session.merge so repeated writes for one session
    overwrite a single row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        self._session_factory = session_factory
        self._engine = engine

    async def write(self, snapshot: SessionSnapshot) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(snapshot_to_model(snapshot))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to write snapshot {snapshot.id}: {e}"
            ) from e

    async def get(self, session_id: str) -> SessionSnapshot | None:
        async with self._session_factory() as session:
            model = await session.get(CallSessionModel, session_id)
            if model is None:
                return None
            return model_to_snapshot(model)

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
