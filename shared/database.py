"""Database configuration and the SQL store backend."""
import logging
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, delete, insert, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.orm import declarative_base

from .errors import StoreError
from .models import StoreState
from .store import DocumentStore, parse_state

logger = logging.getLogger(__name__)

Base = declarative_base()


class ShipmentRow(Base):
    """Shipment table."""

    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, autoincrement=False)
    tracking_number = Column(Text, nullable=False, unique=True)
    sender_name = Column(Text, nullable=False)
    receiver_name = Column(Text, nullable=False)
    origin = Column(Text, nullable=False)
    destination = Column(Text, nullable=False)
    weight = Column(Float, nullable=True)
    category = Column(Text, nullable=False, default="General")
    status = Column(String(30), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_shipments_status_created", "status", "created_at"),
    )


class TrackingEventRow(Base):
    """Status checkpoints, deleted together with their shipment."""

    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, autoincrement=False)
    shipment_id = Column(Integer, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(30), nullable=False)
    location = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    event_time = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_tracking_events_shipment_time", "shipment_id", "event_time"),
    )


class SequenceRow(Base):
    """Next identifier per collection, so ids are never reused."""

    __tablename__ = "sequences"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy connection URL (async driver)
            echo: Whether to echo SQL queries
        """
        engine_options: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_options.update(pool_size=10, max_overflow=20)

        self.engine = create_async_engine(database_url, **engine_options)

    async def create_tables(self):
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def drop_tables(self):
        """Drop all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    async def close(self):
        """Close database connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")


def _rows(result) -> List[Dict[str, Any]]:
    return [dict(row) for row in result.mappings().all()]


def _row(document) -> Dict[str, Any]:
    values = document.model_dump()
    values["status"] = document.status.value
    return values


class SQLStore(DocumentStore):
    """State kept in relational tables.

    ``save`` replaces every row inside one transaction, so readers see
    either the previous state or the new one.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.database: Database = None

    async def open(self):
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self.database = Database(self.database_url, echo=self.echo)
        try:
            await self.database.create_tables()
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(f"Database unavailable: {e}") from e

    async def close(self):
        if self.database:
            await self.database.close()
            self.database = None

    async def load(self) -> StoreState:
        if self.database is None:
            raise RuntimeError("SQL store not opened")
        try:
            async with self.database.engine.connect() as conn:
                shipments = _rows(await conn.execute(
                    select(ShipmentRow.__table__).order_by(ShipmentRow.id)
                ))
                events = _rows(await conn.execute(
                    select(TrackingEventRow.__table__).order_by(TrackingEventRow.id)
                ))
                sequences = {
                    row["name"]: row["value"]
                    for row in _rows(await conn.execute(select(SequenceRow.__table__)))
                }
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(f"Database read failed: {e}") from e

        return parse_state(
            {
                "shipments": shipments,
                "events": events,
                "nextShipmentId": sequences.get("shipments", 1),
                "nextEventId": sequences.get("events", 1),
            },
            "database",
        )

    async def save(self, state: StoreState):
        if self.database is None:
            raise RuntimeError("SQL store not opened")
        try:
            async with self.database.engine.begin() as conn:
                await self._replace_all(conn, state)
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(f"Database write failed: {e}") from e

    async def _replace_all(self, conn: AsyncConnection, state: StoreState):
        await conn.execute(delete(TrackingEventRow.__table__))
        await conn.execute(delete(ShipmentRow.__table__))
        await conn.execute(delete(SequenceRow.__table__))

        if state.shipments:
            await conn.execute(
                insert(ShipmentRow.__table__),
                [_row(shipment) for shipment in state.shipments],
            )
        if state.events:
            await conn.execute(
                insert(TrackingEventRow.__table__),
                [_row(event) for event in state.events],
            )
        await conn.execute(
            insert(SequenceRow.__table__),
            [
                {"name": "shipments", "value": state.next_shipment_id},
                {"name": "events", "value": state.next_event_id},
            ],
        )
