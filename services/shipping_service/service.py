"""Shipment service: validation, status history, search and dashboard stats."""
import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import Shipment, ShipmentStatus, StoreState, TrackingEvent, utcnow
from shared.store import DocumentStore

from .models import (
    CategoryCount,
    CreateShipmentRequest,
    DailyCount,
    ShipmentDetail,
    Stats,
    StatusCount,
    Totals,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("tracking_number", "sender_name", "receiver_name", "origin", "destination")
SEARCH_FIELDS = REQUIRED_FIELDS
STATUS_FILTER_ALL = "All"
STATS_WINDOW_DAYS = 30

ShipmentId = Union[int, str]


def parse_shipment_id(shipment_id: ShipmentId) -> int:
    """Resolve an opaque identifier; anything unparseable matches no shipment."""
    if isinstance(shipment_id, int):
        return shipment_id
    try:
        return int(str(shipment_id).strip())
    except ValueError:
        raise NotFoundError("Shipment not found")


def parse_status(status: Optional[str]) -> ShipmentStatus:
    try:
        return ShipmentStatus(status)
    except ValueError:
        raise ValidationError("Invalid status")


class ShipmentService:
    """Shipment operations over a document store.

    Every mutation is a load-mutate-save cycle; the lock serialises those
    cycles within this process.
    """

    def __init__(
        self,
        store: DocumentStore,
        initial_status: Union[ShipmentStatus, str] = ShipmentStatus.IN_TRANSIT,
    ):
        self.store = store
        self.initial_status = ShipmentStatus(initial_status)
        self._lock = asyncio.Lock()

    async def list_shipments(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Shipment]:
        """
        List shipments, newest first.

        Args:
            search: Case-insensitive substring matched against tracking number,
                sender, receiver, origin and destination
            status: Exact status to keep; ``None`` or ``"All"`` keeps everything
        """
        state = await self.store.load()
        shipments = state.shipments

        if search:
            needle = search.lower()
            shipments = [
                s for s in shipments
                if any(needle in getattr(s, field).lower() for field in SEARCH_FIELDS)
            ]
        if status and status != STATUS_FILTER_ALL:
            shipments = [s for s in shipments if s.status.value == status]

        return sorted(shipments, key=lambda s: s.created_at, reverse=True)

    async def get_shipment(self, shipment_id: ShipmentId) -> ShipmentDetail:
        """Get a shipment with its events, newest first."""
        key = parse_shipment_id(shipment_id)
        state = await self.store.load()
        shipment = self._find(state, key)

        events = sorted(
            (e for e in state.events if e.shipment_id == key),
            key=lambda e: e.event_time,
            reverse=True,
        )
        return ShipmentDetail(**shipment.model_dump(), events=events)

    async def create_shipment(self, request: CreateShipmentRequest) -> Shipment:
        """
        Create a shipment and its first tracking event.

        Raises:
            ValidationError: a required field is missing or blank, or the
                weight is not a positive number
            ConflictError: the tracking number is already in use
        """
        fields = {name: (getattr(request, name) or "").strip() for name in REQUIRED_FIELDS}
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        weight = request.weight
        if weight is not None and (not math.isfinite(weight) or weight <= 0):
            raise ValidationError("Weight must be a positive number")

        category = (request.category or "").strip() or "General"

        async with self._lock:
            state = await self.store.load()
            if any(s.tracking_number == fields["tracking_number"] for s in state.shipments):
                raise ConflictError("Tracking number already exists")

            now = utcnow()
            shipment = Shipment(
                id=state.next_shipment_id,
                weight=weight,
                category=category,
                status=self.initial_status,
                created_at=now,
                updated_at=now,
                **fields,
            )
            state.next_shipment_id += 1
            state.shipments.append(shipment)
            self._append_event(
                state,
                shipment_id=shipment.id,
                status=self.initial_status,
                location=shipment.origin,
                notes="Shipment created",
                event_time=now,
            )
            await self.store.save(state)

        logger.info(f"Created shipment {shipment.id} ({shipment.tracking_number})")
        return shipment

    async def update_status(
        self,
        shipment_id: ShipmentId,
        status: Optional[str],
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        """Record a status change and append the matching event."""
        new_status = parse_status(status)
        key = parse_shipment_id(shipment_id)

        async with self._lock:
            state = await self.store.load()
            shipment = self._find(state, key)

            now = utcnow()
            shipment.status = new_status
            shipment.updated_at = now
            self._append_event(
                state,
                shipment_id=key,
                status=new_status,
                location=location or "",
                notes=notes or "",
                event_time=now,
            )
            await self.store.save(state)

        logger.info(f"Shipment {key} moved to {new_status.value}")

    async def delete_shipment(self, shipment_id: ShipmentId):
        """Delete a shipment together with all of its events."""
        key = parse_shipment_id(shipment_id)

        async with self._lock:
            state = await self.store.load()
            shipment = self._find(state, key)

            state.shipments = [s for s in state.shipments if s.id != key]
            state.events = [e for e in state.events if e.shipment_id != key]
            await self.store.save(state)

        logger.info(f"Deleted shipment {key} ({shipment.tracking_number})")

    async def compute_stats(self, now: Optional[datetime] = None) -> Stats:
        """
        Aggregate counts for the dashboard.

        Status and category counts keep first-seen order. Daily counts cover
        shipments created in the last 30 days, grouped by UTC date.
        """
        state = await self.store.load()
        cutoff = (now or utcnow()) - timedelta(days=STATS_WINDOW_DAYS)

        by_status: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        by_day: Dict[str, int] = {}

        for shipment in state.shipments:
            status = shipment.status.value
            by_status[status] = by_status.get(status, 0) + 1
            by_category[shipment.category] = by_category.get(shipment.category, 0) + 1
            if shipment.created_at >= cutoff:
                day = shipment.created_at.date().isoformat()
                by_day[day] = by_day.get(day, 0) + 1

        return Stats(
            status_counts=[StatusCount(status=k, count=v) for k, v in by_status.items()],
            category_counts=[CategoryCount(category=k, count=v) for k, v in by_category.items()],
            daily_shipments=[DailyCount(date=k, count=by_day[k]) for k in sorted(by_day)],
            totals=Totals(
                total=len(state.shipments),
                delivered=by_status.get(ShipmentStatus.DELIVERED.value, 0),
                in_transit=by_status.get(ShipmentStatus.IN_TRANSIT.value, 0),
                pending=by_status.get(ShipmentStatus.PENDING.value, 0),
            ),
        )

    @staticmethod
    def _find(state: StoreState, shipment_id: int) -> Shipment:
        for shipment in state.shipments:
            if shipment.id == shipment_id:
                return shipment
        raise NotFoundError("Shipment not found")

    @staticmethod
    def _append_event(state: StoreState, **fields) -> TrackingEvent:
        event = TrackingEvent(id=state.next_event_id, **fields)
        state.next_event_id += 1
        state.events.append(event)
        return event
