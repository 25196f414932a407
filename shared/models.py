"""Shipment and tracking event documents persisted by every store backend."""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Some backends (sqlite) hand back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ShipmentStatus(str, Enum):
    """Shipment status. Any status may follow any other."""
    PENDING = "Pending"
    PICKED_UP = "Picked Up"
    IN_TRANSIT = "In Transit"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    FAILED = "Failed"
    RETURNED = "Returned"


class Shipment(BaseModel):
    """A tracked parcel."""

    id: int
    tracking_number: str
    sender_name: str
    receiver_name: str
    origin: str
    destination: str
    weight: Optional[float] = None
    category: str = "General"
    status: ShipmentStatus
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TrackingEvent(BaseModel):
    """A status checkpoint belonging to one shipment. Never mutated."""

    id: int
    shipment_id: int
    status: ShipmentStatus
    location: str = ""
    notes: str = ""
    event_time: datetime

    @field_validator("event_time")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("location", "notes", mode="before")
    @classmethod
    def none_to_empty(cls, value):
        return "" if value is None else value


class StoreState(BaseModel):
    """The whole persisted document.

    Key names match the JSON database written by earlier versions of the
    tracker, so existing ``db.json`` files and gists load unchanged.
    """

    model_config = ConfigDict(populate_by_name=True)

    shipments: List[Shipment] = Field(default_factory=list)
    events: List[TrackingEvent] = Field(default_factory=list)
    next_shipment_id: int = Field(default=1, alias="nextShipmentId")
    next_event_id: int = Field(default=1, alias="nextEventId")

    @model_validator(mode="after")
    def counters_past_existing_ids(self) -> "StoreState":
        # Seeded or stale documents may lack counters or lag behind their ids
        if self.shipments:
            self.next_shipment_id = max(self.next_shipment_id, max(s.id for s in self.shipments) + 1)
        if self.events:
            self.next_event_id = max(self.next_event_id, max(e.id for e in self.events) + 1)
        return self

    def to_document(self) -> dict:
        """Serialize to the JSON-ready document shape."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict) -> "StoreState":
        """Parse a JSON document; raises pydantic.ValidationError if malformed."""
        return cls.model_validate(document)
