"""Request and response models for the Shipping Service."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models import Shipment, TrackingEvent


class CreateShipmentRequest(BaseModel):
    """Request to create a shipment.

    Required fields are optional here so that missing and blank values are
    reported the same way by the service.
    """
    tracking_number: Optional[str] = None
    sender_name: Optional[str] = None
    receiver_name: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    weight: Optional[float] = None
    category: Optional[str] = None

    @field_validator("weight", mode="before")
    @classmethod
    def blank_weight_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UpdateStatusRequest(BaseModel):
    """Request to record a status change."""
    status: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class SuccessResponse(BaseModel):
    """Acknowledgement for update and delete."""
    success: bool = True


class ShipmentDetail(Shipment):
    """Shipment with its tracking history, newest first."""
    events: List[TrackingEvent] = Field(default_factory=list)


class StatusCount(BaseModel):
    status: str
    count: int


class CategoryCount(BaseModel):
    category: str
    count: int


class DailyCount(BaseModel):
    date: str
    count: int


class Totals(BaseModel):
    total: int = 0
    delivered: int = 0
    in_transit: int = 0
    pending: int = 0


class Stats(BaseModel):
    """Dashboard aggregates."""

    model_config = ConfigDict(populate_by_name=True)

    status_counts: List[StatusCount] = Field(default_factory=list, alias="statusCounts")
    category_counts: List[CategoryCount] = Field(default_factory=list, alias="categoryCounts")
    daily_shipments: List[DailyCount] = Field(default_factory=list, alias="dailyShipments")
    totals: Totals = Field(default_factory=Totals)


class ExternalCheckpoint(BaseModel):
    """One carrier checkpoint, normalised."""
    date: Optional[str] = None
    status: Optional[str] = None
    location: str = ""
    tag: Optional[str] = None


class ExternalTracking(BaseModel):
    """Result of a third-party tracking lookup."""
    events: List[ExternalCheckpoint] = Field(default_factory=list)
    current_status: Optional[str] = None
    slug: Optional[str] = None
    error: Optional[str] = None
