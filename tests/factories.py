"""Builders for shipment payloads used across the tests."""
from services.shipping_service.models import CreateShipmentRequest


def shipment_fields(**overrides):
    fields = {
        "tracking_number": "TRK1",
        "sender_name": "A",
        "receiver_name": "B",
        "origin": "X",
        "destination": "Y",
    }
    fields.update(overrides)
    return fields


def shipment_request(**overrides) -> CreateShipmentRequest:
    return CreateShipmentRequest(**shipment_fields(**overrides))
