"""Shipping Service FastAPI application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from shared.config import Settings
from shared.errors import ExternalServiceError, TrackerError
from shared.models import Shipment
from shared.store import DocumentStore, create_store

from .external_tracking import AfterShipClient
from .models import (
    CreateShipmentRequest,
    ShipmentDetail,
    Stats,
    SuccessResponse,
    UpdateStatusRequest,
)
from .service import ShipmentService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> ShipmentService:
    """Get the shipment service bound to this application."""
    return request.app.state.shipment_service


def get_tracker(request: Request) -> AfterShipClient:
    """Get the external tracking client bound to this application."""
    return request.app.state.tracker


# API Endpoints
@router.get("/api/shipments", response_model=List[Shipment])
async def list_shipments(
    search: Optional[str] = None,
    status: Optional[str] = None,
    service: ShipmentService = Depends(get_service),
):
    """List shipments, newest first, optionally filtered."""
    return await service.list_shipments(search=search, status=status)


@router.get("/api/shipments/{shipment_id}", response_model=ShipmentDetail)
async def get_shipment(shipment_id: str, service: ShipmentService = Depends(get_service)):
    """Get a shipment with its tracking events."""
    return await service.get_shipment(shipment_id)


@router.post("/api/shipments", response_model=Shipment, status_code=201)
async def create_shipment(
    request: CreateShipmentRequest,
    service: ShipmentService = Depends(get_service),
):
    """Create a shipment and record its first tracking event."""
    return await service.create_shipment(request)


@router.patch("/api/shipments/{shipment_id}/status", response_model=SuccessResponse)
async def update_status(
    shipment_id: str,
    request: UpdateStatusRequest,
    service: ShipmentService = Depends(get_service),
):
    """Record a status change."""
    await service.update_status(
        shipment_id,
        request.status,
        location=request.location,
        notes=request.notes,
    )
    return SuccessResponse()


@router.delete("/api/shipments/{shipment_id}", response_model=SuccessResponse)
async def delete_shipment(shipment_id: str, service: ShipmentService = Depends(get_service)):
    """Delete a shipment and its events."""
    await service.delete_shipment(shipment_id)
    return SuccessResponse()


@router.get("/api/stats", response_model=Stats)
async def get_stats(service: ShipmentService = Depends(get_service)):
    """Get dashboard aggregates."""
    return await service.compute_stats()


@router.get("/api/external-track/{tracking_number}")
async def external_track(tracking_number: str, tracker: AfterShipClient = Depends(get_tracker)):
    """Look up a tracking number with the external carrier provider."""
    try:
        result = await tracker.track(tracking_number)
    except ExternalServiceError as e:
        logger.error(f"External tracking failed for {tracking_number}: {e.message}")
        return JSONResponse(status_code=500, content={"events": [], "error": e.message})

    return result.model_dump(exclude_none=True)


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {"status": "healthy", "service": request.app.state.settings.service_name}


# Error translation
async def handle_tracker_error(request: Request, exc: TrackerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _error_field(error) -> str:
    # A missing body reports loc ("body",) alone
    return ".".join(str(part) for part in error["loc"] if part != "body") or "body"


async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    problems = [f"{_error_field(error)}: {error['msg']}" for error in exc.errors()]
    message = "Invalid request" + (f" ({'; '.join(problems)})" if problems else "")
    logger.warning(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(status_code=400, content={"error": message})


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    tracker: Optional[AfterShipClient] = None,
) -> FastAPI:
    """
    Build the application around an explicit store handle.

    Args:
        settings: Configuration (read from the environment when omitted)
        store: Document store (built from ``settings`` when omitted)
        tracker: External tracking client (built from ``settings`` when omitted)
    """
    settings = settings or Settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    store = store or create_store(settings)
    tracker = tracker or AfterShipClient(
        settings.aftership_key,
        timeout=settings.http_timeout,
        max_attempts=settings.http_max_attempts,
    )
    service = ShipmentService(store, initial_status=settings.initial_status)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for the application."""
        # Startup
        logger.info(f"Starting Shipping Service ({settings.storage_backend} storage)...")
        await store.open()
        await tracker.open()
        logger.info("Shipping Service started successfully")

        yield

        # Shutdown
        logger.info("Shutting down Shipping Service...")
        await tracker.close()
        await store.close()

    app = FastAPI(title="Shipping Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.shipment_service = service
    app.state.tracker = tracker

    app.add_exception_handler(TrackerError, handle_tracker_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)

    # Frontend last, so API routes take precedence
    if settings.static_dir:
        if Path(settings.static_dir).is_dir():
            app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
        else:
            logger.warning(f"Static directory {settings.static_dir} not found; frontend disabled")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.service_port)
