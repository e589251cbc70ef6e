"""
Megawatt Series Ledger: API Server
==================================

Thin HTTP adapter over SeriesLedger. No business logic lives here.

Endpoints:
- POST /api/v1/categories/{category}/events            -> append one update
- GET  /api/v1/categories/{category}/series/{date}     -> 96-point series
- GET  /api/v1/categories/{category}/series/{date}/summary
- GET  /api/v1/categories/{category}/revisions?instant=
- GET  /api/v1/categories                              -> known categories
- GET  /health

Error mapping: ValidationError -> 422, CategoryError -> 400,
StorageError -> 503.

Usage:
    uvicorn mwledger.api.server:app --reload
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr

from ..contracts.base import CategoryError, LedgerError, StorageError, ValidationError
from ..contracts.events import AuditEventType
from ..engine import LedgerConfig, SeriesLedger
from .mapper import (
    map_event_receipt, map_revisions_to_dto, map_series_to_dto, map_summary_to_dto
)

logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class EntryIn(BaseModel):
    instant: str
    # Strict so JSON booleans are rejected instead of read as 0/1
    value: Optional[Union[StrictInt, StrictFloat, StrictStr]] = None


class AppendRequest(BaseModel):
    entries: List[EntryIn]


class AppendResponse(BaseModel):
    event_id: int
    arrival_timestamp: str


class PointOut(BaseModel):
    instant: str
    value: str


class SeriesResponse(BaseModel):
    category: str
    date: str
    cutoff: Optional[str] = None
    points: List[PointOut]


class SummaryResponse(BaseModel):
    category: str
    date: str
    cutoff: Optional[str] = None
    total: str
    average: str
    peak: str
    count: int
    reported: int


# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

_STATUS_BY_ERROR = (
    (ValidationError, 422),
    (CategoryError, 400),
    (StorageError, 503),
)


def _status_for(exc: LedgerError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _get_ledger(request: Request) -> SeriesLedger:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(status_code=503, detail="Ledger not initialized")
    return ledger


def create_app(ledger: Optional[SeriesLedger] = None) -> FastAPI:
    """
    Build the FastAPI application.

    When no ledger is injected, one is built from MWL_* environment
    variables on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "ledger", None) is None:
            config = LedgerConfig.from_env()
            logger.info(
                "Initializing ledger (backend=%s, dir=%s)",
                config.storage.backend_type, config.storage.storage_dir
            )
            owned = SeriesLedger(config)
            app.state.ledger = owned

        yield

        if owned is not None:
            logger.info("Shutting down ledger")
            owned.close()
            app.state.ledger = None

    app = FastAPI(
        title="Megawatt Series Ledger API",
        version="0.1.0",
        description="Append-only quarter-hour series with point-in-time reconstruction",
        lifespan=lifespan
    )
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status = _status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        ledger_instance = getattr(request.app.state, "ledger", None)
        if ledger_instance is not None:
            ledger_instance.observability_layer.log_audit(
                "request_failed", AuditEventType.ERROR, layer="api",
                path=request.url.path, error_code=exc.code.name, status=status
            )
        return JSONResponse(
            status_code=status,
            content={"detail": {"code": exc.code.name, "message": str(exc)}}
        )

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    @app.get("/health")
    async def health_check(request: Request):
        """System status."""
        ledger_instance = _get_ledger(request)
        return {
            "status": "online",
            "head_event_id": ledger_instance.head.value,
            "event_count": ledger_instance.event_count,
        }

    @app.post(
        "/api/v1/categories/{category}/events",
        response_model=AppendResponse,
        status_code=201
    )
    def append_event(category: str, body: AppendRequest, request: Request):
        """Append one update; arrival time is stamped by the server."""
        ledger_instance = _get_ledger(request)
        event_id = ledger_instance.append(
            category,
            [{"instant": e.instant, "value": e.value} for e in body.entries]
        )
        return map_event_receipt(ledger_instance.get_event(event_id))

    @app.get(
        "/api/v1/categories/{category}/series/{date}",
        response_model=SeriesResponse
    )
    def get_series(
        category: str,
        date: str,
        request: Request,
        cutoff: Optional[str] = Query(default=None)
    ):
        """The 96-point series as of cutoff (latest when omitted)."""
        series = _get_ledger(request).reconstruct(category, date, cutoff)
        return map_series_to_dto(series)

    @app.get(
        "/api/v1/categories/{category}/series/{date}/summary",
        response_model=SummaryResponse
    )
    def get_summary(
        category: str,
        date: str,
        request: Request,
        cutoff: Optional[str] = Query(default=None)
    ):
        summary = _get_ledger(request).summarize(category, date, cutoff)
        return map_summary_to_dto(summary)

    @app.get("/api/v1/categories/{category}/revisions")
    def get_revisions(category: str, request: Request, instant: str = Query(...)):
        """Every value written to one instant, in replay order."""
        return map_revisions_to_dto(_get_ledger(request).revisions(category, instant))

    @app.get("/api/v1/categories")
    def list_categories(request: Request):
        ledger_instance = _get_ledger(request)
        return {
            "categories": [
                {
                    "category": category,
                    "dates": [d.isoformat() for d in ledger_instance.dates_for(category)],
                }
                for category in ledger_instance.categories()
            ]
        }

    return app


app = create_app()
