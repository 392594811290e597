"""FastAPI gateway exposing health, authentication and plot endpoints."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthService
from .config import Settings
from .database import Database
from .errors import ConflictError, NotFoundError, PlotsError, ValidationError
from .models import Identity, Plot, PlotDraft, PlotStatus
from .security import BearerAuth

logger = logging.getLogger("plots.api")
access_logger = logging.getLogger("plots.access")

SERVICE_NAME = "Available Plots Service"
SERVICE_VERSION = "2.0.0"
MAX_PRICE = Decimal("9999999999.99")
_PRICE_QUANTUM = Decimal("0.01")

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'self'; object-src 'none'; frame-ancestors 'none'",
}


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class AdminUserResponse(BaseModel):
    id: str
    username: str
    email: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    user: AdminUserResponse


class IdentityResponse(BaseModel):
    id: str
    username: str
    issued_at: datetime
    expires_at: datetime


class VerifyResponse(BaseModel):
    success: bool = True
    user: IdentityResponse


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str
    version: str
    database: str


class PlotCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plot_number: str = Field(..., alias="plotNumber", min_length=3, max_length=20)
    location: str = Field(..., min_length=3, max_length=200)
    size: str = Field(..., min_length=1, max_length=50)
    price: Decimal = Field(..., gt=0, le=MAX_PRICE)
    status: PlotStatus = PlotStatus.AVAILABLE
    description: Optional[str] = Field(default=None, max_length=1000)
    amenities: List[str] = Field(default_factory=list)

    @field_validator("price")
    @classmethod
    def _price_in_cents(cls, value: Decimal) -> Decimal:
        return _check_price(value)

    @field_validator("description", mode="before")
    @classmethod
    def _reject_null_description(cls, value: object) -> object:
        if value is None:
            raise ValueError("description must not be null")
        return value

    def to_draft(self) -> PlotDraft:
        return PlotDraft(
            plot_number=self.plot_number,
            location=self.location,
            size=self.size,
            price=self.price,
            status=self.status,
            description=self.description,
            amenities=list(self.amenities),
        )


class PlotUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plot_number: Optional[str] = Field(default=None, alias="plotNumber", min_length=3, max_length=20)
    location: Optional[str] = Field(default=None, min_length=3, max_length=200)
    size: Optional[str] = Field(default=None, min_length=1, max_length=50)
    price: Optional[Decimal] = Field(default=None, gt=0, le=MAX_PRICE)
    status: Optional[PlotStatus] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    amenities: Optional[List[str]] = None

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value: object, info: ValidationInfo) -> object:
        # Omitted fields keep their value; an explicit null is a client error.
        if value is None:
            raise ValueError(f"{info.field_name} must not be null")
        return value

    @field_validator("price")
    @classmethod
    def _price_in_cents(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _check_price(value)


class PlotResponse(BaseModel):
    id: str
    plot_number: str
    location: str
    size: str
    price: Decimal
    status: PlotStatus
    description: str
    amenities: List[str]
    created_at: datetime
    updated_at: datetime


class PlotEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: PlotResponse


class PlotListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[PlotResponse]


def plot_to_response(plot: Plot) -> PlotResponse:
    return PlotResponse(
        id=plot.id,
        plot_number=plot.plot_number,
        location=plot.location,
        size=plot.size,
        price=plot.price,
        status=plot.status,
        description=plot.description,
        amenities=list(plot.amenities),
        created_at=plot.created_at,
        updated_at=plot.updated_at,
    )


def _parse_price_filter(name: str, value: Optional[str]) -> Optional[Decimal]:
    if value is None or not value.strip():
        return None
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation:
        parsed = None
    if parsed is None or not parsed.is_finite():
        logger.debug("Ignoring non-numeric %s filter %r", name, value)
        return None
    return parsed


def _parse_status_filter(value: Optional[str]) -> Optional[str]:
    # Unknown statuses are passed through and simply match no plots.
    if value is None or not value.strip():
        return None
    return value.strip().lower()


def _check_price(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value.quantize(_PRICE_QUANTUM) <= 0:
        raise ValueError("price must be at least 0.01")
    return value


def _format_validation_errors(exc: RequestValidationError) -> List[str]:
    details: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "Invalid value"))
        details.append(f"{location}: {message}" if location else message)
    return details


def _error_payload(message: str, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": False, "message": message}
    payload.update(extra)
    return payload


def _initialise_database(database: Database, settings: Settings) -> Database:
    database.initialize(
        admin_username=settings.admin_username,
        admin_email=settings.admin_email,
        admin_password=settings.admin_password,
        seed=settings.seed,
    )
    return database


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    auth_service: AuthService | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()

    if database is None:
        database = Database.from_settings(settings)
        database.connect()
        _initialise_database(database, settings)
    elif initialize_database:
        _initialise_database(database, settings)

    if auth_service is None:
        auth_service = AuthService(database, secret=settings.jwt_secret)

    require_identity = BearerAuth(auth_service)

    app = FastAPI(
        title="Plots Administration Service",
        description="Authenticated CRUD over real-estate plots",
        version=SERVICE_VERSION,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.auth_service = auth_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path, exc_info=exc)
        detail = str(exc) if settings.is_development else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_payload("Something went wrong!", error=detail),
            headers=_SECURITY_HEADERS,
        )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = internal_error(request, exc)
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        access_logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    def get_db() -> Database:
        return database

    router = APIRouter()

    @router.get("/health", response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc),
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            database="connected",
        )

    @router.post("/auth/login", response_model=LoginResponse)
    def login(payload: LoginRequest) -> LoginResponse:
        result = auth_service.login(payload.username, payload.password)
        return LoginResponse(
            token=result.token,
            user=AdminUserResponse(
                id=result.user.id,
                username=result.user.username,
                email=result.user.email,
            ),
        )

    @router.get("/auth/verify", response_model=VerifyResponse)
    async def verify(identity: Identity = Depends(require_identity)) -> VerifyResponse:
        return VerifyResponse(
            user=IdentityResponse(
                id=identity.user_id,
                username=identity.username,
                issued_at=identity.issued_at,
                expires_at=identity.expires_at,
            )
        )

    @router.get("/plots", response_model=PlotListResponse)
    def list_plots(
        status_filter: Optional[str] = Query(default=None, alias="status"),
        location: Optional[str] = Query(default=None, max_length=200),
        min_price: Optional[str] = Query(default=None, alias="minPrice"),
        max_price: Optional[str] = Query(default=None, alias="maxPrice"),
        db: Database = Depends(get_db),
    ) -> PlotListResponse:
        # Empty form fields arrive as empty strings and mean "no filter".
        plots = db.list_plots(
            status=_parse_status_filter(status_filter),
            location=(location or "").strip() or None,
            min_price=_parse_price_filter("minPrice", min_price),
            max_price=_parse_price_filter("maxPrice", max_price),
        )
        return PlotListResponse(count=len(plots), data=[plot_to_response(plot) for plot in plots])

    @router.get("/plots/{plot_id}", response_model=PlotEnvelope, response_model_exclude_none=True)
    def read_plot(plot_id: str, db: Database = Depends(get_db)) -> PlotEnvelope:
        plot = db.get_plot(plot_id)
        if plot is None:
            raise NotFoundError("Plot not found")
        return PlotEnvelope(data=plot_to_response(plot))

    @router.post("/plots", response_model=PlotEnvelope, status_code=status.HTTP_201_CREATED)
    def create_plot(
        payload: PlotCreateRequest,
        identity: Identity = Depends(require_identity),
        db: Database = Depends(get_db),
    ) -> PlotEnvelope:
        if db.get_plot_by_number(payload.plot_number) is not None:
            raise ConflictError("Plot number already exists")
        plot = db.create_plot(payload.to_draft())
        logger.info("Plot %s created by %s", plot.plot_number, identity.username)
        return PlotEnvelope(message="Plot created successfully", data=plot_to_response(plot))

    @router.put("/plots/{plot_id}", response_model=PlotEnvelope)
    def update_plot(
        plot_id: str,
        payload: PlotUpdateRequest,
        identity: Identity = Depends(require_identity),
        db: Database = Depends(get_db),
    ) -> PlotEnvelope:
        existing = db.get_plot(plot_id)
        if existing is None:
            raise NotFoundError("Plot not found")

        fields = payload.model_dump(exclude_unset=True)
        new_number = fields.get("plot_number")
        if new_number and new_number != existing.plot_number:
            if db.get_plot_by_number(new_number) is not None:
                raise ConflictError("Plot number already exists")

        updated = db.update_plot(plot_id, fields)
        if updated is None:
            raise NotFoundError("Plot not found")
        logger.info("Plot %s updated by %s (%s)", updated.plot_number, identity.username, ", ".join(sorted(fields)))
        return PlotEnvelope(message="Plot updated successfully", data=plot_to_response(updated))

    @router.delete("/plots/{plot_id}", response_model=PlotEnvelope)
    def delete_plot(
        plot_id: str,
        identity: Identity = Depends(require_identity),
        db: Database = Depends(get_db),
    ) -> PlotEnvelope:
        deleted = db.delete_plot(plot_id)
        if deleted is None:
            raise NotFoundError("Plot not found")
        logger.info("Plot %s deleted by %s", deleted.plot_number, identity.username)
        return PlotEnvelope(message="Plot deleted successfully", data=plot_to_response(deleted))

    app.include_router(router)
    app.include_router(router, prefix="/api", include_in_schema=False)

    @app.exception_handler(PlotsError)
    async def handle_plots_error(_: Request, exc: PlotsError):
        extra: Dict[str, Any] = {}
        if isinstance(exc, ValidationError) and exc.details:
            extra["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.message, **extra))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_payload("Validation error", details=_format_validation_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return internal_error(request, exc)

    return app


__all__ = ["create_app", "plot_to_response"]
