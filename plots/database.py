"""Pooled relational persistence for the admin identity and plot records."""
from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from passlib.context import CryptContext
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, URL, make_url
from sqlalchemy.exc import IntegrityError, OperationalError

from .config import Settings
from .errors import ConflictError, DatabaseUnavailableError, NothingToUpdateError, ValidationError
from .models import AdminUser, Plot, PlotDraft, PlotStatus

logger = logging.getLogger("plots.database")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_PRICE_QUANTUM = Decimal("0.01")

_UPDATABLE_COLUMNS = (
    "plot_number",
    "location",
    "size",
    "price",
    "status",
    "description",
    "amenities",
)

SAMPLE_PLOTS = (
    PlotDraft(
        plot_number="P001",
        location="North Wing",
        size="1000 sq ft",
        price=Decimal("50000.00"),
        status=PlotStatus.AVAILABLE,
        description="Prime location with excellent view",
        amenities=["parking", "garden", "security"],
    ),
    PlotDraft(
        plot_number="P002",
        location="South Wing",
        size="1200 sq ft",
        price=Decimal("60000.00"),
        status=PlotStatus.AVAILABLE,
        description="Spacious plot with modern facilities",
        amenities=["parking", "playground", "security"],
    ),
    PlotDraft(
        plot_number="P003",
        location="East Wing",
        size="800 sq ft",
        price=Decimal("40000.00"),
        status=PlotStatus.RESERVED,
        description="Compact plot suitable for small families",
        amenities=["parking", "security"],
    ),
    PlotDraft(
        plot_number="P004",
        location="West Wing",
        size="1500 sq ft",
        price=Decimal("75000.00"),
        status=PlotStatus.AVAILABLE,
        description="Premium plot with all amenities",
        amenities=["parking", "garden", "security", "playground"],
    ),
    PlotDraft(
        plot_number="P005",
        location="Central Area",
        size="900 sq ft",
        price=Decimal("45000.00"),
        status=PlotStatus.SOLD,
        description="Centrally located compact plot",
        amenities=["parking", "security"],
    ),
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS admin_users (
        id VARCHAR(36) PRIMARY KEY,
        username VARCHAR(50) UNIQUE NOT NULL,
        email VARCHAR(100) UNIQUE NOT NULL,
        password_hash VARCHAR(255) NOT NULL,
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plots (
        id VARCHAR(36) PRIMARY KEY,
        plot_number VARCHAR(20) UNIQUE NOT NULL,
        location VARCHAR(200) NOT NULL,
        size VARCHAR(50) NOT NULL,
        price NUMERIC(12, 2) NOT NULL CHECK (price > 0),
        status VARCHAR(20) NOT NULL DEFAULT 'available'
            CHECK (status IN ('available', 'reserved', 'sold')),
        description TEXT,
        amenities TEXT NOT NULL DEFAULT '[]',
        created_at VARCHAR(40) NOT NULL,
        updated_at VARCHAR(40) NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_plots_status ON plots(status)",
    "CREATE INDEX IF NOT EXISTS idx_plots_location ON plots(location)",
    "CREATE INDEX IF NOT EXISTS idx_plots_price ON plots(price)",
)


def resolve_database_url(settings: Settings) -> str:
    """Return the SQLAlchemy URL for the configured store."""

    if settings.database_url:
        url = make_url(settings.database_url)
        # Hosted providers hand out postgres:// URLs, which SQLAlchemy no longer accepts.
        if url.drivername == "postgres":
            url = url.set(drivername="postgresql")
        return url.render_as_string(hide_password=False)
    if settings.db_host:
        return URL.create(
            "postgresql+psycopg2",
            username=settings.db_user,
            password=settings.db_password,
            host=settings.db_host,
            port=settings.db_port,
            database=settings.db_name,
        ).render_as_string(hide_password=False)
    return f"sqlite:///{settings.db_path}"


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    # Fixed width keeps lexical order equal to chronological order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalize_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"price must be a number, got {value!r}") from exc
    if not price.is_finite() or price <= 0:
        raise ValidationError("price must be a positive number")
    price = price.quantize(_PRICE_QUANTUM)
    if price <= 0:
        raise ValidationError("price must be at least 0.01")
    return price


def _status_value(value: object) -> str:
    if isinstance(value, PlotStatus):
        return value.value
    return str(value).strip().lower()


def _is_plot_number_conflict(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: plots.plot_number"; PostgreSQL: "plots_plot_number_key".
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return "plot_number" in message and ("unique" in message or "duplicate" in message)


def _coerce_status(value: object) -> PlotStatus:
    try:
        return PlotStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in PlotStatus)
        raise ValidationError(f"status must be one of: {allowed}") from exc


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


class Database:
    """Parameterized SQL over a bounded SQLAlchemy connection pool."""

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 20,
        pool_timeout: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        engine_options: Dict[str, Any] = {"pool_pre_ping": True}
        in_memory = False
        if url.startswith("sqlite"):
            database = make_url(url).database
            in_memory = not database or database == ":memory:"
            if not in_memory:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            engine_options["connect_args"] = {"check_same_thread": False}
        if not in_memory:
            engine_options.update(pool_size=pool_size, max_overflow=0, pool_timeout=pool_timeout)
        self._engine: Engine = create_engine(url, **engine_options)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            resolve_database_url(settings),
            pool_size=settings.db_pool_size,
            pool_timeout=settings.db_pool_timeout,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        self._engine.dispose()

    def connect(self, *, attempts: int = 5, backoff: float = 2.0) -> None:
        """Check connectivity, retrying with a fixed backoff before giving up."""

        for attempt in range(1, attempts + 1):
            try:
                with self._engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except OperationalError as exc:
                remaining = attempts - attempt
                logger.warning(
                    "Database connection failed (%d retries left): %s",
                    remaining,
                    exc.orig if exc.orig is not None else exc,
                )
                if remaining == 0:
                    raise DatabaseUnavailableError(
                        f"Could not connect to the database after {attempts} attempts"
                    ) from exc
                self._sleep(backoff)
            else:
                logger.info("Database connection established")
                return

    def initialize(
        self,
        *,
        admin_username: str = "admin",
        admin_email: str = "admin@plots.com",
        admin_password: str = "admin123",
        seed: bool = True,
    ) -> None:
        """Create missing tables and indexes, upsert the admin and seed an empty store."""

        if not admin_password:
            raise ValueError("Admin password must not be empty")

        password_hash = _hash_password(admin_password)
        now = _serialize_datetime(_current_timestamp())

        with self._engine.begin() as conn:
            for statement in _SCHEMA:
                conn.execute(text(statement))

            conn.execute(
                text(
                    """
                    INSERT INTO admin_users (id, username, email, password_hash, created_at, updated_at)
                    VALUES (:id, :username, :email, :password_hash, :now, :now)
                    ON CONFLICT (username) DO UPDATE SET
                        password_hash = excluded.password_hash,
                        updated_at = excluded.updated_at
                    """
                ),
                {
                    "id": str(uuid.uuid4()),
                    "username": admin_username,
                    "email": admin_email.strip().lower(),
                    "password_hash": password_hash,
                    "now": now,
                },
            )

            if seed and self._count_plots(conn) == 0:
                for draft in SAMPLE_PLOTS:
                    self._insert_plot(conn, draft)
                logger.info("Inserted %d sample plots", len(SAMPLE_PLOTS))
            elif seed:
                logger.info("Plots table already has data, skipping sample data insertion")

        logger.info("Database tables initialised; admin user %r is ready", admin_username)

    # ------------------------------------------------------------------
    # Admin users
    # ------------------------------------------------------------------
    def get_admin_by_username(self, username: str) -> Optional[AdminUser]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT * FROM admin_users WHERE username = :username"),
                {"username": username},
            ).mappings().first()
        if row is None:
            return None
        return self._row_to_admin(row)

    def authenticate_admin(self, username: str, password: str) -> Optional[AdminUser]:
        admin = self.get_admin_by_username(username)
        if admin is None:
            # Keep the timing of unknown usernames close to that of bad passwords.
            _verify_password(password, _DUMMY_HASH)
            return None
        if not _verify_password(password, admin.password_hash):
            return None
        return admin

    def set_admin_password(self, username: str, password: str) -> bool:
        if not password:
            raise ValueError("Password must not be empty")
        with self._engine.begin() as conn:
            result = conn.execute(
                text(
                    "UPDATE admin_users SET password_hash = :password_hash, updated_at = :now "
                    "WHERE username = :username"
                ),
                {
                    "password_hash": _hash_password(password),
                    "now": _serialize_datetime(_current_timestamp()),
                    "username": username,
                },
            )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Plots
    # ------------------------------------------------------------------
    def get_plot(self, plot_id: str) -> Optional[Plot]:
        with self._engine.connect() as conn:
            return self._fetch_plot(conn, plot_id)

    def get_plot_by_number(self, plot_number: str) -> Optional[Plot]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT * FROM plots WHERE plot_number = :plot_number"),
                {"plot_number": plot_number},
            ).mappings().first()
        if row is None:
            return None
        return self._row_to_plot(row)

    def list_plots(
        self,
        *,
        status: Optional[str] = None,
        location: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
    ) -> List[Plot]:
        """Return plots matching the filters, newest first.

        ``status`` falls back to ``available`` so anonymous browsing only
        shows inventory that can still be bought. An unrecognised status
        matches nothing.
        """

        clauses = ["status = :status"]
        params: Dict[str, Any] = {"status": _status_value(status or PlotStatus.AVAILABLE)}

        if location:
            clauses.append("LOWER(location) LIKE :location")
            params["location"] = f"%{location.lower()}%"
        if min_price is not None:
            clauses.append("price >= :min_price")
            params["min_price"] = str(Decimal(str(min_price)))
        if max_price is not None:
            clauses.append("price <= :max_price")
            params["max_price"] = str(Decimal(str(max_price)))

        query = (
            f"SELECT * FROM plots WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, plot_number DESC"
        )
        with self._engine.connect() as conn:
            rows = conn.execute(text(query), params).mappings().all()
        return [self._row_to_plot(row) for row in rows]

    def count_plots(self) -> int:
        with self._engine.connect() as conn:
            return self._count_plots(conn)

    def create_plot(self, draft: PlotDraft) -> Plot:
        try:
            with self._engine.begin() as conn:
                plot_id = self._insert_plot(conn, draft)
                plot = self._fetch_plot(conn, plot_id)
        except IntegrityError as exc:
            if not _is_plot_number_conflict(exc):
                raise
            raise ConflictError("Plot number already exists") from exc
        if plot is None:
            raise RuntimeError("Failed to load plot after creation")
        return plot

    def load_plots(self, drafts: Iterable[PlotDraft]) -> int:
        """Insert drafts whose plot number is not stored yet; return how many were added."""

        inserted = 0
        with self._engine.begin() as conn:
            for draft in drafts:
                exists = conn.execute(
                    text("SELECT 1 FROM plots WHERE plot_number = :plot_number"),
                    {"plot_number": draft.plot_number},
                ).first()
                if exists is not None:
                    logger.info("Skipping fixture %s: plot number already present", draft.plot_number)
                    continue
                self._insert_plot(conn, draft)
                inserted += 1
        return inserted

    def update_plot(self, plot_id: str, fields: Mapping[str, object]) -> Optional[Plot]:
        """Rewrite only the supplied columns; ``updated_at`` always moves forward."""

        if not fields:
            raise NothingToUpdateError()

        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown plot fields: {', '.join(sorted(unknown))}")

        updates: List[str] = []
        params: Dict[str, Any] = {"id": plot_id}
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            value = fields[column]
            if value is None and column != "description":
                raise ValidationError(f"{column} must not be null")
            if column == "price":
                value = str(_normalize_price(value))
            elif column == "status":
                value = _coerce_status(value).value
            elif column == "amenities":
                value = json.dumps([str(item) for item in value or []])
            elif column == "description":
                value = value or ""
            updates.append(f"{column} = :{column}")
            params[column] = value

        try:
            with self._engine.begin() as conn:
                current = self._fetch_plot(conn, plot_id)
                if current is None:
                    return None
                updated_at = max(
                    _current_timestamp(),
                    current.updated_at + timedelta(microseconds=1),
                )
                updates.append("updated_at = :updated_at")
                params["updated_at"] = _serialize_datetime(updated_at)
                conn.execute(
                    text(f"UPDATE plots SET {', '.join(updates)} WHERE id = :id"),
                    params,
                )
                return self._fetch_plot(conn, plot_id)
        except IntegrityError as exc:
            if not _is_plot_number_conflict(exc):
                raise
            raise ConflictError("Plot number already exists") from exc

    def delete_plot(self, plot_id: str) -> Optional[Plot]:
        with self._engine.begin() as conn:
            snapshot = self._fetch_plot(conn, plot_id)
            if snapshot is None:
                return None
            conn.execute(text("DELETE FROM plots WHERE id = :id"), {"id": plot_id})
        return snapshot

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _count_plots(self, conn: Connection) -> int:
        return int(conn.execute(text("SELECT COUNT(*) FROM plots")).scalar_one())

    def _fetch_plot(self, conn: Connection, plot_id: str) -> Optional[Plot]:
        row = conn.execute(
            text("SELECT * FROM plots WHERE id = :id"),
            {"id": plot_id},
        ).mappings().first()
        if row is None:
            return None
        return self._row_to_plot(row)

    def _insert_plot(self, conn: Connection, draft: PlotDraft) -> str:
        plot_id = str(uuid.uuid4())
        now = _serialize_datetime(_current_timestamp())
        conn.execute(
            text(
                """
                INSERT INTO plots (
                    id, plot_number, location, size, price, status,
                    description, amenities, created_at, updated_at
                ) VALUES (
                    :id, :plot_number, :location, :size, :price, :status,
                    :description, :amenities, :now, :now
                )
                """
            ),
            {
                "id": plot_id,
                "plot_number": draft.plot_number,
                "location": draft.location,
                "size": draft.size,
                "price": str(_normalize_price(draft.price)),
                "status": _coerce_status(draft.status).value,
                "description": draft.description or "",
                "amenities": json.dumps([str(item) for item in draft.amenities]),
                "now": now,
            },
        )
        return plot_id

    def _row_to_admin(self, row: Mapping[str, Any]) -> AdminUser:
        return AdminUser(
            id=str(row["id"]),
            username=str(row["username"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_plot(self, row: Mapping[str, Any]) -> Plot:
        amenities = json.loads(row["amenities"] or "[]")
        return Plot(
            id=str(row["id"]),
            plot_number=str(row["plot_number"]),
            location=str(row["location"]),
            size=str(row["size"]),
            price=Decimal(str(row["price"])).quantize(_PRICE_QUANTUM),
            status=PlotStatus(row["status"]),
            description=row["description"] or "",
            amenities=tuple(str(item) for item in amenities),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


_DUMMY_HASH = _hash_password("not-a-real-password")


__all__ = ["Database", "SAMPLE_PLOTS", "resolve_database_url"]
