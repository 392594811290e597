"""Domain records for the plots administration service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple


class PlotStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"


@dataclass(frozen=True)
class AdminUser:
    """The administrative identity stored in ``admin_users``."""

    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Plot:
    """A sellable land unit as persisted in the ``plots`` table."""

    id: str
    plot_number: str
    location: str
    size: str
    price: Decimal
    status: PlotStatus
    description: str
    amenities: Tuple[str, ...]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PlotDraft:
    """Field values for a plot that has not been stored yet."""

    plot_number: str
    location: str
    size: str
    price: Decimal
    status: PlotStatus = PlotStatus.AVAILABLE
    description: Optional[str] = None
    amenities: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Identity:
    """Claims carried by a verified session token."""

    user_id: str
    username: str
    issued_at: datetime
    expires_at: datetime


__all__ = ["AdminUser", "Identity", "Plot", "PlotDraft", "PlotStatus"]
