"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from services.errors import FailureKind


class LocationPhase(str, Enum):
    """Lifecycle of a monitored location."""

    uninitialized = "uninitialized"
    resolving = "resolving"
    ready = "ready"


class LastRefresh(BaseModel):
    """Summary of the most recent refresh for a location."""

    success: bool
    cache_hit: bool = False
    upstream_called: bool = False
    failure: Optional[FailureKind] = None
    detail: str = ""


class LocationStatus(BaseModel):
    """Read-only view of one location's cache state."""

    name: str
    phase: LocationPhase
    resolved_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sample_count: int = Field(0, ge=0)
    valid_until: Optional[datetime] = None
    expired: bool = True
    has_revalidation_token: bool = False
    last_refresh: Optional[LastRefresh] = None


class LocationStatusList(BaseModel):
    locations: List[LocationStatus] = Field(default_factory=list)
