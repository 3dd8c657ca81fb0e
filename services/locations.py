"""Location name to coordinate resolution."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict

import httpx

from models.forecast import Location
from services.errors import LocationNotFoundError, LocationTransportError

logger = logging.getLogger(__name__)


class LocationStore:
    """Resolves place names through the location-search endpoint.

    Successful lookups are memoized for the lifetime of the store since
    coordinates for a fixed name are assumed stable. Failures are not cached,
    so the next call searches again.
    """

    def __init__(self, client: httpx.Client, search_url: str) -> None:
        self._client = client
        self._search_url = search_url
        self._resolved: Dict[str, Location] = {}
        self._lock = Lock()

    def resolve(self, name: str) -> Location:
        with self._lock:
            cached = self._resolved.get(name)
        if cached is not None:
            return cached

        logger.info("Searching for location", extra={"location": name})
        try:
            response = self._client.get(self._search_url, params={"q": name})
        except httpx.HTTPError as exc:
            raise LocationTransportError(name, str(exc) or exc.__class__.__name__) from exc

        if response.status_code != httpx.codes.OK:
            raise LocationTransportError(name, f"unexpected status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LocationTransportError(name, "invalid JSON in search response") from exc

        location = self._first_match(name, payload)
        logger.info(
            "Found location %s",
            location.name,
            extra={"location": name, "latitude": location.latitude, "longitude": location.longitude},
        )

        with self._lock:
            self._resolved.setdefault(name, location)
            return self._resolved[name]

    @staticmethod
    def _first_match(name: str, payload: Any) -> Location:
        embedded = payload.get("_embedded") if isinstance(payload, dict) else None
        candidates = embedded.get("location") if isinstance(embedded, dict) else None
        if not candidates:
            raise LocationNotFoundError(name)
        if not isinstance(candidates, list):
            raise LocationTransportError(name, "location results are not a list")

        try:
            best = candidates[0]
            position = best["position"]
            return Location(
                name=str(best.get("name") or name),
                latitude=float(position["lat"]),
                longitude=float(position["lon"]),
            )
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as exc:
            raise LocationTransportError(name, "malformed location entry") from exc
