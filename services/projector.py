"""Projection of the current forecast sample into gauges."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from app.metrics import ExporterMetrics
from models.forecast import FORECAST_FIELDS, ForecastCache, ForecastSample, Location

logger = logging.getLogger(__name__)


def select_nearest_sample(samples: Iterable[ForecastSample], now: datetime) -> Optional[ForecastSample]:
    """Pick the sample closest to ``now``; on equal distance the earlier one wins."""
    return min(
        samples,
        key=lambda sample: (abs((sample.timestamp - now).total_seconds()), sample.timestamp),
        default=None,
    )


class MetricsProjector:
    """Writes the sample nearest to now into the forecast gauges.

    Fields missing from the chosen sample leave their gauge untouched, so the
    last written value stays visible.
    """

    def __init__(self, metrics: ExporterMetrics) -> None:
        self.metrics = metrics

    def project(self, name: str, location: Location, cache: ForecastCache, now: datetime) -> bool:
        current = select_nearest_sample(cache.samples, now)
        if current is None:
            logger.warning("No timeseries data available", extra={"location": name})
            return False

        logger.info(
            "Using forecast sample from %s",
            current.timestamp.isoformat(),
            extra={"location": name},
        )
        latitude, longitude = location.label_coordinates
        labels = (name, latitude, longitude)
        for field in FORECAST_FIELDS:
            value = getattr(current, field)
            if value is not None:
                self.metrics.set_forecast_value(field, labels, value)
        return True
