"""
Catalog Observability

Features:
- structlog configuration (JSON or console rendering)
- Thread-safe counters and gauges with labels
- Reload / indexing metrics for the catalog
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
from collections import defaultdict
import logging
import threading
import json

import structlog
from pydantic import BaseModel, Field


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# Metric Types
# =============================================================================

class MetricType(str, Enum):
    """Types of metrics."""
    COUNTER = "counter"
    GAUGE = "gauge"


class MetricValue(BaseModel):
    """A metric data point."""
    name: str
    type: MetricType
    value: float
    labels: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class _LabelledMetric:
    metric_type: MetricType

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._values: Dict[str, float] = defaultdict(float)
        self._lock = threading.Lock()

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Get current value."""
        return self._values.get(self._labels_key(labels), 0.0)

    def _labels_key(self, labels: Optional[Dict[str, str]] = None) -> str:
        if not labels:
            return ""
        return json.dumps(labels, sort_keys=True)

    def collect(self) -> List[MetricValue]:
        """Collect all metric values."""
        with self._lock:
            items = list(self._values.items())
        return [
            MetricValue(
                name=self.name,
                type=self.metric_type,
                value=value,
                labels=json.loads(key) if key else {},
            )
            for key, value in items
        ]


class Counter(_LabelledMetric):
    """
    A monotonically increasing counter.

    Usage:
        reloads = Counter("crd_reloads_total", "Catalog reloads")
        reloads.inc(labels={"status": "success"})
    """

    metric_type = MetricType.COUNTER

    def inc(self, value: float = 1.0, labels: Optional[Dict[str, str]] = None):
        """Increment the counter."""
        if value < 0:
            raise ValueError("counters can only increase")
        key = self._labels_key(labels)
        with self._lock:
            self._values[key] += value


class Gauge(_LabelledMetric):
    """A metric that can go up and down."""

    metric_type = MetricType.GAUGE

    def set(self, value: float, labels: Optional[Dict[str, str]] = None):
        """Set the gauge value."""
        key = self._labels_key(labels)
        with self._lock:
            self._values[key] = value


# =============================================================================
# Catalog Metrics
# =============================================================================

class CatalogMetrics:
    """Metrics recorded by the reload coordinator."""

    def __init__(self):
        self.reloads = Counter("crd_catalog_reloads_total", "Catalog reload attempts")
        self.index_warnings = Counter(
            "crd_catalog_index_warnings_total",
            "Per-item problems absorbed while indexing",
        )
        self.rule_mappings = Gauge("crd_catalog_rule_mappings", "Published rule mappings")
        self.fhir_resources = Gauge("crd_catalog_fhir_resources", "Published FHIR resources")
        self.reload_duration = Gauge(
            "crd_catalog_reload_duration_seconds",
            "Duration of the last successful reload",
        )

    def collect(self) -> List[MetricValue]:
        """Collect every catalog metric."""
        values: List[MetricValue] = []
        for metric in (
            self.reloads,
            self.index_warnings,
            self.rule_mappings,
            self.fhir_resources,
            self.reload_duration,
        ):
            values.extend(metric.collect())
        return values
