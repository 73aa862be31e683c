"""
Observability Infrastructure

loguru logging plus OpenTelemetry tracing and metrics for the action
knowledge base. Nothing is exported off-process: spans stay in the SDK tracer
and metrics are collected by an in-memory reader that callers can snapshot.
Until ObservabilityManager.initialize() is called, ``kb_span`` and
``record_metric`` are no-ops apart from debug logging.
"""

import contextlib
import json
import os
import sys
import time
import traceback
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Union

from loguru import logger
from opentelemetry import trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from pydantic import BaseModel, Field, field_validator

TEXT_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ObservabilityConfig(BaseModel):
    """Logging and telemetry settings."""

    service_name: str = "action-kb"
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = Field(default=False, description="One JSON object per log line")
    tracing: bool = True
    metrics: bool = True

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_case_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @classmethod
    def from_env(cls) -> "ObservabilityConfig":
        """ACTION_KB_LOG_LEVEL and ACTION_KB_JSON_LOGS, defaults otherwise."""
        return cls(
            log_level=os.getenv("ACTION_KB_LOG_LEVEL", LogLevel.INFO.value),
            json_logs=os.getenv("ACTION_KB_JSON_LOGS", "").lower() in {"1", "true", "yes"},
        )


def _json_line(record: Dict[str, Any]) -> str:
    entry: Dict[str, Any] = {
        "ts": record["time"].isoformat(),
        "level": record["level"].name,
        "module": record["name"],
        "line": record["line"],
        "msg": record["message"],
    }
    bound = {k: v for k, v in record["extra"].items() if k != "json"}
    if bound:
        entry["extra"] = bound

    if record["exception"] is not None:
        exc_type, exc_value, exc_tb = record["exception"]
        entry["exception"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

    return json.dumps(entry, default=str)


def _attach_json(record: Dict[str, Any]) -> None:
    record["extra"]["json"] = _json_line(record)


class ObservabilityManager:
    """Process-wide owner of the log sink, tracer and meter."""

    _instance: Optional["ObservabilityManager"] = None

    def __init__(self, config: ObservabilityConfig):
        self.config = config
        self.tracer: Optional[trace.Tracer] = None
        self.meter: Any = None
        self.metric_reader: Optional[InMemoryMetricReader] = None
        self._instruments: Dict[str, Any] = {}

        self._configure_logging()
        resource = Resource(attributes={SERVICE_NAME: config.service_name})
        if config.tracing:
            self.tracer = TracerProvider(resource=resource).get_tracer("action_kb")
        if config.metrics:
            self.metric_reader = InMemoryMetricReader()
            provider = MeterProvider(resource=resource, metric_readers=[self.metric_reader])
            self.meter = provider.get_meter("action_kb")

        logger.info(
            f"Observability initialized: service={config.service_name}, "
            f"level={config.log_level.value}, tracing={config.tracing}, metrics={config.metrics}"
        )

    def _configure_logging(self) -> None:
        logger.remove()
        level = self.config.log_level.value
        if self.config.json_logs:
            logger.configure(patcher=_attach_json)
            logger.add(sys.stderr, format="{extra[json]}", level=level, colorize=False)
        else:
            logger.add(
                sys.stderr,
                format=TEXT_FORMAT,
                level=level,
                colorize=True,
                backtrace=True,
                diagnose=False,
            )

    def instrument(self, name: str, kind: str) -> Any:
        """Cached counter ("counter") or millisecond histogram ("histogram")."""
        key = f"{kind}:{name}"
        if key not in self._instruments:
            if kind == "counter":
                self._instruments[key] = self.meter.create_counter(name, unit="1")
            else:
                self._instruments[key] = self.meter.create_histogram(name, unit="ms")
        return self._instruments[key]

    def metric_snapshot(self) -> Dict[str, float]:
        """
        Current metric values keyed by name.

        Counters report their sum across attribute sets, histograms the sum of
        recorded values.
        """
        if self.metric_reader is None:
            return {}

        snapshot: Dict[str, float] = {}
        data = self.metric_reader.get_metrics_data()
        if data is None:
            return snapshot
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    total = 0.0
                    for point in metric.data.data_points:
                        total += getattr(point, "value", None) or getattr(point, "sum", 0.0)
                    snapshot[metric.name] = snapshot.get(metric.name, 0.0) + total
        return snapshot

    @classmethod
    def initialize(cls, config: Optional[ObservabilityConfig] = None) -> "ObservabilityManager":
        """Create the process-wide manager once; later calls return it unchanged."""
        if cls._instance is None:
            cls._instance = cls(config or ObservabilityConfig.from_env())
        return cls._instance

    @classmethod
    def get_instance(cls) -> Optional["ObservabilityManager"]:
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None


@contextlib.contextmanager
def kb_span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
    """Trace a knowledge-base operation; None-valued attributes are skipped."""
    manager = ObservabilityManager.get_instance()
    if manager is None or manager.tracer is None:
        yield trace.INVALID_SPAN
        return

    with manager.tracer.start_as_current_span(name) as current:
        for key, value in (attributes or {}).items():
            if value is not None:
                current.set_attribute(key, value)
        yield current


def record_metric(
    metric_name: str,
    value: Union[int, float],
    attributes: Optional[Dict[str, str]] = None,
) -> None:
    """
    Record a metric value.

    Names ending in "_total" and integer values go to counters, everything
    else to millisecond histograms.
    """
    manager = ObservabilityManager.get_instance()
    if manager is not None and manager.meter is not None:
        kind = "counter" if metric_name.endswith("_total") or isinstance(value, int) else "histogram"
        instrument = manager.instrument(metric_name, kind)
        if kind == "counter":
            instrument.add(value, attributes=attributes or {})
        else:
            instrument.record(value, attributes=attributes or {})

    logger.debug(f"metric {metric_name}={value} {attributes or ''}".rstrip())


class Timer:
    """Measures a block and records ``<name>_duration_ms``."""

    def __init__(self, name: str, record: bool = True):
        self.name = name
        self.record = record
        self.elapsed_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        if self.record:
            record_metric(f"{self.name}_duration_ms", self.elapsed_ms)


__all__ = [
    "LogLevel",
    "ObservabilityConfig",
    "ObservabilityManager",
    "kb_span",
    "record_metric",
    "Timer",
]
