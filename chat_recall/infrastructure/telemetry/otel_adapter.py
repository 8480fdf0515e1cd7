"""OpenTelemetry adapter for ingestion and search metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from chat_recall.application.ports.telemetry_port import TelemetryPort

logger = logging.getLogger(__name__)


@dataclass
class OtelConfig:
    """Configuration for OpenTelemetry."""

    service_name: str = "chat-recall"
    otlp_endpoint: str | None = None  # e.g., "http://localhost:4317"
    environment: str = "production"
    enable_console: bool = False


class OpenTelemetryAdapter(TelemetryPort):
    """Counters and histograms through the OpenTelemetry metrics API.

    Metrics emitted by the application:
    - chat_recall.embedding_cache.hits / .misses (tag: model)
    - chat_recall.ingest.indexed / .failures / .dropped / .deleted
    - chat_recall.search.latency_ms / .results / .failures

    Instruments are created lazily on first use. When opentelemetry-sdk is
    not importable every call is a no-op.
    """

    def __init__(self, cfg: OtelConfig) -> None:
        self._cfg = cfg
        self._meter: Any | None = None
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}
        self._init_otel()

    @property
    def enabled(self) -> bool:
        return self._meter is not None

    def _init_otel(self) -> None:
        try:
            otel_sdk = import_module("opentelemetry.sdk.metrics")
            otel_export = import_module("opentelemetry.sdk.metrics.export")
            otel_metrics = import_module("opentelemetry.metrics")
            otel_resources = import_module("opentelemetry.sdk.resources")

            resource = otel_resources.Resource.create(
                {
                    "service.name": self._cfg.service_name,
                    "deployment.environment": self._cfg.environment,
                }
            )

            readers = []
            if self._cfg.otlp_endpoint:
                otel_otlp = import_module("opentelemetry.exporter.otlp.proto.grpc.metric_exporter")
                exporter = otel_otlp.OTLPMetricExporter(endpoint=self._cfg.otlp_endpoint)
                readers.append(otel_export.PeriodicExportingMetricReader(exporter))
            if self._cfg.enable_console:
                readers.append(
                    otel_export.PeriodicExportingMetricReader(otel_export.ConsoleMetricExporter())
                )

            provider = otel_sdk.MeterProvider(resource=resource, metric_readers=readers)
            self._meter = provider.get_meter("chat_recall")
        except Exception as ex:  # noqa: BLE001
            logger.warning("OpenTelemetry unavailable, metrics disabled: %s", ex)
            self._meter = None

    def incr(self, name: str, tags: dict[str, Any] | None = None, value: int = 1) -> None:
        if self._meter is None:
            return
        try:
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(
                    name=name, description=f"Counter for {name}"
                )
            self._counters[name].add(value, attributes=_attrs(tags))
        except Exception as ex:  # noqa: BLE001
            logger.debug("Dropping metric %s: %s", name, ex)

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        if self._meter is None:
            return
        try:
            if name not in self._histograms:
                self._histograms[name] = self._meter.create_histogram(
                    name=name, description=f"Histogram for {name}"
                )
            self._histograms[name].record(value, attributes=_attrs(tags))
        except Exception as ex:  # noqa: BLE001
            logger.debug("Dropping metric %s: %s", name, ex)


class NoopTelemetry(TelemetryPort):
    def incr(self, name: str, tags: dict[str, Any] | None = None, value: int = 1) -> None:
        return None

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        return None


def _attrs(tags: dict[str, Any] | None) -> dict[str, Any]:
    # OTel attribute values must be str/bool/int/float
    return {k: v if isinstance(v, str | bool | int | float) else str(v) for k, v in (tags or {}).items()}
