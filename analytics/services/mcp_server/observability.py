"""OpenTelemetry setup and analytics instruments for the MCP server.

``configure_observability`` installs the global tracer and meter providers.
Spans and metrics go to an OTLP collector over gRPC when ``OTLP_ENDPOINT`` is
set, otherwise to stderr (stdout carries the MCP protocol).

The OTel instruments below mirror the Prometheus series for collectors that
only speak OTLP. They are created against the global proxy meter at import,
so they start exporting once a provider is installed.
"""

import os
import sys
from dataclasses import dataclass

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, Sampler, TraceIdRatioBased

from analytics.services.mcp_server.instance import VERSION

logger = structlog.get_logger(__name__)

SERVICE_NAME = "mcp-customer-insights"


@dataclass(frozen=True)
class TelemetrySettings:
    """Where telemetry goes and how much of it is sampled."""

    service_name: str = SERVICE_NAME
    environment: str = "development"
    otlp_endpoint: str | None = None
    sampling_rate: float = 1.0
    export_interval_ms: int = 60000

    def __post_init__(self) -> None:
        if not 0.0 <= self.sampling_rate <= 1.0:
            raise ValueError(f"sampling_rate must be between 0 and 1, got {self.sampling_rate}")

    @classmethod
    def from_env(cls) -> "TelemetrySettings":
        """Read ``OTLP_ENDPOINT``, ``ENVIRONMENT`` and ``SAMPLING_RATE``."""
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT") or None,
            sampling_rate=float(os.getenv("SAMPLING_RATE", "1.0")),
        )


@dataclass
class Telemetry:
    """Providers built for one server run."""

    settings: TelemetrySettings
    tracer_provider: TracerProvider
    meter_provider: MeterProvider

    def shutdown(self) -> None:
        """Flush pending spans and metrics, then stop the exporters."""
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()


def _sampler(rate: float) -> Sampler:
    # child spans follow the caller's decision
    return ParentBased(TraceIdRatioBased(rate))


def build_telemetry(
    settings: TelemetrySettings, metric_reader: MetricReader | None = None
) -> Telemetry:
    """Create tracer and meter providers without installing them globally.

    Args:
        settings: Export target, environment and sampling rate
        metric_reader: Reader to use instead of the periodic exporter

    Returns:
        Telemetry holding both providers
    """
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": VERSION,
            "deployment.environment": settings.environment,
        }
    )

    tracer_provider = TracerProvider(resource=resource, sampler=_sampler(settings.sampling_rate))
    if settings.otlp_endpoint:
        span_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)
    else:
        span_exporter = ConsoleSpanExporter(out=sys.stderr)
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    if metric_reader is None:
        if settings.otlp_endpoint:
            metric_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint, insecure=True)
        else:
            metric_exporter = ConsoleMetricExporter(out=sys.stderr)
        metric_reader = PeriodicExportingMetricReader(
            metric_exporter, export_interval_millis=settings.export_interval_ms
        )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])

    return Telemetry(
        settings=settings, tracer_provider=tracer_provider, meter_provider=meter_provider
    )


def configure_observability(settings: TelemetrySettings | None = None) -> Telemetry:
    """Install global OpenTelemetry providers for the server process.

    Args:
        settings: Defaults to ``TelemetrySettings.from_env()``

    Returns:
        The installed Telemetry; call ``shutdown()`` when the server stops
    """
    settings = settings or TelemetrySettings.from_env()
    telemetry = build_telemetry(settings)
    trace.set_tracer_provider(telemetry.tracer_provider)
    metrics.set_meter_provider(telemetry.meter_provider)

    logger.info(
        "observability_configured",
        service_name=settings.service_name,
        environment=settings.environment,
        otlp_enabled=settings.otlp_endpoint is not None,
        otlp_endpoint=settings.otlp_endpoint,
        sampling_rate=settings.sampling_rate,
    )
    return telemetry


class AnalyticsInstruments:
    """OTel counters and histograms for tool calls and batch jobs."""

    def __init__(self, meter: Meter):
        self.tool_calls = meter.create_counter(
            "insights.tool.calls", unit="1", description="MCP tool calls by outcome"
        )
        self.tool_duration = meter.create_histogram(
            "insights.tool.duration", unit="s", description="MCP tool call duration"
        )
        self.batch_items = meter.create_counter(
            "insights.batch.items", unit="1", description="Batch job items by outcome"
        )

    def record_tool_call(self, tool_name: str, duration_seconds: float, success: bool) -> None:
        attributes = {"tool_name": tool_name, "status": "success" if success else "failure"}
        self.tool_calls.add(1, attributes)
        self.tool_duration.record(duration_seconds, {"tool_name": tool_name})

    def record_batch_items(self, job: str, succeeded: int, failed: int) -> None:
        if succeeded:
            self.batch_items.add(succeeded, {"job": job, "outcome": "succeeded"})
        if failed:
            self.batch_items.add(failed, {"job": job, "outcome": "failed"})


instruments = AnalyticsInstruments(metrics.get_meter(SERVICE_NAME))
