"""
Observability setup:
  - OpenTelemetry distributed tracing (OTLP gRPC export when configured)
  - Prometheus metrics: store operations/errors, view events, feed rendering

Both are initialised once when the app is created.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from curatehub.config import Settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
STORE_OPERATIONS_TOTAL = Counter(
    "store_operations_total",
    "Store-adapter operations executed",
    ["plugin", "op"],
)

STORE_ERRORS_TOTAL = Counter(
    "store_errors_total",
    "Store-adapter operations that failed with a StoreError",
    ["plugin"],
)

VIEW_EVENTS_TOTAL = Counter(
    "view_events_total",
    "View events folded into trending score sets",
    ["plugin"],
)

FEED_RENDER_SECONDS = Histogram(
    "feed_render_seconds",
    "Time spent rendering a feed to XML",
    ["format"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
_tracing_configured = False


def setup_tracing(settings: Settings) -> None:
    """Configure the global TracerProvider; export only when an endpoint is set."""
    global _tracing_configured
    if _tracing_configured:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otel_exporter_otlp_endpoint:
        try:
            otlp_exporter = OTLPSpanExporter(
                endpoint=settings.otel_exporter_otlp_endpoint,
                insecure=True,
            )
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            logger.info(
                "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
            )
        except Exception as exc:
            logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

        # Auto-instrument store clients so their spans appear in traces
        RedisInstrumentor().instrument()
        SQLAlchemyInstrumentor().instrument()

    trace.set_tracer_provider(provider)
    _tracing_configured = True


def instrument_app(app, settings: Settings) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.otel_exporter_otlp_endpoint:
        FastAPIInstrumentor.instrument_app(app)
