"""Monitoring and observability setup.

Tracing and metrics are exported over OTLP gRPC when TELEMETRY_ENABLED is
set. Otherwise the OpenTelemetry API falls back to its no-op providers, so
the instruments below can always be called.

Histograms recorded inside an active span (order amount, payment gateway
duration) carry exemplars that link the data point to its trace.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
    API_VERSION,
    TELEMETRY_ENABLED,
    ENVIRONMENT,
)

logger = logging.getLogger(__name__)


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": API_VERSION,
        "deployment.environment": ENVIRONMENT,
    })


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if TELEMETRY_ENABLED:
        tracer_provider = TracerProvider(resource=_resource())
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)
        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if TELEMETRY_ENABLED:
        otlp_metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True),
            export_interval_millis=5000
        )
        metrics.set_meter_provider(MeterProvider(
            resource=_resource(),
            metric_readers=[otlp_metric_reader]
        ))
        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not TELEMETRY_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"version": API_VERSION}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


tracer = init_tracing()
meter = init_metrics()

# Catalog metrics
product_views_counter = meter.create_counter(
    "store.products.views",
    description="Product listing and detail views",
    unit="1"
)

# Cart metrics
cart_additions_counter = meter.create_counter(
    "store.cart.additions",
    description="Total number of items added to cart",
    unit="1"
)

# Order metrics
orders_created_counter = meter.create_counter(
    "store.orders.created",
    description="Orders placed, by payment method and item source",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "store.orders.amount",
    description="Order total amount",
    unit="ETB"
)

order_transitions_counter = meter.create_counter(
    "store.orders.transitions",
    description="Accepted and rejected order status transitions",
    unit="1"
)

stock_restored_counter = meter.create_counter(
    "store.inventory.restored",
    description="Units returned to stock by cancellations",
    unit="1"
)

# Payment gateway metrics
payment_gateway_duration_histogram = meter.create_histogram(
    "store.payment.gateway.duration",
    description="Duration of Chapa gateway calls",
    unit="s"
)

payment_webhook_counter = meter.create_counter(
    "store.payment.webhooks",
    description="Payment webhook events by outcome",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "store.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "store.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "store.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "store.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)
