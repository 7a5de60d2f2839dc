"""Structured logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk.resources import Resource

from config import ENVIRONMENT, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME, TELEMETRY_ENABLED

# Keys whose values never reach the log stream, matched case-insensitively
# against every `extra` field
REDACTED_KEYS = ("password", "token", "authorization", "secret", "signature")
REDACTED = "[REDACTED]"


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in REDACTED_KEYS)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for the store service.

    Every record carries the service name, the deployment environment and,
    inside a span, the trace and span ids so log lines can be joined with
    traces. Credential-like fields passed through ``extra`` are masked.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            ctx = span.get_span_context()
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')

        for key in list(log_record):
            if _is_sensitive(key):
                log_record[key] = REDACTED

        log_record['service'] = SERVICE_NAME
        log_record['environment'] = ENVIRONMENT

        if 'message' in log_record:
            log_record['msg'] = log_record.pop('message')


def _otlp_handler() -> logging.Handler:
    # The OpenTelemetry logs SDK is still experimental (underscored modules)
    from opentelemetry._logs import set_logger_provider

    logger_provider = LoggerProvider(resource=Resource.create({
        "service.name": SERVICE_NAME,
        "deployment.environment": ENVIRONMENT,
    }))
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    )
    set_logger_provider(logger_provider)
    return LoggingHandler(level=logging.INFO, logger_provider=logger_provider)


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure structured logging for the application.

    Logs always go to stdout as JSON. With telemetry enabled they are also
    shipped to the OTLP collector.

    Args:
        level: Root logger level
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomJsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    ))
    root_logger.addHandler(console_handler)

    if TELEMETRY_ENABLED:
        try:
            root_logger.addHandler(_otlp_handler())
            logging.info("OTLP logging handler configured", extra={"endpoint": OTEL_EXPORTER_OTLP_ENDPOINT})
        except Exception as e:
            logging.warning(f"Failed to configure OTLP logging handler: {e}")

    # Access logs duplicate the FastAPI spans; bcrypt version checks are noise
    for name, lib_level in (
        ('uvicorn.access', logging.WARNING),
        ('httpx', logging.WARNING),
        ('httpcore', logging.WARNING),
        ('passlib', logging.ERROR),
    ):
        logging.getLogger(name).setLevel(lib_level)
