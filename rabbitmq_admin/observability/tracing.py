import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

# Max span attribute value length
MAX_ATTR_LENGTH = 4096

_tracer_provider: TracerProvider | None = None
_otel_enabled: bool = False


def _get_service_config() -> dict[str, str]:
    """Get service configuration from environment."""
    return {
        "service_name": os.getenv("OTEL_SERVICE_NAME", "rabbitmq-admin-console"),
        "service_version": "1.0.0",
        "deployment_env": os.getenv("RMQ_ADMIN_ENV", "development"),
    }


def _get_exporter_config() -> dict[str, str | None]:
    """Get OTLP exporter configuration from environment."""
    return {
        "endpoint": os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
        "headers": os.getenv("OTEL_EXPORTER_OTLP_HEADERS"),
    }


def _should_enable_otel() -> bool:
    """Check if OTEL should be enabled."""
    config = _get_exporter_config()
    enabled_env = os.getenv("OTEL_TRACING_ENABLED", "true").lower() != "false"
    return enabled_env and bool(config["endpoint"])


def _parse_headers(raw: str | None) -> dict[str, str]:
    """Parse 'k1=v1,k2=v2' header strings."""
    headers: dict[str, str] = {}
    if not raw:
        return headers
    for pair in raw.split(","):
        if "=" in pair:
            key, value = pair.split("=", 1)
            headers[key.strip()] = value.strip()
    return headers


def truncate(val: Any, max_len: int = MAX_ATTR_LENGTH) -> str:
    """Truncate string to max length."""
    str_val = str(val)
    if len(str_val) <= max_len:
        return str_val
    return str_val[: max_len - 3] + "..."


def init_tracing() -> bool:
    """Initialize OpenTelemetry SDK with an OTLP/HTTP exporter."""
    global _tracer_provider, _otel_enabled  # noqa: PLW0603

    if not _should_enable_otel():
        logger.info("[Tracing] OTEL tracing disabled - no exporter endpoint")
        _otel_enabled = False
        return False

    if _tracer_provider:
        logger.info("[Tracing] Tracer provider already initialized")
        return True

    config = _get_exporter_config()
    svc_config = _get_service_config()

    try:
        endpoint = config["endpoint"].rstrip("/")
        trace_url = endpoint if endpoint.endswith("/v1/traces") else f"{endpoint}/v1/traces"
        logger.info(f"[Tracing] Trace endpoint: {trace_url}")

        exporter = OTLPSpanExporter(endpoint=trace_url, headers=_parse_headers(config["headers"]))

        resource = Resource.create(
            {
                "service.name": svc_config["service_name"],
                "service.version": svc_config["service_version"],
                "deployment.environment": svc_config["deployment_env"],
                "service.namespace": "rabbitmq-admin",
            }
        )

        _tracer_provider = TracerProvider(resource=resource)
        _tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(_tracer_provider)

        _otel_enabled = True
        logger.info(f"[Tracing] Initialized: {svc_config['service_name']}")
        return True

    except Exception as e:
        logger.error(f"[Tracing] Failed to initialize: {e}")
        return False


def get_tracer(component: str | None = None):
    """Get a tracer instance (no-op when tracing is not initialized)."""
    svc_config = _get_service_config()
    name = svc_config["service_name"]
    if component:
        name = f"{name}.{component}"
    return trace.get_tracer(name, svc_config["service_version"])


def is_otel_enabled() -> bool:
    """Check if OTEL is enabled."""
    return _otel_enabled


def shutdown_tracing() -> None:
    """Flush and shut down the tracer provider."""
    global _tracer_provider, _otel_enabled  # noqa: PLW0603

    if _tracer_provider is None:
        return
    try:
        _tracer_provider.shutdown()
    except Exception as e:
        logger.warning(f"[Tracing] Shutdown error: {e}")
    _tracer_provider = None
    _otel_enabled = False
