"""OpenTelemetry tracing for the adapter core.

``setup_observability()`` connects to a running OTLP collector (Arize Phoenix
by default) and instruments the Anthropic and OpenAI SDKs. Failed turns are
recorded as ``response_errored`` spans by :func:`capture_response_errored`.
"""

import logging

from openinference.instrumentation.anthropic import AnthropicInstrumentor
from openinference.instrumentation.openai import OpenAIInstrumentor
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

import config
from providers.errors import detect_context_limit_error

logger = logging.getLogger(__name__)

RESPONSE_ERRORED = "response_errored"


def setup_observability(endpoint: str | None = None) -> bool:
    """Register an OTLP exporter and instrument the LLM SDKs.

    Does NOT launch a collector; spans are batched and exported in the
    background to whatever is listening at ``endpoint``.

    Returns:
        True on success, False if telemetry is disabled or setup failed.
    """
    if not config.TELEMETRY_ENABLED:
        logger.info("Telemetry disabled")
        return False

    endpoint = endpoint or config.OTEL_TRACES_ENDPOINT
    try:
        provider = TracerProvider(resource=Resource.create({"service.name": config.TELEMETRY_SERVICE_NAME}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

        # Global provider so the instrumentors and get_tracer() pick it up
        trace.set_tracer_provider(provider)

        AnthropicInstrumentor().instrument(tracer_provider=provider)
        OpenAIInstrumentor().instrument(tracer_provider=provider)
    except Exception:
        logger.exception("Observability setup failed")
        return False

    logger.info("Tracing to %s", endpoint)
    return True


def get_tracer() -> trace.Tracer:
    """Return the project tracer for manual span creation."""
    return trace.get_tracer(config.TELEMETRY_SERVICE_NAME)


def capture_response_errored(provider: str, model_id: str, message: str, tracer: trace.Tracer | None = None) -> None:
    """Record a failed turn. Never raises.

    Args:
        provider: Provider name resolved from the model id ("" if unresolved).
        model_id: Full model id of the failed request.
        message: The error message delivered to ``on_error``.
        tracer: Tracer to record on; defaults to :func:`get_tracer`.
    """
    try:
        tracer = tracer or get_tracer()
        with tracer.start_as_current_span(RESPONSE_ERRORED) as span:
            span.set_attribute("model.provider", provider or "unknown")
            span.set_attribute("model.id", model_id or "")
            span.set_attribute("error.message", message or "")
            span.set_attribute("error.context_limit", detect_context_limit_error(message, model_id))
            span.set_status(Status(StatusCode.ERROR, message))
    except Exception:
        logger.warning("Failed to record %s event", RESPONSE_ERRORED, exc_info=True)
