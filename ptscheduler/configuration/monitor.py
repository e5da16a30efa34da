import logging
from datetime import date
from enum import Enum
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from azure.monitor.opentelemetry.exporter import AzureMonitorTraceExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from ptscheduler.configuration.config import Config

logger = logging.getLogger("ptscheduler")
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
logger.addHandler(handler)
logger.setLevel(logging.INFO)

resource = Resource(attributes={
    SERVICE_NAME: "ptscheduler"
})

def setup_azure_monitor():
    """
    Export traces to Application Insights. Without a connection string the
    global no-op tracer is used, so spans and events cost nothing in tests
    and local runs.
    """
    if not Config.APPLICATIONINSIGHTS_CONNECTION_STRING:
        logger.info("Application Insights connection string not set, tracing is disabled")
        return trace.get_tracer(__name__)
    try:
        trace_provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(trace_provider)
        trace_provider.add_span_processor(BatchSpanProcessor(
            AzureMonitorTraceExporter(connection_string=Config.APPLICATIONINSIGHTS_CONNECTION_STRING)
        ))

        # JWKS lookups go through httpx
        HTTPXClientInstrumentor().instrument()

        logger.info("Azure Monitor setup completed successfully")
        return trace.get_tracer(__name__)
    except Exception as e:
        logger.error(f"Failed to set up Azure Monitor: {str(e)}")
        return trace.get_tracer(__name__)

tracer = setup_azure_monitor()

def instrument_fastapi(app):
    """Instrument a FastAPI application for monitoring."""
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI app instrumented successfully")
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI app: {str(e)}")

def _attribute_value(value):
    """Span attributes only take primitives; dates and enums become their text form"""
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return str(value)

def _set_attributes(span, properties):
    for key, value in (properties or {}).items():
        if value is not None:
            span.set_attribute(key, _attribute_value(value))

def start_span(name, context=None, kind=None, attributes=None):
    """Start a new trace span; None attribute values are dropped."""
    attributes = {key: _attribute_value(value) for key, value in (attributes or {}).items() if value is not None}
    return tracer.start_as_current_span(name, context=context, kind=kind, attributes=attributes)

def log_event(event_name, properties=None):
    """Record a business event (booking written, request approved...) as a child span and a log line."""
    try:
        with tracer.start_as_current_span(event_name) as span:
            _set_attributes(span, properties)
        logger.info(f"Event: {event_name}", extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log event '{event_name}': {str(e)}")

def log_exception(exception, properties=None):
    """Unexpected failures only; domain rejections go through log_rejection."""
    try:
        with tracer.start_as_current_span("exception") as span:
            span.record_exception(exception)
            _set_attributes(span, properties)
            span.set_status(trace.StatusCode.ERROR, str(exception))
        logger.exception(f"Exception: {str(exception)}", exc_info=exception,
                         extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log exception: {str(e)}")

def log_metric(metric_name, value, properties=None):
    """Counts such as booked or rejected sessions, attached to a span as a numeric value."""
    try:
        with tracer.start_as_current_span(f"metric:{metric_name}") as span:
            span.set_attribute("metric.value", value)
            _set_attributes(span, properties)
        logger.info(f"Metric: {metric_name}={value}", extra={"custom_properties": properties})
    except Exception as e:
        logger.error(f"Failed to log metric '{metric_name}': {str(e)}")

def log_rejection(operation, error, properties=None):
    """
    Log an expected domain rejection (conflict, cutoff, authorization...).
    These are normal outcomes for the caller, so they are recorded as
    warnings on the span rather than as exceptions.
    """
    attributes = dict(properties or {})
    attributes["operation"] = operation
    attributes["error.code"] = getattr(error, "code", type(error).__name__)
    attributes["error.message"] = getattr(error, "message", str(error))
    attributes["error.retryable"] = getattr(error, "retryable", False)
    try:
        with tracer.start_as_current_span(f"rejected:{operation}") as span:
            _set_attributes(span, attributes)
        logger.warning(f"Rejected: {operation} ({attributes['error.code']}): {attributes['error.message']}",
                       extra={"custom_properties": attributes})
    except Exception as e:
        logger.error(f"Failed to log rejection for '{operation}': {str(e)}")
