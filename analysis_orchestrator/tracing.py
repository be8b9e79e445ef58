"""
OpenTelemetry Tracing Setup
===========================
Configures tracing for orchestrator runs: one span per run, per batch and
per agent. Tracing is off unless AO_ENABLE_TRACING=true, in which case spans
are exported over OTLP/HTTP.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import atexit
import json
from typing import Any, Mapping, Optional

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from analysis_orchestrator.config import TRACING

SERVICE_NAME_VALUE = TRACING.SERVICE_NAME
OTLP_ENDPOINT = TRACING.OTLP_ENDPOINT
ENABLE_TRACING = TRACING.ENABLED

# Track provider for cleanup
_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def _cleanup_tracing() -> None:
    """Shutdown the tracer provider to flush pending spans."""
    if _provider is None:
        return
    try:
        _provider.shutdown()
    except Exception as e:
        logger.debug(f"Tracer provider shutdown failed: {e}")


def setup_tracing(service_name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing with OTLP export.

    Args:
        service_name: Name of the service for trace identification

    Returns:
        Configured tracer instance
    """
    global _provider

    resource = Resource.create({SERVICE_NAME: service_name})
    _provider = TracerProvider(resource=resource)
    _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT)))
    trace.set_tracer_provider(_provider)

    # Flush pending spans on interpreter exit
    atexit.register(_cleanup_tracing)

    logger.info(f"Tracing enabled: exporting to {OTLP_ENDPOINT}")
    return trace.get_tracer(service_name)


def get_tracer(name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


def init_tracing() -> trace.Tracer:
    """
    Initialize tracing if not already done.

    Returns:
        The global tracer instance (or NoOp tracer if disabled)
    """
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing() if ENABLE_TRACING else trace.get_tracer(SERVICE_NAME_VALUE)
    return _tracer


def safe_set_span_attributes(span: Any, attributes: Mapping[str, Any]) -> None:
    """Best-effort attribute setter.

    Safe to call with a no-op span or with values that are not directly
    serializable; sequences and dicts are flattened to bounded strings.
    """
    setter = getattr(span, "set_attribute", None)
    if not callable(setter):
        return

    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            continue
        try:
            if isinstance(value, str):
                setter(key, value[:2048])
            elif isinstance(value, (bool, int, float)):
                setter(key, value)
            elif value is None:
                continue
            elif isinstance(value, (list, tuple, set, frozenset)):
                setter(key, [str(x)[:256] for x in list(value)[:25]])
            elif isinstance(value, dict):
                setter(key, json.dumps(value, sort_keys=True, default=str)[:2048])
            else:
                setter(key, str(value)[:2048])
        except Exception as e:
            # Never break a run because of tracing
            logger.debug(f"Dropped span attribute {key}: {e}")
