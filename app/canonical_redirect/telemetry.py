"""
Optional OpenTelemetry tracing of redirect decisions.

Exporter endpoint and headers come from the standard OTEL_EXPORTER_OTLP_*
variables, which the OTLP exporter reads itself.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from canonical_redirect.models import Redirect, Verdict
from canonical_redirect.options import is_truthy

logger = logging.getLogger(__name__)

TRACER_NAME = "canonical-redirect"
EVALUATE_SPAN = "canonical_url.evaluate"

_TELEMETRY_INIT_DONE = False


def telemetry_enabled_from_env() -> bool:
    raw = os.getenv("OTEL_ENABLED")
    if isinstance(raw, str) and raw.strip():
        return is_truthy(raw)
    return bool(
        (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
        or (os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or "").strip()
    )


def trace_sampler_ratio() -> float:
    raw = (os.getenv("OTEL_TRACES_SAMPLER_RATIO", "0.10") or "0.10").strip()
    try:
        value = float(raw)
    except ValueError:
        return 0.10
    return max(0.0, min(1.0, value))


def setup_telemetry(*, service_name: str) -> bool:
    """
    Install an OTLP/HTTP tracer provider once per process.

    Returns False when tracing is disabled or the SDK is not installed; the
    redirect decision never depends on it.
    """
    global _TELEMETRY_INIT_DONE

    if _TELEMETRY_INIT_DONE or not telemetry_enabled_from_env():
        return False
    _TELEMETRY_INIT_DONE = True

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
    except ImportError as exc:
        logger.warning("Tracing requested but the OpenTelemetry SDK is missing: %s", exc)
        return False

    ratio = trace_sampler_ratio()
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name}),
        sampler=ParentBased(TraceIdRatioBased(ratio)),
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info("Tracing redirect decisions (sampler_ratio=%.2f).", ratio)
    return True


def get_tracer():
    try:
        from opentelemetry import trace
    except ImportError:
        return None
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def evaluation_span(method: str) -> Iterator[object]:
    """Span around one rule evaluation; yields None without OpenTelemetry."""
    tracer = get_tracer()
    if tracer is None:
        yield None
        return
    with tracer.start_as_current_span(EVALUATE_SPAN) as span:
        span.set_attribute("http.method", method)
        yield span


def record_verdict(span: Optional[object], verdict: Verdict) -> None:
    if span is None:
        return
    redirected = isinstance(verdict, Redirect)
    span.set_attribute("canonical_url.redirect", redirected)
    if redirected:
        span.set_attribute("canonical_url.location", verdict.location)
        span.set_attribute("http.status_code", verdict.status_code)


def get_current_trace_fields() -> dict[str, str]:
    try:
        from opentelemetry import trace
    except ImportError:
        return {}

    span_ctx = trace.get_current_span().get_span_context()
    if not span_ctx.is_valid:
        return {}
    return {
        "trace_id": f"{span_ctx.trace_id:032x}",
        "span_id": f"{span_ctx.span_id:016x}",
    }
