"""
OpenTelemetry tracing for services that run the exporter.

- Sends spans (including the exporter's own "mackerel.export" spans) to an
  OTLP gRPC collector.
- Instruments FastAPI, logging and outgoing HTTP calls.

Metrics do not go through here; see services/pipeline.py.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import settings

logger = logging.getLogger("mackerel.exporter.otel")


def setup_tracing(app: FastAPI, endpoint: Optional[str] = None) -> Optional[TracerProvider]:
    """
    Configure tracing for `app`.

    Reads the collector endpoint from OTEL_EXPORTER_OTLP_ENDPOINT unless
    given. Without an endpoint nothing is installed and spans stay no-ops.
    """
    endpoint = endpoint or settings.OTEL_EXPORTER_OTLP_ENDPOINT
    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set; tracing disabled")
        return None

    # 1) TracerProvider with resource
    resource = Resource.create(
        {
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": "0.1.0",
        }
    )
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    # 2) OTLP gRPC exporter
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))

    # 3) Instrument FastAPI, logging, and outgoing HTTP (Mackerel API calls)
    FastAPIInstrumentor().instrument_app(app)
    LoggingInstrumentor().instrument(set_logging_format=False)
    RequestsInstrumentor().instrument()

    logger.info("tracing to %s", endpoint)
    return provider
