from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from opentelemetry import trace

logger = logging.getLogger("mackerel.exporter.router")
tracer = trace.get_tracer(__name__)


def build_metrics_router(client) -> APIRouter:
    """
    Router exposing the latest snapshot of `client` (a SnapshotClient)
    in the mackerel-agent plugin format:

        GET /metrics
        request_latencies.index<TAB>12.500000<TAB>1601862222
        requests.count<TAB>1000<TAB>1601862222
    """
    router = APIRouter(tags=["metrics"])

    @router.get(
        "/metrics",
        response_class=PlainTextResponse,
        summary="Latest metric values for mackerel-agent.",
    )
    def metrics_snapshot() -> PlainTextResponse:
        with tracer.start_as_current_span("mackerel.metrics_snapshot") as span:
            try:
                body = client.render()
            except Exception as exc:
                logger.exception("Failed to render metrics snapshot")
                span.record_exception(exc)
                raise HTTPException(status_code=500, detail=f"Error rendering metrics: {exc}")
            span.set_attribute("mackerel.snapshot.bytes", len(body))
            return PlainTextResponse(body)

    return router
