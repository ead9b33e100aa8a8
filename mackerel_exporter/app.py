"""
Example service exporting its own metrics to Mackerel.

    MACKEREL_APIKEY=... python -m mackerel_exporter.app         # push mode
    python -m mackerel_exporter.app                             # pull mode

In pull mode, point a mackerel-agent metric plugin at GET /metrics.
"""

from __future__ import annotations

import os
import threading
import time

from fastapi import FastAPI, Request, Response
from opentelemetry.metrics import CallbackOptions, Observation
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import ExporterOptions, settings
from .models.resource_models import (
    KEY_HOST_ID,
    KEY_HOST_NAME,
    KEY_SERVICE_NAME,
    KEY_SERVICE_NAMESPACE,
)
from .services.exporter import EXPORTER_REGISTRY
from .services.pipeline import install_new_pipeline
from .utils.logging_setup import setup_logging
from .utils.otel import setup_tracing

HINTS = [
    "http.handlers.#.latency",
]

QUANTILES = [0.99, 0.90, 0.85]

HOST_ATTRIBUTES = {
    KEY_HOST_ID: os.getenv("EXAMPLE_HOST_ID", "10-1-2-241"),
    KEY_HOST_NAME: os.getenv("EXAMPLE_HOST_NAME", "localhost"),
}

SERVICE_ATTRIBUTES = {
    KEY_SERVICE_NAMESPACE: "example",
    KEY_SERVICE_NAME: "ping",
}


def _observe_threads(options: CallbackOptions):
    yield Observation(threading.active_count(), HOST_ATTRIBUTES)


def create_app() -> FastAPI:
    setup_logging()
    options = ExporterOptions.from_env(
        mode="push" if settings.MACKEREL_APIKEY else "pull",
        quantiles=QUANTILES,
        hints=HINTS,
        resource=SERVICE_ATTRIBUTES,
    )
    pipeline = install_new_pipeline(options)

    meter = pipeline.meter_provider.get_meter("example/ping")
    latency = meter.create_histogram("http.handlers.index.latency", unit="s")
    requests_count = meter.create_counter("http.requests.count", unit="1")
    meter.create_observable_gauge("runtime.threads", callbacks=[_observe_threads], unit="1")

    app = FastAPI(
        title="Mackerel exporter example",
        description="Records its own request metrics and exports them to Mackerel",
        version="0.1.0",
    )
    setup_tracing(app)

    if pipeline.router is not None:
        app.include_router(pipeline.router)

    @app.get("/")
    def index(request: Request) -> Response:
        t0 = time.perf_counter()
        resp = Response("OK\n", media_type="text/plain")
        latency.record(time.perf_counter() - t0, HOST_ATTRIBUTES)
        requests_count.add(1)
        return resp

    @app.get("/healthz")
    def health_check():
        return {"status": "ok", "service": "mackerel-exporter-example"}

    @app.get("/exporter/metrics")
    def exporter_metrics() -> Response:
        return Response(generate_latest(EXPORTER_REGISTRY), media_type=CONTENT_TYPE_LATEST)

    @app.on_event("shutdown")
    def shutdown_event():
        pipeline.stop()

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mackerel_exporter.app:create_app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8080)),
        reload=False,
        factory=True,
    )
