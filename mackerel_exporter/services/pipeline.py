"""
Wiring of the exporter into the OpenTelemetry SDK.

    pipeline = install_new_pipeline(ExporterOptions(api_key=..., quantiles=[0.99, 0.9]))
    meter = pipeline.meter_provider.get_meter("example")
    ...
    pipeline.stop()

In pull mode the returned pipeline also carries a FastAPI router serving
the latest snapshot at GET /metrics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from fastapi import APIRouter
from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from pydantic import ValidationError

from ..config import ExporterOptions
from ..errors import ConfigurationError
from ..routers.metrics_router import build_metrics_router
from ..utils.logging_setup import set_debug
from ..utils.mackerel_client import MackerelClient
from .exporter import MackerelMetricExporter
from .snapshot_client import SnapshotClient

logger = logging.getLogger("mackerel.exporter.pipeline")


@dataclass
class Pipeline:
    meter_provider: MeterProvider
    reader: PeriodicExportingMetricReader
    exporter: MackerelMetricExporter
    router: Optional[APIRouter] = None

    def stop(self) -> None:
        """Run a last export cycle and stop the periodic reader."""
        self.meter_provider.shutdown()


def _options(options: Union[ExporterOptions, dict, None], overrides: dict) -> ExporterOptions:
    try:
        if options is None:
            return ExporterOptions(**overrides)
        if isinstance(options, dict):
            return ExporterOptions(**{**options, **overrides})
        if overrides:
            return ExporterOptions(**{**options.model_dump(), **overrides})
        return options
    except ValidationError as exc:
        raise ConfigurationError(f"invalid exporter options: {exc}") from exc


def new_exporter(options: ExporterOptions) -> MackerelMetricExporter:
    if options.mode == "push":
        if not options.api_key:
            raise ConfigurationError("an API key is required in push mode")
        client: Any = MackerelClient(
            options.api_key,
            base_url=options.base_url,
            timeout=options.timeout_seconds,
        )
    else:
        client = SnapshotClient()
    return MackerelMetricExporter(client, quantiles=options.quantiles, hints=options.hints)


def install_new_pipeline(
    options: Union[ExporterOptions, dict, None] = None,
    set_global: bool = True,
    **overrides: Any,
) -> Pipeline:
    """
    Build exporter, periodic reader and meter provider.

    Raises ConfigurationError before anything is started when the options
    are unusable.
    """
    opts = _options(options, overrides)
    if opts.debug:
        set_debug()

    exporter = new_exporter(opts)
    reader = PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=opts.interval_seconds * 1000,
        export_timeout_millis=opts.timeout_seconds * 1000,
    )
    provider = MeterProvider(
        metric_readers=[reader],
        resource=Resource.create(opts.resource),
    )
    if set_global:
        metrics.set_meter_provider(provider)

    router = None
    if isinstance(exporter.client, SnapshotClient):
        router = build_metrics_router(exporter.client)

    logger.info(
        "Mackerel exporter installed: mode=%s interval=%ss quantiles=%s hints=%s",
        opts.mode,
        opts.interval_seconds,
        opts.quantiles,
        opts.hints,
    )
    return Pipeline(meter_provider=provider, reader=reader, exporter=exporter, router=router)
