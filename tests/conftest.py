from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Gauge,
    Histogram,
    HistogramDataPoint,
    Metric,
    MetricsData,
    NumberDataPoint,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.util.instrumentation import InstrumentationScope

from mackerel_exporter.errors import MackerelAPIError
from mackerel_exporter.services.snapshot_client import SnapshotClient

T0 = 1601862222
T0_NANOS = T0 * 10 ** 9

HOST_ATTRS = {"host.id": "1-2-3-4", "host.name": "localhost"}
SERVICE_ATTRS = {"service.namespace": "example", "service.name": "ping"}


class RecordingClient(SnapshotClient):
    """SnapshotClient that records every call and fails the methods named in `fail`."""

    def __init__(self, fail: Sequence[str] = ()):
        super().__init__()
        self.calls: List[Tuple[str, tuple]] = []
        self.fail = set(fail)
        self.graph_defs: List[Any] = []
        self.host_values: List[Any] = []
        self.service_values: Dict[str, List[Any]] = {}

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if method in self.fail:
            raise MackerelAPIError(f"{method} is broken", status_code=500)

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def find_services(self):
        self._record("find_services")
        return super().find_services()

    def create_service(self, name, memo=""):
        self._record("create_service", name)
        return super().create_service(name, memo)

    def find_roles(self, service):
        self._record("find_roles", service)
        return super().find_roles(service)

    def create_role(self, service, name, memo=""):
        self._record("create_role", service, name)
        return super().create_role(service, name, memo)

    def find_hosts(self, custom_identifier):
        self._record("find_hosts", custom_identifier)
        return super().find_hosts(custom_identifier)

    def create_host(self, param):
        self._record("create_host", param)
        return super().create_host(param)

    def update_host(self, host_id, param):
        self._record("update_host", host_id, param)
        return super().update_host(host_id, param)

    def create_graph_defs(self, defs):
        self._record("create_graph_defs", defs)
        self.graph_defs.extend(defs)

    def post_host_metric_values(self, values):
        self._record("post_host_metric_values", values)
        self.host_values.extend(values)
        super().post_host_metric_values(values)

    def post_service_metric_values(self, service, values):
        self._record("post_service_metric_values", service, values)
        self.service_values.setdefault(service, []).extend(values)


@pytest.fixture
def client() -> RecordingClient:
    return RecordingClient()


def number_point(value, attributes: Optional[Dict[str, Any]] = None) -> NumberDataPoint:
    return NumberDataPoint(
        attributes=attributes or {},
        start_time_unix_nano=T0_NANOS - 60 * 10 ** 9,
        time_unix_nano=T0_NANOS,
        value=value,
    )


def histogram_point(
    bucket_counts: Sequence[int],
    explicit_bounds: Sequence[float],
    minimum: float,
    maximum: float,
    attributes: Optional[Dict[str, Any]] = None,
) -> HistogramDataPoint:
    return HistogramDataPoint(
        attributes=attributes or {},
        start_time_unix_nano=T0_NANOS - 60 * 10 ** 9,
        time_unix_nano=T0_NANOS,
        count=sum(bucket_counts),
        sum=0.0,
        bucket_counts=list(bucket_counts),
        explicit_bounds=list(explicit_bounds),
        min=minimum,
        max=maximum,
    )


def sum_metric(name: str, points: List[NumberDataPoint], unit: str = "1") -> Metric:
    return Metric(
        name=name,
        description="",
        unit=unit,
        data=Sum(
            data_points=points,
            aggregation_temporality=AggregationTemporality.CUMULATIVE,
            is_monotonic=True,
        ),
    )


def gauge_metric(name: str, points: List[NumberDataPoint], unit: str = "1") -> Metric:
    return Metric(name=name, description="", unit=unit, data=Gauge(data_points=points))


def histogram_metric(name: str, points: List[HistogramDataPoint], unit: str = "ms") -> Metric:
    return Metric(
        name=name,
        description="",
        unit=unit,
        data=Histogram(data_points=points, aggregation_temporality=AggregationTemporality.DELTA),
    )


def metrics_data(metrics: List[Metric], resource: Optional[Dict[str, Any]] = None) -> MetricsData:
    return MetricsData(
        resource_metrics=[
            ResourceMetrics(
                resource=Resource(resource or {}),
                scope_metrics=[
                    ScopeMetrics(
                        scope=InstrumentationScope("tests"),
                        metrics=metrics,
                        schema_url="",
                    )
                ],
                schema_url="",
            )
        ]
    )
