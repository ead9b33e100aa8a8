"""
OpenTelemetry metric exporter for Mackerel.

Every export cycle:
  1. collects one Registration per data point (resource, graph definition,
     metric values); unroutable or misnamed measurements are skipped
  2. makes sure services, roles and hosts exist in Mackerel
  3. creates graph definitions for metric patterns not seen before
  4. posts host values in one call and service values in one call per service

Registrations are remembered in a RegistrationCache so that a host, a role
or a graph metric pattern is created at most once per process. Failures
are recorded in the cycle's ExportReport and never abort the other
destinations; nothing is retried before the next cycle.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from opentelemetry import trace
from opentelemetry.sdk.metrics import Histogram as HistogramInstrument
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from prometheus_client import CollectorRegistry, Counter, Histogram

from ..errors import NameMismatchError, UnroutableEntityError
from ..models.mackerel_models import (
    Cloud,
    GraphDefsParam,
    HostMeta,
    HostMetricValue,
    HostParam,
    MetricValue,
)
from ..models.metric_models import (
    AggregationKind,
    ExportReport,
    ExportStage,
    InstrumentKind,
    Registration,
)
from ..models.resource_models import EntityClass, Resource, build_resource
from ..utils import metricname
from .aggregation import aggregation_kind, extract_points, number_kind
from .graphdef import GraphDefOptions, find_hint, new_graph_def
from .registration_cache import RegistrationCache

logger = logging.getLogger("mackerel.exporter")
tracer = trace.get_tracer(__name__)

# ---------------------------------------------------------------------------
# Prometheus metrics about the exporter itself (own registry so the host
# application can expose or ignore them)
# ---------------------------------------------------------------------------

EXPORTER_REGISTRY = CollectorRegistry()

EXPORT_CYCLES_TOTAL = Counter(
    "mackerel_exporter_cycles_total",
    "Export cycles run by the Mackerel exporter",
    ["result"],  # success | failure
    registry=EXPORTER_REGISTRY,
)

EXPORT_POINTS_TOTAL = Counter(
    "mackerel_exporter_points_total",
    "Metric values posted to Mackerel",
    ["destination"],  # host | service
    registry=EXPORTER_REGISTRY,
)

EXPORT_ERRORS_TOTAL = Counter(
    "mackerel_exporter_errors_total",
    "Failed Mackerel API calls",
    ["stage"],  # lookup | create | update | graph_defs | upload
    registry=EXPORTER_REGISTRY,
)

EXPORT_CYCLE_DURATION_SECONDS = Histogram(
    "mackerel_exporter_cycle_duration_seconds",
    "Duration of one export cycle including all Mackerel API calls",
    buckets=(0.05, 0.1, 0.5, 1, 2, 5, 10, 30, 60),
    registry=EXPORTER_REGISTRY,
)


def _route(resource: Resource, attributes: Dict[str, Any]) -> EntityClass:
    entity_class = resource.entity_class()
    if entity_class is EntityClass.UNROUTABLE:
        raise UnroutableEntityError(attributes)
    return entity_class


class MackerelMetricExporter(MetricExporter):
    """
    Exports OpenTelemetry metrics to Mackerel through `client`.

    `client` is either utils.mackerel_client.MackerelClient (push mode) or
    services.snapshot_client.SnapshotClient (pull mode).
    """

    def __init__(
        self,
        client: Any,
        quantiles: Sequence[float] = (),
        hints: Sequence[str] = (),
        cache: Optional[RegistrationCache] = None,
        preferred_temporality: Optional[Dict[type, AggregationTemporality]] = None,
    ):
        if preferred_temporality is None:
            preferred_temporality = {HistogramInstrument: AggregationTemporality.DELTA}
        super().__init__(preferred_temporality=preferred_temporality)

        self.client = client
        self.quantiles = list(quantiles)
        self.hints = [metricname.canonical(h) for h in hints]
        self.cache = cache or RegistrationCache()
        self.last_report: Optional[ExportReport] = None

        self._export_lock = threading.Lock()
        self._shutdown = False

    # ------------------------------------------------------------------
    # MetricExporter interface
    # ------------------------------------------------------------------

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs: Any,
    ) -> MetricExportResult:
        if self._shutdown:
            logger.warning("export called after shutdown; dropped")
            return MetricExportResult.FAILURE

        with self._export_lock, tracer.start_as_current_span("mackerel.export") as span:
            t0 = time.monotonic()
            report = self.export_batch(metrics_data)
            EXPORT_CYCLE_DURATION_SECONDS.observe(time.monotonic() - t0)

            span.set_attribute("mackerel.measurements", report.measurements)
            span.set_attribute("mackerel.skipped", report.skipped)
            span.set_attribute("mackerel.points.host", report.host_points)
            span.set_attribute("mackerel.points.service", report.service_points)
            span.set_attribute("mackerel.graph_patterns", len(report.registered_graph_patterns))
            span.set_attribute("mackerel.failures", len(report.failures))

        if not report.ok:
            EXPORT_CYCLES_TOTAL.labels(result="failure").inc()
            return MetricExportResult.FAILURE
        EXPORT_CYCLES_TOTAL.labels(result="success").inc()
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        self._shutdown = True

    # ------------------------------------------------------------------
    # Export cycle
    # ------------------------------------------------------------------

    def export_batch(self, metrics_data: MetricsData) -> ExportReport:
        report = ExportReport()
        registrations = self._collect(metrics_data, report)

        failed_services = self._register_services(registrations, report)
        host_ids = self._register_hosts(registrations, failed_services, report)
        self._register_graph_defs(registrations, report)
        self._upload(registrations, host_ids, failed_services, report)

        self.last_report = report
        logger.debug(
            "export cycle: measurements=%d skipped=%d host_points=%d service_points=%d failures=%d",
            report.measurements,
            report.skipped,
            report.host_points,
            report.service_points,
            len(report.failures),
        )
        return report

    def _call(
        self,
        report: ExportReport,
        stage: ExportStage,
        target: str,
        fn: Callable,
        *args: Any,
    ) -> Tuple[bool, Any]:
        """Run one client call; a failure is recorded against `target` only."""
        try:
            return True, fn(*args)
        except Exception as exc:
            logger.error("Mackerel %s failed for %s: %s", stage.value, target, exc)
            EXPORT_ERRORS_TOTAL.labels(stage=stage.value).inc()
            report.fail(stage, target, exc)
            return False, None

    # -- 1. collecting --------------------------------------------------

    def _collect(self, metrics_data: MetricsData, report: ExportReport) -> List[Registration]:
        registrations: List[Registration] = []
        for rm in metrics_data.resource_metrics:
            base = dict(rm.resource.attributes) if rm.resource is not None else {}
            for sm in rm.scope_metrics:
                for metric in sm.metrics:
                    kind = aggregation_kind(metric.data)
                    if kind is None:
                        logger.debug("unsupported aggregation %s of %s; ignored", type(metric.data).__name__, metric.name)
                        continue
                    name = metricname.canonical(metric.name)
                    for point in metric.data.data_points:
                        report.measurements += 1
                        r = self._registration(name, kind, metric.unit, point, base)
                        if r is None:
                            report.skipped += 1
                            continue
                        registrations.append(r)
        return registrations

    def _registration(
        self,
        name: str,
        kind: AggregationKind,
        unit: Optional[str],
        point: Any,
        base: Dict[str, Any],
    ) -> Optional[Registration]:
        attrs = dict(base)
        attrs.update(point.attributes or {})
        resource = build_resource(attrs)
        try:
            entity_class = _route(resource, attrs)
            graph_def = self._graph_def(name, kind, unit, point, resource)
        except UnroutableEntityError:
            logger.debug("%s has neither host nor service attributes; dropped", name)
            return None
        except NameMismatchError as exc:
            logger.warning("skipped %s: %s", name, exc)
            return None

        return Registration(
            resource=resource,
            entity_class=entity_class,
            points=extract_points(name, kind, point, self.quantiles),
            graph_def=graph_def,
        )

    def _graph_def(
        self,
        name: str,
        kind: AggregationKind,
        unit: Optional[str],
        point: Any,
        resource: Resource,
    ) -> Optional[GraphDefsParam]:
        if not metricname.is_custom(name):
            return None  # system metrics come with their own graphs
        instrument = InstrumentKind.of(kind)
        if resource.mackerel.graph_class:
            hint = metricname.canonical(resource.mackerel.graph_class)
        else:
            hint = find_hint(name, instrument, self.hints)
        opts = GraphDefOptions(
            name=hint,
            metric_name=metricname.canonical(resource.mackerel.metric_class) if resource.mackerel.metric_class else "",
            unit=unit or "1",
            number_kind=number_kind(point),
            quantiles=self.quantiles,
        )
        return new_graph_def(name, instrument, opts)

    # -- 2. registering -------------------------------------------------

    def _register_services(self, registrations: List[Registration], report: ExportReport) -> Set[str]:
        """Find or create every service and role; returns the services that failed."""
        failed: Set[str] = set()
        known: Optional[Set[str]] = None

        roles_by_service: "OrderedDict[str, Set[str]]" = OrderedDict()
        for r in registrations:
            service = r.resource.service_name()
            if not service:
                continue
            roles = roles_by_service.setdefault(service, set())
            if r.resource.role_name():
                roles.add(r.resource.role_name())

        for service, roles in roles_by_service.items():
            # True once the role list of `service` is in the cache for this cycle
            fetched = False
            if not self.cache.has_service(service):
                if known is None:
                    ok, found = self._call(report, ExportStage.LOOKUP, service, self.client.find_services)
                    if not ok:
                        failed.add(service)
                        continue
                    known = {s.name for s in found}
                if service in known:
                    ok, existing = self._call(report, ExportStage.LOOKUP, service, self.client.find_roles, service)
                    if not ok:
                        failed.add(service)
                        continue
                    self.cache.add_service(service, [role.name for role in existing])
                else:
                    ok, _ = self._call(report, ExportStage.CREATE, service, self.client.create_service, service)
                    if not ok:
                        failed.add(service)
                        continue
                    logger.info("created service %s", service)
                    known.add(service)
                    self.cache.add_service(service)
                fetched = True

            failed.update(self._ensure_roles(service, sorted(roles), fetched, report))
        return failed

    def _ensure_roles(self, service: str, roles: List[str], fetched: bool, report: ExportReport) -> Set[str]:
        """Create the roles missing from `service`; returns the fullnames that failed."""
        failed: Set[str] = set()
        for role in roles:
            if self.cache.has_role(service, role):
                continue
            fullname = f"{service}:{role}"
            if not fetched:
                ok, existing = self._call(report, ExportStage.LOOKUP, fullname, self.client.find_roles, service)
                if not ok:
                    failed.add(fullname)
                    continue
                self.cache.add_service(service, [r.name for r in existing])
                fetched = True
                if self.cache.has_role(service, role):
                    continue
            ok, _ = self._call(report, ExportStage.CREATE, fullname, self.client.create_role, service, role)
            if not ok:
                failed.add(fullname)
                continue
            logger.info("created role %s", fullname)
            self.cache.add_role(service, role)
        return failed

    def _register_hosts(
        self,
        registrations: List[Registration],
        failed_services: Set[str],
        report: ExportReport,
    ) -> Dict[str, str]:
        """Upsert hosts not seen before; returns custom identifier -> host id."""
        resources: "OrderedDict[str, Resource]" = OrderedDict()
        role_fullnames: Dict[str, Set[str]] = {}
        for r in registrations:
            if r.entity_class is not EntityClass.HOST:
                continue
            key = r.entity_key
            resources.setdefault(key, r.resource)
            fullname = r.resource.role_fullname()
            if fullname and fullname not in failed_services and r.resource.service_name() not in failed_services:
                role_fullnames.setdefault(key, set()).add(fullname)

        host_ids: Dict[str, str] = {}
        for key, resource in resources.items():
            host_id = self.cache.host_id(key)
            if host_id is None:
                host_id = self._upsert_host(key, resource, sorted(role_fullnames.get(key, ())), report)
                if host_id is None:
                    continue
                self.cache.set_host_id(key, host_id)
            host_ids[key] = host_id
        return host_ids

    def _upsert_host(self, key: str, resource: Resource, roles: List[str], report: ExportReport) -> Optional[str]:
        meta = HostMeta()
        if resource.cloud.provider:
            meta = HostMeta(cloud=Cloud(provider=resource.cloud.provider))
        param = HostParam(
            name=resource.hostname(),
            custom_identifier=key,
            meta=meta,
            role_fullnames=roles or None,
        )

        ok, found = self._call(report, ExportStage.LOOKUP, key, self.client.find_hosts, key)
        if not ok:
            return None
        if found:
            ok, host_id = self._call(report, ExportStage.UPDATE, key, self.client.update_host, found[0].id, param)
            action = "updated"
        else:
            ok, host_id = self._call(report, ExportStage.CREATE, key, self.client.create_host, param)
            action = "created"
        if not ok:
            return None
        logger.info("%s host %s (id=%s)", action, key, host_id)
        return host_id

    def _register_graph_defs(self, registrations: List[Registration], report: ExportReport) -> None:
        defs: "OrderedDict[str, GraphDefsParam]" = OrderedDict()
        patterns: List[str] = []
        for r in registrations:
            g = r.graph_def
            if g is None:
                continue
            unseen = self.cache.unregistered_patterns(g.patterns())
            if not unseen:
                continue
            d = defs.setdefault(g.name, g.model_copy(update={"metrics": []}))
            for m in g.metrics:
                if m.name in unseen and m.name not in patterns:
                    d.metrics.append(m)
                    patterns.append(m.name)

        if not defs:
            return
        target = ",".join(defs.keys())
        ok, _ = self._call(report, ExportStage.GRAPH_DEFS, target, self.client.create_graph_defs, list(defs.values()))
        if not ok:
            return
        self.cache.add_patterns(patterns)
        report.registered_graph_patterns.extend(patterns)

    # -- 3. uploading ---------------------------------------------------

    def _upload(
        self,
        registrations: List[Registration],
        host_ids: Dict[str, str],
        failed_services: Set[str],
        report: ExportReport,
    ) -> None:
        host_values: List[HostMetricValue] = []
        service_values: "OrderedDict[str, List[MetricValue]]" = OrderedDict()
        for r in registrations:
            if r.entity_class is EntityClass.HOST:
                host_id = host_ids.get(r.entity_key)
                if host_id is None:
                    report.skipped += 1
                    continue
                host_values.extend(
                    HostMetricValue(host_id=host_id, name=p.name, time=p.time, value=p.value) for p in r.points
                )
            else:
                service = r.entity_key
                if service in failed_services:
                    report.skipped += 1
                    continue
                service_values.setdefault(service, []).extend(
                    MetricValue(name=p.name, time=p.time, value=p.value) for p in r.points
                )

        if host_values:
            ok, _ = self._call(report, ExportStage.UPLOAD, "hosts", self.client.post_host_metric_values, host_values)
            if ok:
                report.host_points += len(host_values)
                EXPORT_POINTS_TOTAL.labels(destination="host").inc(len(host_values))

        for service, values in service_values.items():
            if not values:
                continue
            ok, _ = self._call(report, ExportStage.UPLOAD, service, self.client.post_service_metric_values, service, values)
            if ok:
                report.service_points += len(values)
                EXPORT_POINTS_TOTAL.labels(destination="service").inc(len(values))
