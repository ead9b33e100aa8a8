"""
In-memory stand-in for Mackerel used in pull mode.

Instead of posting host metric values, the latest batch is kept as a
snapshot that mackerel-agent scrapes through GET /metrics (see
routers/metrics_router.py). Hosts, services and roles are remembered so the
exporter's find-or-create logic behaves exactly as against the real API.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Sequence

from ..errors import MackerelAPIError
from ..models.mackerel_models import (
    GraphDefsParam,
    Host,
    HostMetricValue,
    HostParam,
    MetricValue,
    Role,
    Service,
)
from ..utils import metricname

logger = logging.getLogger("mackerel.exporter.snapshot")


class SnapshotClient:
    def __init__(self) -> None:
        self._services: Dict[str, Service] = {}
        self._roles: Dict[str, Dict[str, Role]] = {}
        self._hosts: Dict[str, Host] = {}

        self._lock = threading.RLock()
        self._snapshot: List[HostMetricValue] = []

    def find_services(self) -> List[Service]:
        return list(self._services.values())

    def create_service(self, name: str, memo: str = "") -> Service:
        if name in self._services:
            raise MackerelAPIError(f"the service {name} already exists", status_code=400)
        s = Service(name=name, memo=memo)
        self._services[name] = s
        return s

    def find_roles(self, service: str) -> List[Role]:
        return list(self._roles.get(service, {}).values())

    def create_role(self, service: str, name: str, memo: str = "") -> Role:
        roles = self._roles.setdefault(service, {})
        if name in roles:
            raise MackerelAPIError(f"the role {service}:{name} already exists", status_code=400)
        r = Role(name=name, memo=memo)
        roles[name] = r
        return r

    def find_hosts(self, custom_identifier: str) -> List[Host]:
        # only searching by custom identifier is supported
        return [h for h in self._hosts.values() if h.custom_identifier == custom_identifier]

    def create_host(self, param: HostParam) -> str:
        host_id = str(len(self._hosts) + 1)
        self._hosts[host_id] = Host(id=host_id, **param.model_dump())
        return host_id

    def update_host(self, host_id: str, param: HostParam) -> str:
        if host_id not in self._hosts:
            raise MackerelAPIError(f"the host {host_id} does not exist", status_code=404)
        self._hosts[host_id] = Host(id=host_id, **param.model_dump())
        return host_id

    def create_graph_defs(self, defs: Sequence[GraphDefsParam]) -> None:
        logger.debug("graph definitions are not served in pull mode: %s", [d.name for d in defs])

    def post_host_metric_values(self, values: Sequence[HostMetricValue]) -> None:
        with self._lock:
            self._snapshot = list(values)

    def post_service_metric_values(self, service: str, values: Sequence[MetricValue]) -> None:
        # mackerel-agent only scrapes host metrics
        logger.debug("dropped %d metric values of service %s in pull mode", len(values), service)

    def snapshot(self) -> List[HostMetricValue]:
        with self._lock:
            return list(self._snapshot)

    def render(self) -> str:
        return render_snapshot(self.snapshot())


def _format_value(value) -> str:
    if isinstance(value, float):
        return "%f" % value
    return str(value)


def render_snapshot(values: Sequence[MetricValue]) -> str:
    """
    One "name<TAB>value<TAB>time" line per value, in the format of
    mackerel-agent plugins. The agent adds the "custom." prefix itself.
    """
    lines = []
    for v in values:
        segments = metricname.split(v.name)
        if segments[0] == metricname.CUSTOM_PREFIX:
            segments = segments[1:]
        lines.append(f"{metricname.join(*segments)}\t{_format_value(v.value)}\t{v.time}\n")
    return "".join(lines)
