"""
Resource attributes that decide where a measurement goes in Mackerel.

Attribute keys follow the OpenTelemetry resource semantic conventions:
https://opentelemetry.io/docs/specs/semconv/resource/
"""

import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Tuple, Union

KEY_SERVICE_NAMESPACE = "service.namespace"
KEY_SERVICE_NAME = "service.name"
KEY_SERVICE_INSTANCE_ID = "service.instance.id"
KEY_SERVICE_VERSION = "service.version"
KEY_HOST_ID = "host.id"
KEY_HOST_NAME = "host.name"
KEY_CLOUD_PROVIDER = "cloud.provider"

# Mackerel specific overrides for graph definitions
KEY_GRAPH_CLASS = "mackerel.graph.class"
KEY_METRIC_CLASS = "mackerel.metric.class"

FALLBACK_HOSTNAME = "localhost"
RESOURCE_NAME_SEP = "."


class EntityClass(str, Enum):
    HOST = "host"
    SERVICE = "service"
    UNROUTABLE = "unroutable"


@dataclass
class Instance:
    id: str = ""


@dataclass
class ServiceAttrs:
    namespace: str = ""
    name: str = ""
    instance: Instance = field(default_factory=Instance)
    version: str = ""


@dataclass
class HostAttrs:
    id: str = ""
    name: str = ""


@dataclass
class CloudAttrs:
    provider: str = ""


@dataclass
class MackerelAttrs:
    graph_class: str = ""
    metric_class: str = ""


@dataclass
class Resource:
    service: ServiceAttrs = field(default_factory=ServiceAttrs)
    host: HostAttrs = field(default_factory=HostAttrs)
    cloud: CloudAttrs = field(default_factory=CloudAttrs)
    mackerel: MackerelAttrs = field(default_factory=MackerelAttrs)
    extra: Dict[str, Any] = field(default_factory=dict)

    def custom_identifier(self) -> str:
        """Host id if present, else "namespace.name.instance" of the service instance."""
        if self.host.id:
            return self.host.id
        if not self.service.instance.id:
            return ""
        parts = [self.service.namespace, self.service.name, self.service.instance.id]
        return RESOURCE_NAME_SEP.join(p for p in parts if p)

    def hostname(self) -> str:
        if self.host.name:
            return self.host.name
        if self.service.instance.id:
            if self.service.name:
                return f"{self.service.name}-{self.service.instance.id}"
            return self.service.instance.id
        try:
            name = socket.gethostname()
        except OSError:
            name = ""
        return name or FALLBACK_HOSTNAME

    def service_name(self) -> str:
        return self.service.namespace

    def role_name(self) -> str:
        return self.service.name

    def role_fullname(self) -> str:
        if not self.service.namespace or not self.service.name:
            return ""
        return f"{self.service.namespace}:{self.service.name}"

    def entity_class(self) -> EntityClass:
        if self.custom_identifier():
            return EntityClass.HOST
        if self.service_name():
            return EntityClass.SERVICE
        return EntityClass.UNROUTABLE


def _setter(path: Tuple[str, ...]) -> Callable[[Resource, str], None]:
    def assign(r: Resource, value: str) -> None:
        target: Any = r
        for attr in path[:-1]:
            target = getattr(target, attr)
        setattr(target, path[-1], value)
    return assign


_FIELDS: Dict[str, Callable[[Resource, str], None]] = {
    KEY_SERVICE_NAMESPACE: _setter(("service", "namespace")),
    KEY_SERVICE_NAME: _setter(("service", "name")),
    KEY_SERVICE_INSTANCE_ID: _setter(("service", "instance", "id")),
    KEY_SERVICE_VERSION: _setter(("service", "version")),
    KEY_HOST_ID: _setter(("host", "id")),
    KEY_HOST_NAME: _setter(("host", "name")),
    KEY_CLOUD_PROVIDER: _setter(("cloud", "provider")),
    KEY_GRAPH_CLASS: _setter(("mackerel", "graph_class")),
    KEY_METRIC_CLASS: _setter(("mackerel", "metric_class")),
}


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(v) for v in value)
    return str(value)


def build_resource(attributes: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> Resource:
    """
    Build a Resource from flat dotted attributes.

    Later pairs win over earlier ones. Keys without a matching field are kept
    in `Resource.extra`; they are never an error.
    """
    items = attributes.items() if isinstance(attributes, Mapping) else attributes
    r = Resource()
    for key, value in items:
        if not key:
            continue
        assign = _FIELDS.get(key)
        if assign is None:
            r.extra[key] = value
            continue
        assign(r, _as_text(value))
    return r
