"""
Request/response shapes of the Mackerel API v0.

Field names follow Python conventions; `dump()` produces the camelCase JSON
the API expects (customIdentifier, hostId, roleFullnames, ...).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GraphUnit(str, Enum):
    """Units accepted by Mackerel graph definitions that this exporter emits."""
    FLOAT = "float"
    INTEGER = "integer"
    BYTES = "bytes"


class MackerelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class GraphDefsMetric(MackerelModel):
    name: str
    display_name: str = ""
    is_stacked: bool = False


class GraphDefsParam(MackerelModel):
    """One graph definition: a group name plus the metric patterns drawn in it."""
    name: str
    display_name: str = ""
    unit: GraphUnit = GraphUnit.FLOAT
    metrics: List[GraphDefsMetric] = Field(default_factory=list)

    def patterns(self) -> List[str]:
        return [m.name for m in self.metrics]


class Cloud(MackerelModel):
    provider: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HostMeta(MackerelModel):
    agent_name: Optional[str] = None
    agent_version: Optional[str] = None
    cloud: Optional[Cloud] = None


class HostParam(MackerelModel):
    """Body of both "create host" and "update host"."""
    name: str
    display_name: Optional[str] = None
    custom_identifier: Optional[str] = None
    meta: HostMeta = Field(default_factory=HostMeta)
    role_fullnames: Optional[List[str]] = None


class Host(MackerelModel):
    id: str
    name: str = ""
    display_name: Optional[str] = None
    custom_identifier: Optional[str] = None
    meta: HostMeta = Field(default_factory=HostMeta)
    role_fullnames: Optional[List[str]] = None


class Service(MackerelModel):
    name: str
    memo: str = ""
    roles: List[str] = Field(default_factory=list)


class Role(MackerelModel):
    name: str
    memo: str = ""


class MetricValue(MackerelModel):
    """A single value of a service metric (or of a host metric, minus the host)."""
    name: str
    time: int
    value: Union[int, float]


class HostMetricValue(MetricValue):
    host_id: str
