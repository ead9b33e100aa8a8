from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .mackerel_models import GraphDefsParam
from .resource_models import EntityClass, Resource


class AggregationKind(str, Enum):
    """What an OTel data point aggregated: one number, the latest one, or a distribution."""
    SUM = "sum"
    LAST_VALUE = "last_value"
    DISTRIBUTION = "distribution"


class InstrumentKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    DISTRIBUTION = "distribution"

    @classmethod
    def of(cls, aggregation: AggregationKind) -> "InstrumentKind":
        return {
            AggregationKind.SUM: cls.COUNTER,
            AggregationKind.LAST_VALUE: cls.GAUGE,
            AggregationKind.DISTRIBUTION: cls.DISTRIBUTION,
        }[aggregation]


class NumberKind(str, Enum):
    INT64 = "int64"
    FLOAT64 = "float64"


@dataclass
class MetricPoint:
    """The unit finally posted to Mackerel."""
    name: str
    value: Union[int, float]
    time: int  # Unix seconds


@dataclass
class Registration:
    """Everything one measurement needs from Mackerel during an export cycle."""
    resource: Resource
    entity_class: EntityClass
    points: List[MetricPoint] = field(default_factory=list)
    graph_def: Optional[GraphDefsParam] = None

    @property
    def entity_key(self) -> str:
        if self.entity_class is EntityClass.HOST:
            return self.resource.custom_identifier()
        return self.resource.service_name()


class ExportStage(str, Enum):
    LOOKUP = "lookup"
    CREATE = "create"
    UPDATE = "update"
    GRAPH_DEFS = "graph_defs"
    UPLOAD = "upload"


@dataclass
class ExportFailure:
    stage: ExportStage
    target: str  # custom identifier, service/role name, or graph group
    error: Exception

    def __str__(self) -> str:
        return f"{self.stage.value} {self.target}: {self.error}"


@dataclass
class ExportReport:
    """Outcome of one export cycle."""
    measurements: int = 0
    skipped: int = 0
    registered_graph_patterns: List[str] = field(default_factory=list)
    host_points: int = 0
    service_points: int = 0
    failures: List[ExportFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def fail(self, stage: ExportStage, target: str, error: Exception) -> None:
        self.failures.append(ExportFailure(stage=stage, target=target, error=error))
