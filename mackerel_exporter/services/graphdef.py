"""
Graph definitions inferred from metric names.

Without hints every metric is drawn in the graph named after its parent:

    custom.ether0.txBytes  ->  graph "custom.ether0", metric "custom.ether0.*"

A hint such as "custom.http.#" groups siblings under a wildcard graph
instead. Distributions get one metric per statistic (min, max,
percentile_NN) below the metric's own name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..errors import NameMismatchError
from ..models.mackerel_models import GraphDefsMetric, GraphDefsParam, GraphUnit
from ..models.metric_models import InstrumentKind, NumberKind
from ..utils import metricname

logger = logging.getLogger("mackerel.exporter.graphdef")

UNIT_DIMENSIONLESS = "1"
UNIT_BYTES = "By"
UNIT_MILLISECONDS = "ms"

# Any leaf works; it gives distributions a concrete segment to wildcard.
DISTRIBUTION_LEAF = "max"


@dataclass
class GraphDefOptions:
    name: str = ""          # graph (group) name hint, canonical
    metric_name: str = ""   # metric pattern hint, canonical
    unit: str = UNIT_DIMENSIONLESS
    number_kind: NumberKind = NumberKind.INT64
    quantiles: Sequence[float] = field(default_factory=list)


def statistic_labels(quantiles: Sequence[float]) -> List[str]:
    return ["min", "max"] + [metricname.percentile(q) for q in quantiles]


def graph_unit(unit: str, number_kind: NumberKind) -> GraphUnit:
    if unit == UNIT_BYTES:
        return GraphUnit.BYTES
    if number_kind is NumberKind.FLOAT64:
        return GraphUnit.FLOAT
    return GraphUnit.INTEGER


def metric_display_name(pattern: str) -> str:
    """Last segment for concrete names, "%N" for N "*" segments."""
    segments = metricname.split(pattern)
    n = segments.count(metricname.WILDCARD)
    if n == 0:
        return segments[-1]
    return "%%%d" % n


def _extends(pattern: str, group: str) -> bool:
    head = metricname.split(group)
    segments = metricname.split(pattern)
    if len(segments) <= len(head):
        return False
    for want, got in zip(head, segments):
        if metricname.is_wildcard(want) or metricname.is_wildcard(got):
            continue
        if want != got:
            return False
    return True


def new_graph_def(name: str, kind: InstrumentKind, opts: Optional[GraphDefOptions] = None) -> GraphDefsParam:
    """
    Return the graph definition for canonical metric `name`.

    Raises NameMismatchError when a hint does not fit `name`; callers skip
    the measurement instead of registering a malformed definition.
    """
    opts = opts or GraphDefOptions()
    if kind is InstrumentKind.DISTRIBUTION:
        name = metricname.join(name, DISTRIBUTION_LEAF)

    group = opts.name
    if group:
        metricname.replace_leading_segments(name, group)

    if opts.metric_name:
        pattern = metricname.replace_leading_segments(name, opts.metric_name)
        if not group:
            group = metricname.prefix(pattern)
    else:
        if not group:
            group = metricname.prefix(name)
        pattern = metricname.join(group, metricname.WILDCARD)

    if not metricname.match(name, pattern) or not _extends(pattern, group):
        raise NameMismatchError(name, pattern)

    patterns = [pattern]
    if kind is InstrumentKind.DISTRIBUTION:
        stem = metricname.prefix(pattern)
        patterns += [metricname.join(stem, s) for s in statistic_labels(opts.quantiles)]

    return GraphDefsParam(
        name=group,
        display_name=group,
        unit=graph_unit(opts.unit, opts.number_kind),
        metrics=[GraphDefsMetric(name=p, display_name=metric_display_name(p)) for p in patterns],
    )


def find_hint(name: str, kind: InstrumentKind, hints: Sequence[str]) -> str:
    """First hint whose graph would contain `name`, or ""."""
    if kind is InstrumentKind.DISTRIBUTION:
        name = metricname.join(name, DISTRIBUTION_LEAF)
    for hint in hints:
        if metricname.match(name, metricname.join(hint, metricname.WILDCARD)):
            return hint
    return ""
