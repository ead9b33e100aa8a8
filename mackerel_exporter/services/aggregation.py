"""
Turning OpenTelemetry data points into Mackerel metric values.

    Sum        -> one value named after the metric
    Gauge      -> one value named after the metric (last observed value)
    Histogram  -> <name>.min, <name>.max, <name>.percentile_NN ...

Other aggregations (exponential histograms, ...) produce nothing.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from opentelemetry.sdk.metrics.export import (
    Gauge,
    Histogram,
    HistogramDataPoint,
    NumberDataPoint,
    Sum,
)

from ..errors import QuantileError
from ..models.metric_models import AggregationKind, MetricPoint, NumberKind
from ..utils import metricname

logger = logging.getLogger("mackerel.exporter.aggregation")

NANOS_PER_SECOND = 10 ** 9


def aggregation_kind(data: Any) -> Optional[AggregationKind]:
    if isinstance(data, Sum):
        return AggregationKind.SUM
    if isinstance(data, Gauge):
        return AggregationKind.LAST_VALUE
    if isinstance(data, Histogram):
        return AggregationKind.DISTRIBUTION
    return None


def number_kind(point: Any) -> NumberKind:
    if isinstance(point, NumberDataPoint) and isinstance(point.value, int):
        return NumberKind.INT64
    return NumberKind.FLOAT64


def unix_time(time_unix_nano: int) -> int:
    return int(time_unix_nano) // NANOS_PER_SECOND


def quantile(
    bucket_counts: Sequence[int],
    explicit_bounds: Sequence[float],
    q: float,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    """
    Estimate the q-quantile of an explicit bucket histogram.

    Bucket i covers (bounds[i-1], bounds[i]]; the first and last buckets are
    open-ended and get closed with the observed min/max when known. The value
    is interpolated linearly inside the bucket holding rank q * count.
    """
    if not 0.0 <= q <= 1.0:
        raise QuantileError(f"quantile {q} is out of [0, 1]")
    counts = np.asarray(bucket_counts, dtype=float)
    bounds = np.asarray(explicit_bounds, dtype=float)
    if counts.size != bounds.size + 1:
        raise QuantileError(
            f"{counts.size} buckets do not fit {bounds.size} bounds"
        )
    total = counts.sum()
    if total <= 0:
        raise QuantileError("histogram is empty")

    lower_edges = np.concatenate(([-np.inf], bounds))
    upper_edges = np.concatenate((bounds, [np.inf]))
    if minimum is not None:
        lower_edges[0] = minimum
    if maximum is not None:
        upper_edges[-1] = maximum

    rank = q * total
    cumulative = np.cumsum(counts)
    i = int(np.searchsorted(cumulative, rank, side="left"))
    i = min(i, counts.size - 1)
    while counts[i] == 0 and i < counts.size - 1:
        i += 1

    lo, hi = lower_edges[i], upper_edges[i]
    if not np.isfinite(lo):
        lo = hi if minimum is None else minimum
    if not np.isfinite(hi):
        hi = lo if maximum is None else maximum
    if not (np.isfinite(lo) and np.isfinite(hi)):
        raise QuantileError("histogram has no finite bounds")

    below = cumulative[i] - counts[i]
    fraction = (rank - below) / counts[i] if counts[i] else 0.0
    value = lo + (hi - lo) * min(max(fraction, 0.0), 1.0)
    if minimum is not None:
        value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return float(value)


def _present(v: Optional[float]) -> bool:
    return v is not None and not (isinstance(v, float) and math.isinf(v))


def distribution_points(
    name: str,
    point: HistogramDataPoint,
    quantiles: Sequence[float],
) -> List[MetricPoint]:
    t = unix_time(point.time_unix_nano)
    stats: List[Tuple[str, Optional[float]]] = [("min", point.min), ("max", point.max)]
    points: List[MetricPoint] = []
    for label, v in stats:
        if not _present(v):
            logger.debug("no %s for %s; skipped", label, name)
            continue
        points.append(MetricPoint(name=metricname.join(name, label), value=float(v), time=t))

    lo = point.min if _present(point.min) else None
    hi = point.max if _present(point.max) else None
    for q in quantiles:
        try:
            v = quantile(point.bucket_counts, point.explicit_bounds, q, lo, hi)
        except QuantileError as exc:
            logger.debug("cannot compute quantile %s of %s: %s", q, name, exc)
            continue
        points.append(MetricPoint(name=metricname.join(name, metricname.percentile(q)), value=v, time=t))
    return points


def extract_points(
    name: str,
    kind: Optional[AggregationKind],
    point: Any,
    quantiles: Sequence[float] = (),
) -> List[MetricPoint]:
    """Values for one data point of canonical metric `name`."""
    if kind in (AggregationKind.SUM, AggregationKind.LAST_VALUE):
        return [MetricPoint(name=name, value=point.value, time=unix_time(point.time_unix_nano))]
    if kind is AggregationKind.DISTRIBUTION:
        return distribution_points(name, point, quantiles)
    return []
