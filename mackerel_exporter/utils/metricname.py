"""
Metric name model for Mackerel.

Names are dotted strings. A name may act as a pattern: the segments "*" and
"#" each match exactly one arbitrary segment. They differ only by intent
("#" marks the variable part that identifies a series in a graph).

    custom.http.handlers.#.latency  matches  custom.http.handlers.index.latency
    custom.http.handlers.#.latency  rejects  custom.http.handlers.latency
"""

from __future__ import annotations

import math
import re
import sys
from typing import List

from ..errors import NameMismatchError

SEP = "."
WILDCARD = "*"
CLASS_WILDCARD = "#"
CUSTOM_PREFIX = "custom"

_INVALID_CHARS = re.compile(r"[^0-9A-Za-z._#*-]")

# see https://mackerel.io/docs/entry/spec/metrics
_POSIX_SYSTEM_METRICS = (
    "loadavg1",
    "loadavg5",
    "loadavg15",
    "cpu.user.percentage",
    "cpu.iowait.percentage",
    "cpu.system.percentage",
    "cpu.idle.percentage",
    "cpu.nice.percentage",
    "cpu.irq.percentage",
    "cpu.softirq.percentage",
    "cpu.steal.percentage",
    "cpu.guest.percentage",
    "memory.used",
    "memory.available",
    "memory.total",
    "memory.swap_used",
    "memory.swap_cached",
    "memory.swap_total",
    "memory.free",
    "memory.buffers",
    "memory.cached",
    "disk.*.reads.delta",
    "disk.*.writes.delta",
    "interface.*.rxBytes.delta",
    "interface.*.txBytes.delta",
    "filesystem.*.size",
    "filesystem.*.used",
)

_WINDOWS_SYSTEM_METRICS = (
    "processor_queue_length",
    "cpu.user.percentage",
    "cpu.system.percentage",
    "cpu.idle.percentage",
    "memory.free",
    "memory.used",
    "memory.total",
    "memory.pagefile_free",
    "memory.pagefile_total",
    "disk.*.reads.delta",
    "disk.*.writes.delta",
    "interface.*.rxBytes.delta",
    "interface.*.txBytes.delta",
    "filesystem.*.size",
    "filesystem.*.used",
)

SYSTEM_METRICS = _WINDOWS_SYSTEM_METRICS if sys.platform == "win32" else _POSIX_SYSTEM_METRICS


def join(*elems: str) -> str:
    return SEP.join(elems)


def split(name: str) -> List[str]:
    return name.split(SEP)


def prefix(name: str) -> str:
    """Drop the final segment: "a.b.c" -> "a.b"."""
    return SEP.join(split(name)[:-1])


def sanitize(name: str) -> str:
    """Replace every character outside [A-Za-z0-9._#*-] with "_"."""
    return _INVALID_CHARS.sub("_", name)


def is_wildcard(segment: str) -> bool:
    return segment in (WILDCARD, CLASS_WILDCARD)


def match(name: str, pattern: str) -> bool:
    """
    True when `name` has as many segments as `pattern` and every
    non-wildcard segment of the pattern is equal to the name's.
    """
    segments = split(name)
    expr = split(pattern)
    if len(segments) != len(expr):
        return False
    for want, got in zip(expr, segments):
        if is_wildcard(want):
            continue
        if want != got:
            return False
    return True


def generalize(name: str) -> str:
    """
    Replace the last segment with "*".

    Names that already contain "*" anywhere, or that end with "#",
    are returned unchanged.
    """
    if not name:
        return ""
    segments = split(name)
    if WILDCARD in segments or segments[-1] == CLASS_WILDCARD:
        return name
    segments[-1] = WILDCARD
    return join(*segments)


def replace_leading_segments(name: str, new_prefix: str) -> str:
    """
    Overwrite the leading segments of `name` with `new_prefix`.

    `new_prefix` must not be longer than `name` and, read as a pattern,
    must match the segments it replaces:

        replace_leading_segments("a.b.c", "a.#") == "a.#.c"
    """
    head = split(new_prefix)
    segments = split(name)
    if len(head) > len(segments):
        raise NameMismatchError(name, new_prefix)
    if not match(join(*segments[: len(head)]), new_prefix):
        raise NameMismatchError(name, new_prefix)
    segments[: len(head)] = head
    return join(*segments)


def percentile(q: float) -> str:
    """Statistic label for quantile q: 0.99 -> "percentile_99"."""
    return "percentile_%d" % math.floor(q * 100)


def is_system_metric(name: str) -> bool:
    return any(match(name, pattern) for pattern in SYSTEM_METRICS)


def is_custom(name: str) -> bool:
    """True for names below "custom."; a bare "custom" is an ordinary name."""
    segments = split(name)
    return len(segments) > 1 and segments[0] == CUSTOM_PREFIX


def canonical(raw: str) -> str:
    """
    Sanitize `raw` and put it under the "custom." namespace unless it is one
    of Mackerel's built-in system metrics (those keep their own name).
    Already-canonical names are returned unchanged.
    """
    name = sanitize(raw)
    if is_system_metric(name) or is_custom(name):
        return name
    return join(CUSTOM_PREFIX, name)
