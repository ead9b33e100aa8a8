import pytest

from mackerel_exporter.errors import NameMismatchError
from mackerel_exporter.utils import metricname


@pytest.mark.parametrize(
    "name, want",
    [
        ("abc.def", "abc.def"),
        ("custom.#.*.t-x_a", "custom.#.*.t-x_a"),
        ("aaa.$!.bb", "aaa.__.bb"),
        ("http server/latency", "http_server_latency"),
    ],
)
def test_sanitize(name, want):
    assert metricname.sanitize(name) == want


@pytest.mark.parametrize(
    "pattern, matches, unmatches",
    [
        (
            "memory.avail",
            ["memory.avail"],
            ["memory.usage", "memory", "memory.avail.min"],
        ),
        (
            "custom.cpu.#.user",
            ["custom.cpu.x1.user", "custom.cpu.x2.user"],
            ["custom.memory.x3.user", "custom.cpu.x3.sys", "custom.cpu.x3.user.min"],
        ),
        (
            "custom.cpu.*.user",
            ["custom.cpu.x1.user", "custom.cpu.x2.user"],
            ["custom.memory.x3.user", "custom.cpu.x3.sys", "custom.cpu.x3.user.min"],
        ),
    ],
)
def test_match(pattern, matches, unmatches):
    for name in matches:
        assert metricname.match(name, pattern), name
    for name in unmatches:
        assert not metricname.match(name, pattern), name


def test_match_hash_is_single_segment():
    assert not metricname.match("custom.a.b.c", "custom.#")
    assert metricname.match("custom.a", "custom.#")


@pytest.mark.parametrize(
    "name, want",
    [
        ("memory.available", "memory.*"),
        ("memory.#", "memory.#"),
        ("disk.*.reads", "disk.*.reads"),
        ("loadavg1", "*"),
        ("", ""),
    ],
)
def test_generalize(name, want):
    assert metricname.generalize(name) == want


def test_join_split_prefix():
    assert metricname.join("custom", "a", "b") == "custom.a.b"
    assert metricname.split("custom.a.b") == ["custom", "a", "b"]
    assert metricname.prefix("custom.a.b") == "custom.a"
    assert metricname.prefix("single") == ""


def test_replace_leading_segments():
    assert metricname.replace_leading_segments("a.b.c", "a.#") == "a.#.c"
    assert metricname.replace_leading_segments("a.b.c", "a.b.c") == "a.b.c"


@pytest.mark.parametrize(
    "name, new_prefix",
    [
        ("a.b.c.*", "a.#.*.x"),
        ("a.b", "a.b.c"),
        ("a.b.c", "x.#"),
    ],
)
def test_replace_leading_segments_mismatch(name, new_prefix):
    with pytest.raises(NameMismatchError):
        metricname.replace_leading_segments(name, new_prefix)


@pytest.mark.parametrize(
    "name, want",
    [
        ("memory.used", True),
        ("memory.total", True),
        ("memory.xxx", False),
        ("xmemory.used", False),
        ("memory.usedx", False),
        ("filesystem.sdC0.size", True),
    ],
)
def test_is_system_metric(name, want):
    assert metricname.is_system_metric(name) is want


@pytest.mark.parametrize(
    "raw, want",
    [
        ("http.requests.count", "custom.http.requests.count"),
        ("memory.used", "memory.used"),
        ("queue depth", "custom.queue_depth"),
        ("custom.already", "custom.already"),
        ("custom", "custom.custom"),
    ],
)
def test_canonical(raw, want):
    assert metricname.canonical(raw) == want


@pytest.mark.parametrize("raw", ["a.b", "memory.used", "x y.z!", "custom.q", "custom", "#.*"])
def test_canonical_is_idempotent(raw):
    once = metricname.canonical(raw)
    assert metricname.canonical(once) == once


def test_percentile():
    assert metricname.percentile(0.99) == "percentile_99"
    assert metricname.percentile(0.9) == "percentile_90"
    assert metricname.percentile(0.85) == "percentile_85"
    assert metricname.percentile(1.0) == "percentile_100"
