import pytest

from mackerel_exporter.errors import NameMismatchError
from mackerel_exporter.models.mackerel_models import GraphDefsMetric, GraphDefsParam, GraphUnit
from mackerel_exporter.models.metric_models import InstrumentKind, NumberKind
from mackerel_exporter.services.graphdef import (
    GraphDefOptions,
    find_hint,
    graph_unit,
    metric_display_name,
    new_graph_def,
)


@pytest.mark.parametrize(
    "desc, kind, name, opts, want",
    [
        (
            "simple_counter",
            InstrumentKind.COUNTER,
            "custom.ether0.txBytes",
            GraphDefOptions(),
            GraphDefsParam(
                name="custom.ether0",
                display_name="custom.ether0",
                unit=GraphUnit.INTEGER,
                metrics=[GraphDefsMetric(name="custom.ether0.*", display_name="%1")],
            ),
        ),
        (
            "counter_with_options",
            InstrumentKind.COUNTER,
            "custom.ether0.txBytes",
            GraphDefOptions(name="custom.#", number_kind=NumberKind.FLOAT64),
            GraphDefsParam(
                name="custom.#",
                display_name="custom.#",
                unit=GraphUnit.FLOAT,
                metrics=[GraphDefsMetric(name="custom.#.*", display_name="%1")],
            ),
        ),
        (
            "simple_distribution",
            InstrumentKind.DISTRIBUTION,
            "custom.http.latency",
            GraphDefOptions(),
            GraphDefsParam(
                name="custom.http.latency",
                display_name="custom.http.latency",
                unit=GraphUnit.INTEGER,
                metrics=[
                    GraphDefsMetric(name="custom.http.latency.*", display_name="%1"),
                    GraphDefsMetric(name="custom.http.latency.min", display_name="min"),
                    GraphDefsMetric(name="custom.http.latency.max", display_name="max"),
                ],
            ),
        ),
        (
            "multiple_wildcard",
            InstrumentKind.DISTRIBUTION,
            "custom.http.index.latency",
            GraphDefOptions(name="custom.http.#.*"),
            GraphDefsParam(
                name="custom.http.#.*",
                display_name="custom.http.#.*",
                unit=GraphUnit.INTEGER,
                metrics=[
                    GraphDefsMetric(name="custom.http.#.*.*", display_name="%2"),
                    GraphDefsMetric(name="custom.http.#.*.min", display_name="min"),
                    GraphDefsMetric(name="custom.http.#.*.max", display_name="max"),
                ],
            ),
        ),
    ],
)
def test_new_graph_def(desc, kind, name, opts, want):
    assert new_graph_def(name, kind, opts) == want


def test_distribution_adds_percentiles():
    g = new_graph_def(
        "custom.http.latency",
        InstrumentKind.DISTRIBUTION,
        GraphDefOptions(quantiles=[0.99, 0.90, 0.85], number_kind=NumberKind.FLOAT64),
    )
    assert g.patterns() == [
        "custom.http.latency.*",
        "custom.http.latency.min",
        "custom.http.latency.max",
        "custom.http.latency.percentile_99",
        "custom.http.latency.percentile_90",
        "custom.http.latency.percentile_85",
    ]
    assert g.unit is GraphUnit.FLOAT


def test_metric_class_rewrites_pattern():
    g = new_graph_def(
        "custom.http.index.latency",
        InstrumentKind.GAUGE,
        GraphDefOptions(metric_name="custom.http.#.latency"),
    )
    assert g.name == "custom.http.#"
    assert g.patterns() == ["custom.http.#.latency"]
    assert g.metrics[0].display_name == "latency"


@pytest.mark.parametrize(
    "name, opts",
    [
        ("custom.ether0.txBytes", GraphDefOptions(name="custom.eth1")),
        ("custom.ether0.txBytes", GraphDefOptions(name="custom.ether0.txBytes.x")),
        ("custom.a.b.c", GraphDefOptions(name="custom.#")),
        ("custom.a.b", GraphDefOptions(metric_name="custom.x.b")),
    ],
)
def test_new_graph_def_mismatch(name, opts):
    with pytest.raises(NameMismatchError):
        new_graph_def(name, InstrumentKind.COUNTER, opts)


@pytest.mark.parametrize(
    "unit, kind, want",
    [
        ("By", NumberKind.INT64, GraphUnit.BYTES),
        ("By", NumberKind.FLOAT64, GraphUnit.BYTES),
        ("1", NumberKind.INT64, GraphUnit.INTEGER),
        ("ms", NumberKind.FLOAT64, GraphUnit.FLOAT),
        ("s", NumberKind.INT64, GraphUnit.INTEGER),
    ],
)
def test_graph_unit(unit, kind, want):
    assert graph_unit(unit, kind) is want


def test_metric_display_name():
    assert metric_display_name("custom.ether0.txBytes") == "txBytes"
    assert metric_display_name("custom.ether0.*") == "%1"
    assert metric_display_name("custom.*.x.*") == "%2"


def test_find_hint():
    hints = ["custom.http.handlers.#.latency", "custom.#"]
    assert find_hint("custom.http.handlers.index.latency", InstrumentKind.DISTRIBUTION, hints) == hints[0]
    assert find_hint("custom.ether0.txBytes", InstrumentKind.COUNTER, hints) == "custom.#"
    assert find_hint("custom.a.b.c", InstrumentKind.COUNTER, hints) == ""
