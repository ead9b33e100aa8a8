import socket

from mackerel_exporter.models.resource_models import (
    FALLBACK_HOSTNAME,
    EntityClass,
    Instance,
    Resource,
    ServiceAttrs,
    build_resource,
)


def test_build_resource():
    want = Resource(
        service=ServiceAttrs(
            name="name",
            namespace="ns1",
            instance=Instance(id="0000-1111"),
            version="a:1.1",
        ),
    )
    r = build_resource(
        [
            ("service.name", "name"),
            ("service.namespace", "ns1"),
            ("service.instance.id", "0000-1111"),
            ("service.version", "a:1.1"),
        ]
    )
    assert r == want


def test_build_resource_keeps_unknown_keys():
    r = build_resource(
        {
            "host.id": "i-1234",
            "host.arch": "amd64",
            "telemetry.sdk.language": "python",
            "mackerel.graph.class": "http.#",
            "mackerel.unknown": 1,
        }
    )
    assert r.host.id == "i-1234"
    assert r.mackerel.graph_class == "http.#"
    assert r.extra == {
        "host.arch": "amd64",
        "telemetry.sdk.language": "python",
        "mackerel.unknown": 1,
    }


def test_build_resource_later_pairs_win():
    r = build_resource([("host.name", "a"), ("host.name", "b")])
    assert r.host.name == "b"


def test_build_resource_converts_values():
    r = build_resource({"service.instance.id": 42, "service.version": True})
    assert r.service.instance.id == "42"
    assert r.service.version == "true"


def test_custom_identifier():
    assert build_resource({"host.id": "h1", "service.instance.id": "x"}).custom_identifier() == "h1"
    r = build_resource({"service.namespace": "ns", "service.name": "api", "service.instance.id": "0001"})
    assert r.custom_identifier() == "ns.api.0001"
    assert build_resource({"service.namespace": "ns", "service.name": "api"}).custom_identifier() == ""


def test_hostname():
    assert build_resource({"host.name": "web01"}).hostname() == "web01"
    r = build_resource({"service.namespace": "ns", "service.name": "api", "service.instance.id": "0001"})
    assert r.hostname() == "api-0001"
    assert build_resource({"service.namespace": "ns", "service.instance.id": "0001"}).hostname() == "0001"


def test_hostname_falls_back(monkeypatch):
    monkeypatch.setattr(socket, "gethostname", lambda: "box")
    assert Resource().hostname() == "box"

    monkeypatch.setattr(socket, "gethostname", lambda: "")
    assert Resource().hostname() == FALLBACK_HOSTNAME


def test_service_and_role_names():
    r = build_resource({"service.namespace": "example", "service.name": "ping"})
    assert r.service_name() == "example"
    assert r.role_name() == "ping"
    assert r.role_fullname() == "example:ping"
    assert build_resource({"service.name": "ping"}).role_fullname() == ""


def test_entity_class():
    assert build_resource({"host.id": "h1"}).entity_class() is EntityClass.HOST
    assert build_resource({"service.namespace": "example"}).entity_class() is EntityClass.SERVICE
    assert build_resource({"service.name": "ping"}).entity_class() is EntityClass.UNROUTABLE
    assert build_resource({}).entity_class() is EntityClass.UNROUTABLE
