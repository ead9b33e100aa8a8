from mackerel_exporter.services.registration_cache import RegistrationCache


def test_hosts():
    cache = RegistrationCache()
    assert cache.host_id("h1") is None
    cache.set_host_id("h1", "3yAYEDLXKL5")
    assert cache.host_id("h1") == "3yAYEDLXKL5"


def test_services_and_roles():
    cache = RegistrationCache()
    assert not cache.has_service("example")
    cache.add_service("example", ["ping"])
    assert cache.has_service("example")
    assert cache.has_role("example", "ping")
    assert not cache.has_role("example", "pong")
    cache.add_role("example", "pong")
    assert cache.has_role("example", "pong")
    assert not cache.has_role("other", "ping")


def test_patterns():
    cache = RegistrationCache()
    assert cache.unregistered_patterns(["custom.a.*"]) == {"custom.a.*"}
    cache.add_patterns(["custom.a.*"])
    assert cache.unregistered_patterns(["custom.a.*", "custom.b.*"]) == {"custom.b.*"}
