"""Tests for named client instances."""

from beacon import get_instance
from beacon.client import TelemetryClient
from beacon.registry import ClientRegistry, default_registry, normalize_instance_name


def test_normalize_instance_name():
    assert normalize_instance_name(None) == "$default_instance"
    assert normalize_instance_name("") == "$default_instance"
    assert normalize_instance_name("Analytics") == "analytics"


def test_instances_are_created_once():
    registry = ClientRegistry()

    first = registry.get_instance("Backend")
    second = registry.get_instance("backend")

    assert first is second
    assert isinstance(first, TelemetryClient)
    assert first.instance_name == "backend"
    assert len(registry) == 1


def test_default_instance():
    registry = ClientRegistry()

    assert registry.get_instance() is registry.get_instance("")
    assert None in registry
    assert "other" not in registry
    assert 3 not in registry


def test_custom_factory():
    created = []

    def factory(name):
        created.append(name)
        return TelemetryClient(name)

    registry = ClientRegistry(factory)
    registry.get_instance("a")
    registry.get_instance("A")
    registry.get_instance("b")

    assert created == ["a", "b"]
    assert sorted(registry.instances()) == ["a", "b"]


def test_module_level_get_instance():
    client = get_instance("module-level-test")

    assert default_registry.get_instance("MODULE-LEVEL-TEST") is client
