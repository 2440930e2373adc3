import pytest

from sqljobs.errors import ConfigurationError
from sqljobs.models import JobOptions
from sqljobs.registry import JobRegistry


def handler(data):
    return data


def test_register_and_lookup():
    registry = JobRegistry()
    definition = registry.register("send-email", {"priority": 5}, handler)

    assert registry.lookup("send-email") is definition
    assert definition.priority == 5
    assert "send-email" in registry
    assert len(registry) == 1
    assert registry.lookup("missing") is None


def test_register_accepts_options_object_and_none():
    registry = JobRegistry()
    assert registry.register("a", JobOptions(priority=-2), handler).priority == -2
    assert registry.register("b", None, handler).priority == 0
    assert registry.names() == ["a", "b"]


def test_reregistering_replaces_definition():
    registry = JobRegistry()
    registry.register("job", {"priority": 1}, handler)

    def other(data):
        return None

    registry.register("job", {"priority": 9}, other)

    assert registry.lookup("job").handler is other
    assert registry.lookup("job").priority == 9
    assert len(registry) == 1


@pytest.mark.parametrize("name, options, fn, on_failure", [
    ("", None, handler, None),
    (None, None, handler, None),
    ("job", None, "not callable", None),
    ("job", None, handler, "not callable"),
    ("job", {"priority": "high"}, handler, None),
    ("job", {"priority": True}, handler, None),
    ("job", {"retries": 3}, handler, None),
    ("job", ["priority", 1], handler, None),
])
def test_invalid_registrations(name, options, fn, on_failure):
    with pytest.raises(ConfigurationError):
        JobRegistry().register(name, options, fn, on_failure)


def test_frozen_registry_rejects_registration():
    registry = JobRegistry()
    registry.freeze()
    assert registry.frozen
    with pytest.raises(ConfigurationError):
        registry.register("job", None, handler)
    registry.unfreeze()
    registry.register("job", None, handler)
