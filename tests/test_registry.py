from aethrolink.registry import AdapterRegistry


def test_register_and_get():
    registry = AdapterRegistry()
    adapter = object()
    registry.register("acp", adapter)
    assert registry.get("acp") is adapter
    assert "acp" in registry


def test_missing_kind_returns_none():
    registry = AdapterRegistry()
    assert registry.get("acp") is None
    assert "acp" not in registry


def test_register_replaces():
    registry = AdapterRegistry()
    first, second = object(), object()
    registry.register("acp", first)
    registry.register("acp", second)
    assert registry.get("acp") is second