"""Tests for the per-application service registry."""

import logging
from unittest.mock import MagicMock

import pytest

from core.service_registry import PERMISSION_CACHE, ServiceNotRegisteredError, ServiceRegistry


class TestServiceRegistry:

    def test_register_and_get(self):
        registry = ServiceRegistry()
        cache = object()
        registry.register(PERMISSION_CACHE, cache)
        assert registry.get(PERMISSION_CACHE) is cache
        assert registry.require(PERMISSION_CACHE) is cache
        assert registry.has(PERMISSION_CACHE)

    def test_missing_service(self):
        registry = ServiceRegistry()
        assert registry.get("nope") is None
        assert registry.get("nope", "fallback") == "fallback"
        with pytest.raises(ServiceNotRegisteredError):
            registry.require("nope")

    def test_factory_called_once(self):
        registry = ServiceRegistry()
        factory = MagicMock(return_value="built")
        registry.register_factory("lazy", factory)

        assert registry.has("lazy")
        factory.assert_not_called()
        assert registry.get("lazy") == "built"
        assert registry.get("lazy") == "built"
        factory.assert_called_once()

    def test_reset_recreates_from_factory(self):
        registry = ServiceRegistry()
        factory = MagicMock(side_effect=["first", "second"])
        registry.register_factory("lazy", factory)
        assert registry.get("lazy") == "first"
        registry.reset("lazy")
        assert registry.get("lazy") == "second"

    def test_unregister(self):
        registry = ServiceRegistry()
        hook = MagicMock()
        registry.register("svc", object(), shutdown=hook)
        registry.unregister("svc")
        registry.shutdown()
        assert not registry.has("svc")
        hook.assert_not_called()

    def test_shutdown_runs_hooks_newest_first(self):
        registry = ServiceRegistry()
        calls = []
        registry.register("engine", object(), shutdown=lambda: calls.append("engine"))
        registry.register("cache", object(), shutdown=lambda: calls.append("cache"))
        registry.register("plain", object())

        registry.shutdown()

        assert calls == ["cache", "engine"]
        assert registry.registered_names == []

    def test_failing_hook_does_not_stop_others(self, caplog):
        registry = ServiceRegistry()
        survivor = MagicMock()
        registry.register("first", object(), shutdown=survivor)
        registry.register("broken", object(), shutdown=MagicMock(side_effect=RuntimeError("boom")))

        with caplog.at_level(logging.ERROR, logger="core.service_registry"):
            registry.shutdown()

        survivor.assert_called_once()
        assert "Shutdown of broken failed" in caplog.text

    def test_registries_are_independent(self):
        one, two = ServiceRegistry(), ServiceRegistry()
        one.register(PERMISSION_CACHE, "a")
        assert not two.has(PERMISSION_CACHE)
