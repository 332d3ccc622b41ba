"""Tests for the server entry point: bind guard and sealing on shutdown."""

from __future__ import annotations

import pytest
from fastmcp import FastMCP

from healthvault.core.config.settings import get_settings
from healthvault.core.server import app as app_module
from healthvault.core.server import main
from healthvault.core.storage.models import StoreState


@pytest.mark.parametrize("host", ["127.0.0.1", "::1", "localhost"])
def test_loopback_hosts(host):
    assert main._is_loopback_host(host)


@pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.10", "example.com"])
def test_non_loopback_hosts(host):
    assert not main._is_loopback_host(host)


def test_refuses_public_bind(monkeypatch):
    monkeypatch.setenv("HV_HOST", "0.0.0.0")
    with pytest.raises(RuntimeError, match="non-loopback"):
        main.run()


def test_vault_sealed_when_server_stops(monkeypatch):
    captured = {}

    class FakeServer:
        def run(self, **kwargs):
            captured["run_kwargs"] = kwargs
            raise KeyboardInterrupt

    def fake_create_app(*, services):
        services.store.unlock()
        captured["services"] = services
        return FakeServer()

    monkeypatch.setattr(main, "create_app", fake_create_app)
    with pytest.raises(KeyboardInterrupt):
        main.run()

    services = captured["services"]
    assert captured["run_kwargs"]["transport"] == "streamable-http"
    assert services.store.state is StoreState.LOCKED
    assert not get_settings().working_db_path.exists()
    assert get_settings().encrypted_db_path.exists()


def test_module_level_app_seals_vault_at_exit(monkeypatch):
    registered = []
    monkeypatch.setattr(app_module.atexit, "register", registered.append)
    try:
        assert isinstance(app_module.mcp, FastMCP)
    finally:
        del app_module.mcp

    (shutdown,) = registered
    services = shutdown.__self__
    services.store.unlock()
    assert get_settings().working_db_path.exists()

    shutdown()
    assert services.store.state is StoreState.LOCKED
    assert not get_settings().working_db_path.exists()
