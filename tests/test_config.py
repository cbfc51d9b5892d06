"""Tests for settings and logging setup."""

from unittest import mock

import structlog

from changegraph.config import Settings
from changegraph.logging_config import configure_logging
from changegraph.primitives import TenantContext


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("INSTALL_REQUIRES_HEALTHY_GRAPH", "false")

    settings = Settings()

    assert settings.database_url == "sqlite:///:memory:"
    assert settings.install_requires_healthy_graph is False
    assert settings.persist_domain_events is True
    assert settings.default_actor_id == "system"


def test_configure_logging_json(capsys):
    configure_logging(Settings(log_level="debug", log_format="json"))
    try:
        structlog.get_logger().info("change_created", change_id="c1")
        out = capsys.readouterr().out
        assert '"event": "change_created"' in out
        assert '"change_id": "c1"' in out
    finally:
        structlog.reset_defaults()


def test_unknown_level_falls_back_to_info(capsys):
    configure_logging(Settings(log_level="chatty", log_format="json"))
    try:
        structlog.get_logger().debug("hidden")
        structlog.get_logger().info("shown")
        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out
    finally:
        structlog.reset_defaults()


def test_actor_id_precedence():
    assert TenantContext("t", user_id="u", agent_id="a").actor_id == "a"
    assert TenantContext("t", user_id="u").actor_id == "u"
    with mock.patch("changegraph.primitives.get_settings") as get_settings:
        get_settings.return_value.default_actor_id = "svc-bot"
        assert TenantContext("t").actor_id == "svc-bot"
