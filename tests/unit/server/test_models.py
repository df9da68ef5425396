from __future__ import annotations

import pytest

from server_starter.core.exceptions import ConfigError
from server_starter.core.server.models import LaunchOptions, ServerState


def test_defaults() -> None:
    opts = LaunchOptions()
    assert opts.forward_stdout is False
    assert opts.forward_stderr is True
    assert opts.allow_descriptor_handoff is True
    assert opts.connect_timeout_ms == 30000
    assert opts.retry_interval_ms == 60
    assert opts.connect_timeout_seconds == 30.0
    assert opts.retry_interval_seconds == pytest.approx(0.06)


def test_from_raw_none_returns_base() -> None:
    base = LaunchOptions(connect_timeout_ms=500)
    assert LaunchOptions.from_raw(None, base=base) is base


def test_from_raw_overrides_only_given_keys() -> None:
    base = LaunchOptions(forward_stdout=True, connect_timeout_ms=500)
    opts = LaunchOptions.from_raw({"retry_interval_ms": 10}, base=base)

    assert opts.forward_stdout is True
    assert opts.connect_timeout_ms == 500
    assert opts.retry_interval_ms == 10


@pytest.mark.parametrize(
    "legacy_key, hint",
    [
        ("connectTimeout", "connect_timeout_ms"),
        ("fdPassingAllowed", "allow_descriptor_handoff"),
        ("env", "environment"),
    ],
)
def test_legacy_keys_are_rejected_with_hint(legacy_key: str, hint: str) -> None:
    with pytest.raises(ConfigError, match=hint) as excinfo:
        LaunchOptions.from_raw({legacy_key: 1})
    assert excinfo.value.context["keys"] == [legacy_key]


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError, match="Unknown launch option keys: bogus"):
        LaunchOptions.from_raw({"bogus": True})


@pytest.mark.parametrize("value", [-1, "soon"])
def test_invalid_timeouts_are_rejected(value: object) -> None:
    with pytest.raises(ConfigError, match="connect_timeout_ms"):
        LaunchOptions.from_raw({"connect_timeout_ms": value})


def test_environment_merges_over_base() -> None:
    base = LaunchOptions(environment={"A": "1", "B": "2"})
    opts = LaunchOptions.from_raw({"environment": {"B": "3", "C": 4}}, base=base)
    assert opts.environment == {"A": "1", "B": "3", "C": "4"}


def test_child_environment_layers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PARENT_ONLY_MARKER", "parent")
    monkeypatch.setenv("OVERRIDDEN_MARKER", "parent")
    opts = LaunchOptions(environment={"OVERRIDDEN_MARKER": "child", "SERVER_STARTER_LISTEN": "user"})

    env = opts.child_environment({"SERVER_STARTER_LISTEN": "http://*?fd=3"})

    assert env["PARENT_ONLY_MARKER"] == "parent"
    assert env["OVERRIDDEN_MARKER"] == "child"
    assert env["SERVER_STARTER_LISTEN"] == "http://*?fd=3"


def test_child_environment_without_inheritance(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PARENT_ONLY_MARKER", "parent")
    opts = LaunchOptions(environment={"GREETING": "hi"}, inherit_environment=False)

    env = opts.child_environment({"SERVER_STARTER_PORT": "8080"})

    assert env == {"GREETING": "hi", "SERVER_STARTER_PORT": "8080"}


def test_string_booleans_are_parsed() -> None:
    opts = LaunchOptions.from_raw({"forward_stdout": "yes", "forward_stderr": "off"})
    assert opts.forward_stdout is True
    assert opts.forward_stderr is False


def test_server_state_values() -> None:
    assert [s.value for s in ServerState] == ["idle", "listening", "launched", "exited"]
