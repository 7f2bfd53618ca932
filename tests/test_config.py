"""
Tests for config loading and resolution.
"""

import pytest

from termai.config import ConfigError, load_config, resolve


def test_missing_config_is_empty(tmp_path):
    assert load_config(tmp_path / "nope.toml") == {}


def test_load_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('provider = "claude"\nshow_cost = true\nmax_tool_rounds = 4\n')

    cfg = load_config(path)

    assert cfg == {"provider": "claude", "show_cost": True, "max_tool_rounds": 4}


def test_invalid_config_raises(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("provider = \n")

    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize("cli, cfg, default, expected", [
    ("cli", "cfg", "default", "cli"),
    (None, "cfg", "default", "cfg"),
    (None, None, "default", "default"),
    (False, True, None, False),
])
def test_resolve_precedence(cli, cfg, default, expected):
    assert resolve(cli, cfg, default) == expected
