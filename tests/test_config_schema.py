"""
Brief: Tests for handover.config.config_schema.validate_config.

Inputs:
  - caplog

Outputs:
  - None
"""

import logging

import pytest
import yaml

from handover.config.config_schema import get_default_schema_path, validate_config


def _base(**extra):
    cfg = {"upstream": {"host": "198.41.0.4"}}
    cfg.update(extra)
    return cfg


def test_default_schema_ships_with_package():
    """
    Brief: The bundled schema file is found.

    Inputs:
      - None

    Outputs:
      - None
    """
    path = get_default_schema_path()
    assert path.is_file()
    assert path.name == "config-schema.json"


def test_minimal_config_is_valid():
    """
    Brief: An upstream, optionally with a listener, is a valid config.

    Inputs:
      - None

    Outputs:
      - None
    """
    validate_config(_base())

    cfg = yaml.safe_load(
        "listen: {host: 127.0.0.1, port: 5353}\n" "upstream: {host: 198.41.0.4}"
    )
    validate_config(cfg, unknown_keys="error")
    assert cfg["listen"]["port"] == 5353


def test_whole_string_variable_keeps_its_type():
    """
    Brief: `${KEY}` alone takes the variable's value; embedded refs become text.

    Inputs:
      - None

    Outputs:
      - None
    """
    cfg = _base(
        vars={"PORT": 5300, "HOST": "127.0.0.1", "ADDR": "${HOST}:${PORT}"},
        listen={"host": "${HOST}", "port": "${PORT}"},
        plugins=[{"module": "handover", "config": {"note": "${ADDR}", "x": "${NOPE}"}}],
    )
    validate_config(cfg)
    assert cfg["listen"] == {"host": "127.0.0.1", "port": 5300}
    assert cfg["plugins"][0]["config"] == {"note": "127.0.0.1:5300", "x": "${NOPE}"}
    assert "vars" not in cfg


def test_variable_cycle_raises():
    """
    Brief: Self-referencing variables are reported as a cycle.

    Inputs:
      - None

    Outputs:
      - None
    """
    cfg = _base(vars={"A": "${B}", "B": "${A}"}, listen={"host": "${A}"})
    with pytest.raises(ValueError, match="cycle"):
        validate_config(cfg)


def test_plugin_entries_are_normalized():
    """
    Brief: Strings become mappings; disabled entries and comments are dropped.

    Inputs:
      - None

    Outputs:
      - None
    """
    cfg = _base(
        plugins=[
            "handover",
            {"module": "ens", "enabled": False},
            {"module": "alt_roots", "comment": "second", "priority": 9},
        ]
    )
    validate_config(cfg, unknown_keys="error")
    assert cfg["plugins"] == [
        {"module": "handover"},
        {"module": "alt_roots", "pre_priority": 9, "setup_priority": 9},
    ]


def test_unknown_keys_policy(caplog):
    """
    Brief: Extra properties warn, raise or are ignored by policy.

    Inputs:
      - caplog

    Outputs:
      - None
    """
    with caplog.at_level(logging.WARNING, logger="handover.config.config_schema"):
        validate_config(_base(mystery=1))
    assert "mystery" in caplog.text

    with pytest.raises(ValueError, match="mystery"):
        validate_config(_base(mystery=1), unknown_keys="error")

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="handover.config.config_schema"):
        validate_config(_base(mystery=1), unknown_keys="ignore")
    assert caplog.text == ""

    with pytest.raises(ValueError):
        validate_config(_base(), unknown_keys="sometimes")


def test_type_errors_always_raise():
    """
    Brief: Wrong types are errors regardless of the unknown-key policy.

    Inputs:
      - None

    Outputs:
      - None
    """
    with pytest.raises(ValueError, match="listen/port"):
        validate_config(_base(listen={"port": "not-a-port"}), unknown_keys="ignore")
    with pytest.raises(ValueError):
        validate_config({"listen": {"port": 53}})


def test_missing_schema_skips_validation(tmp_path, caplog):
    """
    Brief: An unreadable schema logs a warning and validation is skipped.

    Inputs:
      - tmp_path
      - caplog

    Outputs:
      - None
    """
    with caplog.at_level(logging.WARNING):
        validate_config({"anything": True}, schema_path=tmp_path / "missing.json")
    assert "skipping" in caplog.text
