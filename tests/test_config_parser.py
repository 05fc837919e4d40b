"""
Brief: Tests for handover.config.config_parser.

Inputs:
  - tmp_path

Outputs:
  - None
"""

import pytest

from handover.config.config_parser import (
    load_plugins,
    normalize_listen_config,
    normalize_root_cache_config,
    normalize_upstream_config,
    parse_config_file,
    parse_config_variables,
)
from handover.plugins.handover import HandoverPlugin


def test_variables_precedence_cli_over_env_over_file():
    """
    Brief: CLI vars override environment vars, which override file vars.

    Inputs:
      - None

    Outputs:
      - None
    """
    cfg = {"vars": {"PORTAL": "siasky.net", "SIZE": 10, "KEEP": "file"}}
    merged = parse_config_variables(
        cfg,
        cli_vars=["PORTAL=skyportal.xyz"],
        environ={"SIZE": "20", "PORTAL": "env.example", "lower": "ignored"},
    )
    assert merged == {"PORTAL": "skyportal.xyz", "SIZE": 20, "KEEP": "file"}
    assert cfg["vars"] is merged


@pytest.mark.parametrize("assignment", ["NOEQUALS", "lower=1", "1BAD=2"])
def test_invalid_cli_variables_raise(assignment):
    """
    Brief: Malformed -v assignments are rejected.

    Inputs:
      - assignment

    Outputs:
      - None
    """
    with pytest.raises(ValueError):
        parse_config_variables({}, cli_vars=[assignment], environ={})


def test_vars_must_be_mapping():
    """
    Brief: A non-mapping vars block is an error.

    Inputs:
      - None

    Outputs:
      - None
    """
    with pytest.raises(ValueError):
        parse_config_variables({"vars": [1, 2]}, environ={})


def test_parse_config_file_expands_variables(tmp_path):
    """
    Brief: A config file is read, merged with vars and expanded.

    Inputs:
      - tmp_path

    Outputs:
      - None
    """
    path = tmp_path / "config.yaml"
    path.write_text(
        "vars:\n"
        "  ROOT_HOST: 198.41.0.4\n"
        "upstream:\n"
        "  host: ${ROOT_HOST}\n"
        "  port: ${ROOT_PORT}\n"
        "plugins:\n"
        "  - module: handover\n"
        "    config:\n"
        "      rpc_url: ${RPC_URL}\n"
    )
    cfg = parse_config_file(
        str(path),
        cli_vars=["ROOT_PORT=5300", "RPC_URL=http://127.0.0.1:8545"],
        environ={},
    )
    assert "vars" not in cfg
    assert cfg["upstream"] == {"host": "198.41.0.4", "port": 5300}
    assert cfg["plugins"][0]["config"]["rpc_url"] == "http://127.0.0.1:8545"


def test_parse_config_file_rejects_bad_config(tmp_path):
    """
    Brief: Schema violations and non-mapping roots raise ValueError.

    Inputs:
      - tmp_path

    Outputs:
      - None
    """
    path = tmp_path / "config.yaml"
    path.write_text("listen: {port: 5353}\n")
    with pytest.raises(ValueError, match="upstream"):
        parse_config_file(str(path), environ={})

    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        parse_config_file(str(path), environ={})


def test_normalize_helpers_defaults():
    """
    Brief: Listener, upstream and root cache sections get defaults.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert normalize_listen_config({}) == ("127.0.0.1", 5353)
    assert normalize_listen_config({"listen": {"host": "::1", "port": "53"}}) == (
        "::1",
        53,
    )
    assert normalize_upstream_config({"upstream": {"host": "a.root"}}) == {
        "host": "a.root",
        "port": 53,
        "timeout_ms": 2000,
    }
    assert normalize_root_cache_config({}) == {"maxsize": 10000, "ttl": 300}
    assert normalize_root_cache_config({"root_cache": {"ttl": 60}})["ttl"] == 60


@pytest.mark.parametrize("cfg", [{}, {"upstream": "a.root"}, {"upstream": {"port": 53}}])
def test_normalize_upstream_requires_host(cfg):
    """
    Brief: An upstream without a host is rejected.

    Inputs:
      - cfg

    Outputs:
      - None
    """
    with pytest.raises(ValueError):
        normalize_upstream_config(cfg)


def test_load_plugins_by_alias_with_priority_shorthand():
    """
    Brief: Aliases resolve and `priority` fills both priority fields.

    Inputs:
      - None

    Outputs:
      - None
    """
    plugins = load_plugins(
        [
            {
                "module": "ens",
                "name": "alt",
                "priority": 7,
                "config": {"rpc_url": "http://node", "cache_size": 5},
            }
        ]
    )
    assert len(plugins) == 1
    p = plugins[0]
    assert isinstance(p, HandoverPlugin)
    assert p.name == "alt"
    assert (p.pre_priority, p.setup_priority) == (7, 7)
    assert p.settings.cache_size == 5


def test_load_plugins_explicit_priority_wins_and_disabled_skipped():
    """
    Brief: Explicit priority keys beat the shorthand; disabled specs are skipped.

    Inputs:
      - None

    Outputs:
      - None
    """
    plugins = load_plugins(
        [
            {"module": "handover", "priority": 7, "setup_priority": 3},
            {"module": "handover", "name": "off", "enabled": False},
        ]
    )
    assert len(plugins) == 1
    assert plugins[0].name == "handover"
    assert (plugins[0].pre_priority, plugins[0].setup_priority) == (7, 3)


def test_load_plugins_rejects_duplicates_and_bad_config():
    """
    Brief: Duplicate names and invalid plugin config raise ValueError.

    Inputs:
      - None

    Outputs:
      - None
    """
    with pytest.raises(ValueError, match="Duplicate"):
        load_plugins(["handover", "handover"])
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_plugins([{"module": "handover", "config": {"cache_size": 0}}])
    with pytest.raises(KeyError):
        load_plugins(["does_not_exist"])
