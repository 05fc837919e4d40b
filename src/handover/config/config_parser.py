"""Configuration parsing and normalization helpers for handover.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI
    - JSON Schema validation (variable expansion happens in validate_config)
    - normalization helpers for the listener, root upstream and root cache
    - loading plugins from config plugin specs

Inputs:
  - YAML config dicts and paths

Outputs:
  - Normalized config dicts and constructed plugin instances
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .config_schema import validate_config
from ..plugins.base import BasePlugin
from ..plugins.registry import discover_plugins, get_plugin_class

_VAR_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")

_PRIORITY_KEYS = ("priority", "pre_priority", "setup_priority")


def _is_var_key(key: str) -> bool:
    """Brief: True when key is ALL_UPPERCASE and matches [A-Z_][A-Z0-9_]*."""

    if not key or key != key.upper():
        return False
    return bool(_VAR_NAME.fullmatch(key))


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing a YAML scalar/list/dict.

    Outputs:
      - Any: Parsed value, or the original string when it is not valid YAML.
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file variables.

    Example:
      >>> cfg = {'vars': {'PORTAL': 'siasky.net'}}
      >>> parse_config_variables(cfg, cli_vars=['PORTAL=skyportal.xyz'], environ={})['PORTAL']
      'skyportal.xyz'
    """

    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = dict(os.environ) if environ is None else environ
    for k, v in env.items():
        if isinstance(k, str) and _is_var_key(k):
            merged[k] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["vars"] = merged
    return merged


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, variable-merge, and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: Parsed configuration mapping with variables expanded.

    Raises:
      - ValueError: When schema validation fails or variables are invalid.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    validate_config(cfg, config_path=config_path)
    return cfg


def _section(cfg: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = cfg.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config.{key} must be a mapping when present")
    return value


def normalize_listen_config(cfg: Dict[str, Any]) -> Tuple[str, int]:
    """Brief: Listener address from cfg['listen'] (default 127.0.0.1:5353)."""

    listen = _section(cfg, "listen")
    return str(listen.get("host", "127.0.0.1")), int(listen.get("port", 5353))


def normalize_upstream_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Brief: Normalize the root-zone upstream to host/port/timeout_ms.

    Inputs:
      - cfg: dict containing parsed YAML with an `upstream` mapping.

    Outputs:
      - dict: {'host': str, 'port': int, 'timeout_ms': int}.

    Raises:
      - ValueError: When `upstream` is missing, not a mapping, or has no host.

    Example:
      >>> normalize_upstream_config({'upstream': {'host': '127.0.0.1'}})
      {'host': '127.0.0.1', 'port': 53, 'timeout_ms': 2000}
    """

    upstream = cfg.get("upstream")
    if not isinstance(upstream, dict):
        raise ValueError("config.upstream must be a mapping with at least 'host'")
    if not upstream.get("host"):
        raise ValueError("config.upstream must include 'host'")

    try:
        timeout_ms = int(upstream.get("timeout_ms", 2000))
    except (TypeError, ValueError):
        timeout_ms = 2000

    return {
        "host": str(upstream["host"]),
        "port": int(upstream.get("port", 53)),
        "timeout_ms": timeout_ms,
    }


def normalize_root_cache_config(cfg: Dict[str, Any]) -> Dict[str, int]:
    """Brief: Root response cache bounds from cfg['root_cache']."""

    section = _section(cfg, "root_cache")
    return {
        "maxsize": int(section.get("maxsize", 10000)),
        "ttl": int(section.get("ttl", 300)),
    }


def _validate_plugin_config(plugin_cls: type, config: Optional[dict]) -> dict:
    """Brief: Validate and normalize plugin configuration via its config model.

    Inputs:
      - plugin_cls: Plugin class (subclass of BasePlugin).
      - config: Raw config mapping for this plugin (may be None).

    Outputs:
      - dict: Validated config mapping to be passed into plugin_cls.

    Notes:
      - The optional "logging" sub-config belongs to BasePlugin and is carried
        across validation unchanged.
    """

    cfg: dict = dict(config or {})
    logging_cfg = cfg.pop("logging", None)

    model_cls = plugin_cls.get_config_model()
    if model_cls is None:
        validated = cfg
    else:
        try:
            validated = dict(model_cls(**cfg).model_dump())
        except Exception as exc:
            raise ValueError(
                f"Invalid configuration for plugin {plugin_cls.__name__}: {exc}"
            ) from exc

    if logging_cfg is not None:
        validated["logging"] = logging_cfg
    return validated


def load_plugins(plugin_specs: Optional[List[Any]]) -> List[BasePlugin]:
    """Brief: Load and initialize plugins from config plugin specifications.

    Inputs:
      - plugin_specs: List of plugin specs. Each item is either:
        - str: a dotted "module.Class" path or short alias, or
        - dict: mapping supporting module, name, config, enabled,
          pre_priority, setup_priority and priority (shorthand for both).

    Outputs:
      - list[BasePlugin]: Initialized plugin instances, in config order.

    Raises:
      - ValueError: On duplicate instance names or invalid plugin config.
      - KeyError: On an unknown alias.

    Notes:
      - When both explicit priority keys and `priority` are present, explicit
        keys win.
      - When `name` is omitted the module text is used as the instance name.
    """

    alias_registry = discover_plugins()
    plugins: List[BasePlugin] = []
    seen_names: set = set()

    for spec in plugin_specs or []:
        if isinstance(spec, str):
            spec = {"module": spec}
        if not isinstance(spec, dict):
            continue

        module_path = spec.get("module")
        if not module_path:
            continue
        if not bool(spec.get("enabled", True)):
            continue

        effective_name = str(spec.get("name") or module_path).strip()
        if effective_name in seen_names:
            raise ValueError(
                "Duplicate plugin name '%s'. Each plugin must have a unique name; "
                "set 'name' explicitly in plugins[] to disambiguate." % effective_name
            )
        seen_names.add(effective_name)

        raw_config = spec.get("config") or {}
        if not isinstance(raw_config, dict):
            raise ValueError(f"plugins[{effective_name}].config must be a mapping")
        plugin_config = dict(raw_config)

        priorities: Dict[str, Any] = {}
        for key in _PRIORITY_KEYS:
            value = plugin_config.pop(key, spec.get(key))
            if value is not None:
                priorities[key] = value
        generic = priorities.pop("priority", None)
        if generic is not None:
            priorities.setdefault("pre_priority", generic)
            priorities.setdefault("setup_priority", generic)

        plugin_cls = get_plugin_class(str(module_path), alias_registry)
        validated = _validate_plugin_config(plugin_cls, plugin_config)
        validated.update(priorities)

        plugins.append(plugin_cls(name=effective_name, **validated))

    return plugins
