"""JSON Schema-based validation for handover YAML configuration.

This module validates the main ``config.yaml`` against the JSON Schema stored
under ``assets/config-schema.json`` after expanding variables and normalizing
plugin entries.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


def _expand_variables(cfg: Dict[str, Any]) -> None:
    """Brief: Expand top-level `vars` into the config and remove the group.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - Replaces `${KEY}` occurrences inside strings.
      - A string that is exactly `${KEY}` is replaced by the variable's YAML
        value (list/dict/int/etc.), not its text.
      - Variables may reference other variables; cycles raise ValueError.
      - The `vars` group is removed after expansion.
    """

    variables = cfg.get("vars")
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")

    for k in variables.keys():
        if not isinstance(k, str) or not _VAR_KEY.fullmatch(k):
            raise ValueError(f"config.vars key {k!r} must match [A-Z_][A-Z0-9_]*")

    resolved: Dict[str, Any] = {}

    def _resolve_var(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            cycle = " -> ".join(stack + [key])
            raise ValueError(f"config.vars contains a cycle: {cycle}")
        if key not in variables:
            raise KeyError(key)
        value = _expand_obj(variables[key], stack + [key])
        resolved[key] = value
        return value

    def _expand_string(text: str, stack: List[str]) -> Any:
        whole = _VAR_PATTERN.fullmatch(text)
        if whole and whole.group(1) in variables:
            return copy.deepcopy(_resolve_var(whole.group(1), stack))

        def _repl(match: re.Match) -> str:
            try:
                v = _resolve_var(match.group(1), stack)
            except KeyError:
                return match.group(0)
            if isinstance(v, bool):
                return "true" if v else "false"
            if v is None:
                return "null"
            if isinstance(v, (int, float, str)):
                return str(v)
            return json.dumps(v)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand_obj(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            return [_expand_obj(item, stack) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand_obj(v, stack) for k, v in obj.items()}
        return obj

    for k in list(variables.keys()):
        _resolve_var(k, [])

    for top_key in list(cfg.keys()):
        if top_key == "vars":
            continue
        cfg[top_key] = _expand_obj(cfg[top_key], [])

    cfg.pop("vars", None)


def _normalize_plugin_entries(cfg: Dict[str, Any]) -> None:
    """Brief: Normalize plugin entry meta fields for JSON Schema validation.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - Bare strings become {"module": <string>}.
      - Entries with enabled: false are dropped.
      - `priority` is shorthand for pre_priority and setup_priority; explicit
        keys win.
      - `comment` is removed.
    """

    plugins = cfg.get("plugins")
    if not isinstance(plugins, list):
        return

    normalized: List[Any] = []
    for entry in plugins:
        if isinstance(entry, str):
            normalized.append({"module": entry})
            continue
        if not isinstance(entry, dict):
            normalized.append(entry)
            continue

        if not bool(entry.pop("enabled", True)):
            continue
        entry.pop("comment", None)

        if "priority" in entry:
            prio = entry.pop("priority")
            entry.setdefault("pre_priority", prio)
            entry.setdefault("setup_priority", prio)

        normalized.append(entry)

    cfg["plugins"] = normalized


def get_default_schema_path() -> Path:
    """Brief: Locate ``assets/config-schema.json``.

    Outputs:
      - Path to the first ``assets/config-schema.json`` found walking up from
        this file (source checkout or editable install).
    """

    here = Path(__file__).resolve()
    for ancestor in here.parents:
        candidate = ancestor / "assets" / "config-schema.json"
        if candidate.is_file():
            return candidate
    return here.parents[1] / "assets" / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string."""

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = "./config.yaml",
    unknown_keys: str = "warn",
) -> None:
    """Brief: Normalize and validate a parsed YAML configuration mapping.

    Inputs:
      - cfg: Dict loaded from YAML (mutated: variables expanded, plugin entries
        normalized).
      - schema_path: Optional explicit JSON Schema path.
      - config_path: Path of the YAML file, used only in error messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for properties the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: On any non-extra-property error, or on extra properties
        when unknown_keys is "error".

    Example:
      >>> import yaml
      >>> data = yaml.safe_load(
      ...     "listen: {host: 127.0.0.1, port: 5353}\\n"
      ...     "upstream: {host: 198.41.0.4}"
      ... )
      >>> validate_config(data)
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    _expand_variables(cfg)
    _normalize_plugin_entries(cfg)

    effective_schema_path = schema_path or get_default_schema_path()
    try:
        schema = _load_schema(effective_schema_path)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(
            "Configuration schema %s unavailable (%s); skipping JSON Schema validation",
            effective_schema_path,
            exc,
        )
        return None

    try:
        validator = Draft202012Validator(schema)
    except SchemaError as exc:
        raise ValueError(f"Configuration schema {effective_schema_path} is invalid: {exc}")

    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors = [e for e in all_errors if e.validator == "additionalProperties"]
    other_errors = [e for e in all_errors if e.validator != "additionalProperties"]

    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "error":
        raise ValueError(message)
    if unknown_keys == "warn":
        logger.warning(message)
    return None
