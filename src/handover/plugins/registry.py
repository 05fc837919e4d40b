"""Plugin lookup for the `plugins[].module` config field.

Brief:
  A plugin entry names its class either by alias (`handover`, `ens`,
  `alt_roots`) or by dotted path (`handover.plugins.handover.HandoverPlugin`).
  Aliases come from the @plugin_aliases decorator of every BasePlugin
  subclass found under handover.plugins; a class without aliases is known by
  its lowercased class name.

Inputs:
  - Plugin identifiers from the YAML configuration.

Outputs:
  - BasePlugin subclasses.
"""

import difflib
import importlib
import inspect
import logging
import pkgutil
from typing import Dict, Iterator, Optional, Type

from .base import BasePlugin

logger = logging.getLogger(__name__)

PluginTable = Dict[str, Type[BasePlugin]]


def alias_key(text: str) -> str:
    """Brief: Lookup key for an alias ('Alt-Roots' -> 'alt_roots')."""

    return text.strip().lower().replace("-", "_")


def _plugin_classes(package_name: str) -> Iterator[Type[BasePlugin]]:
    package = importlib.import_module(package_name)
    for info in pkgutil.walk_packages(package.__path__, package.__name__ + "."):
        module = importlib.import_module(info.name)
        for _, cls in inspect.getmembers(module, inspect.isclass):
            # Imported names show up in every module; only count the definer.
            if cls.__module__ != module.__name__:
                continue
            if issubclass(cls, BasePlugin) and cls is not BasePlugin:
                yield cls


def discover_plugins(package_name: str = "handover.plugins") -> PluginTable:
    """
    Brief: Map every plugin alias under *package_name* to its class.

    Inputs:
      - package_name: Package scanned for BasePlugin subclasses.

    Outputs:
      - dict: alias key -> plugin class.

    Raises:
      - ValueError: When two classes claim the same alias.

    Example:
        >>> table = discover_plugins()
        >>> table["ens"].__name__
        'HandoverPlugin'
    """

    table: PluginTable = {}
    for cls in _plugin_classes(package_name):
        names = cls.get_aliases() or (cls.__name__,)
        for name in names:
            key = alias_key(name)
            owner = table.setdefault(key, cls)
            if owner is not cls:
                raise ValueError(
                    f"Plugin alias '{key}' is claimed by both "
                    f"{owner.__module__}.{owner.__name__} and "
                    f"{cls.__module__}.{cls.__name__}"
                )
        logger.debug("Registered plugin %s as %s", cls.__name__, list(names))
    return table


def _import_class(path: str) -> Type[BasePlugin]:
    module_name, _, class_name = path.rpartition(".")
    if not module_name or not class_name:
        raise ValueError(f"Invalid plugin path '{path}'")
    cls = getattr(importlib.import_module(module_name), class_name)
    if not (inspect.isclass(cls) and issubclass(cls, BasePlugin)):
        raise TypeError(f"{path} is not a BasePlugin subclass")
    return cls


def get_plugin_class(
    identifier: str, registry: Optional[PluginTable] = None
) -> Type[BasePlugin]:
    """
    Brief: Resolve a `plugins[].module` value to a plugin class.

    Inputs:
      - identifier: Alias, or a dotted "package.module.Class" path.
      - registry: Table from discover_plugins(); discovered when omitted.

    Outputs:
      - BasePlugin subclass.

    Raises:
      - KeyError: Unknown alias; the message lists close matches.
      - TypeError: A dotted path that does not name a BasePlugin subclass.
    """

    ident = identifier.strip()
    if "." in ident:
        return _import_class(ident)

    table = discover_plugins() if registry is None else registry
    key = alias_key(ident)
    if key in table:
        return table[key]
    close = difflib.get_close_matches(key, sorted(table), n=3)
    raise KeyError(
        f"Unknown plugin '{identifier}' (known: {', '.join(sorted(table))}). "
        f"Suggestions: {close}"
    )
