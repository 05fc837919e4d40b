from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Sequence, final

from handover.config.logging_config import (
    LEVELS,
    BracketLevelFormatter,
    SyslogFormatter,
)

logger = logging.getLogger(__name__)


@dataclass
class PluginDecision:
    """
    Brief: Represents a decision made by a plugin.

    Inputs:
      - action: str indicating the decision ("override" or "skip").
      - response: Optional[bytes] DNS response to use when action == "override".
      - plugin_label: Optional[str] name of the originating plugin instance.

    Outputs:
      - PluginDecision instance with attributes populated.
    """

    action: str
    response: Optional[bytes] = None
    plugin_label: Optional[str] = None


class PluginContext:
    """Brief: Context passed to plugins during the pre-resolve phase.

    Inputs:
      - client_ip: str IP address of the requesting client.

    Outputs:
      - PluginContext instance.

    Example use:
        >>> ctx = PluginContext(client_ip="192.0.2.1")
        >>> ctx.client_ip
        '192.0.2.1'
    """

    @final
    def __init__(self, client_ip: str) -> None:
        self.client_ip = client_ip


class BasePlugin:
    """Brief: Base class for resolve plugins.

    Plugins control execution order using:
      - pre_priority (for pre_resolve hooks; lower runs first)
      - setup_priority (for setup() hooks; lower runs first)

    Inputs:
      - name: Optional human-friendly identifier used when logging. When
        omitted, the first alias or the class name is used.
      - **config: Plugin configuration including optional pre_priority,
        setup_priority, abort_on_failure and a per-plugin "logging" block.

    Outputs:
      - Initialized plugin instance.

    Example use:
        >>> class MyPlugin(BasePlugin):
        ...     pre_priority = 10
        >>> plugin = MyPlugin(name="mine", pre_priority=25)
        >>> plugin.pre_priority
        25
        >>> plugin.name
        'mine'
    """

    pre_priority: ClassVar[int] = 100
    setup_priority: ClassVar[int] = 100
    aliases: ClassVar[Sequence[str]] = ()

    @classmethod
    def get_aliases(cls) -> Sequence[str]:
        return tuple(getattr(cls, "aliases", ()))

    @classmethod
    def get_config_model(cls):
        """Brief: Optional pydantic model used to validate plugin config.

        Outputs:
          - A pydantic BaseModel subclass, or None to accept config as is.
        """

        return None

    def __init__(self, name: Optional[str] = None, **config: object) -> None:
        if name is not None:
            self.name = str(name)
        else:
            aliases = list(self.get_aliases())
            self.name = str(aliases[0]) if aliases else self.__class__.__name__

        self.config = config
        logger.debug("loading %s", self.name)

        self.logger = logging.getLogger(getattr(self.__class__, "__module__", __name__))
        plugin_logging_cfg = config.get("logging")
        if isinstance(plugin_logging_cfg, dict):
            self._init_instance_logger(plugin_logging_cfg)

        self.pre_priority = self._parse_priority_value(
            config.get("pre_priority", self.__class__.pre_priority),
            "pre_priority",
        )
        # setup_priority falls back to pre_priority, then the class default.
        raw_setup = config.get(
            "setup_priority",
            config.get("pre_priority", self.__class__.setup_priority),
        )
        self.setup_priority = self._parse_priority_value(raw_setup, "setup_priority")

    def _init_instance_logger(self, logging_cfg: Dict[str, object]) -> None:
        """Brief: Configure a per-plugin logger from a logging config block.

        Inputs:
          - logging_cfg: Mapping with level, stderr, file and syslog options
            matching the root-level "logging" config.

        Outputs:
          - None; replaces self.logger with a configured, non-propagating
            logger named after the plugin module.
        """

        logger_name = getattr(self.__class__, "__module__", __name__)
        plugin_logger = logging.getLogger(str(logger_name))

        level_str = str(logging_cfg.get("level", "info")).lower()
        plugin_logger.setLevel(LEVELS.get(level_str, logging.INFO))

        for handler in list(plugin_logger.handlers):
            plugin_logger.removeHandler(handler)

        formatter = BracketLevelFormatter(
            fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s"
        )

        if bool(logging_cfg.get("stderr", True)):
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setFormatter(formatter)
            plugin_logger.addHandler(stderr_handler)

        file_path = logging_cfg.get("file")
        if isinstance(file_path, str) and file_path.strip():
            path = os.path.abspath(os.path.expanduser(file_path.strip()))
            try:
                os.makedirs(os.path.dirname(path), exist_ok=True)
                file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
                file_handler.setFormatter(formatter)
                plugin_logger.addHandler(file_handler)
            except OSError:  # pragma: no cover - environment-specific
                plugin_logger.warning(
                    "Failed to configure file logging for plugin %s", self.name
                )

        if logging_cfg.get("syslog"):
            try:
                plugin_logger.addHandler(_syslog_handler(logging_cfg.get("syslog")))
            except (OSError, ValueError):  # pragma: no cover - environment-specific
                plugin_logger.warning(
                    "Failed to configure syslog for plugin %s", self.name
                )

        plugin_logger.propagate = False
        self.logger = plugin_logger

    @staticmethod
    def _parse_priority_value(value: object, key: str) -> int:
        """Brief: Parse and clamp a priority value to the inclusive range [1, 255].

        Inputs:
          - value: Priority value (int, str, or other).
          - key: Config key name for logging (e.g., "pre_priority").

        Outputs:
          - int: Clamped priority; 100 on invalid input.

        Example:
            >>> BasePlugin._parse_priority_value("25", "pre_priority")
            25
            >>> BasePlugin._parse_priority_value(300, "setup_priority")
            255
        """
        default = 100
        try:
            val = int(value)  # type: ignore[arg-type]
        except (ValueError, TypeError):
            logger.warning("Invalid %s %r; using default %d", key, value, default)
            return default

        if val < 1:
            logger.warning("%s below 1; clamping to 1", key)
            return 1
        if val > 255:
            logger.warning("%s above 255; clamping to 255", key)
            return 255
        return val

    def pre_resolve(
        self, qname: str, qtype: int, req: bytes, ctx: PluginContext
    ) -> Optional[PluginDecision]:
        """Brief: Hook that runs before the query is forwarded upstream.

        Inputs:
          - qname: The queried domain name.
          - qtype: The query type.
          - req: The raw DNS request.
          - ctx: The plugin context.

        Outputs:
          - PluginDecision to short-circuit handling, or None to let the query
            proceed (default).
        """
        return None

    def handle_sigusr2(self) -> None:
        """Brief: Handle SIGUSR2 (no-op by default)."""
        return None

    def setup(self) -> None:
        """Brief: Run one-time initialization before listeners start.

        Notes:
          - Base implementation is a no-op. main() invokes setup() on plugins
            that override it, in ascending setup_priority order.
        """
        return None


def _syslog_handler(syslog_cfg: object) -> logging.Handler:
    if isinstance(syslog_cfg, dict):
        address = syslog_cfg.get("address", "/dev/log")
        facility = getattr(
            logging.handlers.SysLogHandler,
            f"LOG_{str(syslog_cfg.get('facility', 'USER')).upper()}",
            logging.handlers.SysLogHandler.LOG_USER,
        )
    else:
        address = "/dev/log"
        facility = logging.handlers.SysLogHandler.LOG_USER
    handler = logging.handlers.SysLogHandler(address=address, facility=facility)
    handler.setFormatter(SyslogFormatter())
    return handler


def plugin_aliases(*aliases: str):
    """Brief: Decorator to set aliases on a plugin class for registry discovery.

    Inputs:
      - *aliases: Alias strings for the plugin.

    Outputs:
      - Callable that applies the aliases to a plugin class and returns it.

    Example:
        >>> @plugin_aliases("ens", "alt_roots")
        ... class Alt(BasePlugin):
        ...     pass
        >>> Alt.aliases
        ('ens', 'alt_roots')
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap
