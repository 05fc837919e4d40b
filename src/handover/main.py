from __future__ import annotations

import argparse
import logging
import signal
import threading
import time
from typing import List, Optional

from .config.config_parser import (
    load_plugins,
    normalize_listen_config,
    normalize_root_cache_config,
    normalize_upstream_config,
    parse_config_file,
)
from .config.logging_config import init_logging
from .plugins.base import BasePlugin
from .root import UpstreamRootZone
from .servers.server import DNSServer


def _is_setup_plugin(plugin: BasePlugin) -> bool:
    """
    Determine whether a plugin overrides BasePlugin.setup and should
    participate in the setup phase.

    Inputs:
      - plugin: BasePlugin instance.
    Outputs:
      - bool: True if the plugin defines its own setup() implementation.

    Example use:
      >>> class P(BasePlugin):
      ...     def setup(self):
      ...         pass
      >>> _is_setup_plugin(P())
      True
    """
    return type(plugin).setup is not BasePlugin.setup


def run_setup_plugins(plugins: List[BasePlugin]) -> None:
    """
    Run setup() on all setup-aware plugins in ascending setup_priority order.

    Inputs:
      - plugins: List[BasePlugin] instances, typically from load_plugins().
    Outputs:
      - None; raises RuntimeError if a setup plugin with abort_on_failure=True
        fails.

    Example use:
      >>> run_setup_plugins([])  # no-op when there are no setup plugins
    """
    logger = logging.getLogger("handover.main.setup")
    setup_entries = [p for p in plugins or [] if _is_setup_plugin(p)]
    # Stable sort; list order is preserved for equal priorities.
    setup_entries.sort(key=lambda p: int(getattr(p, "setup_priority", 100)))

    for plugin in setup_entries:
        cfg = getattr(plugin, "config", {}) or {}
        abort_on_failure = bool(cfg.get("abort_on_failure", True))
        logger.info(
            "Running setup for plugin %s (setup_priority=%d, abort_on_failure=%s)",
            plugin.name,
            plugin.setup_priority,
            abort_on_failure,
        )
        try:
            plugin.setup()
        except Exception as e:
            logger.error(
                "Setup for plugin %s failed: %s", plugin.name, e, exc_info=True
            )
            if abort_on_failure:
                raise RuntimeError(f"Setup for plugin {plugin.name} failed") from e
            logger.warning(
                "Continuing startup despite setup failure in plugin %s "
                "because abort_on_failure is False",
                plugin.name,
            )


def notify_sigusr2(plugins: List[BasePlugin]) -> int:
    """Brief: Call handle_sigusr2() on every plugin; errors are logged.

    Outputs:
      - int: Number of plugins notified without error.
    """
    log = logging.getLogger("handover.main")
    count = 0
    for p in plugins or []:
        try:
            p.handle_sigusr2()
            count += 1
        except Exception as e:
            log.error("SIGUSR2: plugin %s handler error: %s", p.name, e)
    log.info("SIGUSR2: invoked handle_sigusr2 on %d plugins", count)
    return count


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the handover DNS server.
    Parses arguments, loads configuration, initializes plugins, and starts the
    UDP listener.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 on configuration or setup
        failure, 2 after SIGTERM/SIGINT.

    Example use:
        CLI:
            PYTHONPATH=src python -m handover.main --config config.yaml -v RPC_URL=http://127.0.0.1:8545
    """
    parser = argparse.ArgumentParser(
        description="DNS server for ENS and Skynet names"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set a config variable (overrides environment and config vars)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config, cli_vars=args.var)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    # Initialize logging before any other operations
    init_logging(cfg.get("logging"))
    logger = logging.getLogger("handover.main")
    logger.info("Loaded config from %s", args.config)

    try:
        host, port = normalize_listen_config(cfg)
        upstream = normalize_upstream_config(cfg)
        root_cache = normalize_root_cache_config(cfg)
        plugins = load_plugins(cfg.get("plugins", []))
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    root = UpstreamRootZone(
        upstream["host"],
        upstream["port"],
        timeout_ms=upstream["timeout_ms"],
        cache_maxsize=root_cache["maxsize"],
        cache_ttl=root_cache["ttl"],
    )
    for p in plugins:
        attach = getattr(p, "attach_root", None)
        if callable(attach):
            attach(root)
    logger.info("Loaded %d plugins: %s", len(plugins), [p.name for p in plugins])

    try:
        run_setup_plugins(plugins)
    except RuntimeError as e:
        logger.error("Plugin setup failed: %s", e)
        return 1

    shutdown_event = threading.Event()
    exit_code = 0
    server: Optional[DNSServer] = None
    _sigusr2_pending = threading.Event()

    def _sigusr2_handler(_signum, _frame):
        # coalesce multiple signals
        if _sigusr2_pending.is_set():
            return
        _sigusr2_pending.set()
        try:
            notify_sigusr2(plugins)
        finally:
            _sigusr2_pending.clear()

    def _request_shutdown(reason: str, code: int) -> None:
        nonlocal exit_code
        if shutdown_event.is_set():
            return
        exit_code = code
        shutdown_event.set()
        logger.info("Received %s, initiating shutdown (exit code=%d)", reason, code)
        if server is not None:
            threading.Thread(target=server.server.shutdown, daemon=True).start()

    handlers = {
        "SIGUSR2": _sigusr2_handler,
        "SIGHUP": lambda _s, _f: _request_shutdown("SIGHUP", 0),
        "SIGTERM": lambda _s, _f: _request_shutdown("SIGTERM", 2),
        "SIGINT": lambda _s, _f: _request_shutdown("SIGINT", 2),
    }
    for sig_name, handler in handlers.items():
        signum = getattr(signal, sig_name, None)
        if signum is None:
            logger.warning("Could not install %s handler on this platform", sig_name)
            continue
        try:
            signal.signal(signum, handler)
        except ValueError:
            # signal.signal only works from the main thread.
            logger.warning("Could not install %s handler outside the main thread", sig_name)

    server = DNSServer(
        host, port, upstream, plugins, timeout_ms=upstream["timeout_ms"]
    )
    udp_error: Optional[Exception] = None

    def _run_udp() -> None:
        nonlocal udp_error
        try:
            server.serve_forever()
        except Exception as e:  # pragma: no cover - propagated via udp_error
            udp_error = e

    logger.info(
        "Root upstream %s:%d, timeout: %dms",
        upstream["host"],
        upstream["port"],
        upstream["timeout_ms"],
    )
    logger.info("Starting UDP listener on %s:%d", host, port)
    udp_thread = threading.Thread(target=_run_udp, name="handover-udp", daemon=True)
    udp_thread.start()
    logger.info("Startup Completed")

    try:
        while not shutdown_event.is_set():
            if udp_error is not None:
                logger.error("Unhandled exception during UDP server operation %s", udp_error)
                exit_code = exit_code or 1
                break
            if not udp_thread.is_alive():
                break
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
        shutdown_event.set()
    finally:
        server.stop()
        udp_thread.join(timeout=5.0)

    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
