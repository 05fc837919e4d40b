"""Shared request pipeline and UDP server wrapper.

Brief:
  resolve_query_bytes() runs pre-resolve plugins in ascending pre_priority
  order; the first override or deny decision wins. Without a decision the
  query is forwarded to the configured upstream. Any failure becomes SERVFAIL.
"""

import logging
import socketserver
from typing import Dict, List, Optional

import dns.exception
import dns.message
import dns.rcode

from ..plugins.base import BasePlugin, PluginContext, PluginDecision
from ..transports.udp import udp_query
from .udp_server import DNSUDPHandler

logger = logging.getLogger("handover.server")


def _set_response_id(wire: bytes, req_id: int) -> bytes:
    """Ensure the response DNS ID matches the request ID.

    Inputs:
      - wire: bytes-like DNS response.
      - req_id: int request ID to set in the first two bytes.

    Outputs:
      - bytes: response with corrected ID.

    The DNS ID is the first 2 bytes (big-endian); they are rewritten without
    parsing the message.
    """
    bwire = bytes(wire)
    if len(bwire) < 2:
        return bwire
    return bytes([(int(req_id) >> 8) & 0xFF, int(req_id) & 0xFF]) + bwire[2:]


def _make_rcode_response(request: dns.message.Message, rcode: int) -> bytes:
    r = dns.message.make_response(request)
    r.set_rcode(rcode)
    return r.to_wire()


def _apply_pre_plugins(
    plugins: List[BasePlugin], qname: str, qtype: int, data: bytes, ctx
) -> Optional[PluginDecision]:
    """
    Apply pre-resolve plugins in ascending pre_priority order.

    Inputs:
        - plugins: Plugin instances.
        - qname (str): Query name.
        - qtype (int): DNS RR type.
        - data (bytes): Original query wire data.
        - ctx (PluginContext): Plugin context.

    Outputs:
        - decision (PluginDecision or None): Plugin decision if deny/override.

    Stable sort preserves registration order for equal priorities.
    """
    for p in sorted(plugins, key=lambda p: getattr(p, "pre_priority", 100)):
        decision = p.pre_resolve(qname, qtype, data, ctx)
        if not isinstance(decision, PluginDecision):
            continue
        if decision.action == "deny":
            logger.debug("Denied %s %s by %s", qname, qtype, p.name)
            return decision
        if decision.action == "override" and decision.response is not None:
            logger.debug("Override %s type %s by %s", qname, qtype, p.name)
            return decision
        logger.debug("Plugin %s: %s", p.name, decision.action)
    return None


def resolve_query_bytes(data: bytes, client_ip: str) -> bytes:
    """Resolve a single DNS wire query and return wire response.

    Inputs:
      - data: Wire-format DNS query bytes.
      - client_ip: String client IP for plugin context and logging.

    Outputs:
      - bytes: Wire-format DNS response; empty for unparseable input.

    Uses DNSUDPHandler's class-level configuration (plugins, upstream,
    timeout_ms) so every listener shares the same behaviour.

    Example:
      >>> resp = resolve_query_bytes(query_bytes, '127.0.0.1')  # doctest: +SKIP
    """
    try:
        request = dns.message.from_wire(data)
    except dns.exception.DNSException as exc:
        logger.debug("Dropping unparseable query from %s: %s", client_ip, exc)
        return b""

    if not request.question:
        return _make_rcode_response(request, dns.rcode.FORMERR)

    q = request.question[0]
    qname = q.name.to_text()
    qtype = int(q.rdtype)
    ctx = PluginContext(client_ip=client_ip)

    try:
        decision = _apply_pre_plugins(
            DNSUDPHandler.plugins, qname, qtype, data, ctx
        )
        if decision is not None:
            if decision.action == "deny":
                return _make_rcode_response(request, dns.rcode.NXDOMAIN)
            return _set_response_id(decision.response, request.id)

        upstream = DNSUDPHandler.upstream
        if not upstream:
            logger.warning("No upstream configured; SERVFAIL for %s", qname)
            return _make_rcode_response(request, dns.rcode.SERVFAIL)

        wire = udp_query(
            upstream["host"],
            int(upstream.get("port", 53)),
            data,
            timeout_ms=DNSUDPHandler.timeout_ms,
        )
        return _set_response_id(wire, request.id)
    except Exception as e:
        logger.warning("Resolution of %s %s failed: %s", qname, qtype, e)
        return _make_rcode_response(request, dns.rcode.SERVFAIL)


class DNSServer:
    """A basic UDP DNS server wrapper.

    Example use:
        >>> import threading
        >>> server = DNSServer("127.0.0.1", 5355, {"host": "198.41.0.4"}, [])  # doctest: +SKIP
        >>> threading.Thread(target=server.serve_forever, daemon=True).start()  # doctest: +SKIP
        >>> server.stop()  # doctest: +SKIP
    """

    def __init__(
        self,
        host: str,
        port: int,
        upstream: Optional[Dict],
        plugins: List[BasePlugin],
        timeout_ms: int = 2000,
    ) -> None:
        """Initialize a UDP DNSServer.

        Inputs:
            host: The host to listen on.
            port: The port to listen on.
            upstream: Upstream mapping {'host', 'port'} for unhandled queries.
            plugins: A list of initialized plugins.
            timeout_ms: The timeout for upstream queries (milliseconds).
        """
        DNSUDPHandler.upstream = upstream
        DNSUDPHandler.plugins = list(plugins)
        DNSUDPHandler.timeout_ms = int(timeout_ms)
        try:
            self.server = socketserver.ThreadingUDPServer((host, port), DNSUDPHandler)
        except PermissionError as e:  # pragma: no cover - environment-specific
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise

        # Request handler threads must not block shutdown.
        self.server.daemon_threads = True
        logger.debug("DNS UDP server bound to %s:%d", host, port)

    def serve_forever(self) -> None:
        """Start the UDP server loop; runs until shutdown or KeyboardInterrupt."""
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:  # pragma: no cover - interactive only
            pass

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; suitable for use from signal handlers.
        """
        try:
            self.server.shutdown()
            self.server.server_close()
        except Exception:  # pragma: no cover - log-only path
            logger.exception("Error while shutting down UDP server")
        try:
            self.server.server_close()
        except Exception:  # pragma: no cover - log-only path
            logger.exception("Error while closing UDP server socket")
