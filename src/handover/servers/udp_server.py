import logging
import socketserver
from typing import Dict, List, Optional

import dns.exception
import dns.message
import dns.rcode

logger = logging.getLogger("handover.server")


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles UDP DNS requests.
    This class is instantiated for each incoming DNS query.

    Class attributes (set by handover.servers.server.DNSServer):
      - plugins: Plugin instances consulted before forwarding.
      - upstream: {'host', 'port'} mapping for queries no plugin answers.
      - timeout_ms: Upstream timeout in milliseconds.
    """

    plugins: List = []
    upstream: Optional[Dict] = None
    timeout_ms = 2000

    def handle(self):
        """Process a single UDP DNS query using the shared pipeline.

        Inputs:
          - None (called by socketserver for each UDP datagram).
        Outputs:
          - None; sends at most one DNS response back to the client.
        """
        data, sock = self.request
        client_ip = self.client_address[0]

        from . import server as _server_mod

        try:
            wire = _server_mod.resolve_query_bytes(data, client_ip)
        except Exception:  # pragma: no cover - outermost guard
            logger.exception("Unhandled error resolving query from %s", client_ip)
            try:
                req = dns.message.from_wire(data)
            except dns.exception.DNSException:
                return
            r = dns.message.make_response(req)
            r.set_rcode(dns.rcode.SERVFAIL)
            wire = r.to_wire()

        # Garbage in, nothing out.
        if not wire:
            return
        sock.sendto(wire, self.client_address)
