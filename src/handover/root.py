"""Root-zone collaborators consulted by the dispatcher.

Brief:
  RootZone is the contract the dispatcher relies on: normal root-zone
  resolution, an answer cache, SOA synthesis and an RRset signing hook.
  UpstreamRootZone implements it by forwarding queries to a root server over
  UDP and caching the responses.

Inputs:
  - handover.dispatcher.Query instances.

Outputs:
  - dnspython messages and RRsets.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional, Tuple

import dns.flags
import dns.message
import dns.rdataclass
import dns.rdatatype
import dns.rrset
from cachetools import TTLCache

from handover.transports.udp import UDPError, udp_query

logger = logging.getLogger(__name__)

SOA_TTL = 86400
SOA_REFRESH = 1800
SOA_RETRY = 900
SOA_EXPIRE = 604800
SOA_MINIMUM = 86400

# EDNS UDP payload advertised on root queries.
EDNS_PAYLOAD = 4096

# Responses under this TLD are synthesized per query and never cached.
UNCACHED_TLD = "_synth."


def soa_serial(now: Optional[datetime] = None) -> int:
    """Brief: Hour-granular SOA serial in the form YYYYMMDDHH (UTC).

    Inputs:
      - now: Optional timestamp; defaults to the current UTC time.

    Outputs:
      - int: e.g. 2021031514 for 2021-03-15 14:xx UTC.
    """

    now = now or datetime.now(timezone.utc)
    return now.year * 1000000 + now.month * 10000 + now.day * 100 + now.hour


def synthesize_soa(name: str, now: Optional[datetime] = None) -> dns.rrset.RRset:
    """Brief: SOA RRset claiming authority for *name*.

    Inputs:
      - name: Absolute owner name; also used as MNAME and RNAME.
      - now: Optional timestamp for the serial.

    Outputs:
      - dns.rrset.RRset with a single SOA record.
    """

    text = (
        f"{name} {name} {soa_serial(now)} "
        f"{SOA_REFRESH} {SOA_RETRY} {SOA_EXPIRE} {SOA_MINIMUM}"
    )
    return dns.rrset.from_text(
        name, SOA_TTL, dns.rdataclass.IN, dns.rdatatype.SOA, text
    )


class RootZone:
    """Brief: Contract for the host's normal root-zone resolution.

    Notes:
      - resolve() must be implemented by subclasses.
      - The cache hooks default to "no cache" and sign_rrset() to a no-op.
    """

    def resolve(self, query) -> dns.message.Message:
        raise NotImplementedError

    def cache_get(self, name: str, qtype: int) -> Optional[dns.message.Message]:
        return None

    def cache_set(self, name: str, qtype: int, response: dns.message.Message) -> None:
        return None

    def synthesize_soa(self, name: str) -> dns.rrset.RRset:
        return synthesize_soa(name)

    def sign_rrset(self, rrset: dns.rrset.RRset) -> None:
        """Brief: Attach signatures to *rrset* in place (no-op by default)."""

        return None


class UpstreamRootZone(RootZone):
    """Brief: Root zone answered by forwarding to an upstream root server.

    Inputs:
      - host: Root server address.
      - port: Root server UDP port.
      - timeout_ms: Per-query UDP timeout in milliseconds.
      - cache_maxsize: Response cache capacity; 0 disables caching.
      - cache_ttl: Seconds a cached response is reused.

    Outputs:
      - UpstreamRootZone instance.

    Example use:
        >>> root = UpstreamRootZone("127.0.0.1", 5300, cache_maxsize=0)
        >>> root.cache_get("com.", 1) is None
        True
    """

    def __init__(
        self,
        host: str,
        port: int = 53,
        *,
        timeout_ms: int = 2000,
        cache_maxsize: int = 10000,
        cache_ttl: float = 300,
    ) -> None:
        self.host = str(host)
        self.port = int(port)
        self.timeout_ms = int(timeout_ms)
        self._lock = threading.RLock()
        self._cache: Optional[TTLCache] = None
        if int(cache_maxsize) > 0:
            self._cache = TTLCache(maxsize=int(cache_maxsize), ttl=float(cache_ttl))

    @staticmethod
    def _key(name: str, qtype: int) -> Tuple[str, int]:
        return (str(name).lower(), int(qtype))

    def cache_get(self, name: str, qtype: int) -> Optional[dns.message.Message]:
        if self._cache is None:
            return None
        with self._lock:
            return self._cache.get(self._key(name, qtype))

    def cache_set(self, name: str, qtype: int, response: dns.message.Message) -> None:
        if self._cache is None:
            return None
        with self._lock:
            self._cache[self._key(name, qtype)] = response
        return None

    def clear_cache(self) -> None:
        if self._cache is None:
            return
        with self._lock:
            self._cache.clear()

    def resolve(self, query) -> dns.message.Message:
        """Brief: Root-zone response for *query*, from cache when available.

        Inputs:
          - query: handover.dispatcher.Query.

        Outputs:
          - dns.message.Message from the root server.

        Raises:
          - handover.transports.udp.UDPError: When the root server is
            unreachable or answers with the wrong id.
          - dns.exception.DNSException: When the reply cannot be parsed.
        """

        cached = self.cache_get(query.name, query.qtype)
        if cached is not None:
            logger.debug("Root cache hit %s %s", query.name, query.qtype)
            return cached

        request = dns.message.make_query(
            query.name, query.qtype, use_edns=0, payload=EDNS_PAYLOAD
        )
        request.flags &= ~dns.flags.RD
        wire = udp_query(
            self.host,
            self.port,
            request.to_wire(),
            timeout_ms=self.timeout_ms,
            max_size=EDNS_PAYLOAD,
        )
        response = dns.message.from_wire(wire)
        if response.id != request.id:
            raise UDPError(
                f"root server {self.host}:{self.port} answered with mismatched id"
            )
        if response.flags & dns.flags.TC:
            logger.warning(
                "Truncated root response for %s %s; relaying with TC set",
                query.name,
                query.qtype,
            )

        if query.tld != UNCACHED_TLD:
            self.cache_set(query.name, query.qtype, response)
        return response
