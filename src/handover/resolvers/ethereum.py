"""ENS-backed DNS resolution (EIP-1185).

Brief:
  A lookup runs in two steps: the registry maps a node to its resolver
  contract, then the resolver's ``dnsRecord`` accessor returns the wire-format
  records for (node, owner name, type). Both steps are cached. When a type is
  missing the adapter retries once with CNAME; CNAME and NS lookups never fall
  back.

Inputs:
  - A registry transport exposing resolver_of() and dns_record() (see
    handover.transports.ethereum.EthereumRPC).

Outputs:
  - Record blobs (bytes) or None for "no data".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import dns.rdatatype
from eth_hash.auto import keccak

from handover.cache import LRUTTLCache
from handover.labels import parse_forked_registry, significant_labels, trim_dot
from handover.transports.ethereum import ENS_REGISTRY, ZERO_ADDRESS
from handover.wire import pack_name

logger = logging.getLogger(__name__)

# Types that are answered as-is, without the CNAME retry.
NO_FALLBACK_TYPES = frozenset({dns.rdatatype.CNAME, dns.rdatatype.NS})


@dataclass(frozen=True)
class ResolverHandle:
    """Registry and resolver contract responsible for a node."""

    registry_address: str
    resolver_address: str

    @property
    def has_resolver(self) -> bool:
        return bool(self.resolver_address) and int(self.resolver_address, 16) != 0


def namehash(name: str) -> bytes:
    """Brief: EIP-137 namehash of a dotted name.

    Inputs:
      - name: Name with or without trailing dot; labels are lowercased.

    Outputs:
      - bytes: 32-byte node hash; all zeroes for the empty name.

    Example:
      >>> namehash("").hex() == "00" * 32
      True
    """

    node = b"\x00" * 32
    for label in reversed(significant_labels(name)):
        node = keccak(node + keccak(label.lower().encode("utf-8")))
    return node


def hash_dns_name(name: str) -> bytes:
    """Brief: keccak256 of the uncompressed wire encoding of *name*."""

    return keccak(pack_name(name))


def node_from_name(name: str) -> str:
    """Brief: Registrable domain used to address the registry.

    Inputs:
      - name: Query name, e.g. 'www.example.eth.'.

    Outputs:
      - str: Last two labels without trailing dot ('example.eth'), or the name
        itself when it has fewer than two labels.
    """

    labels = trim_dot(name).split(".")
    if len(labels) > 1:
        return ".".join(labels[-2:])
    return name


class EthereumResolver:
    """Brief: Resolve DNS records from ENS or a forked ENS registry.

    Inputs:
      - transport: Registry transport (resolver_of, dns_record, addr, text).
      - cache: Optional LRUTTLCache shared by handle and record lookups.
      - registry_address: Canonical registry contract address.

    Outputs:
      - EthereumResolver instance.

    Example use:
        >>> resolver = EthereumResolver(transport)  # doctest: +SKIP
        >>> resolver.resolve_from_ens("example.eth.", 1)  # doctest: +SKIP
        b'...'
    """

    def __init__(
        self,
        transport,
        *,
        cache: Optional[LRUTTLCache] = None,
        registry_address: str = ENS_REGISTRY,
    ) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else LRUTTLCache()
        self.registry_address = registry_address
        self.ens_resolver: Optional[ResolverHandle] = None

    def init(self) -> ResolverHandle:
        """Brief: Warm the resolver handle for the 'eth' TLD.

        Outputs:
          - ResolverHandle for 'eth' in the canonical registry.

        Raises:
          - Transport errors from the registry lookup.
        """

        self.ens_resolver = self.resolve_resolver_handle("eth")
        logger.info(
            "ENS resolver for eth: %s (registry %s)",
            self.ens_resolver.resolver_address,
            self.ens_resolver.registry_address,
        )
        return self.ens_resolver

    def reset(self) -> None:
        self.cache.reset()

    def resolve_resolver_handle(
        self, node: str, registry_address: Optional[str] = None
    ) -> ResolverHandle:
        """Brief: Resolver contract bound to *node*, cached per registry.

        Inputs:
          - node: Node name without trailing dot.
          - registry_address: Forked registry; canonical registry when None.

        Outputs:
          - ResolverHandle (resolver_address is ZERO_ADDRESS when unset).
        """

        registry = registry_address or self.registry_address
        key = ("resolver", node, registry)
        cached = self.cache.get(key)
        if cached:
            return cached

        address = self.transport.resolver_of(namehash(node), registry)
        handle = ResolverHandle(
            registry_address=registry, resolver_address=address or ZERO_ADDRESS
        )
        self.cache.set(key, handle)
        logger.debug("Resolver for %s in %s: %s", node, registry, handle.resolver_address)
        return handle

    def fetch_record(
        self, name: str, qtype: int, handle: ResolverHandle, node: str
    ) -> Optional[bytes]:
        """Brief: Records of *qtype* at *name* held by the handle's resolver.

        Inputs:
          - name: Full query name.
          - qtype: DNS record type.
          - handle: Resolver handle for the node.
          - node: Zone node the records live under.

        Outputs:
          - bytes | None: Record blob, or None when the resolver has nothing
            for the type and (where allowed) for CNAME.
        """

        if not handle.has_resolver:
            return None

        key = ("dns", name, int(qtype), handle.resolver_address)
        record = self.cache.get(key)
        if record is None:
            record = self.transport.dns_record(
                handle.resolver_address,
                namehash(trim_dot(node)),
                hash_dns_name(name),
                int(qtype),
            )
            if not record or record == "0x":
                record = None
            self.cache.set(key, record)

        if not record:
            if int(qtype) in NO_FALLBACK_TYPES:
                return None
            # Retried once, on a miss only.
            return self.fetch_record(name, dns.rdatatype.CNAME, handle, node)

        return bytes.fromhex(record[2:] if record.startswith("0x") else record)

    def resolve_from_registry(
        self,
        name: str,
        qtype: int,
        registry_address: Optional[str] = None,
        node: Optional[str] = None,
    ) -> Optional[bytes]:
        """Brief: Resolve *name* against a registry (canonical when None).

        Inputs:
          - name: Full query name.
          - qtype: DNS record type.
          - registry_address: Registry contract to consult.
          - node: Zone node; derived from *name* when omitted.

        Outputs:
          - bytes | None: Record blob or no data.
        """

        if not node:
            node = node_from_name(name)
        handle = self.resolve_resolver_handle(trim_dot(node), registry_address)
        return self.fetch_record(name, qtype, handle, node)

    def resolve_from_ens(
        self, name: str, qtype: int, node: Optional[str] = None
    ) -> Optional[bytes]:
        return self.resolve_from_registry(name, qtype, None, node)

    def resolve_from_forked(
        self, name: str, qtype: int, target: str, node: Optional[str] = None
    ) -> Optional[bytes]:
        """Brief: Resolve via the forked registry named by '<address>._eth.'.

        Inputs:
          - name: Full query name.
          - qtype: DNS record type.
          - target: NS target naming the registry.
          - node: Zone node; derived from *name* when omitted.

        Outputs:
          - bytes | None: Record blob, or None (without any registry call)
            when *target* does not have the forked-registry shape.
        """

        ref = parse_forked_registry(target)
        if ref is None:
            return None
        return self.resolve_from_registry(name, qtype, ref.registry_address, node)

    def resolve_address(self, name: str) -> Optional[str]:
        """Brief: Ethereum address a name resolves to (EIP-137 addr record).

        Inputs:
          - name: ENS name, e.g. 'nick.eth'.

        Outputs:
          - str | None: Lowercase hex address, or None when unset.
        """

        node = trim_dot(name)
        handle = self.resolve_resolver_handle(node)
        if not handle.has_resolver:
            return None
        address = self.transport.addr(handle.resolver_address, namehash(node))
        if not address or int(address, 16) == 0:
            return None
        return address

    def resolve_text(self, name: str, key: str) -> Optional[str]:
        """Brief: EIP-634 text record *key* of a name, or None when unset."""

        node = trim_dot(name)
        handle = self.resolve_resolver_handle(node)
        if not handle.has_resolver:
            return None
        return self.transport.text(handle.resolver_address, namehash(node), key) or None
