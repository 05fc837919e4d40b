from __future__ import annotations

import logging
from typing import Optional

import dns.exception
import dns.flags
import dns.message
import dns.rcode
from pydantic import BaseModel, Field

from handover.cache import CACHE_SIZE, CACHE_TTL, LRUTTLCache
from handover.dispatcher import Dispatcher, Query, initialize
from handover.resolvers import EthereumResolver, SiaResolver
from handover.root import RootZone
from handover.transports.ethereum import ENS_REGISTRY, EthereumRPC
from handover.transports.sia import DEFAULT_PORTAL, MAX_CONTENT_BYTES, SkynetPortal

from .base import BasePlugin, PluginContext, PluginDecision, plugin_aliases

logger = logging.getLogger(__name__)


class HandoverConfig(BaseModel):
    """Brief: Typed configuration model for HandoverPlugin.

    Inputs:
      - infura_project_id: Infura project id; used when rpc_url is unset.
      - infura_project_secret: Optional Infura project secret.
      - rpc_url: Explicit Ethereum JSON-RPC endpoint.
      - ens_registry: ENS registry contract address.
      - skynet: Answer Skynet referrals (_sia / _siaregistry).
      - portal: Skynet portal host.
      - cache_size: Entries kept per adapter cache.
      - cache_ttl_seconds: Seconds an adapter cache entry stays valid.
      - max_content_bytes: Cap on fetched Skynet content.
      - timeout_seconds: Per-request HTTP timeout.
      - abort_on_failure: Whether a setup failure stops startup.

    Outputs:
      - HandoverConfig instance with normalized field types.
    """

    infura_project_id: Optional[str] = None
    infura_project_secret: Optional[str] = None
    rpc_url: Optional[str] = None
    ens_registry: str = ENS_REGISTRY
    skynet: bool = True
    portal: str = DEFAULT_PORTAL
    cache_size: int = Field(default=CACHE_SIZE, ge=1)
    cache_ttl_seconds: float = Field(default=CACHE_TTL, gt=0)
    max_content_bytes: int = Field(default=MAX_CONTENT_BYTES, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    abort_on_failure: bool = True

    class Config:
        extra = "allow"


@plugin_aliases("handover", "ens", "alt_roots")
class HandoverPlugin(BasePlugin):
    """Brief: Answer queries from ENS and Skynet, deferring to the root zone.

    Every query is dispatched: names under alternate naming systems are
    answered from the blockchain or Skynet, everything else comes back exactly
    as the root zone answered it.

    Inputs:
      - **config: HandoverConfig fields plus BasePlugin options.

    Outputs:
      - HandoverPlugin instance. setup() must run and a root zone must be
        attached before queries are answered; until then every query gets
        SERVFAIL.

    Example use:
        >>> plugin = HandoverPlugin(rpc_url="http://127.0.0.1:8545")
        >>> plugin.ready
        False
    """

    setup_priority = 10

    @classmethod
    def get_config_model(cls):
        return HandoverConfig

    def __init__(self, **config) -> None:
        super().__init__(**config)
        self.settings = HandoverConfig(**self.config)
        self.root: Optional[RootZone] = None
        self._dispatcher: Optional[Dispatcher] = None

    @property
    def ready(self) -> bool:
        return self._dispatcher is not None and self.root is not None

    def attach_root(self, root: RootZone) -> None:
        """Brief: Set the root-zone collaborator used for non-ENS names."""

        self.root = root

    def setup(self) -> None:
        """Brief: Build transports and adapters, then warm the 'eth' resolver.

        Raises:
          - ValueError: When neither rpc_url nor infura_project_id is set.
          - Transport errors from the warm-up lookup.
        """

        s = self.settings
        rpc = EthereumRPC(
            s.rpc_url,
            project_id=s.infura_project_id,
            project_secret=s.infura_project_secret,
            timeout=s.timeout_seconds,
        )
        ethereum = EthereumResolver(
            rpc,
            cache=LRUTTLCache(s.cache_size, s.cache_ttl_seconds),
            registry_address=s.ens_registry,
        )

        sia = None
        if s.skynet:
            portal = SkynetPortal(
                s.portal, max_bytes=s.max_content_bytes, timeout=s.timeout_seconds
            )
            sia = SiaResolver(
                portal, cache=LRUTTLCache(s.cache_size, s.cache_ttl_seconds)
            )

        self._dispatcher = initialize(ethereum, sia)
        self.logger.info("%s ready (rpc %s)", self.name, rpc.url)

    def _servfail(self, request: dns.message.Message) -> bytes:
        response = dns.message.make_response(request)
        response.set_rcode(dns.rcode.SERVFAIL)
        return response.to_wire()

    def pre_resolve(
        self, qname: str, qtype: int, req: bytes, ctx: PluginContext
    ) -> Optional[PluginDecision]:
        """Brief: Dispatch the query and return the final response as an override.

        Inputs:
          - qname: Queried domain name.
          - qtype: Query type.
          - req: Raw DNS request.
          - ctx: PluginContext.

        Outputs:
          - PluginDecision("override") carrying the response wire bytes, or
            None when the request cannot be parsed.
        """

        try:
            request = dns.message.from_wire(req)
        except dns.exception.DNSException as exc:
            self.logger.debug("Unparseable request from %s: %s", ctx.client_ip, exc)
            return None

        if not self.ready:
            self.logger.error(
                "%s not ready; answering SERVFAIL for %s", self.name, qname
            )
            return PluginDecision(
                "override", self._servfail(request), plugin_label=self.name
            )

        try:
            query = Query.from_message(request)
        except ValueError:
            return None

        result = self._dispatcher.resolve(query, self.root)

        response = dns.message.make_response(request)
        # Header bits come from the result (TC included); QR, RD and the
        # opcode stay those of the client's request.
        response.flags = (
            (result.flags & ~dns.flags.RD)
            | dns.flags.QR
            | (request.flags & dns.flags.RD)
        )
        response.set_opcode(request.opcode())
        response.set_rcode(result.rcode())
        response.answer = list(result.answer)
        response.authority = list(result.authority)
        response.additional = list(result.additional)
        return PluginDecision("override", response.to_wire(), plugin_label=self.name)

    def handle_sigusr2(self) -> None:
        """Brief: Drop every adapter and root-zone cache entry."""

        if self._dispatcher is not None:
            self._dispatcher.reset()
        clear = getattr(self.root, "clear_cache", None)
        if callable(clear):
            clear()
        self.logger.info("%s caches reset", self.name)
