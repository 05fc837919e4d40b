"""Resolution dispatcher for alternate naming systems.

Brief:
  Decides, per query, whether the answer comes from ENS, from Skynet, or from
  the normal root zone, and shapes the final response:

    1. 'eth.' queries are answered from ENS directly. A bare 'eth.' (the
       recursive resolver is minimizing query names) gets an SOA so the full
       name is asked next.
    2. '_eth.' only carries forked-registry referrals and always gets an SOA.
    3. Everything else goes to the root zone. Without NS records in the
       authority section the root response is returned as is.
    4. Each NS target is classified (handover.labels) and routed to the
       matching adapter; the last non-empty result wins.
    5. Data replaces the root response with an authoritative answer. With no
       data, a referral into a reserved registry zone is never leaked and an
       SOA is returned instead; otherwise the root response stands.

  Adapter failures are logged and count as "no data". resolve() never raises.

Inputs:
  - Query instances and a handover.root.RootZone collaborator.

Outputs:
  - dns.message.Message responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import dns.flags
import dns.message
import dns.rdatatype

from handover.labels import (
    FORKED_REGISTRY_LABEL,
    REGISTRY_LABEL,
    DirectRegistry,
    ForkedRegistry,
    Referral,
    SiaRegistryReference,
    SkylinkReference,
    Unrecognized,
    is_reserved_target,
    parse_referral,
    significant_labels,
    tld_of,
)
from handover.resolvers.ethereum import EthereumResolver
from handover.resolvers.sia import SiaResolver
from handover.root import RootZone, synthesize_soa
from handover.wire import read_records

logger = logging.getLogger(__name__)

REGISTRY_TLD = REGISTRY_LABEL + "."
FORKED_REGISTRY_TLD = FORKED_REGISTRY_LABEL + "."


class NotReadyError(RuntimeError):
    """
    Brief: A query arrived before initialization completed.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


@dataclass(frozen=True)
class Query:
    """A single question to dispatch.

    Attributes:
      - name: Lowercased absolute query name, e.g. 'www.example.eth.'.
      - qtype: Numeric record type.
      - tld: Top-level label with trailing dot, e.g. 'eth.'.
    """

    name: str
    qtype: int
    tld: str

    @classmethod
    def make(cls, name: str, qtype: int) -> "Query":
        text = str(name).lower()
        if not text.endswith("."):
            text += "."
        return cls(name=text, qtype=int(qtype), tld=tld_of(text))

    @classmethod
    def from_message(cls, request: dns.message.Message) -> "Query":
        """Brief: Build a Query from the first question of a request.

        Raises:
          - ValueError: When the request carries no question.
        """

        if not request.question:
            raise ValueError("request has no question")
        q = request.question[0]
        return cls.make(q.name.to_text(), q.rdtype)

    @property
    def label_count(self) -> int:
        return len(significant_labels(self.name))


class Dispatcher:
    """Brief: Route a query to ENS, Skynet, or the root zone.

    Inputs:
      - ethereum: EthereumResolver.
      - sia: Optional SiaResolver; content referrals are ignored without it.

    Outputs:
      - Dispatcher instance. Obtain one through initialize() so the registry
        warm-up has run.
    """

    def __init__(
        self, ethereum: EthereumResolver, sia: Optional[SiaResolver] = None
    ) -> None:
        self.ethereum = ethereum
        self.sia = sia

    def reset(self) -> None:
        """Brief: Clear every adapter cache."""

        self.ethereum.reset()
        if self.sia is not None:
            self.sia.reset()

    def resolve(self, query: Query, root: RootZone) -> dns.message.Message:
        """Brief: Final response for *query*; never raises.

        Inputs:
          - query: Query to answer.
          - root: Root-zone collaborator.

        Outputs:
          - dns.message.Message: SOA-only, an authoritative answer, or the
            root response unmodified.
        """

        try:
            return self._resolve(query, root)
        except Exception:
            logger.exception("Unexpected error dispatching %s", query.name)
            return self._soa_only(query, root)

    def _resolve(self, query: Query, root: RootZone) -> dns.message.Message:
        if query.tld == REGISTRY_TLD:
            if query.label_count < 2:
                return self._soa_only(query, root)
            data = self._guarded(
                query,
                "ENS",
                lambda: self.ethereum.resolve_from_ens(query.name, query.qtype),
            )
            return self._answer(query, data) or self._soa_only(query, root)

        if query.tld == FORKED_REGISTRY_TLD:
            return self._soa_only(query, root)

        try:
            response = root.resolve(query)
        except Exception as exc:
            logger.warning("Root zone lookup for %s failed: %s", query.name, exc)
            return self._soa_only(query, root)

        targets = [
            rd.target.to_text()
            for rrset in response.authority
            if rrset.rdtype == dns.rdatatype.NS
            for rd in rrset
        ]
        if not targets:
            return response

        has_reserved_referral = False
        data: Optional[bytes] = None
        for target in targets:
            reserved = is_reserved_target(target)
            has_reserved_referral = has_reserved_referral or reserved
            referral = parse_referral(target)
            if isinstance(referral, Unrecognized) and not reserved:
                continue
            if self.sia is None and isinstance(
                referral, (SkylinkReference, SiaRegistryReference)
            ):
                continue
            if query.label_count < 2:
                return self._soa_only(query, root)
            if isinstance(referral, Unrecognized):
                continue

            logger.debug(
                "Intercepted referral: %s %s -> NS %s",
                query.name,
                dns.rdatatype.to_text(query.qtype),
                target,
            )
            result = self._guarded(
                query, target, lambda ref=referral: self._route(query, ref)
            )
            if result:
                data = result

        if data:
            answer = self._answer(query, data)
            if answer is not None:
                logger.debug("Answering %s from alternate naming system", query.name)
                return answer

        if has_reserved_referral:
            return self._soa_only(query, root)
        return response

    def _route(self, query: Query, referral: Referral) -> Optional[bytes]:
        if isinstance(referral, DirectRegistry):
            return self.ethereum.resolve_from_ens(
                query.name, query.qtype, node=referral.node
            )
        if isinstance(referral, ForkedRegistry):
            return self.ethereum.resolve_from_registry(
                query.name, query.qtype, referral.registry_address
            )
        if self.sia is None:
            return None
        if isinstance(referral, SkylinkReference):
            return self.sia.resolve_skylink(query.name, query.qtype, referral.skylink)
        if isinstance(referral, SiaRegistryReference):
            return self.sia.resolve_registry_entry(
                query.name,
                query.qtype,
                referral.algorithm,
                referral.public_key,
                referral.data_key,
            )
        return None

    @staticmethod
    def _guarded(
        query: Query, source: str, fn: Callable[[], Optional[bytes]]
    ) -> Optional[bytes]:
        try:
            return fn()
        except Exception as exc:
            logger.warning(
                "Lookup of %s %s via %s failed: %s",
                query.name,
                dns.rdatatype.to_text(query.qtype),
                source,
                exc,
            )
            logger.debug("Lookup failure detail", exc_info=True)
            return None

    @staticmethod
    def _answer(query: Query, data: Optional[bytes]) -> Optional[dns.message.Message]:
        """Brief: Authoritative response carrying the records in *data*.

        Outputs:
          - dns.message.Message, or None when *data* is empty or malformed.
        """

        if not data:
            return None
        try:
            rrsets = read_records(data)
        except Exception as exc:
            logger.warning("Discarding malformed records for %s: %s", query.name, exc)
            return None
        if not rrsets:
            return None
        msg = dns.message.Message()
        msg.flags |= dns.flags.AA
        msg.answer.extend(rrsets)
        return msg

    @staticmethod
    def _soa_only(query: Query, root: RootZone) -> dns.message.Message:
        try:
            soa = root.synthesize_soa(query.name)
            root.sign_rrset(soa)
        except Exception as exc:
            logger.warning("Root SOA synthesis for %s failed: %s", query.name, exc)
            soa = synthesize_soa(query.name)
        msg = dns.message.Message()
        msg.flags |= dns.flags.AA
        msg.authority.append(soa)
        return msg


def initialize(
    ethereum: EthereumResolver, sia: Optional[SiaResolver] = None
) -> Dispatcher:
    """Brief: Run the start-up warm-up and return a ready Dispatcher.

    Inputs:
      - ethereum: Registry adapter; its init() resolves the 'eth' resolver.
      - sia: Optional content adapter.

    Outputs:
      - Dispatcher ready to serve queries.

    Raises:
      - Whatever the registry warm-up raises; the caller decides whether the
        failure is fatal.
    """

    ethereum.init()
    logger.info("handover dispatcher ready (skynet %s)", "on" if sia else "off")
    return Dispatcher(ethereum, sia)
