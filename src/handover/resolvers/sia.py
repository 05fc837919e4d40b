"""Skynet-backed DNS resolution.

Brief:
  A referral into '_sia.' names a skylink whose content is a zone file; a
  referral into '_siaregistry.' names a registry entry that points at such a
  skylink. Content and registry entries are cached independently, then the
  zone text is parsed and the records matching the query are returned.

Inputs:
  - A portal transport exposing fetch_skylink() and fetch_registry_entry()
    (see handover.transports.sia.SkynetPortal).

Outputs:
  - Record blobs (bytes) or None for "no data".
"""

from __future__ import annotations

import logging
from typing import Optional

from handover.cache import LRUTTLCache
from handover.labels import parse_sia_registry, parse_skylink
from handover.zone import ZoneParseError, parse_zone, records_for

logger = logging.getLogger(__name__)


class SiaResolver:
    """Brief: Resolve DNS records from zone files stored on Skynet.

    Inputs:
      - transport: Portal transport.
      - cache: Optional LRUTTLCache for skylink content and registry entries.

    Outputs:
      - SiaResolver instance.
    """

    def __init__(self, transport, *, cache: Optional[LRUTTLCache] = None) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else LRUTTLCache()

    def reset(self) -> None:
        self.cache.reset()

    def fetch_content(self, skylink: str) -> str:
        """Brief: Skylink content, from cache when fresh.

        Inputs:
          - skylink: 46 character skylink.

        Outputs:
          - str: Raw content text.
        """

        key = ("skylink", skylink)
        content = self.cache.get(key)
        if content is None:
            content = self.transport.fetch_skylink(skylink)
            self.cache.set(key, content)
        return content or ""

    def fetch_registry_entry(
        self, algorithm: str, public_key: str, data_key: str
    ) -> str:
        """Brief: Skylink stored in a registry entry, from cache when fresh.

        Inputs:
          - algorithm: Key algorithm identifier.
          - public_key: 64 character public key.
          - data_key: 64 character data key.

        Outputs:
          - str: Skylink; empty when the entry holds nothing.
        """

        key = ("registry", public_key, data_key)
        skylink = self.cache.get(key)
        if skylink is None:
            skylink = self.transport.fetch_registry_entry(
                algorithm, public_key, data_key
            )
            self.cache.set(key, skylink)
        return skylink or ""

    def extract_from_zone(self, content: str, name: str, qtype: int) -> Optional[bytes]:
        """Brief: Records of (*name*, *qtype*) in zone text.

        Inputs:
          - content: Zone file text.
          - name: Owner name.
          - qtype: DNS record type.

        Outputs:
          - bytes | None: Concatenated wire records, or None when the text does
            not parse or holds no matching records.
        """

        try:
            zone = parse_zone(content)
            data = records_for(zone, name, qtype)
        except ZoneParseError as exc:
            logger.debug("Skynet zone for %s did not parse: %s", name, exc)
            return None
        except Exception as exc:
            logger.error("Unexpected error reading Skynet zone for %s: %s", name, exc)
            return None

        if not data:
            return None
        return data

    def resolve_skylink(self, name: str, qtype: int, skylink: str) -> Optional[bytes]:
        logger.debug("Resolving %s %s via skylink %s", name, qtype, skylink)
        return self.extract_from_zone(self.fetch_content(skylink), name, qtype)

    def resolve_registry_entry(
        self,
        name: str,
        qtype: int,
        algorithm: str,
        public_key: str,
        data_key: str,
    ) -> Optional[bytes]:
        """Brief: Registry entry -> skylink -> zone content -> records.

        Outputs:
          - bytes | None: Record blob, or None when the entry is empty or the
            zone holds nothing for the query.
        """

        logger.debug(
            "Resolving %s %s via registry entry %s:%s/%s",
            name,
            qtype,
            algorithm,
            public_key,
            data_key,
        )
        skylink = self.fetch_registry_entry(algorithm, public_key, data_key)
        if not skylink:
            return None
        return self.resolve_skylink(name, qtype, skylink)

    def resolve_from_skylink(self, name: str, qtype: int, target: str) -> Optional[bytes]:
        """Brief: Resolve through a '<skylink>._sia.' referral target.

        Outputs:
          - bytes | None: Record blob, or None (no fetch) for a malformed target.
        """

        ref = parse_skylink(target)
        if ref is None:
            return None
        return self.resolve_skylink(name, qtype, ref.skylink)

    def resolve_from_registry(
        self, name: str, qtype: int, target: str
    ) -> Optional[bytes]:
        """Brief: Resolve through a '..._siaregistry.' referral target.

        Outputs:
          - bytes | None: Record blob, or None (no fetch) for a malformed target.
        """

        ref = parse_sia_registry(target)
        if ref is None:
            return None
        return self.resolve_registry_entry(
            name, qtype, ref.algorithm, ref.public_key, ref.data_key
        )
