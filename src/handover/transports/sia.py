"""HTTPS transport to a Skynet portal.

Brief:
  Fetches skylink content and registry entries from a configured portal with a
  hard cap on response size. Anything that goes wrong surfaces as FetchError.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

import requests

from handover.transports import TransportError

logger = logging.getLogger(__name__)

DEFAULT_PORTAL = "siasky.net"

# Responses larger than this are refused.
MAX_CONTENT_BYTES = 20000

_PORTAL_RE = re.compile(r"(?:https?://)?([\w.\-]+)/?", re.IGNORECASE)


class FetchError(TransportError):
    """
    Brief: Portal request failed, was refused, or returned unusable data.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def normalize_portal(portal: object) -> Optional[str]:
    """Brief: Reduce a portal setting to its host name.

    Inputs:
      - portal: Host or URL such as 'siasky.net', 'https://siasky.net/'.

    Outputs:
      - str | None: Host part, or None when nothing usable is present.

    Example:
      >>> normalize_portal("https://siasky.net/")
      'siasky.net'
      >>> normalize_portal("") is None
      True
    """

    match = _PORTAL_RE.search(str(portal or ""))
    if not match:
        return None
    return match.group(1)


class SkynetPortal:
    """Brief: Bounded HTTPS client for one Skynet portal.

    Inputs:
      - portal: Portal host or URL; normalized with normalize_portal().
      - max_bytes: Response size cap in bytes.
      - timeout: Per-request timeout in seconds.

    Outputs:
      - SkynetPortal instance. An unusable portal setting is logged and every
        fetch then raises FetchError.

    Example use:
        >>> SkynetPortal("https://siasky.net/").portal
        'siasky.net'
    """

    def __init__(
        self,
        portal: str = DEFAULT_PORTAL,
        *,
        max_bytes: int = MAX_CONTENT_BYTES,
        timeout: float = 10.0,
    ) -> None:
        self.portal = normalize_portal(portal)
        if self.portal is None:
            logger.error("Invalid portal %r", portal)
        self.max_bytes = int(max_bytes)
        self.timeout = float(timeout)

    def _get(self, url: str) -> bytes:
        if self.portal is None:
            raise FetchError("no valid portal configured")
        logger.debug("Fetching %s", url)
        try:
            with requests.get(url, timeout=self.timeout, stream=True) as r:
                r.raise_for_status()
                body = bytearray()
                for chunk in r.iter_content(chunk_size=4096):
                    if not chunk:
                        continue
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise FetchError(
                            f"response from {url} exceeds {self.max_bytes} bytes"
                        )
                return bytes(body)
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc

    def skylink_url(self, skylink: str) -> str:
        return f"https://{self.portal}/{skylink}"

    def registry_url(self, algorithm: str, public_key: str, data_key: str) -> str:
        return (
            f"https://{self.portal}/skynet/registry"
            f"?publickey={algorithm}:{public_key}&datakey={data_key}"
        )

    def fetch_skylink(self, skylink: str) -> str:
        """Brief: Download skylink content as text.

        Inputs:
          - skylink: 46 character skylink.

        Outputs:
          - str: Content decoded as UTF-8 (undecodable bytes replaced).

        Raises:
          - FetchError: On HTTP failure or an oversized body.
        """

        body = self._get(self.skylink_url(skylink))
        return body.decode("utf-8", errors="replace")

    def fetch_registry_entry(
        self, algorithm: str, public_key: str, data_key: str
    ) -> str:
        """Brief: Read a registry entry and return the skylink it stores.

        Inputs:
          - algorithm: Key algorithm identifier (e.g. 'ed25519').
          - public_key: 64 character hex public key.
          - data_key: 64 character hex data key.

        Outputs:
          - str: Skylink decoded from the entry's hex 'data' field.

        Raises:
          - FetchError: On HTTP failure, an oversized body, or a body without a
            hex 'data' string.
        """

        url = self.registry_url(algorithm, public_key, data_key)
        body = self._get(url)
        try:
            doc = json.loads(body.decode("utf-8"))
            data = doc["data"]
            return bytes.fromhex(data).decode("utf-8")
        except (ValueError, KeyError, TypeError) as exc:
            raise FetchError(f"registry entry at {url} is malformed: {exc}") from exc
