"""Zone-text grammar used for content fetched from the storage network.

Brief:
  Thin wrapper over dnspython's master-file parser. Content published on the
  storage network is an ordinary zone file; names are taken relative to the
  root so both absolute and bare owner names parse.
"""

from __future__ import annotations

import io
import logging

import dns.exception
import dns.name
import dns.rdatatype
import dns.zone

from handover.wire import write_rdataset

logger = logging.getLogger(__name__)


class ZoneParseError(Exception):
    """
    Brief: Zone text could not be parsed.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def parse_zone(text: str) -> dns.zone.Zone:
    """Brief: Parse zone-file text into a dnspython Zone rooted at '.'.

    Inputs:
      - text: Zone file contents.

    Outputs:
      - dns.zone.Zone with absolute owner names.

    Raises:
      - ZoneParseError: For malformed input (syntax errors, bad rdata, CNAME
        mixed with other data, and similar).
    """

    try:
        return dns.zone.from_text(
            text,
            origin=dns.name.root,
            relativize=False,
            check_origin=False,
        )
    except dns.exception.DNSException as exc:
        raise ZoneParseError(str(exc) or exc.__class__.__name__) from exc


def records_for(zone: dns.zone.Zone, name: str, rdtype: int) -> bytes:
    """Brief: Wire encodings of every record in *zone* owned by *name* of *rdtype*.

    Inputs:
      - zone: Parsed zone.
      - name: Owner name text; matched case-insensitively.
      - rdtype: Numeric record type.

    Outputs:
      - bytes: Concatenated records, empty when nothing matched.
    """

    owner = dns.name.from_text(name)
    rdataset = zone.get_rdataset(owner, dns.rdatatype.RdataType.make(rdtype))
    if rdataset is None:
        return b""
    out = io.BytesIO()
    write_rdataset(owner, rdataset, out)
    return out.getvalue()
