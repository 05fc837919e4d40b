"""Wire codec for record blobs returned by the alternate naming systems.

Brief:
  A record blob is zero or more back-to-back RFC 1035 resource records (owner
  name, type, class, TTL, rdata length, rdata) with no header and no count;
  the end of the buffer is the only terminator. This module converts such a
  blob into dnspython RRsets and renders RRsets back into the same format.

Inputs:
  - Raw record blobs (bytes) or dnspython RRset/Rdataset objects.

Outputs:
  - Lists of dns.rrset.RRset and record blobs (bytes).
"""

from __future__ import annotations

import io
from typing import Iterable, List

import dns.exception
import dns.name
import dns.rdata
import dns.rdataset
import dns.rrset
import dns.wire


class WireError(Exception):
    """
    Brief: Malformed record blob.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def read_records(blob: bytes) -> List[dns.rrset.RRset]:
    """Brief: Decode a record blob into RRsets, preserving first-seen order.

    Inputs:
      - blob: Concatenated wire-format resource records.

    Outputs:
      - list[dns.rrset.RRset]: One RRset per distinct (name, class, type);
        records sharing an owner and type are merged into the same RRset.

    Raises:
      - WireError: When the blob is truncated or a record cannot be parsed.

    Example:
      >>> read_records(b"")
      []
    """

    parser = dns.wire.Parser(bytes(blob))
    rrsets: List[dns.rrset.RRset] = []
    by_key: dict = {}
    try:
        while parser.remaining() > 0:
            name = parser.get_name()
            rdtype, rdclass, ttl, rdlen = parser.get_struct("!HHIH")
            with parser.restrict_to(rdlen):
                rd = dns.rdata.from_wire_parser(rdclass, rdtype, parser)
            key = (name, rdclass, rdtype, rd.covers())
            rrset = by_key.get(key)
            if rrset is None:
                rrset = dns.rrset.RRset(name, rdclass, rdtype, rd.covers())
                by_key[key] = rrset
                rrsets.append(rrset)
            rrset.add(rd, ttl)
    except dns.exception.DNSException as exc:
        raise WireError(f"malformed record blob: {exc}") from exc
    return rrsets


def write_rdataset(
    name: dns.name.Name, rdataset: dns.rdataset.Rdataset, out: io.BytesIO
) -> int:
    """Brief: Append an uncompressed, unshuffled rdataset to *out*.

    Inputs:
      - name: Absolute owner name. Ignored for RRsets, which carry their own.
      - rdataset: Records to render (plain Rdataset or RRset).
      - out: Destination buffer.

    Outputs:
      - int: Number of records written.
    """

    if isinstance(rdataset, dns.rrset.RRset):
        return rdataset.to_wire(out, compress=None, want_shuffle=False)
    return rdataset.to_wire(name, out, compress=None, want_shuffle=False)


def write_records(rrsets: Iterable[dns.rrset.RRset]) -> bytes:
    """Brief: Render RRsets as a record blob.

    Inputs:
      - rrsets: Iterable of dnspython RRsets with absolute owner names.

    Outputs:
      - bytes: Concatenated wire-format records, empty when nothing was given.
    """

    out = io.BytesIO()
    for rrset in rrsets:
        write_rdataset(rrset.name, rrset, out)
    return out.getvalue()


def pack_name(name: str) -> bytes:
    """Brief: Uncompressed wire encoding of a domain name.

    Inputs:
      - name: Domain name; a missing trailing dot is treated as absolute.

    Outputs:
      - bytes: Length-prefixed labels ending with the root label.

    Example:
      >>> pack_name("a.eth.")
      b'\\x01a\\x03eth\\x00'
    """

    return dns.name.from_text(name).to_wire()
