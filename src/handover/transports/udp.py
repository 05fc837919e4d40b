import socket
from typing import Optional

from handover.transports import TransportError


class UDPError(TransportError):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    source_ip: Optional[str] = None,
    max_size: int = 4096,
) -> bytes:
    """
    Brief: Send one wire-format query over UDP and return the first reply.

    Inputs:
    - host: root server host/IP
    - port: root server UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds
    - source_ip: optional source address to bind
    - max_size: receive buffer size in bytes

    Outputs:
    - bytes: wire-format DNS response

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01', timeout_ms=10)
        ... except UDPError:
        ...     pass
    """
    family = socket.AF_INET6 if ":" in str(host) else socket.AF_INET
    try:
        with socket.socket(family, socket.SOCK_DGRAM) as s:
            if source_ip:
                s.bind((source_ip, 0))
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            data, _ = s.recvfrom(int(max_size))
            return data
    except OSError as e:
        raise UDPError(f"UDP error talking to {host}:{port}: {e}") from e
