"""JSON-RPC transport to the Ethereum name registry.

Brief:
  Issues read-only ``eth_call`` requests against registry and resolver
  contracts. Calldata is built from 4-byte function selectors and ABI-encoded
  arguments; results are ABI-decoded before being returned.

Inputs:
  - An RPC endpoint (explicit URL, or an Infura project id and optional
    secret).

Outputs:
  - Resolver addresses and hex-encoded record strings.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional, Sequence

import requests
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_hash.auto import keccak

from handover.transports import TransportError

logger = logging.getLogger(__name__)

# Canonical ENS registry contract on mainnet.
ENS_REGISTRY = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"

ZERO_ADDRESS = "0x" + "00" * 20

INFURA_URL = "https://mainnet.infura.io/v3/{project_id}"


def selector(signature: str) -> bytes:
    """Brief: 4-byte function selector for a canonical Solidity signature.

    Inputs:
      - signature: e.g. 'resolver(bytes32)'.

    Outputs:
      - bytes: First four bytes of keccak256(signature).
    """

    return keccak(signature.encode("ascii"))[:4]


RESOLVER_SELECTOR = selector("resolver(bytes32)")
DNS_RECORD_SELECTOR = selector("dnsRecord(bytes32,bytes32,uint16)")
ADDR_SELECTOR = selector("addr(bytes32)")
TEXT_SELECTOR = selector("text(bytes32,string)")


class RPCError(TransportError):
    """
    Brief: JSON-RPC call failed or returned an undecodable result.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class EthereumRPC:
    """Brief: Minimal ``eth_call`` client for ENS registry and resolver reads.

    Inputs:
      - rpc_url: Explicit JSON-RPC endpoint. Takes precedence over Infura.
      - project_id: Infura project id used to build the mainnet URL.
      - project_secret: Optional Infura secret sent as the basic-auth password.
      - timeout: Per-request timeout in seconds.

    Outputs:
      - EthereumRPC instance.

    Example use:
        >>> rpc = EthereumRPC(rpc_url="http://127.0.0.1:8545")
        >>> rpc.url
        'http://127.0.0.1:8545'
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        *,
        project_id: Optional[str] = None,
        project_secret: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        if rpc_url:
            self.url = str(rpc_url)
        elif project_id:
            self.url = INFURA_URL.format(project_id=project_id)
        else:
            raise ValueError("EthereumRPC requires rpc_url or an Infura project_id")
        self._auth = ("", str(project_secret)) if project_secret else None
        self.timeout = float(timeout)
        self._ids = itertools.count(1)

    def eth_call(self, to: str, data: bytes) -> bytes:
        """Brief: Execute a read-only contract call at the latest block.

        Inputs:
          - to: Contract address.
          - data: Calldata (selector plus encoded arguments).

        Outputs:
          - bytes: Raw return data (may be empty for accounts without code).

        Raises:
          - RPCError: On HTTP failure, a JSON-RPC error object, or a malformed
            result.
        """

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "eth_call",
            "params": [{"to": to, "data": "0x" + data.hex()}, "latest"],
        }
        try:
            r = requests.post(
                self.url, json=payload, timeout=self.timeout, auth=self._auth
            )
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise RPCError(f"eth_call to {to} failed: {exc}") from exc

        if not isinstance(body, dict):
            raise RPCError(f"eth_call to {to} returned a non-object body")
        if body.get("error"):
            raise RPCError(f"eth_call to {to} returned error: {body['error']}")

        result = body.get("result")
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RPCError(f"eth_call to {to} returned malformed result {result!r}")
        try:
            return bytes.fromhex(result[2:])
        except ValueError as exc:
            raise RPCError(f"eth_call to {to} returned non-hex result") from exc

    def _call(
        self, to: str, sel: bytes, types: Sequence[str], args: Sequence[Any]
    ) -> bytes:
        return self.eth_call(to, sel + encode(list(types), list(args)))

    @staticmethod
    def _decode_one(abi_type: str, raw: bytes) -> Any:
        try:
            (value,) = decode([abi_type], raw)
        except DecodingError as exc:
            raise RPCError(f"could not decode {abi_type} result: {exc}") from exc
        return value

    def resolver_of(self, node_hash: bytes, registry_address: str = ENS_REGISTRY) -> str:
        """Brief: Address of the resolver contract bound to a node in a registry.

        Inputs:
          - node_hash: 32-byte namehash of the node.
          - registry_address: Registry contract address.

        Outputs:
          - str: Lowercase hex address; ZERO_ADDRESS when none is set.
        """

        raw = self._call(registry_address, RESOLVER_SELECTOR, ["bytes32"], [node_hash])
        if not raw:
            return ZERO_ADDRESS
        return str(self._decode_one("address", raw))

    def dns_record(
        self, resolver_address: str, node_hash: bytes, name_hash: bytes, qtype: int
    ) -> str:
        """Brief: EIP-1185 ``dnsRecord`` lookup on a resolver contract.

        Inputs:
          - resolver_address: Resolver contract address.
          - node_hash: 32-byte namehash of the zone node.
          - name_hash: 32-byte keccak256 of the wire-encoded owner name.
          - qtype: DNS record type.

        Outputs:
          - str: '0x'-prefixed hex of the concatenated wire records; '0x' when
            the resolver holds nothing.
        """

        raw = self._call(
            resolver_address,
            DNS_RECORD_SELECTOR,
            ["bytes32", "bytes32", "uint16"],
            [node_hash, name_hash, int(qtype)],
        )
        if not raw:
            return "0x"
        return "0x" + bytes(self._decode_one("bytes", raw)).hex()

    def addr(self, resolver_address: str, node_hash: bytes) -> str:
        """Brief: Ethereum address record of a node (EIP-137 ``addr``)."""

        raw = self._call(resolver_address, ADDR_SELECTOR, ["bytes32"], [node_hash])
        if not raw:
            return ZERO_ADDRESS
        return str(self._decode_one("address", raw))

    def text(self, resolver_address: str, node_hash: bytes, key: str) -> str:
        """Brief: Text record of a node (EIP-634 ``text``); '' when unset."""

        raw = self._call(
            resolver_address, TEXT_SELECTOR, ["bytes32", "string"], [node_hash, key]
        )
        if not raw:
            return ""
        return str(self._decode_one("string", raw))
