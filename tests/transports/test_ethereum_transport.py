"""
Brief: Tests for handover.transports.ethereum.EthereumRPC with requests mocked.

Inputs:
  - monkeypatch

Outputs:
  - None
"""

import pytest
import requests
from eth_abi import decode, encode

import handover.transports.ethereum as eth_mod
from handover.transports.ethereum import (
    DNS_RECORD_SELECTOR,
    ENS_REGISTRY,
    RESOLVER_SELECTOR,
    ZERO_ADDRESS,
    EthereumRPC,
    RPCError,
    selector,
)

RESOLVER = "0x" + "12" * 20
NODE = b"\x11" * 32
NAME = b"\x22" * 32


class DummyResp:
    def __init__(self, body, status=200):
        self._body = body
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def _install(monkeypatch, body, status=200):
    calls = []

    def fake_post(url, json=None, timeout=None, auth=None):
        calls.append({"url": url, "json": json, "timeout": timeout, "auth": auth})
        return DummyResp(body, status)

    monkeypatch.setattr(eth_mod.requests, "post", fake_post)
    return calls


def _result(data: bytes):
    return {"jsonrpc": "2.0", "id": 1, "result": "0x" + data.hex()}


def test_selector_known_value():
    """
    Brief: resolver(bytes32) has the well-known selector 0x0178b8bf.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert selector("resolver(bytes32)").hex() == "0178b8bf"
    assert RESOLVER_SELECTOR.hex() == "0178b8bf"


def test_url_selection_and_auth():
    """
    Brief: rpc_url wins over Infura; the secret becomes basic-auth password.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert EthereumRPC("http://node:8545", project_id="p").url == "http://node:8545"
    rpc = EthereumRPC(project_id="abc", project_secret="s3cret")
    assert rpc.url == "https://mainnet.infura.io/v3/abc"
    assert rpc._auth == ("", "s3cret")
    with pytest.raises(ValueError):
        EthereumRPC()


def test_resolver_of_builds_calldata_and_decodes(monkeypatch):
    """
    Brief: resolver_of posts an eth_call and decodes the address result.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    calls = _install(monkeypatch, _result(encode(["address"], [RESOLVER])))
    rpc = EthereumRPC("http://node:8545", timeout=3)

    assert rpc.resolver_of(NODE).lower() == RESOLVER

    sent = calls[0]["json"]
    assert sent["method"] == "eth_call"
    params = sent["params"]
    assert params[1] == "latest"
    assert params[0]["to"] == ENS_REGISTRY
    data = bytes.fromhex(params[0]["data"][2:])
    assert data[:4] == RESOLVER_SELECTOR
    assert decode(["bytes32"], data[4:]) == (NODE,)
    assert calls[0]["timeout"] == 3.0


def test_resolver_of_empty_result_is_zero_address(monkeypatch):
    """
    Brief: A '0x' result (no contract code) maps to ZERO_ADDRESS.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, {"jsonrpc": "2.0", "id": 1, "result": "0x"})
    assert EthereumRPC("http://node").resolver_of(NODE) == ZERO_ADDRESS


def test_dns_record_returns_hex_of_bytes(monkeypatch):
    """
    Brief: dns_record encodes (node, name, type) and returns 0x-prefixed hex.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    record = b"\x03www\x00\x00\x01\x00\x01"
    calls = _install(monkeypatch, _result(encode(["bytes"], [record])))
    out = EthereumRPC("http://node").dns_record(RESOLVER, NODE, NAME, 1)
    assert out == "0x" + record.hex()

    data = bytes.fromhex(calls[0]["json"]["params"][0]["data"][2:])
    assert data[:4] == DNS_RECORD_SELECTOR
    assert decode(["bytes32", "bytes32", "uint16"], data[4:]) == (NODE, NAME, 1)


def test_dns_record_empty_bytes_is_0x(monkeypatch):
    """
    Brief: An empty bytes result reads as '0x'.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, _result(encode(["bytes"], [b""])))
    assert EthereumRPC("http://node").dns_record(RESOLVER, NODE, NAME, 1) == "0x"


@pytest.mark.parametrize(
    "body,status",
    [
        ({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "x"}}, 200),
        ({"jsonrpc": "2.0", "id": 1, "result": 5}, 200),
        ({}, 502),
        (ValueError("not json"), 200),
    ],
)
def test_rpc_failures_raise_rpc_error(monkeypatch, body, status):
    """
    Brief: JSON-RPC errors, HTTP errors and malformed bodies raise RPCError.

    Inputs:
      - monkeypatch, body, status

    Outputs:
      - None
    """
    _install(monkeypatch, body, status)
    with pytest.raises(RPCError):
        EthereumRPC("http://node").resolver_of(NODE)


def test_undecodable_result_raises_rpc_error(monkeypatch):
    """
    Brief: A result too short to decode raises RPCError.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, _result(b"\x01\x02"))
    with pytest.raises(RPCError):
        EthereumRPC("http://node").dns_record(RESOLVER, NODE, NAME, 1)


def test_text_record(monkeypatch):
    """
    Brief: text() decodes a string result.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, _result(encode(["string"], ["https://example.org"])))
    assert EthereumRPC("http://node").text(RESOLVER, NODE, "url") == "https://example.org"
