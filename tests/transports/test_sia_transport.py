"""
Brief: Tests for handover.transports.sia.SkynetPortal with requests mocked.

Inputs:
  - monkeypatch

Outputs:
  - None
"""

import json

import pytest
import requests

import handover.transports.sia as sia_mod
from handover.transports.sia import FetchError, SkynetPortal, normalize_portal

SKYLINK = "C" * 46
PK = "1" * 64
DK = "2" * 64


class DummyResp:
    def __init__(self, body: bytes, status=200):
        self._body = body
        self.status_code = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]


def _install(monkeypatch, body: bytes, status=200):
    calls = []

    def fake_get(url, timeout=None, stream=False):
        calls.append({"url": url, "timeout": timeout, "stream": stream})
        return DummyResp(body, status)

    monkeypatch.setattr(sia_mod.requests, "get", fake_get)
    return calls


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("siasky.net", "siasky.net"),
        ("https://siasky.net/", "siasky.net"),
        ("http://skyportal.xyz", "skyportal.xyz"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_portal(raw, expected):
    """
    Brief: Portal settings reduce to a bare host.

    Inputs:
      - raw, expected

    Outputs:
      - None
    """
    assert normalize_portal(raw) == expected


def test_urls():
    """
    Brief: Skylink and registry URLs follow the portal's HTTP layout.

    Inputs:
      - None

    Outputs:
      - None
    """
    portal = SkynetPortal("https://siasky.net/")
    assert portal.skylink_url(SKYLINK) == f"https://siasky.net/{SKYLINK}"
    assert portal.registry_url("ed25519", PK, DK) == (
        f"https://siasky.net/skynet/registry?publickey=ed25519:{PK}&datakey={DK}"
    )


def test_fetch_skylink_returns_text(monkeypatch):
    """
    Brief: Content is streamed and decoded as UTF-8.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    calls = _install(monkeypatch, b"site.hns. 60 IN A 192.0.2.1\n")
    text = SkynetPortal("siasky.net", timeout=4).fetch_skylink(SKYLINK)
    assert text.startswith("site.hns.")
    assert calls[0]["stream"] is True
    assert calls[0]["timeout"] == 4.0


def test_oversized_body_is_refused(monkeypatch):
    """
    Brief: A body larger than max_bytes raises FetchError.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, b"x" * 10000)
    with pytest.raises(FetchError):
        SkynetPortal("siasky.net", max_bytes=5000).fetch_skylink(SKYLINK)


def test_http_error_raises_fetch_error(monkeypatch):
    """
    Brief: Non-2xx responses raise FetchError.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    _install(monkeypatch, b"", status=404)
    with pytest.raises(FetchError):
        SkynetPortal().fetch_skylink(SKYLINK)


def test_fetch_registry_entry_decodes_hex_data(monkeypatch):
    """
    Brief: The entry's hex 'data' field decodes to the stored skylink.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    body = json.dumps({"data": SKYLINK.encode().hex(), "revision": 3}).encode()
    calls = _install(monkeypatch, body)
    assert SkynetPortal().fetch_registry_entry("ed25519", PK, DK) == SKYLINK
    assert "publickey=ed25519:" in calls[0]["url"]


@pytest.mark.parametrize("body", [b"not json", b'{"revision": 1}', b'{"data": "zz"}'])
def test_malformed_registry_entry_raises(monkeypatch, body):
    """
    Brief: Bodies without a hex 'data' string raise FetchError.

    Inputs:
      - monkeypatch, body

    Outputs:
      - None
    """
    _install(monkeypatch, body)
    with pytest.raises(FetchError):
        SkynetPortal().fetch_registry_entry("ed25519", PK, DK)


def test_invalid_portal_refuses_fetch(monkeypatch):
    """
    Brief: Without a usable portal every fetch fails without an HTTP call.

    Inputs:
      - monkeypatch

    Outputs:
      - None
    """
    calls = _install(monkeypatch, b"")
    portal = SkynetPortal("")
    assert portal.portal is None
    with pytest.raises(FetchError):
        portal.fetch_skylink(SKYLINK)
    assert calls == []
