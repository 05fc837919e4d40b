"""
Brief: Tests for handover.labels referral grammars.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from handover.labels import (
    DirectRegistry,
    ForkedRegistry,
    SiaRegistryReference,
    SkylinkReference,
    Unrecognized,
    is_reserved_target,
    parse_forked_registry,
    parse_referral,
    parse_sia_registry,
    parse_skylink,
    significant_labels,
    split_labels,
    tld_of,
)

ADDRESS = "0x" + "ab" * 20
SKYLINK = "A" * 46
PK = "1" * 64
DK = "2" * 64


def _registry_target(pk=PK, dk=DK, split_pk=32, split_dk=10):
    return (
        f"ed25519.{pk[:split_pk]}.{pk[split_pk:]}."
        f"{dk[:split_dk]}.{dk[split_dk:]}._siaregistry."
    )


def test_label_helpers():
    """
    Brief: Raw split keeps the root label; significant labels drop it.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert split_labels("a._eth.") == ["a", "_eth", ""]
    assert significant_labels("eth.") == ["eth"]
    assert tld_of("WWW.Example.ETH.") == "eth."
    assert tld_of(".") == "."


def test_direct_registry_referral():
    """
    Brief: Any name of two or more labels ending in 'eth' is a direct referral.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert parse_referral("ns.example.eth.") == DirectRegistry(node="ns.example.eth.")
    assert isinstance(parse_referral("eth."), Unrecognized)


def test_forked_registry_accepts_exact_shape():
    """
    Brief: '<42 char address>._eth.' parses into ForkedRegistry.

    Inputs:
      - None

    Outputs:
      - None
    """
    ref = parse_referral(f"{ADDRESS}._eth.")
    assert ref == ForkedRegistry(registry_address=ADDRESS)


@pytest.mark.parametrize(
    "target",
    [
        "0x1234._eth.",  # short address
        f"x.{ADDRESS}._eth.",  # extra label
        f"{ADDRESS}._eth",  # no trailing root label
    ],
)
def test_forked_registry_rejects_malformed(target):
    """
    Brief: Wrong length, wrong label count, or a missing root label are rejected.

    Inputs:
      - target: malformed NS target

    Outputs:
      - None
    """
    assert parse_forked_registry(target) is None
    assert isinstance(parse_referral(target), Unrecognized)


def test_skylink_referral():
    """
    Brief: '<46 char skylink>._sia.' parses; other lengths do not.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert parse_referral(f"{SKYLINK}._sia.") == SkylinkReference(skylink=SKYLINK)
    assert parse_skylink("short._sia.") is None


def test_sia_registry_reconstructs_split_keys():
    """
    Brief: Key halves are concatenated regardless of where the split falls.

    Inputs:
      - None

    Outputs:
      - None
    """
    for split_pk, split_dk in ((32, 32), (1, 63), (40, 5)):
        ref = parse_referral(_registry_target(split_pk=split_pk, split_dk=split_dk))
        assert ref == SiaRegistryReference(
            algorithm="ed25519", public_key=PK, data_key=DK
        )


def test_sia_registry_rejects_wrong_key_length():
    """
    Brief: A public key that does not add up to 64 characters is rejected.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert parse_sia_registry(_registry_target(pk=PK[:-1])) is None
    assert isinstance(parse_referral("a.b._siaregistry."), Unrecognized)


def test_marker_labels_are_case_insensitive():
    """
    Brief: Marker labels match in any case while field values keep their case.

    Inputs:
      - None

    Outputs:
      - None
    """
    ref = parse_referral(f"{SKYLINK.lower()}._SIA.")
    assert ref == SkylinkReference(skylink=SKYLINK.lower())


def test_reserved_targets():
    """
    Brief: Targets under eth. or _eth. are reserved; others are not.

    Inputs:
      - None

    Outputs:
      - None
    """
    assert is_reserved_target("ns.example.eth.")
    assert is_reserved_target("garbage._eth.")
    assert not is_reserved_target(f"{SKYLINK}._sia.")
    assert not is_reserved_target("a.root-servers.net.")
    assert isinstance(parse_referral("a.root-servers.net."), Unrecognized)
