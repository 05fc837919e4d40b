"""Label-chain grammars for referrals into alternate naming systems.

Brief:
  An NS target in a root-zone referral can point into one of the alternate
  systems handled here. parse_referral() classifies a target into a tagged
  variant with named fields; targets that do not fit any grammar come back as
  Unrecognized and are ignored by the dispatcher.

  Label counts follow the presentation form split on '.', so the trailing
  root label is counted: 'addr._eth.' has three labels.

Inputs:
  - NS target names as text (absolute, trailing dot).

Outputs:
  - DirectRegistry, ForkedRegistry, SkylinkReference, SiaRegistryReference or
    Unrecognized instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Union

# Reserved TLD of the canonical name registry.
REGISTRY_LABEL = "eth"
# Companion TLD carrying referrals to forked registries.
FORKED_REGISTRY_LABEL = "_eth"
# TLD for direct content references.
CONTENT_LABEL = "_sia"
# TLD for mutable registry-entry references.
CONTENT_REGISTRY_LABEL = "_siaregistry"

RESERVED_LABELS = frozenset({REGISTRY_LABEL, FORKED_REGISTRY_LABEL})

ADDRESS_LENGTH = 42
SKYLINK_LENGTH = 46
KEY_LENGTH = 64


@dataclass(frozen=True)
class DirectRegistry:
    """Referral to a name under the canonical registry; node is the NS target."""

    node: str


@dataclass(frozen=True)
class ForkedRegistry:
    """Referral naming an alternate registry contract by address."""

    registry_address: str


@dataclass(frozen=True)
class SkylinkReference:
    """Referral naming immutable zone content directly."""

    skylink: str


@dataclass(frozen=True)
class SiaRegistryReference:
    """Referral naming a mutable registry entry that points at zone content."""

    algorithm: str
    public_key: str
    data_key: str


@dataclass(frozen=True)
class Unrecognized:
    """Target that fits none of the grammars."""

    target: str


Referral = Union[
    DirectRegistry, ForkedRegistry, SkylinkReference, SiaRegistryReference, Unrecognized
]


def split_labels(name: str) -> List[str]:
    """Brief: Split a name on '.' keeping the empty root label.

    Inputs:
      - name: Domain name text.

    Outputs:
      - list[str]: Raw labels, e.g. ['a', '_eth', ''] for 'a._eth.'.
    """

    return str(name).split(".")


def significant_labels(name: str) -> List[str]:
    """Brief: Non-empty labels of a name.

    Inputs:
      - name: Domain name text.

    Outputs:
      - list[str]: Labels without the root label, e.g. ['eth'] for 'eth.'.
    """

    return [label for label in split_labels(name) if label]


def trim_dot(name: str) -> str:
    """Brief: Drop a single trailing dot when present."""

    if name.endswith("."):
        return name[:-1]
    return name


def tld_of(name: str) -> str:
    """Brief: Top-level label of a name with trailing dot ('eth.' for 'a.eth.').

    Inputs:
      - name: Domain name text.

    Outputs:
      - str: Lowercased top label plus '.', or '.' for the root.
    """

    labels = significant_labels(name)
    if not labels:
        return "."
    return labels[-1].lower() + "."


def is_reserved_target(target: str) -> bool:
    """Brief: True when the target's last significant label is a registry TLD."""

    labels = significant_labels(target)
    return bool(labels) and labels[-1].lower() in RESERVED_LABELS


def parse_forked_registry(target: str) -> ForkedRegistry | None:
    """Brief: Match '<address>._eth.' with a 42 character address label.

    Inputs:
      - target: NS target name.

    Outputs:
      - ForkedRegistry when the shape matches exactly, else None.
    """

    labels = split_labels(target)
    if len(labels) != 3:
        return None
    if labels[1].lower() != FORKED_REGISTRY_LABEL:
        return None
    address = labels[0]
    if len(address) != ADDRESS_LENGTH:
        return None
    return ForkedRegistry(registry_address=address)


def parse_skylink(target: str) -> SkylinkReference | None:
    """Brief: Match '<skylink>._sia.' with a 46 character skylink label."""

    labels = split_labels(target)
    if len(labels) != 3:
        return None
    if labels[1].lower() != CONTENT_LABEL:
        return None
    skylink = labels[0]
    if len(skylink) != SKYLINK_LENGTH:
        return None
    return SkylinkReference(skylink=skylink)


def parse_sia_registry(target: str) -> SiaRegistryReference | None:
    """Brief: Match '<algo>.<pk1>.<pk2>.<dk1>.<dk2>._siaregistry.'.

    Inputs:
      - target: NS target name.

    Outputs:
      - SiaRegistryReference with the public and data keys rebuilt from their
        two halves, or None when the label count, marker or any field length
        is off.

    Notes:
      - Keys are split over two labels only because a DNS label is limited to
        63 octets; where the split falls is irrelevant.

    Example:
      >>> ref = parse_sia_registry("ed25519." + "a" * 32 + "." + "b" * 32 + "."
      ...                          + "c" * 10 + "." + "d" * 54 + "._siaregistry.")
      >>> ref.public_key == "a" * 32 + "b" * 32
      True
    """

    labels = split_labels(target)
    if len(labels) != 7:
        return None
    if labels[5].lower() != CONTENT_REGISTRY_LABEL:
        return None
    algorithm = labels[0]
    public_key = labels[1] + labels[2]
    data_key = labels[3] + labels[4]
    if not algorithm or len(public_key) != KEY_LENGTH or len(data_key) != KEY_LENGTH:
        return None
    return SiaRegistryReference(
        algorithm=algorithm, public_key=public_key, data_key=data_key
    )


def parse_referral(target: str) -> Referral:
    """Brief: Classify an NS target into one of the referral variants.

    Inputs:
      - target: NS target name (text, trailing dot).

    Outputs:
      - Referral variant; Unrecognized for anything outside the grammars,
        including malformed '_eth.' targets.

    Example:
      >>> parse_referral("example.eth.")
      DirectRegistry(node='example.eth.')
      >>> parse_referral("ns1.example.com.")
      Unrecognized(target='ns1.example.com.')
    """

    text = str(target)
    labels = significant_labels(text)
    if not labels:
        return Unrecognized(target=text)

    last = labels[-1].lower()
    if last == REGISTRY_LABEL and len(labels) >= 2:
        return DirectRegistry(node=text)
    if last == FORKED_REGISTRY_LABEL:
        return parse_forked_registry(text) or Unrecognized(target=text)
    if last == CONTENT_LABEL:
        return parse_skylink(text) or Unrecognized(target=text)
    if last == CONTENT_REGISTRY_LABEL:
        return parse_sia_registry(text) or Unrecognized(target=text)
    return Unrecognized(target=text)
