"""Resolution adapters for the alternate naming systems.

Brief:
    EthereumResolver answers from EIP-1185 records held by ENS resolvers;
    SiaResolver answers from zone files published on Skynet.
"""

from .ethereum import EthereumResolver, ResolverHandle
from .sia import SiaResolver

__all__ = ["EthereumResolver", "ResolverHandle", "SiaResolver"]
