"""
Node Integration Layer.

Provides abstracted access to Solana RPC and the DAS indexer.
"""

from nftsender.node.interface import NodeInterface
from nftsender.node.helius import HeliusAdapter

__all__ = [
    "NodeInterface",
    "HeliusAdapter",
]
