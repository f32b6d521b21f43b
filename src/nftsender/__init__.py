"""
Solana NFT Sender

Transfers a batch of standard and compressed Solana NFTs from one owner to one
or many destinations, packing the transfers into as few transactions as the
ledger's size limits allow and reporting the outcome of every asset.
"""

__version__ = "0.1.0"

from nftsender.core.asset import Asset, TransferClass
from nftsender.core.request import TransferRequest
from nftsender.core.result import AssetStatus, BatchResult
from nftsender.core.sender import NFTSender
from nftsender.errors import FailureReason, NFTSenderError

__all__ = [
    "NFTSender",
    "Asset",
    "TransferClass",
    "TransferRequest",
    "BatchResult",
    "AssetStatus",
    "FailureReason",
    "NFTSenderError",
]
