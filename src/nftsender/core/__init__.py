"""
Core sender components.

This module contains the asset, request, plan and result models and the
main sender orchestration.
"""

from nftsender.core.asset import Asset, TransferClass, classify_asset
from nftsender.core.request import TransferRequest, parse_address_list
from nftsender.core.plan import InstructionSet, PlanStatus, TransactionPlan
from nftsender.core.result import AssetOutcome, AssetStatus, BatchResult, ResultAggregator
from nftsender.core.sender import NFTSender

__all__ = [
    "Asset",
    "TransferClass",
    "classify_asset",
    "TransferRequest",
    "parse_address_list",
    "InstructionSet",
    "PlanStatus",
    "TransactionPlan",
    "AssetOutcome",
    "AssetStatus",
    "BatchResult",
    "ResultAggregator",
    "NFTSender",
]
