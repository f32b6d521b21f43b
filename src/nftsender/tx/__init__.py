"""
Transaction module.

Handles instruction building, fee calculation, planning, signing and submission.
"""

from nftsender.tx.builders import CompressedInstructionBuilder, StandardInstructionBuilder
from nftsender.tx.fees import FeeCalculator
from nftsender.tx.planner import BatchPlanner
from nftsender.tx.signer import KeypairSigner, Signer
from nftsender.tx.submitter import SubmissionEngine

__all__ = [
    "StandardInstructionBuilder",
    "CompressedInstructionBuilder",
    "FeeCalculator",
    "BatchPlanner",
    "Signer",
    "KeypairSigner",
    "SubmissionEngine",
]
