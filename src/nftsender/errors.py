"""
Exception hierarchy and failure reasons for the NFT Sender.

Per-asset and per-plan errors are captured into the batch result;
configuration and planning errors abort the run.
"""

from enum import Enum
from typing import Any, Optional


class FailureReason(str, Enum):
    """Typed reason attached to every asset that did not succeed."""
    # Configuration / validation
    INVALID_DESTINATION_ADDRESS = "InvalidDestinationAddress"
    MISSING_DESTINATION_ADDRESS = "MissingDestinationAddress"
    ASSET_NOT_FOUND = "AssetNotFound"

    # Instruction building
    SOURCE_ACCOUNT_MISSING = "SourceAccountMissing"
    PROOF_UNAVAILABLE = "ProofUnavailable"
    PROOF_FETCH_FAILED = "ProofFetchFailed"
    PROOF_DECODE_FAILED = "ProofDecodeFailed"
    BUILD_FAILED = "BuildFailed"

    # Planning
    INSTRUCTION_SET_TOO_LARGE = "InstructionSetTooLarge"

    # Submission
    SIGNING_REJECTED = "SigningRejected"
    BROADCAST_FAILED = "BroadcastFailed"
    CANCELLED = "Cancelled"

    # Confirmation
    EXECUTION_FAILED = "ExecutionFailed"
    TIMED_OUT = "TimedOut"


class NFTSenderError(Exception):
    """Base exception for all errors raised by the NFT Sender."""

    reason: Optional[FailureReason] = None

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.details = details


class ConfigurationError(NFTSenderError):
    """Raised when configuration is missing or malformed. Fatal."""


class ValidationError(NFTSenderError):
    """Raised when a single transfer request is rejected before any network call."""

    def __init__(
        self,
        message: str,
        reason: FailureReason = FailureReason.INVALID_DESTINATION_ADDRESS,
        details: Optional[Any] = None,
    ):
        super().__init__(message, details)
        self.reason = reason


class BuildError(NFTSenderError):
    """Raised when instructions for one asset cannot be built."""

    reason = FailureReason.BUILD_FAILED


class SourceAccountMissing(BuildError):
    """The owner's token account for the mint does not exist."""

    reason = FailureReason.SOURCE_ACCOUNT_MISSING


class ProofUnavailable(BuildError):
    """The indexer returned no transfer bundle for a compressed asset."""

    reason = FailureReason.PROOF_UNAVAILABLE


class ProofFetchFailed(BuildError):
    """The indexer call errored or returned a non-success status."""

    reason = FailureReason.PROOF_FETCH_FAILED


class ProofDecodeFailed(BuildError):
    """The transfer bundle returned by the indexer could not be decoded."""

    reason = FailureReason.PROOF_DECODE_FAILED


class PlanningError(NFTSenderError):
    """Raised when no valid transaction plan can be formed. Fatal."""


class FeeInstructionTooLarge(PlanningError):
    """The fee instruction does not fit alongside the first instruction set."""


class SubmissionError(NFTSenderError):
    """Raised when a plan cannot be signed or broadcast."""


class SigningRejected(SubmissionError):
    """The signer refused or was unable to sign."""

    reason = FailureReason.SIGNING_REJECTED


class BroadcastFailed(SubmissionError):
    """Broadcasting failed on every attempt."""

    reason = FailureReason.BROADCAST_FAILED
