"""
Instruction set and transaction plan models.

An InstructionSet holds the instructions for one transfer request; a
TransactionPlan groups instruction sets into one size-bounded transaction.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey

from nftsender.errors import FailureReason

SIGNATURE_LENGTH = 64


def _short_vec_length(value: int) -> int:
    """Number of bytes used by the compact-u16 length prefix."""
    length = 1
    while value >= 0x80:
        value >>= 7
        length += 1
    return length


def estimate_transaction_size(instructions: Sequence[Instruction], payer: Pubkey) -> int:
    """
    Size in bytes of a signed legacy transaction carrying the instructions.

    The message is compiled exactly as it will be at submission time (account
    keys deduplicated, payer first), so the estimate only ignores the value of
    the blockhash, which has a fixed width.
    """
    message = Message.new_with_blockhash(list(instructions), payer, Hash.default())
    num_signatures = message.header.num_required_signatures
    return (
        _short_vec_length(num_signatures)
        + SIGNATURE_LENGTH * num_signatures
        + len(bytes(message))
    )


class PlanStatus(str, Enum):
    """Status of a transaction plan."""
    BUILT = "built"               # Planned, not yet signed
    SIGNED = "signed"             # Bound to a blockhash and signed
    SENT = "sent"                 # Broadcast to the ledger
    CONFIRMED = "confirmed"       # Reached the configured commitment
    FAILED = "failed"             # Signing, broadcast or execution failed
    TIMED_OUT = "timed_out"       # No definitive status within the poll budget

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.CONFIRMED, PlanStatus.FAILED, PlanStatus.TIMED_OUT)


@dataclass
class InstructionSet:
    """
    Ordered instructions transferring exactly one asset.

    Attributes:
        asset_id: Asset moved by these instructions
        destination: Destination address of the transfer
        instructions: Protocol instructions in execution order
        payer: Address paying for the transaction (the asset owner)
        estimated_size: Size of a transaction carrying only this set
    """

    asset_id: str
    destination: str
    instructions: List[Instruction]
    payer: Pubkey
    estimated_size: int = 0

    def __post_init__(self):
        if not self.estimated_size:
            self.estimated_size = estimate_transaction_size(self.instructions, self.payer)

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)


@dataclass
class TransactionPlan:
    """
    One transaction's worth of instruction sets.

    The fee instruction, when present, is always the first instruction of the
    plan. The recent blockhash is bound only at submission time.

    Attributes:
        plan_id: Unique identifier for the plan
        index: Position of the plan within the run
        fee_payer: Address paying network fees and the protocol fee
        fee_instruction: Protocol fee transfer (first plan only)
        fee_lamports: Amount carried by the fee instruction
        instruction_sets: Instruction sets in request order
        estimated_size: Serialized size estimate of the whole transaction
        recent_blockhash: Blockhash bound at signing time
        signature: Transaction signature once signed
        status: Current lifecycle state
        error: Failure reason once failed or timed out
        error_details: Verbatim ledger or signer error payload
    """

    fee_payer: Pubkey
    index: int = 0
    plan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    fee_instruction: Optional[Instruction] = None
    fee_lamports: int = 0
    instruction_sets: List[InstructionSet] = field(default_factory=list)
    estimated_size: int = 0

    recent_blockhash: Optional[Hash] = None
    signature: Optional[str] = None
    status: PlanStatus = PlanStatus.BUILT
    error: Optional[FailureReason] = None
    error_details: Optional[object] = None
    attempts: int = 0

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def instructions(self) -> List[Instruction]:
        """All instructions in execution order, fee first."""
        result = [self.fee_instruction] if self.fee_instruction is not None else []
        for instruction_set in self.instruction_sets:
            result.extend(instruction_set.instructions)
        return result

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)

    @property
    def asset_ids(self) -> List[str]:
        """Asset ids represented by this plan."""
        return [s.asset_id for s in self.instruction_sets]

    @property
    def has_fee(self) -> bool:
        return self.fee_instruction is not None

    @property
    def is_empty(self) -> bool:
        return not self.instruction_sets

    def with_candidate(self, instruction_set: InstructionSet) -> List[Instruction]:
        """Instructions the plan would hold after appending a set."""
        return self.instructions + list(instruction_set.instructions)

    def add_instruction_set(self, instruction_set: InstructionSet, estimated_size: int) -> None:
        self.instruction_sets.append(instruction_set)
        self.estimated_size = estimated_size
        self.updated_at = datetime.utcnow()

    def mark_signed(self, blockhash: Hash, signature: str) -> None:
        """Mark plan as signed against a blockhash."""
        self.status = PlanStatus.SIGNED
        self.recent_blockhash = blockhash
        self.signature = signature
        self.attempts += 1
        self.updated_at = datetime.utcnow()

    def mark_sent(self) -> None:
        self.status = PlanStatus.SENT
        self.updated_at = datetime.utcnow()

    def mark_confirmed(self) -> None:
        self.status = PlanStatus.CONFIRMED
        self.error = None
        self.updated_at = datetime.utcnow()

    def mark_failed(self, reason: FailureReason, details: Optional[object] = None) -> None:
        self.status = PlanStatus.FAILED
        self.error = reason
        self.error_details = details
        self.updated_at = datetime.utcnow()

    def mark_timed_out(self) -> None:
        self.status = PlanStatus.TIMED_OUT
        self.error = FailureReason.TIMED_OUT
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "plan_id": self.plan_id,
            "index": self.index,
            "status": self.status.value,
            "signature": self.signature,
            "fee_payer": str(self.fee_payer),
            "fee_lamports": self.fee_lamports,
            "instruction_count": self.instruction_count,
            "estimated_size": self.estimated_size,
            "asset_ids": self.asset_ids,
            "attempts": self.attempts,
            "error": self.error.value if self.error else None,
            "error_details": self.error_details,
        }

    def __repr__(self) -> str:
        return (
            f"TransactionPlan(index={self.index}, status={self.status.value}, "
            f"assets={len(self.instruction_sets)}, size={self.estimated_size})"
        )
