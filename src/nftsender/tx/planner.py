"""
Batch Planner - groups instruction sets into size-bounded transactions.

Greedy, order-preserving packing: each instruction set goes into the current
plan unless that would break the ledger's size or instruction-count ceiling,
in which case a new plan is opened.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from nftsender.config import SenderConfig, get_config
from nftsender.core.plan import InstructionSet, TransactionPlan, estimate_transaction_size
from nftsender.errors import FeeInstructionTooLarge
from nftsender.tx.fees import FeeCalculator

logger = structlog.get_logger(__name__)


@dataclass
class PlanningResult:
    """Output of the planner."""
    plans: List[TransactionPlan] = field(default_factory=list)
    oversized: List[InstructionSet] = field(default_factory=list)
    fee_lamports: int = 0

    @property
    def planned_asset_ids(self) -> List[str]:
        return [asset_id for plan in self.plans for asset_id in plan.asset_ids]


class BatchPlanner:
    """
    Packs instruction sets into transaction plans.

    The protocol fee for the whole batch is computed once, from the number of
    requested assets, and placed as the first instruction of the first plan.
    """

    def __init__(
        self,
        fee_calculator: FeeCalculator,
        config: Optional[SenderConfig] = None,
        max_transaction_size: Optional[int] = None,
        max_instructions: Optional[int] = None,
    ):
        """
        Initialize the planner.

        Args:
            fee_calculator: Calculator producing the fee instruction
            config: Sender configuration
            max_transaction_size: Override for the byte ceiling
            max_instructions: Override for the instruction-count ceiling
        """
        self.config = config or get_config()
        self.fee_calculator = fee_calculator
        self.max_transaction_size = max_transaction_size or self.config.max_transaction_size
        self.max_instructions = max_instructions or self.config.max_instructions_per_transaction

    def fits(self, instructions: Sequence[Instruction], payer: Pubkey) -> Optional[int]:
        """
        Check instructions against the ceilings.

        Returns:
            Estimated transaction size if within limits, None otherwise
        """
        if len(instructions) > self.max_instructions:
            return None
        size = estimate_transaction_size(instructions, payer)
        if size > self.max_transaction_size:
            return None
        return size

    def plan(
        self,
        instruction_sets: Sequence[InstructionSet],
        fee_payer: Pubkey,
        requested_count: int,
    ) -> PlanningResult:
        """
        Group instruction sets into plans.

        Args:
            instruction_sets: Successfully built sets, in request order
            fee_payer: Address paying fees (the asset owner)
            requested_count: Number of assets in the original request

        Returns:
            Plans in submission order, plus any set too large for a
            transaction of its own

        Raises:
            FeeInstructionTooLarge: If the fee instruction cannot share a
                transaction with the first instruction set
        """
        result = PlanningResult()
        if not instruction_sets:
            logger.info("nothing_to_plan", requested=requested_count)
            return result

        fee_lamports, fee_instruction = self.fee_calculator.create_fee_instruction(
            fee_payer, requested_count
        )
        fee_placed = False
        current: Optional[TransactionPlan] = None

        for instruction_set in instruction_sets:
            if self.fits(instruction_set.instructions, fee_payer) is None:
                logger.warning(
                    "instruction_set_too_large",
                    asset_id=instruction_set.asset_id,
                    size=instruction_set.estimated_size,
                    instruction_count=instruction_set.instruction_count,
                    max_size=self.max_transaction_size,
                )
                result.oversized.append(instruction_set)
                continue

            if current is None:
                current = TransactionPlan(fee_payer=fee_payer, index=0)
                if not fee_placed:
                    current.fee_instruction = fee_instruction
                    current.fee_lamports = fee_lamports
                    fee_placed = True

            size = self.fits(current.with_candidate(instruction_set), fee_payer)
            if size is not None:
                current.add_instruction_set(instruction_set, size)
                continue

            if current.is_empty:
                # Only the fee instruction is in the plan
                raise FeeInstructionTooLarge(
                    "Fee instruction does not fit with the first instruction set",
                    details={
                        "asset_id": instruction_set.asset_id,
                        "max_size": self.max_transaction_size,
                    },
                )

            result.plans.append(current)
            current = TransactionPlan(fee_payer=fee_payer, index=len(result.plans))
            current.add_instruction_set(
                instruction_set,
                estimate_transaction_size(instruction_set.instructions, fee_payer),
            )

        if current is not None and not current.is_empty:
            result.plans.append(current)

        if result.plans:
            result.fee_lamports = fee_lamports

        if requested_count != len(result.planned_asset_ids):
            logger.info(
                "fee_charged_for_requested_assets",
                requested=requested_count,
                planned=len(result.planned_asset_ids),
                fee_lamports=fee_lamports,
            )

        logger.info(
            "batch_planned",
            plans=len(result.plans),
            assets=len(result.planned_asset_ids),
            oversized=len(result.oversized),
            sizes=[p.estimated_size for p in result.plans],
        )
        return result
