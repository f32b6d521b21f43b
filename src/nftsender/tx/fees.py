"""
Protocol fee calculation.

The fee is charged once per batch, computed from the number of assets the
caller asked to transfer.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Optional, Tuple, Union

import structlog
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from nftsender.config import SenderConfig, get_config
from nftsender.errors import ConfigurationError

logger = structlog.get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class FeeQuote:
    """Fee preview for a number of assets."""
    asset_count: int
    fee_per_asset: Decimal
    total_sol: Decimal
    lamports: int

    def to_dict(self) -> dict:
        return {
            "asset_count": self.asset_count,
            "fee_per_asset": str(self.fee_per_asset),
            "total_sol": str(self.total_sol),
            "lamports": self.lamports,
        }


class FeeCalculator:
    """
    Maps an asset count to the protocol fee and the instruction paying it.

    Amounts are computed in Decimal and truncated to whole lamports, so a fee
    is never rounded up.
    """

    def __init__(self, fee_per_asset: Union[Decimal, str], collector: Union[Pubkey, str]):
        """
        Initialize the fee calculator.

        Args:
            fee_per_asset: Fee per asset in SOL
            collector: Address receiving the fee

        Raises:
            ConfigurationError: If the price or collector is missing or malformed
        """
        if fee_per_asset is None or fee_per_asset == "":
            raise ConfigurationError("fee_per_asset is required")
        try:
            self.fee_per_asset = Decimal(str(fee_per_asset))
        except InvalidOperation as e:
            raise ConfigurationError(f"fee_per_asset is not a decimal: {fee_per_asset}") from e
        if not self.fee_per_asset.is_finite() or self.fee_per_asset < 0:
            raise ConfigurationError(f"fee_per_asset must be non-negative: {fee_per_asset}")

        if not collector:
            raise ConfigurationError("fee_collector_address is required")
        if isinstance(collector, Pubkey):
            self.collector = collector
        else:
            try:
                self.collector = Pubkey.from_string(collector)
            except ValueError as e:
                raise ConfigurationError(
                    f"fee_collector_address is not a valid address: {collector}"
                ) from e

    @classmethod
    def from_config(cls, config: Optional[SenderConfig] = None) -> "FeeCalculator":
        config = config or get_config()
        config.validate_for_transfer()
        return cls(config.fee_per_asset, config.fee_collector)

    def calculate_fee(self, asset_count: int) -> Decimal:
        """Fee in SOL, truncated to lamport precision."""
        return Decimal(self.fee_lamports(asset_count)) / LAMPORTS_PER_SOL

    def fee_lamports(self, asset_count: int) -> int:
        """Fee in lamports, truncated."""
        if asset_count < 0:
            raise ValueError("asset_count must be non-negative")
        total = self.fee_per_asset * asset_count * LAMPORTS_PER_SOL
        return int(total.to_integral_value(rounding=ROUND_DOWN))

    def quote(self, asset_count: int) -> FeeQuote:
        lamports = self.fee_lamports(asset_count)
        return FeeQuote(
            asset_count=asset_count,
            fee_per_asset=self.fee_per_asset,
            total_sol=Decimal(lamports) / LAMPORTS_PER_SOL,
            lamports=lamports,
        )

    def create_fee_instruction(self, payer: Pubkey, asset_count: int) -> Tuple[int, Instruction]:
        """
        Build the fee transfer instruction.

        Args:
            payer: Address paying the fee
            asset_count: Number of assets the caller requested

        Returns:
            (lamports, system transfer instruction to the collector)
        """
        lamports = self.fee_lamports(asset_count)
        instruction = transfer(
            TransferParams(
                from_pubkey=payer,
                to_pubkey=self.collector,
                lamports=lamports,
            )
        )

        logger.debug(
            "fee_instruction_created",
            asset_count=asset_count,
            lamports=lamports,
            collector=str(self.collector),
        )
        return lamports, instruction
