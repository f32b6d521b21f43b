"""
Configuration management for the NFT Sender.

Supports configuration via environment variables and .env files.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

from nftsender.errors import ConfigurationError


class NetworkType(str, Enum):
    """Solana clusters."""
    MAINNET = "mainnet-beta"
    DEVNET = "devnet"
    TESTNET = "testnet"
    LOCAL = "local"


class Commitment(str, Enum):
    """Commitment levels accepted by the confirmation poller."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class SenderConfig(BaseSettings):
    """
    Configuration settings for the NFT Sender.

    All settings can be configured via environment variables with the NFTSENDER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="NFTSENDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Network settings
    network: NetworkType = Field(
        default=NetworkType.MAINNET,
        description="Solana cluster to connect to"
    )
    rpc_url: Optional[str] = Field(
        default=None,
        description="RPC endpoint serving both the DAS API and standard Solana RPC"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for RPC calls"
    )

    # Protocol fee settings
    fee_per_asset: Decimal = Field(
        default=Decimal("0.001"),
        description="Protocol fee charged per requested asset, in SOL"
    )
    fee_collector_address: Optional[str] = Field(
        default=None,
        description="Address receiving the protocol fee"
    )

    # Ledger limits
    max_transaction_size: int = Field(
        default=1232,
        ge=256,
        description="Maximum serialized transaction size in bytes"
    )
    max_instructions_per_transaction: int = Field(
        default=64,
        ge=2,
        description="Maximum number of instructions in one transaction"
    )

    # Confirmation settings
    commitment: Commitment = Field(
        default=Commitment.CONFIRMED,
        description="Commitment level a transaction must reach"
    )
    confirmation_max_polls: int = Field(
        default=30,
        ge=1,
        description="Maximum signature status polls before a plan is timed out"
    )
    poll_interval_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Delay before the first status poll"
    )
    backoff_factor: float = Field(
        default=1.5,
        ge=1,
        description="Multiplier applied to the poll delay after each poll"
    )
    max_poll_interval_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound for the poll delay"
    )
    broadcast_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Broadcast attempts per plan, each with a fresh blockhash"
    )

    # Build settings
    build_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum concurrent instruction builds"
    )
    asset_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Page size used when listing owned assets"
    )

    # Wallet settings
    keypair_path: Optional[str] = Field(
        default=None,
        description="Path to a JSON keypair file used by the CLI signer"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def rpc_endpoint(self) -> str:
        """Get the RPC URL, falling back to the public cluster endpoint."""
        if self.rpc_url:
            return self.rpc_url

        network_urls = {
            NetworkType.MAINNET: "https://api.mainnet-beta.solana.com",
            NetworkType.DEVNET: "https://api.devnet.solana.com",
            NetworkType.TESTNET: "https://api.testnet.solana.com",
            NetworkType.LOCAL: "http://localhost:8899",
        }
        return network_urls[self.network]

    @property
    def fee_collector(self) -> Pubkey:
        """Get the fee collector as a public key."""
        if not self.fee_collector_address:
            raise ConfigurationError("fee_collector_address is required")
        try:
            return Pubkey.from_string(self.fee_collector_address)
        except ValueError as e:
            raise ConfigurationError(
                f"fee_collector_address is not a valid address: {self.fee_collector_address}"
            ) from e

    def validate_for_transfer(self) -> None:
        """
        Validate the settings needed before any transfer can run.

        Raises:
            ConfigurationError: If the fee settings are missing or malformed
        """
        errors = []

        if self.fee_per_asset is None or self.fee_per_asset < 0:
            errors.append("fee_per_asset must be a non-negative decimal")

        try:
            self.fee_collector
        except ConfigurationError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")


# Global config instance
_config: Optional[SenderConfig] = None


def get_config() -> SenderConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = SenderConfig()
    return _config


def set_config(config: SenderConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
