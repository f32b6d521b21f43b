"""
Instruction Builders - produce the instructions transferring one asset.

One builder per transfer class; the sender dispatches to the builder matching
each asset's class exactly once.
"""

import base64
import binascii
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping

import structlog

from solders.instruction import AccountMeta, Instruction
from solders.message import MessageHeader
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)

from nftsender.core.asset import Asset, TransferClass
from nftsender.core.plan import InstructionSet
from nftsender.errors import (
    BuildError,
    ProofDecodeFailed,
    ProofFetchFailed,
    ProofUnavailable,
    SourceAccountMissing,
)
from nftsender.node.interface import NodeConnectionError, NodeInterface

logger = structlog.get_logger(__name__)


class InstructionBuilder(ABC):
    """
    Abstract base class for per-asset instruction builders.

    Builders only read ledger or indexer state; they never submit anything.
    """

    transfer_class: TransferClass

    def __init__(self, node: NodeInterface, owner: Pubkey):
        """
        Initialize the builder.

        Args:
            node: Node interface for ledger and indexer reads
            owner: Current owner of the assets, also the fee payer
        """
        self.node = node
        self.owner = owner

    @abstractmethod
    async def build(self, asset: Asset, destination: Pubkey) -> InstructionSet:
        """
        Build the instructions transferring one asset.

        Args:
            asset: Asset to transfer
            destination: New owner

        Returns:
            Instruction set for the transfer

        Raises:
            BuildError: If the transfer cannot be built
        """
        pass

    def _instruction_set(
        self,
        asset: Asset,
        destination: Pubkey,
        instructions: List[Instruction],
    ) -> InstructionSet:
        return InstructionSet(
            asset_id=asset.asset_id,
            destination=str(destination),
            instructions=instructions,
            payer=self.owner,
        )


class StandardInstructionBuilder(InstructionBuilder):
    """
    Builds SPL token transfers for standard NFTs.

    Produces an optional associated token account creation for the
    destination followed by a transfer of one token.
    """

    transfer_class = TransferClass.STANDARD

    async def build(self, asset: Asset, destination: Pubkey) -> InstructionSet:
        try:
            mint = Pubkey.from_string(asset.mint or asset.asset_id)
        except ValueError as e:
            raise BuildError(f"Invalid mint address for {asset.asset_id}") from e

        source_account = get_associated_token_address(self.owner, mint)
        destination_account = get_associated_token_address(destination, mint)

        try:
            source_exists = await self.node.account_exists(source_account)
            destination_exists = await self.node.account_exists(destination_account)
        except NodeConnectionError as e:
            raise BuildError(f"Account lookup failed for {asset.asset_id}: {e}") from e

        if not source_exists:
            raise SourceAccountMissing(
                f"Source token account not found for NFT {asset.asset_id}",
                details=str(source_account),
            )

        instructions: List[Instruction] = []
        if not destination_exists:
            instructions.append(
                create_associated_token_account(
                    payer=self.owner,
                    owner=destination,
                    mint=mint,
                )
            )

        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source_account,
                    dest=destination_account,
                    owner=self.owner,
                    amount=1,
                )
            )
        )

        logger.debug(
            "standard_instructions_built",
            asset_id=asset.asset_id,
            creates_account=not destination_exists,
        )
        return self._instruction_set(asset, destination, instructions)


class CompressedInstructionBuilder(InstructionBuilder):
    """
    Builds compressed NFT transfers from an indexer-provided bundle.

    The merkle proof is not reconstructed locally: the indexer returns a
    serialized transaction carrying the transfer, which is decoded back into
    plain instructions.
    """

    transfer_class = TransferClass.COMPRESSED

    async def build(self, asset: Asset, destination: Pubkey) -> InstructionSet:
        try:
            bundle = await self.node.get_compressed_transfer(
                asset_id=asset.asset_id,
                source_owner=str(self.owner),
                destination_owner=str(destination),
            )
        except NodeConnectionError as e:
            raise ProofFetchFailed(
                f"Failed to get transfer instructions for {asset.asset_id}: {e}",
                details=str(e),
            ) from e

        if not bundle:
            raise ProofUnavailable(f"No transfer instructions returned for {asset.asset_id}")

        instructions = decode_instruction_bundle(bundle)

        logger.debug(
            "compressed_instructions_built",
            asset_id=asset.asset_id,
            instruction_count=len(instructions),
        )
        return self._instruction_set(asset, destination, instructions)


def decode_instruction_bundle(encoded: str) -> List[Instruction]:
    """
    Decode a base64 serialized transaction into its instructions.

    Account metas are rebuilt from the message header, so the instructions
    can be recompiled into any other message.

    Raises:
        ProofDecodeFailed: If the bundle is not a valid serialized transaction
    """
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ProofDecodeFailed(f"Transfer bundle is not valid base64: {e}") from e

    try:
        tx = Transaction.from_bytes(raw)
    except Exception as e:
        raise ProofDecodeFailed(f"Transfer bundle is not a serialized transaction: {e}") from e

    instructions: List[Instruction] = []

    try:
        message = tx.message
        keys = message.account_keys
        header = message.header
        for compiled in message.instructions:
            accounts = [
                AccountMeta(
                    keys[index],
                    _is_signer(header, index),
                    _is_writable(header, index, len(keys)),
                )
                for index in compiled.accounts
            ]
            instructions.append(
                Instruction(keys[compiled.program_id_index], bytes(compiled.data), accounts)
            )
    except IndexError as e:
        raise ProofDecodeFailed(f"Transfer bundle references unknown accounts: {e}") from e
    except Exception as e:
        raise ProofDecodeFailed(f"Transfer bundle could not be decoded: {e}") from e

    if not instructions:
        raise ProofDecodeFailed("Transfer bundle contains no instructions")

    return instructions


def _is_signer(header: MessageHeader, index: int) -> bool:
    return index < header.num_required_signatures


def _is_writable(header: MessageHeader, index: int, key_count: int) -> bool:
    # Keys are ordered: writable signers, readonly signers, writable, readonly
    if index < header.num_required_signatures:
        return index < header.num_required_signatures - header.num_readonly_signed_accounts
    return index < key_count - header.num_readonly_unsigned_accounts


def create_builders(node: NodeInterface, owner: Pubkey) -> Dict[TransferClass, InstructionBuilder]:
    """Create one builder per transfer class."""
    return {
        TransferClass.STANDARD: StandardInstructionBuilder(node, owner),
        TransferClass.COMPRESSED: CompressedInstructionBuilder(node, owner),
    }


def builder_for(
    asset: Asset,
    builders: Mapping[TransferClass, InstructionBuilder],
) -> InstructionBuilder:
    """Select the builder for an asset's transfer class."""
    return builders[asset.transfer_class]
