"""
Test suite for instruction building.

Tests standard SPL token transfers (with and without account creation) and
compressed transfers decoded from indexer bundles.
"""

import base64

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from nftsender.core.asset import Asset, TransferClass
from nftsender.errors import (
    BuildError,
    FailureReason,
    ProofDecodeFailed,
    ProofFetchFailed,
    ProofUnavailable,
    SourceAccountMissing,
)
from nftsender.node.interface import NodeConnectionError
from nftsender.tx.builders import (
    CompressedInstructionBuilder,
    StandardInstructionBuilder,
    builder_for,
    create_builders,
    decode_instruction_bundle,
)

from conftest import BUBBLEGUM_PROGRAM_ID, das_item, make_compressed_bundle, synthetic_instruction


def standard_asset(mock_node, owner, **kwargs) -> Asset:
    asset_id = mock_node.add_standard_asset(owner, **kwargs)
    return Asset.from_das(das_item(asset_id, str(owner)))


# ============================================================================
# Test Standard Builder
# ============================================================================

class TestStandardInstructionBuilder:
    """Tests for standard NFT transfers."""

    @pytest.mark.asyncio
    async def test_existing_destination_account(self, mock_node, owner, destination):
        """A single transfer instruction when the destination account exists."""
        asset = standard_asset(mock_node, owner, destination=destination)
        builder = StandardInstructionBuilder(mock_node, owner)

        instruction_set = await builder.build(asset, destination)

        assert instruction_set.instruction_count == 1
        transfer_ix = instruction_set.instructions[0]
        assert transfer_ix.program_id == TOKEN_PROGRAM_ID

        mint = Pubkey.from_string(asset.asset_id)
        account_keys = [meta.pubkey for meta in transfer_ix.accounts]
        assert account_keys[0] == get_associated_token_address(owner, mint)
        assert account_keys[1] == get_associated_token_address(destination, mint)
        assert account_keys[2] == owner

    @pytest.mark.asyncio
    async def test_missing_destination_account(self, mock_node, owner, destination):
        """Account creation is prepended when the destination has no token account."""
        asset = standard_asset(mock_node, owner)
        builder = StandardInstructionBuilder(mock_node, owner)

        instruction_set = await builder.build(asset, destination)

        assert instruction_set.instruction_count == 2
        create_ix, transfer_ix = instruction_set.instructions
        assert create_ix.program_id == ASSOCIATED_TOKEN_PROGRAM_ID
        assert transfer_ix.program_id == TOKEN_PROGRAM_ID

        # Payer of the new account is the owner
        assert create_ix.accounts[0].pubkey == owner
        assert create_ix.accounts[0].is_signer is True

    @pytest.mark.asyncio
    async def test_one_lookup_each(self, mock_node, owner, destination):
        asset = standard_asset(mock_node, owner)
        builder = StandardInstructionBuilder(mock_node, owner)

        await builder.build(asset, destination)

        mint = Pubkey.from_string(asset.asset_id)
        assert mock_node.account_lookups == [
            get_associated_token_address(owner, mint),
            get_associated_token_address(destination, mint),
        ]

    @pytest.mark.asyncio
    async def test_source_account_missing(self, mock_node, owner, destination):
        asset = standard_asset(mock_node, owner, source_exists=False)
        builder = StandardInstructionBuilder(mock_node, owner)

        with pytest.raises(SourceAccountMissing) as exc_info:
            await builder.build(asset, destination)

        assert exc_info.value.reason == FailureReason.SOURCE_ACCOUNT_MISSING

    @pytest.mark.asyncio
    async def test_lookup_failure(self, mock_node, owner, destination):
        asset = standard_asset(mock_node, owner)

        async def broken(address):
            raise NodeConnectionError("connection reset")

        mock_node.account_exists = broken
        builder = StandardInstructionBuilder(mock_node, owner)

        with pytest.raises(BuildError) as exc_info:
            await builder.build(asset, destination)

        assert exc_info.value.reason == FailureReason.BUILD_FAILED

    @pytest.mark.asyncio
    async def test_invalid_mint(self, mock_node, owner, destination):
        asset = Asset(asset_id="not-a-mint", owner=str(owner))
        builder = StandardInstructionBuilder(mock_node, owner)

        with pytest.raises(BuildError):
            await builder.build(asset, destination)

        assert mock_node.account_lookups == []

    @pytest.mark.asyncio
    async def test_instruction_set_metadata(self, mock_node, owner, destination):
        asset = standard_asset(mock_node, owner, destination=destination)
        builder = StandardInstructionBuilder(mock_node, owner)

        instruction_set = await builder.build(asset, destination)

        assert instruction_set.asset_id == asset.asset_id
        assert instruction_set.destination == str(destination)
        assert instruction_set.payer == owner
        assert instruction_set.estimated_size > 0


# ============================================================================
# Test Compressed Builder
# ============================================================================

class TestCompressedInstructionBuilder:
    """Tests for compressed NFT transfers."""

    @pytest.mark.asyncio
    async def test_bundle_decoded(self, mock_node, owner, destination):
        bundle = make_compressed_bundle(owner, destination)
        asset_id = mock_node.add_compressed_asset(owner, bundle)
        asset = Asset.from_das(das_item(asset_id, str(owner), compressed=True))
        builder = CompressedInstructionBuilder(mock_node, owner)

        instruction_set = await builder.build(asset, destination)

        assert instruction_set.instruction_count == 1
        instruction = instruction_set.instructions[0]
        assert instruction.program_id == BUBBLEGUM_PROGRAM_ID
        assert instruction.data == b"\xa3" * 40
        assert len(instruction.accounts) == 4

        assert mock_node.compressed_calls == [
            {
                "asset_id": asset_id,
                "source_owner": str(owner),
                "destination_owner": str(destination),
            }
        ]

    @pytest.mark.asyncio
    async def test_empty_bundle(self, mock_node, owner, destination):
        asset_id = mock_node.add_compressed_asset(owner, None)
        asset = Asset.from_das(das_item(asset_id, str(owner), compressed=True))
        builder = CompressedInstructionBuilder(mock_node, owner)

        with pytest.raises(ProofUnavailable):
            await builder.build(asset, destination)

    @pytest.mark.asyncio
    async def test_indexer_error(self, mock_node, owner, destination):
        asset_id = mock_node.add_compressed_asset(owner, NodeConnectionError("HTTP 500"))
        asset = Asset.from_das(das_item(asset_id, str(owner), compressed=True))
        builder = CompressedInstructionBuilder(mock_node, owner)

        with pytest.raises(ProofFetchFailed) as exc_info:
            await builder.build(asset, destination)

        assert exc_info.value.reason == FailureReason.PROOF_FETCH_FAILED

    @pytest.mark.asyncio
    async def test_undecodable_bundle(self, mock_node, owner, destination):
        asset_id = mock_node.add_compressed_asset(owner, "%%% not base64 %%%")
        asset = Asset.from_das(das_item(asset_id, str(owner), compressed=True))
        builder = CompressedInstructionBuilder(mock_node, owner)

        with pytest.raises(ProofDecodeFailed):
            await builder.build(asset, destination)


# ============================================================================
# Test Bundle Decoding
# ============================================================================

class TestDecodeInstructionBundle:
    """Tests for decoding serialized transactions into instructions."""

    def test_account_flags_rebuilt(self, owner):
        instruction = synthetic_instruction(owner, accounts=2, data_size=8)
        message = Message.new_with_blockhash([instruction], owner, Hash.default())
        encoded = base64.b64encode(bytes(Transaction.new_unsigned(message))).decode()

        decoded = decode_instruction_bundle(encoded)

        assert decoded == [instruction]

    def test_readonly_accounts_rebuilt(self, owner):
        cosigner = Pubkey.new_unique()
        writable = Pubkey.new_unique()
        readonly = Pubkey.new_unique()
        instruction = Instruction(
            Pubkey.new_unique(),
            b"\x01",
            [
                AccountMeta(readonly, is_signer=False, is_writable=False),
                AccountMeta(cosigner, is_signer=True, is_writable=False),
                AccountMeta(owner, is_signer=True, is_writable=True),
                AccountMeta(writable, is_signer=False, is_writable=True),
            ],
        )
        message = Message.new_with_blockhash([instruction], owner, Hash.default())
        encoded = base64.b64encode(bytes(Transaction.new_unsigned(message))).decode()

        decoded = decode_instruction_bundle(encoded)

        flags = [(meta.pubkey, meta.is_signer, meta.is_writable) for meta in decoded[0].accounts]
        assert flags == [
            (readonly, False, False),
            (cosigner, True, False),
            (owner, True, True),
            (writable, False, True),
        ]

    def test_multiple_instructions_keep_order(self, owner):
        first = synthetic_instruction(owner, accounts=1, data_size=1)
        second = synthetic_instruction(owner, accounts=1, data_size=2)
        message = Message.new_with_blockhash([first, second], owner, Hash.default())
        encoded = base64.b64encode(bytes(Transaction.new_unsigned(message))).decode()

        decoded = decode_instruction_bundle(encoded)

        assert [ix.data for ix in decoded] == [first.data, second.data]

    def test_not_a_transaction(self):
        with pytest.raises(ProofDecodeFailed):
            decode_instruction_bundle(base64.b64encode(b"hello world").decode())

    def test_invalid_base64(self):
        with pytest.raises(ProofDecodeFailed):
            decode_instruction_bundle("@@@@")


# ============================================================================
# Test Dispatch
# ============================================================================

class TestBuilderDispatch:
    """Tests for selecting the builder for an asset."""

    def test_one_builder_per_class(self, mock_node, owner):
        builders = create_builders(mock_node, owner)

        assert set(builders) == set(TransferClass)
        standard = Asset(asset_id="a", owner=str(owner))
        compressed = Asset(asset_id="b", owner=str(owner), transfer_class=TransferClass.COMPRESSED)

        assert isinstance(builder_for(standard, builders), StandardInstructionBuilder)
        assert isinstance(builder_for(compressed, builders), CompressedInstructionBuilder)
