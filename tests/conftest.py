"""
Pytest configuration and shared fixtures for the test suite.
"""

import base64
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.instructions import get_associated_token_address

from nftsender.config import SenderConfig
from nftsender.node.interface import (
    AssetPage,
    LatestBlockhash,
    NodeInterface,
    SignatureStatus,
)
from nftsender.tx.fees import FeeCalculator
from nftsender.tx.signer import KeypairSigner

BUBBLEGUM_PROGRAM_ID = Pubkey.from_string("BGUMAp9Gq7iTEuizy4pqaxsTyUCBK68MDfK752saRPUY")


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def fee_collector() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def test_config(fee_collector) -> SenderConfig:
    """Create a test configuration with no polling delays."""
    return SenderConfig(
        rpc_url="https://rpc.test.invalid",
        fee_per_asset=Decimal("0.001"),
        fee_collector_address=str(fee_collector),
        confirmation_max_polls=3,
        poll_interval_seconds=0,
        max_poll_interval_seconds=0,
        broadcast_max_attempts=3,
        build_concurrency=4,
        log_level="DEBUG",
    )


@pytest.fixture
def fee_calculator(fee_collector) -> FeeCalculator:
    return FeeCalculator(Decimal("0.001"), fee_collector)


# ============================================================================
# Test Data Generators
# ============================================================================

def das_item(
    asset_id: str,
    owner: str,
    compressed: bool = False,
    name: Optional[str] = None,
) -> dict:
    """Create a DAS getAssetsByOwner item."""
    item = {
        "interface": "V1_NFT",
        "id": asset_id,
        "content": {"metadata": {"name": name or f"NFT {asset_id[:4]}"}},
        "ownership": {"owner": owner, "frozen": False, "delegated": False},
    }
    if compressed:
        item["compression"] = {
            "compressed": True,
            "tree": str(Pubkey.new_unique()),
            "leaf_id": 7,
        }
    else:
        item["compression"] = {"compressed": False}
    return item


def make_compressed_bundle(owner: Pubkey, destination: Pubkey, data: bytes = b"\xa3" * 40) -> str:
    """Serialize an unsigned transfer transaction the way the indexer returns it."""
    instruction = Instruction(
        BUBBLEGUM_PROGRAM_ID,
        data,
        [
            AccountMeta(Pubkey.new_unique(), is_signer=False, is_writable=False),
            AccountMeta(owner, is_signer=True, is_writable=False),
            AccountMeta(destination, is_signer=False, is_writable=False),
            AccountMeta(Pubkey.new_unique(), is_signer=False, is_writable=True),
        ],
    )
    message = Message.new_with_blockhash([instruction], owner, Hash.default())
    tx = Transaction.new_unsigned(message)
    return base64.b64encode(bytes(tx)).decode("ascii")


def synthetic_instruction(payer: Pubkey, accounts: int = 3, data_size: int = 16) -> Instruction:
    """Instruction touching fresh accounts, signed only by the payer."""
    metas = [AccountMeta(payer, is_signer=True, is_writable=True)]
    metas.extend(
        AccountMeta(Pubkey.new_unique(), is_signer=False, is_writable=True)
        for _ in range(accounts)
    )
    return Instruction(Pubkey.new_unique(), bytes(data_size), metas)


# ============================================================================
# Mock Node Interface
# ============================================================================

class MockNodeInterface(NodeInterface):
    """In-memory ledger and indexer for testing."""

    def __init__(self):
        self.assets: List[dict] = []
        self.existing_accounts: Set[Pubkey] = set()
        self.compressed_bundles: Dict[str, Any] = {}
        self.send_errors: List[Exception] = []
        self.status_responses: List[Any] = []
        self.default_confirmation: Optional[str] = "confirmed"

        self.sent: List[Transaction] = []
        self.blockhashes: List[Hash] = []
        self.account_lookups: List[Pubkey] = []
        self.compressed_calls: List[dict] = []
        self.listing_calls = 0
        self.status_polls = 0
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def get_assets_by_owner(self, owner: str, page: int = 1, limit: int = 1000) -> AssetPage:
        self.listing_calls += 1
        owned = [a for a in self.assets if a["ownership"]["owner"] == owner]
        start = (page - 1) * limit
        return AssetPage(items=owned[start:start + limit], page=page, limit=limit, total=len(owned))

    async def get_compressed_transfer(
        self,
        asset_id: str,
        source_owner: str,
        destination_owner: str,
    ) -> Optional[str]:
        self.compressed_calls.append(
            {
                "asset_id": asset_id,
                "source_owner": source_owner,
                "destination_owner": destination_owner,
            }
        )
        bundle = self.compressed_bundles.get(asset_id)
        if isinstance(bundle, Exception):
            raise bundle
        return bundle

    async def account_exists(self, address: Pubkey) -> bool:
        self.account_lookups.append(address)
        return address in self.existing_accounts

    async def get_latest_blockhash(self) -> LatestBlockhash:
        blockhash = Hash.new_unique()
        self.blockhashes.append(blockhash)
        return LatestBlockhash(blockhash=blockhash, last_valid_block_height=1000)

    async def send_transaction(self, tx: Transaction) -> str:
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(tx)
        return str(tx.signatures[0])

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        self.status_polls += 1
        if self.status_responses:
            response = self.status_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if self.default_confirmation is None:
            return None
        return SignatureStatus(
            signature=signature,
            slot=4242,
            confirmations=1,
            confirmation_status=self.default_confirmation,
        )

    def add_standard_asset(
        self,
        owner: Pubkey,
        destination: Optional[Pubkey] = None,
        source_exists: bool = True,
    ) -> str:
        """Register a standard NFT; optionally pre-create the destination token account."""
        mint = Pubkey.new_unique()
        self.assets.append(das_item(str(mint), str(owner)))
        if source_exists:
            self.existing_accounts.add(get_associated_token_address(owner, mint))
        if destination is not None:
            self.existing_accounts.add(get_associated_token_address(destination, mint))
        return str(mint)

    def add_compressed_asset(self, owner: Pubkey, bundle: Any = None) -> str:
        """Register a compressed NFT and the bundle the indexer returns for it."""
        asset_id = str(Pubkey.new_unique())
        self.assets.append(das_item(asset_id, str(owner), compressed=True))
        self.compressed_bundles[asset_id] = bundle
        return asset_id


@pytest.fixture
def mock_node() -> MockNodeInterface:
    """Create a mock node interface."""
    return MockNodeInterface()


# ============================================================================
# Test Signer
# ============================================================================

@pytest.fixture
def test_signer(test_config) -> KeypairSigner:
    """Create a signer with a random key."""
    return KeypairSigner(Keypair(), config=test_config)


@pytest.fixture
def owner(test_signer) -> Pubkey:
    return test_signer.pubkey


@pytest.fixture
def destination() -> Pubkey:
    return Pubkey.new_unique()
