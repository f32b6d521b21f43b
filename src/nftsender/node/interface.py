"""
Abstract interface for Solana RPC and DAS indexer access.

Defines the contract for ledger and indexer access that all node adapters must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction


@dataclass
class AssetPage:
    """One page of a ``getAssetsByOwner`` listing."""
    items: List[dict]
    page: int
    limit: int
    total: Optional[int] = None

    @property
    def is_last(self) -> bool:
        """A short page marks the end of the listing."""
        return len(self.items) < self.limit


@dataclass
class LatestBlockhash:
    """Recent blockhash and the last block height at which it is valid."""
    blockhash: Hash
    last_valid_block_height: int


@dataclass
class SignatureStatus:
    """Ledger status of a submitted transaction signature."""
    signature: str
    slot: Optional[int] = None
    confirmations: Optional[int] = None
    confirmation_status: Optional[str] = None   # processed | confirmed | finalized
    err: Optional[Any] = None

    @property
    def failed(self) -> bool:
        return self.err is not None


class NodeInterface(ABC):
    """
    Abstract interface for ledger and indexer access.

    This interface defines all external operations needed by the sender:
    - Owned asset listing (DAS)
    - Compressed transfer bundles (DAS)
    - Account existence lookups
    - Blockhash retrieval, broadcast and signature status polling
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the RPC endpoint.

        Raises:
            NodeConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the RPC endpoint."""
        pass

    @abstractmethod
    async def get_assets_by_owner(
        self,
        owner: str,
        page: int = 1,
        limit: int = 1000,
    ) -> AssetPage:
        """
        Get one page of assets owned by an address.

        Args:
            owner: Owner address
            page: 1-based page number
            limit: Page size

        Returns:
            The requested page of raw asset records
        """
        pass

    @abstractmethod
    async def get_compressed_transfer(
        self,
        asset_id: str,
        source_owner: str,
        destination_owner: str,
    ) -> Optional[str]:
        """
        Get a signable transfer bundle for a compressed asset.

        Args:
            asset_id: Compressed asset identifier
            source_owner: Current owner address
            destination_owner: New owner address

        Returns:
            Base64 encoded serialized transaction, or None if the indexer
            returned no result

        Raises:
            NodeConnectionError: If the call fails or returns an error
        """
        pass

    @abstractmethod
    async def account_exists(self, address: Pubkey) -> bool:
        """
        Check whether an account exists on the ledger.

        Args:
            address: Account address

        Returns:
            True if the account exists
        """
        pass

    @abstractmethod
    async def get_latest_blockhash(self) -> LatestBlockhash:
        """
        Get a fresh blockhash for signing.

        Returns:
            Latest blockhash
        """
        pass

    @abstractmethod
    async def send_transaction(self, tx: Transaction) -> str:
        """
        Broadcast a signed transaction.

        Args:
            tx: Signed transaction to submit

        Returns:
            Transaction signature

        Raises:
            TransactionSubmitError: If submission fails
        """
        pass

    @abstractmethod
    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """
        Get the ledger status of a transaction.

        Args:
            signature: Transaction signature

        Returns:
            Status if the ledger knows the signature, None otherwise
        """
        pass

    async def get_all_assets_by_owner(
        self,
        owner: str,
        page_size: int = 1000,
    ) -> List[dict]:
        """
        Get every asset owned by an address.

        Pages are requested until a short page is returned.

        Args:
            owner: Owner address
            page_size: Page size for each request

        Returns:
            All raw asset records
        """
        items: List[dict] = []
        page = 1

        while True:
            result = await self.get_assets_by_owner(owner, page=page, limit=page_size)
            items.extend(result.items)

            if result.is_last:
                break
            page += 1

        return items


class NodeConnectionError(Exception):
    """Raised when a call to the RPC endpoint fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransactionSubmitError(Exception):
    """Raised when transaction submission fails."""

    def __init__(self, message: str, error_code: Optional[int] = None, data: Optional[Any] = None):
        super().__init__(message)
        self.error_code = error_code
        self.data = data
