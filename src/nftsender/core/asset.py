"""
Asset model.

Represents a single NFT owned by the sender, as listed by the DAS indexer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union


class TransferClass(str, Enum):
    """Transfer protocol that applies to an asset."""
    STANDARD = "standard"       # SPL token NFT, moved between token accounts
    COMPRESSED = "compressed"   # Merkle-tree NFT, moved with an indexer-provided proof


@dataclass(frozen=True)
class Asset:
    """
    An NFT selected for transfer.

    Assets are fetched fresh for every transfer run and never cached across
    runs, because compressed proofs go stale as the tree changes.

    Attributes:
        asset_id: Asset identifier (the mint address for standard NFTs)
        owner: Current owner address
        transfer_class: Which transfer protocol applies
        mint: Mint address (standard NFTs only)
        compression: Compression metadata from the indexer (compressed NFTs only)
        name: Display name, used for reporting
    """

    asset_id: str
    owner: str
    transfer_class: TransferClass = TransferClass.STANDARD
    mint: Optional[str] = None
    compression: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)
    name: Optional[str] = None

    @classmethod
    def from_das(cls, item: Mapping[str, Any]) -> "Asset":
        """
        Create an Asset from a DAS ``getAssetsByOwner`` item.

        Args:
            item: Raw asset record returned by the indexer

        Returns:
            New Asset instance
        """
        asset_id = item["id"]
        transfer_class = classify_asset(item)
        ownership = item.get("ownership") or {}
        metadata = (item.get("content") or {}).get("metadata") or {}

        return cls(
            asset_id=asset_id,
            owner=ownership.get("owner", ""),
            transfer_class=transfer_class,
            mint=asset_id if transfer_class == TransferClass.STANDARD else None,
            compression=dict(item.get("compression") or {}),
            name=metadata.get("name"),
        )

    @property
    def is_compressed(self) -> bool:
        return self.transfer_class == TransferClass.COMPRESSED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "asset_id": self.asset_id,
            "owner": self.owner,
            "transfer_class": self.transfer_class.value,
            "mint": self.mint,
            "name": self.name,
        }


def classify_asset(record: Union[Asset, Mapping[str, Any]]) -> TransferClass:
    """
    Decide which transfer protocol applies to an asset.

    Reads the ``compression.compressed`` flag of an indexer record. A missing
    flag means the asset is a standard NFT.
    """
    if isinstance(record, Asset):
        return record.transfer_class

    compression = record.get("compression") or {}
    if compression.get("compressed") is True:
        return TransferClass.COMPRESSED
    return TransferClass.STANDARD
