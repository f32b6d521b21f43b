"""
Transfer Request model.

Represents a single "send this asset to that address" instruction from the caller.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence

import structlog
from solders.pubkey import Pubkey

from nftsender.errors import FailureReason, ValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransferRequest:
    """
    Pairing of an asset identifier with a destination address.

    Attributes:
        asset_id: Identifier of the asset to move
        destination: Base58 address of the new owner
    """

    asset_id: str
    destination: str

    def destination_pubkey(self) -> Pubkey:
        """
        Parse the destination address.

        Raises:
            ValidationError: If the destination is empty or not a valid address
        """
        return parse_address(self.destination)

    def to_dict(self) -> dict:
        return {"asset_id": self.asset_id, "destination": self.destination}


def parse_address(address: str) -> Pubkey:
    """
    Parse a base58 ledger address.

    Args:
        address: Address string supplied by the caller

    Returns:
        Parsed public key

    Raises:
        ValidationError: MissingDestinationAddress for an empty value,
            InvalidDestinationAddress for anything that is not a 32-byte key
    """
    if address is None or not str(address).strip():
        raise ValidationError(
            "Address required",
            reason=FailureReason.MISSING_DESTINATION_ADDRESS,
        )

    try:
        return Pubkey.from_string(str(address).strip())
    except ValueError as e:
        raise ValidationError(
            f"Invalid address: {address}",
            reason=FailureReason.INVALID_DESTINATION_ADDRESS,
            details=str(e),
        ) from e


def is_valid_address(address: str) -> bool:
    """Check whether a string is a valid ledger address."""
    try:
        parse_address(address)
    except ValidationError:
        return False
    return True


def normalize_batch(requests: Iterable[TransferRequest]) -> List[TransferRequest]:
    """
    Collapse duplicate asset ids in a batch.

    The last destination given for an asset wins; the asset keeps the position
    of its first occurrence. Each collapsed duplicate is logged.
    """
    by_asset: Dict[str, TransferRequest] = {}

    for request in requests:
        previous = by_asset.get(request.asset_id)
        if previous is not None:
            logger.warning(
                "duplicate_transfer_request",
                asset_id=request.asset_id,
                replaced_destination=previous.destination,
                destination=request.destination,
            )
        by_asset[request.asset_id] = request

    return list(by_asset.values())


def requests_to_one(asset_ids: Iterable[str], destination: str) -> List[TransferRequest]:
    """Build a batch sending every asset to the same destination."""
    return normalize_batch(
        TransferRequest(asset_id=asset_id, destination=destination)
        for asset_id in asset_ids
    )


def requests_to_many(destinations: Mapping[str, str]) -> List[TransferRequest]:
    """Build a batch from an asset id to destination mapping."""
    return normalize_batch(
        TransferRequest(asset_id=asset_id, destination=destination)
        for asset_id, destination in destinations.items()
    )


def parse_address_list(text: str, asset_ids: Sequence[str]) -> Dict[str, str]:
    """
    Pair pasted addresses with asset ids.

    Addresses are read one per line; blank lines are skipped and surrounding
    whitespace is trimmed. Addresses are matched to asset ids by position.
    Assets left without an address are omitted from the result, and extra
    addresses are ignored.

    Args:
        text: Pasted addresses, one per line
        asset_ids: Asset ids in selection order

    Returns:
        Mapping of asset id to destination address
    """
    addresses = [line.strip() for line in text.splitlines() if line.strip()]

    if len(addresses) != len(asset_ids):
        logger.warning(
            "address_list_length_mismatch",
            addresses=len(addresses),
            assets=len(asset_ids),
        )

    return {
        asset_id: address
        for asset_id, address in zip(asset_ids, addresses)
    }
