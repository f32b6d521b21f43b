"""
Helius JSON-RPC adapter for ledger and indexer access.

Provides the DAS indexer methods and standard Solana RPC over a single
HTTP endpoint.
"""

import base64
import itertools
from typing import Any, Optional

import httpx
import structlog

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from nftsender.config import SenderConfig, get_config
from nftsender.node.interface import (
    AssetPage,
    LatestBlockhash,
    NodeConnectionError,
    NodeInterface,
    SignatureStatus,
    TransactionSubmitError,
)

logger = structlog.get_logger(__name__)

# Account compression program used by compressed NFT trees
COMPRESSION_PROGRAM_ID = "cmtDvXumGCrqC1Age74AVPhSRVXJMd8PJS91L8KbNCK"


class RpcError(NodeConnectionError):
    """Raised when the endpoint answers with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, data: Optional[Any] = None):
        super().__init__(message)
        self.code = code
        self.data = data


class HeliusAdapter(NodeInterface):
    """
    Helius RPC adapter.

    Implements the NodeInterface using JSON-RPC over HTTP. DAS methods
    (``getAssetsByOwner``, ``transferCompressedNft``) and standard Solana RPC
    methods share the same endpoint.
    """

    def __init__(
        self,
        config: Optional[SenderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Helius adapter.

        Args:
            config: Sender configuration. Uses global config if not provided.
            transport: Optional httpx transport, used by tests
        """
        self.config = config or get_config()
        self.endpoint = self.config.rpc_endpoint
        self.commitment = self.config.commitment.value
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Establish connection (create HTTP client)."""
        if self._client is not None:
            return

        if not self.endpoint:
            raise NodeConnectionError("RPC endpoint not configured")

        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self.config.request_timeout_seconds,
            transport=self._transport,
        )
        logger.info("rpc_connected", network=self.config.network.value)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("rpc_disconnected")

    async def _rpc(self, method: str, params: Any) -> Any:
        """Make a JSON-RPC call and return its result."""
        if not self._client:
            await self.connect()

        request_id = f"nftsender-{next(self._ids)}"
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }

        try:
            response = await self._client.post(self.endpoint, json=payload)
        except httpx.RequestError as e:
            logger.error("rpc_request_error", method=method, error=str(e))
            raise NodeConnectionError(f"RPC request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "rpc_request_failed",
                method=method,
                status=response.status_code,
                error=response.text,
            )
            raise NodeConnectionError(
                f"RPC HTTP error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise NodeConnectionError(f"RPC returned invalid JSON for {method}") from e

        if not isinstance(data, dict):
            raise NodeConnectionError(f"RPC returned an unexpected response for {method}")

        if data.get("error"):
            error = data["error"]
            logger.warning(
                "rpc_error_response",
                method=method,
                code=error.get("code"),
                error=error.get("message"),
            )
            raise RpcError(
                f"RPC error for {method}: {error.get('message', 'unknown error')}",
                code=error.get("code"),
                data=error.get("data"),
            )

        return data.get("result")

    async def get_assets_by_owner(
        self,
        owner: str,
        page: int = 1,
        limit: int = 1000,
    ) -> AssetPage:
        """Get one page of owned assets."""
        result = await self._rpc(
            "getAssetsByOwner",
            {
                "ownerAddress": owner,
                "page": page,
                "limit": limit,
            },
        )

        result = result or {}
        items = result.get("items") or []
        logger.debug("assets_page_fetched", owner=owner[:8] + "...", page=page, count=len(items))

        return AssetPage(
            items=items,
            page=page,
            limit=limit,
            total=result.get("total"),
        )

    async def get_compressed_transfer(
        self,
        asset_id: str,
        source_owner: str,
        destination_owner: str,
    ) -> Optional[str]:
        """Get the indexer-built transfer transaction for a compressed asset."""
        result = await self._rpc(
            "transferCompressedNft",
            {
                "assetId": asset_id,
                "sourceOwner": source_owner,
                "destinationOwner": destination_owner,
                "compressionProgram": COMPRESSION_PROGRAM_ID,
            },
        )
        return result or None

    async def account_exists(self, address: Pubkey) -> bool:
        """Check whether an account exists."""
        result = await self._rpc(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        return bool(result and result.get("value") is not None)

    async def get_latest_blockhash(self) -> LatestBlockhash:
        """Get a fresh blockhash."""
        result = await self._rpc(
            "getLatestBlockhash",
            [{"commitment": self.commitment}],
        )
        value = result["value"]
        return LatestBlockhash(
            blockhash=Hash.from_string(value["blockhash"]),
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def send_transaction(self, tx: Transaction) -> str:
        """Broadcast a signed transaction."""
        encoded = base64.b64encode(bytes(tx)).decode("ascii")

        try:
            signature = await self._rpc(
                "sendTransaction",
                [
                    encoded,
                    {
                        "encoding": "base64",
                        "preflightCommitment": self.commitment,
                    },
                ],
            )
        except RpcError as e:
            logger.error("tx_submit_failed", error=str(e), code=e.code)
            raise TransactionSubmitError(
                f"Transaction submission failed: {e}",
                error_code=e.code,
                data=e.data,
            ) from e
        except NodeConnectionError as e:
            raise TransactionSubmitError(f"Transaction submission request failed: {e}") from e

        logger.info("tx_submitted", signature=signature)
        return signature

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Get the status of a signature."""
        result = await self._rpc(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or []
        status = values[0] if values else None

        if status is None:
            return None

        return SignatureStatus(
            signature=signature,
            slot=status.get("slot"),
            confirmations=status.get("confirmations"),
            confirmation_status=status.get("confirmationStatus"),
            err=status.get("err"),
        )
