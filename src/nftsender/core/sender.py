"""
Main NFTSender orchestrator.

Coordinates classification, instruction building, planning, submission and
result aggregation for one transfer run.
"""

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from solders.pubkey import Pubkey

from nftsender.config import SenderConfig, get_config
from nftsender.core.asset import Asset
from nftsender.core.plan import InstructionSet
from nftsender.core.request import TransferRequest, normalize_batch, requests_to_many, requests_to_one
from nftsender.core.result import BatchResult, ResultAggregator
from nftsender.errors import BuildError, ConfigurationError, FailureReason, ValidationError
from nftsender.node.helius import HeliusAdapter
from nftsender.node.interface import NodeConnectionError, NodeInterface
from nftsender.tx.builders import builder_for, create_builders
from nftsender.tx.fees import FeeCalculator, FeeQuote
from nftsender.tx.planner import BatchPlanner
from nftsender.tx.signer import KeypairSigner, Signer
from nftsender.tx.submitter import SubmissionEngine

logger = structlog.get_logger(__name__)


class NFTSender:
    """
    Main NFT sender orchestrator.

    Runs one batch through:
    - Destination validation (no network calls for rejected assets)
    - Fresh asset lookup and classification
    - Concurrent per-asset instruction building
    - Size-aware planning with the protocol fee in the first transaction
    - Sequential signing, broadcast and confirmation
    - Per-asset result aggregation

    Usage:
        ```python
        sender = NFTSender(signer=my_signer)
        await sender.initialize()
        result = await sender.transfer_to_one(["mint1...", "asset2..."], "dest...")
        ```
    """

    def __init__(
        self,
        config: Optional[SenderConfig] = None,
        node: Optional[NodeInterface] = None,
        signer: Optional[Signer] = None,
    ):
        """
        Initialize the sender.

        Args:
            config: Sender configuration
            node: Custom node interface (a Helius adapter if not provided)
            signer: Wallet signer (a keypair signer loaded from config if not provided)
        """
        self.config = config or get_config()
        self.node = node or HeliusAdapter(self.config)
        self.signer = signer

        self._fee_calculator: Optional[FeeCalculator] = None
        self._planner: Optional[BatchPlanner] = None
        self._submitter: Optional[SubmissionEngine] = None
        self._initialized = False

    async def initialize(self) -> None:
        """
        Validate configuration and connect to the node.

        Raises:
            ConfigurationError: If the fee settings are missing or malformed
        """
        if self._initialized:
            return

        self._fee_calculator = FeeCalculator.from_config(self.config)

        if self.signer is None:
            signer = KeypairSigner(config=self.config)
            if self.config.keypair_path:
                signer.load_from_config()
            self.signer = signer

        await self.node.connect()

        self._planner = BatchPlanner(self._fee_calculator, self.config)
        self._submitter = SubmissionEngine(self.node, self.signer, self.config)

        self._initialized = True
        logger.info(
            "sender_initialized",
            network=self.config.network.value,
            fee_per_asset=str(self._fee_calculator.fee_per_asset),
        )

    async def shutdown(self) -> None:
        """Disconnect from the node."""
        await self.node.disconnect()
        self._initialized = False
        logger.info("sender_shutdown")

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("NFTSender not initialized")

    @property
    def owner(self) -> Pubkey:
        """Connected wallet address, used as owner and fee payer."""
        if self.signer is None:
            raise RuntimeError("No signer configured")
        if isinstance(self.signer, KeypairSigner) and not self.signer.is_loaded:
            raise ConfigurationError("No keypair loaded; set keypair_path")
        return self.signer.pubkey

    def quote_fee(self, asset_count: int) -> FeeQuote:
        """Preview the protocol fee for a number of assets."""
        calculator = self._fee_calculator or FeeCalculator.from_config(self.config)
        return calculator.quote(asset_count)

    async def list_assets(
        self,
        owner: Optional[str] = None,
        include_compressed: bool = True,
    ) -> List[Asset]:
        """
        List assets owned by an address.

        Args:
            owner: Owner address (the connected wallet if None)
            include_compressed: Whether compressed NFTs are included

        Returns:
            Owned assets in indexer order
        """
        self._ensure_initialized()
        owner = owner or str(self.owner)

        items = await self.node.get_all_assets_by_owner(owner, page_size=self.config.asset_page_size)
        assets = [Asset.from_das(item) for item in items]
        if not include_compressed:
            assets = [a for a in assets if not a.is_compressed]

        logger.info(
            "assets_listed",
            owner=owner[:8] + "...",
            count=len(assets),
            include_compressed=include_compressed,
        )
        return assets

    async def transfer_to_one(
        self,
        asset_ids: Iterable[str],
        destination: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Send every asset to the same destination."""
        return await self.transfer_assets(requests_to_one(asset_ids, destination), cancel_event)

    async def transfer_to_many(
        self,
        destinations: Mapping[str, str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Send each asset to its own destination."""
        return await self.transfer_assets(requests_to_many(destinations), cancel_event)

    async def transfer_assets(
        self,
        requests: Sequence[TransferRequest],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """
        Run a transfer batch end to end.

        Args:
            requests: Transfer requests in caller order
            cancel_event: Set to stop submitting further transactions

        Returns:
            Per-asset and per-plan outcomes in request order

        Raises:
            FeeInstructionTooLarge: If the fee cannot share the first transaction
        """
        self._ensure_initialized()

        batch = normalize_batch(requests)
        aggregator = ResultAggregator(batch)
        owner = self.owner

        logger.info("transfer_started", requested=len(batch), owner=str(owner)[:8] + "...")

        valid = self._validate_destinations(batch, aggregator)
        resolved = await self._resolve_assets(owner, valid, aggregator)
        instruction_sets = await self._build_all(owner, resolved, aggregator)

        planning = self._planner.plan(instruction_sets, owner, requested_count=len(batch))

        by_asset = {request.asset_id: request for request in batch}
        for instruction_set in planning.oversized:
            aggregator.record_failure(
                by_asset[instruction_set.asset_id],
                FailureReason.INSTRUCTION_SET_TOO_LARGE,
                f"Transfer needs {instruction_set.estimated_size} bytes and "
                f"{instruction_set.instruction_count} instructions",
            )

        submitted, skipped = await self._submitter.submit_all(planning.plans, cancel_event)
        for plan in submitted:
            aggregator.record_plan(plan)
        for plan in skipped:
            aggregator.record_cancelled(plan)

        result = aggregator.build()
        logger.info("transfer_completed", **result.summary())
        return result

    def _validate_destinations(
        self,
        batch: Sequence[TransferRequest],
        aggregator: ResultAggregator,
    ) -> List[Tuple[TransferRequest, Pubkey]]:
        valid: List[Tuple[TransferRequest, Pubkey]] = []
        for request in batch:
            try:
                valid.append((request, request.destination_pubkey()))
            except ValidationError as e:
                aggregator.record_failure(request, e.reason, str(e))
        return valid

    async def _resolve_assets(
        self,
        owner: Pubkey,
        valid: Sequence[Tuple[TransferRequest, Pubkey]],
        aggregator: ResultAggregator,
    ) -> List[Tuple[TransferRequest, Asset, Pubkey]]:
        """Look up requested assets in a fresh listing of the owner's assets."""
        if not valid:
            return []

        try:
            items = await self.node.get_all_assets_by_owner(
                str(owner), page_size=self.config.asset_page_size
            )
        except NodeConnectionError as e:
            logger.error("asset_listing_failed", error=str(e))
            for request, _ in valid:
                aggregator.record_failure(
                    request, FailureReason.BUILD_FAILED, f"Asset listing failed: {e}"
                )
            return []

        owned: Dict[str, Asset] = {}
        for item in items:
            asset = Asset.from_das(item)
            owned[asset.asset_id] = asset

        resolved: List[Tuple[TransferRequest, Asset, Pubkey]] = []
        for request, destination in valid:
            asset = owned.get(request.asset_id)
            if asset is None:
                aggregator.record_failure(
                    request, FailureReason.ASSET_NOT_FOUND, f"NFT not found: {request.asset_id}"
                )
                continue
            resolved.append((request, asset, destination))
        return resolved

    async def _build_all(
        self,
        owner: Pubkey,
        resolved: Sequence[Tuple[TransferRequest, Asset, Pubkey]],
        aggregator: ResultAggregator,
    ) -> List[InstructionSet]:
        """Build every transfer concurrently; failures are recorded per asset."""
        builders = create_builders(self.node, owner)
        semaphore = asyncio.Semaphore(self.config.build_concurrency)

        async def build_one(asset: Asset, destination: Pubkey) -> Union[InstructionSet, BuildError]:
            async with semaphore:
                try:
                    return await builder_for(asset, builders).build(asset, destination)
                except BuildError as e:
                    return e
                except Exception as e:
                    logger.error(
                        "instruction_build_error",
                        asset_id=asset.asset_id,
                        error=str(e),
                    )
                    return BuildError(f"Failed to build transfer: {e}")

        outcomes = await asyncio.gather(
            *(build_one(asset, destination) for _, asset, destination in resolved)
        )

        instruction_sets: List[InstructionSet] = []
        for (request, asset, _), outcome in zip(resolved, outcomes):
            if isinstance(outcome, BuildError):
                aggregator.record_failure(request, outcome.reason, str(outcome))
                continue
            instruction_sets.append(outcome)

        logger.info(
            "instructions_built",
            built=len(instruction_sets),
            failed=len(resolved) - len(instruction_sets),
        )
        return instruction_sets
