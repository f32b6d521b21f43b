"""
Submission & Confirmation Engine.

Drives each transaction plan through signing, broadcast and confirmation:
BUILT -> SIGNED -> SENT -> CONFIRMED | FAILED | TIMED_OUT.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

import structlog

from solders.message import Message
from solders.transaction import Transaction

from nftsender.config import Commitment, SenderConfig, get_config
from nftsender.core.plan import PlanStatus, TransactionPlan
from nftsender.errors import BroadcastFailed, FailureReason, SigningRejected
from nftsender.node.interface import (
    NodeConnectionError,
    NodeInterface,
    SignatureStatus,
    TransactionSubmitError,
)
from nftsender.tx.signer import Signer

logger = structlog.get_logger(__name__)

_COMMITMENT_RANK = {
    Commitment.PROCESSED.value: 0,
    Commitment.CONFIRMED.value: 1,
    Commitment.FINALIZED.value: 2,
}


class SubmissionEngine:
    """
    Signs, broadcasts and confirms transaction plans.

    A plan is always bound to a freshly fetched blockhash; a rebroadcast after
    a send failure fetches a new blockhash and signs again rather than
    reusing the previous one.
    """

    def __init__(
        self,
        node: NodeInterface,
        signer: Signer,
        config: Optional[SenderConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            node: Node interface for blockhash, broadcast and status calls
            signer: Wallet signer
            config: Sender configuration
        """
        self.node = node
        self.signer = signer
        self.config = config or get_config()

    async def submit(self, plan: TransactionPlan) -> TransactionPlan:
        """
        Run a plan to a terminal state.

        Never raises for per-plan failures: the outcome is recorded on the
        plan's status and error fields.

        Args:
            plan: Plan in BUILT state

        Returns:
            The same plan, in a terminal state
        """
        log = logger.bind(plan_index=plan.index, assets=len(plan.asset_ids))
        log.info("plan_submitting", size=plan.estimated_size)

        try:
            await self._broadcast(plan)
        except SigningRejected as e:
            plan.mark_failed(FailureReason.SIGNING_REJECTED, str(e))
            log.warning("plan_signing_rejected", error=str(e))
            return plan
        except BroadcastFailed as e:
            plan.mark_failed(FailureReason.BROADCAST_FAILED, e.details or str(e))
            log.error("plan_broadcast_failed", error=str(e), attempts=plan.attempts)
            return plan

        await self._await_confirmation(plan)
        return plan

    async def _sign(self, plan: TransactionPlan) -> Transaction:
        """Bind the plan to a fresh blockhash and sign it."""
        try:
            latest = await self.node.get_latest_blockhash()
        except NodeConnectionError as e:
            raise BroadcastFailed(f"Could not fetch a recent blockhash: {e}", details=str(e)) from e

        message = Message.new_with_blockhash(plan.instructions, plan.fee_payer, latest.blockhash)
        signed_tx = await self.signer.sign_transaction(message, latest.blockhash)

        plan.mark_signed(latest.blockhash, str(signed_tx.signatures[0]))
        logger.debug(
            "plan_signed",
            plan_index=plan.index,
            signature=plan.signature,
            blockhash=str(latest.blockhash),
        )
        return signed_tx

    async def _broadcast(self, plan: TransactionPlan) -> None:
        """
        Sign and send, retrying with a fresh blockhash on send failures.

        Raises:
            SigningRejected: If the signer refuses; never retried
            BroadcastFailed: If every attempt failed
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.config.broadcast_max_attempts + 1):
            try:
                signed_tx = await self._sign(plan)
                await self.node.send_transaction(signed_tx)
            except (TransactionSubmitError, NodeConnectionError, BroadcastFailed) as e:
                last_error = e
                logger.warning(
                    "plan_broadcast_attempt_failed",
                    plan_index=plan.index,
                    attempt=attempt,
                    error=str(e),
                )
                continue

            plan.mark_sent()
            logger.info(
                "plan_sent",
                plan_index=plan.index,
                signature=plan.signature,
                attempt=attempt,
            )
            return

        details = getattr(last_error, "data", None) or str(last_error)
        raise BroadcastFailed(
            f"Broadcast failed after {self.config.broadcast_max_attempts} attempts: {last_error}",
            details=details,
        )

    def _poll_delay(self, poll: int) -> float:
        delay = self.config.poll_interval_seconds * (self.config.backoff_factor ** poll)
        return min(delay, self.config.max_poll_interval_seconds)

    def _reached_commitment(self, status: SignatureStatus) -> bool:
        if status.confirmation_status is None:
            # Rooted transactions report no status and no confirmation count
            return status.confirmations is None and status.slot is not None
        required = _COMMITMENT_RANK[self.config.commitment.value]
        return _COMMITMENT_RANK.get(status.confirmation_status, -1) >= required

    async def _await_confirmation(self, plan: TransactionPlan) -> None:
        """Poll for a definitive status within the poll budget."""
        for poll in range(self.config.confirmation_max_polls):
            await asyncio.sleep(self._poll_delay(poll))

            try:
                status = await self.node.get_signature_status(plan.signature)
            except NodeConnectionError as e:
                logger.warning(
                    "plan_status_poll_failed",
                    plan_index=plan.index,
                    poll=poll + 1,
                    error=str(e),
                )
                continue

            if status is None:
                continue

            if status.failed:
                plan.mark_failed(FailureReason.EXECUTION_FAILED, status.err)
                logger.error(
                    "plan_execution_failed",
                    plan_index=plan.index,
                    signature=plan.signature,
                    err=status.err,
                )
                return

            if self._reached_commitment(status):
                plan.mark_confirmed()
                logger.info(
                    "plan_confirmed",
                    plan_index=plan.index,
                    signature=plan.signature,
                    slot=status.slot,
                    polls=poll + 1,
                )
                return

        plan.mark_timed_out()
        logger.warning(
            "plan_confirmation_timeout",
            plan_index=plan.index,
            signature=plan.signature,
            polls=self.config.confirmation_max_polls,
        )

    async def submit_all(
        self,
        plans: Sequence[TransactionPlan],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Tuple[List[TransactionPlan], List[TransactionPlan]]:
        """
        Submit plans one at a time, in order.

        Cancellation is checked before each plan; a plan already in flight
        is always driven to a terminal state.

        Returns:
            (submitted plans, plans skipped because of cancellation)
        """
        submitted: List[TransactionPlan] = []
        for position, plan in enumerate(plans):
            if cancel_event is not None and cancel_event.is_set():
                skipped = list(plans[position:])
                logger.warning(
                    "submission_cancelled",
                    submitted=len(submitted),
                    skipped=len(skipped),
                )
                return submitted, skipped

            await self.submit(plan)
            submitted.append(plan)

        confirmed = sum(1 for p in submitted if p.status == PlanStatus.CONFIRMED)
        logger.info("submission_complete", plans=len(submitted), confirmed=confirmed)
        return submitted, []
