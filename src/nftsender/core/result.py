"""
Batch result model and aggregation.

Merges validation, build, planning and submission outcomes into one
per-asset report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import structlog

from nftsender.core.plan import PlanStatus, TransactionPlan
from nftsender.core.request import TransferRequest
from nftsender.errors import FailureReason

logger = structlog.get_logger(__name__)


class AssetStatus(str, Enum):
    """Outcome of one requested asset."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"     # The plan timed out; the transfer may still land


@dataclass(frozen=True)
class AssetOutcome:
    """Per-asset outcome."""

    asset_id: str
    destination: str
    status: AssetStatus
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    signature: Optional[str] = None
    plan_index: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == AssetStatus.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "destination": self.destination,
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "signature": self.signature,
            "plan_index": self.plan_index,
        }


@dataclass(frozen=True)
class PlanOutcome:
    """Terminal state of one submitted (or abandoned) plan."""

    index: int
    status: PlanStatus
    asset_ids: Sequence[str]
    signature: Optional[str] = None
    fee_lamports: int = 0
    reason: Optional[FailureReason] = None
    details: Optional[Any] = None

    @classmethod
    def from_plan(cls, plan: TransactionPlan) -> "PlanOutcome":
        return cls(
            index=plan.index,
            status=plan.status,
            asset_ids=tuple(plan.asset_ids),
            signature=plan.signature,
            fee_lamports=plan.fee_lamports,
            reason=plan.error,
            details=plan.error_details,
        )

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "status": self.status.value,
            "asset_ids": list(self.asset_ids),
            "signature": self.signature,
            "fee_lamports": self.fee_lamports,
            "reason": self.reason.value if self.reason else None,
            "details": self.details,
        }


@dataclass(frozen=True)
class BatchResult:
    """
    Final report of a transfer run.

    Every requested asset appears exactly once, in request order, with
    either a success marker or a typed failure reason.
    """

    assets: Dict[str, AssetOutcome]
    plans: Sequence[PlanOutcome] = ()
    fee_lamports: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        """True only if every requested asset succeeded."""
        return bool(self.assets) and all(o.succeeded for o in self.assets.values())

    @property
    def successes(self) -> List[AssetOutcome]:
        return [o for o in self.assets.values() if o.status == AssetStatus.SUCCEEDED]

    @property
    def failures(self) -> List[AssetOutcome]:
        return [o for o in self.assets.values() if o.status == AssetStatus.FAILED]

    @property
    def unknown(self) -> List[AssetOutcome]:
        return [o for o in self.assets.values() if o.status == AssetStatus.UNKNOWN]

    @property
    def signatures(self) -> List[str]:
        return [p.signature for p in self.plans if p.signature]

    def outcome_for(self, asset_id: str) -> AssetOutcome:
        return self.assets[asset_id]

    def __len__(self) -> int:
        return len(self.assets)

    def summary(self) -> dict:
        return {
            "requested": len(self.assets),
            "succeeded": len(self.successes),
            "failed": len(self.failures),
            "unknown": len(self.unknown),
            "transactions": len(self.plans),
            "fee_lamports": self.fee_lamports,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "succeeded": self.succeeded,
            "summary": self.summary(),
            "assets": [o.to_dict() for o in self.assets.values()],
            "plans": [p.to_dict() for p in self.plans],
            "created_at": self.created_at.isoformat(),
        }


_PLAN_STATUS_TO_ASSET_STATUS = {
    PlanStatus.CONFIRMED: AssetStatus.SUCCEEDED,
    PlanStatus.FAILED: AssetStatus.FAILED,
    PlanStatus.TIMED_OUT: AssetStatus.UNKNOWN,
}


class ResultAggregator:
    """
    Collects outcomes during a run and produces the final BatchResult.

    Failures recorded before submission (validation, build, planning) take
    precedence over plan outcomes, since a failed asset never enters a plan.
    """

    def __init__(self, requests: Sequence[TransferRequest]):
        self._requests = list(requests)
        self._failures: Dict[str, AssetOutcome] = {}
        self._plans: List[PlanOutcome] = []

    def record_failure(
        self,
        request: TransferRequest,
        reason: FailureReason,
        message: Optional[str] = None,
    ) -> None:
        """Record a per-asset failure that happened before submission."""
        self._failures[request.asset_id] = AssetOutcome(
            asset_id=request.asset_id,
            destination=request.destination,
            status=AssetStatus.FAILED,
            reason=reason,
            message=message,
        )
        logger.info(
            "asset_failed",
            asset_id=request.asset_id,
            reason=reason.value,
            error=message,
        )

    def record_plan(self, plan: TransactionPlan) -> None:
        """Record the terminal state of a plan."""
        self._plans.append(PlanOutcome.from_plan(plan))

    def record_cancelled(self, plan: TransactionPlan) -> None:
        """Record a plan abandoned before signing."""
        plan.mark_failed(FailureReason.CANCELLED, "run cancelled before submission")
        self.record_plan(plan)

    @property
    def failed_asset_ids(self) -> List[str]:
        return list(self._failures)

    def build(self) -> BatchResult:
        """
        Produce the final report in request order.

        Raises:
            RuntimeError: If a requested asset has no recorded outcome
        """
        plan_by_asset = {
            asset_id: plan
            for plan in self._plans
            for asset_id in plan.asset_ids
        }

        outcomes: Dict[str, AssetOutcome] = {}
        for request in self._requests:
            if request.asset_id in self._failures:
                outcomes[request.asset_id] = self._failures[request.asset_id]
                continue

            plan = plan_by_asset.get(request.asset_id)
            if plan is None:
                raise RuntimeError(f"No outcome recorded for asset {request.asset_id}")

            status = _PLAN_STATUS_TO_ASSET_STATUS.get(plan.status, AssetStatus.FAILED)
            outcomes[request.asset_id] = AssetOutcome(
                asset_id=request.asset_id,
                destination=request.destination,
                status=status,
                reason=plan.reason if status != AssetStatus.SUCCEEDED else None,
                message=_describe(plan.details),
                signature=plan.signature,
                plan_index=plan.index,
            )

        fee_lamports = sum(
            p.fee_lamports for p in self._plans if p.status == PlanStatus.CONFIRMED
        )

        return BatchResult(
            assets=outcomes,
            plans=tuple(self._plans),
            fee_lamports=fee_lamports,
        )


def _describe(details: Optional[Any]) -> Optional[str]:
    if details is None:
        return None
    return details if isinstance(details, str) else repr(details)
