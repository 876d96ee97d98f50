"""PIPE raise progress metrics."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from spac_os.services.common import read_field, safe_ratio
from spac_os.services.vocabulary import PipeInvestorType, SubscriptionStatus, parse_vocabulary


@dataclass
class PipeInvestor:
    id: str
    name: str
    investor_type: PipeInvestorType
    commitment_amount: float
    price_per_share: float
    shares: int
    subscription_status: SubscriptionStatus

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipeInvestor":
        price = float(data.get("price_per_share") or 10.0)
        amount = float(data.get("commitment_amount") or 0.0)
        shares = data.get("shares")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            investor_type=parse_vocabulary(PipeInvestorType, data.get("investor_type")),
            commitment_amount=amount,
            price_per_share=price,
            shares=int(shares) if shares is not None else int(safe_ratio(amount, price)),
            subscription_status=parse_vocabulary(SubscriptionStatus, data.get("subscription_status")),
        )


@dataclass
class PipeMetrics:
    committed_amount: float
    soft_circled_amount: float
    in_diligence_amount: float
    total_pipeline: float
    percent_complete: float
    percent_with_soft: float
    meets_minimum: bool
    remaining_to_raise: float
    investor_count: int
    committed_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "committed_amount": self.committed_amount,
            "soft_circled_amount": self.soft_circled_amount,
            "in_diligence_amount": self.in_diligence_amount,
            "total_pipeline": self.total_pipeline,
            "percent_complete": self.percent_complete,
            "percent_with_soft": self.percent_with_soft,
            "meets_minimum": self.meets_minimum,
            "remaining_to_raise": self.remaining_to_raise,
            "investor_count": self.investor_count,
            "committed_count": self.committed_count,
        }


def compute_pipe_metrics(
    investors: Iterable[Any],
    target_raise: float,
    minimum_close: Optional[float] = None,
) -> PipeMetrics:
    amounts: Dict[SubscriptionStatus, float] = {status: 0.0 for status in SubscriptionStatus}
    counts: Dict[SubscriptionStatus, int] = {status: 0 for status in SubscriptionStatus}
    for investor in investors:
        status = parse_vocabulary(SubscriptionStatus, read_field(investor, "subscription_status"))
        amounts[status] += float(read_field(investor, "commitment_amount", 0.0))
        counts[status] += 1

    committed = amounts[SubscriptionStatus.committed]
    soft = amounts[SubscriptionStatus.soft_circled]
    diligence = amounts[SubscriptionStatus.in_diligence]
    target = float(target_raise or 0.0)
    return PipeMetrics(
        committed_amount=committed,
        soft_circled_amount=soft,
        in_diligence_amount=diligence,
        total_pipeline=committed + soft + diligence,
        percent_complete=round(safe_ratio(committed, target) * 100, 2),
        percent_with_soft=round(safe_ratio(committed + soft, target) * 100, 2),
        meets_minimum=committed >= minimum_close if minimum_close else True,
        remaining_to_raise=max(0.0, target - committed),
        investor_count=sum(counts.values()) - counts[SubscriptionStatus.declined],
        committed_count=counts[SubscriptionStatus.committed],
    )
