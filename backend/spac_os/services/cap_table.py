"""Cap table construction and percentage invariants."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from spac_os.services.common import safe_ratio
from spac_os.services.vocabulary import (
    BASIC_SHARE_CLASSES,
    HolderType,
    ShareClass,
    parse_vocabulary,
)


class CapTableInvariantError(ValueError):
    def __init__(self, issues: List[str]) -> None:
        super().__init__("Cap table invariants violated: " + "; ".join(issues))
        self.issues = issues


@dataclass
class ShareHolder:
    id: str
    name: str
    holder_type: HolderType
    shares: int
    share_class: ShareClass
    notes: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "holder_type": self.holder_type.value,
            "shares": self.shares,
            "share_class": self.share_class.value,
            "notes": self.notes,
        }


@dataclass
class ShareClassInfo:
    share_class: ShareClass
    total_shares: int
    percentage_of_basic: float
    percentage_of_diluted: float
    voting_power: float
    holders: List[ShareHolder] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "share_class": self.share_class.value,
            "total_shares": self.total_shares,
            "percentage_of_basic": self.percentage_of_basic,
            "percentage_of_diluted": self.percentage_of_diluted,
            "voting_power": self.voting_power,
            "holders": [holder.as_dict() for holder in self.holders],
        }


@dataclass
class CapTableSummary:
    basic_shares: int
    fully_diluted_shares: int
    sponsor_basic_percent: float
    public_basic_percent: float


def build_cap_table(
    class_totals: Mapping[Any, int],
    holders: Iterable[ShareHolder] = (),
) -> List[ShareClassInfo]:
    """Derive basic/diluted percentages and voting power from share counts.

    Basic counts class A and class B only; fully diluted counts every class.
    Voting power follows the basic percentage for the two voting classes.
    """
    totals = {parse_vocabulary(ShareClass, key): int(value) for key, value in class_totals.items()}
    basic_total = sum(totals.get(share_class, 0) for share_class in BASIC_SHARE_CLASSES)
    diluted_total = sum(totals.values())

    holders_by_class: Dict[ShareClass, List[ShareHolder]] = {share_class: [] for share_class in totals}
    for holder in holders:
        holders_by_class.setdefault(holder.share_class, []).append(holder)

    classes: List[ShareClassInfo] = []
    for share_class in ShareClass:
        if share_class not in totals:
            continue
        total = totals[share_class]
        is_basic = share_class in BASIC_SHARE_CLASSES
        basic_pct = round(safe_ratio(total, basic_total) * 100, 2) if is_basic else 0.0
        classes.append(
            ShareClassInfo(
                share_class=share_class,
                total_shares=total,
                percentage_of_basic=basic_pct,
                percentage_of_diluted=round(safe_ratio(total, diluted_total) * 100, 2),
                voting_power=basic_pct,
                holders=holders_by_class.get(share_class, []),
            )
        )
    return classes


def cap_table_issues(classes: Iterable[ShareClassInfo], tolerance: float = 0.1) -> List[str]:
    rows = list(classes)
    issues: List[str] = []
    if not rows:
        return ["Cap table has no share classes"]

    basic_sum = sum(row.percentage_of_basic for row in rows if row.share_class in BASIC_SHARE_CLASSES)
    if abs(basic_sum - 100.0) > tolerance:
        issues.append(f"Basic percentages of class A and class B sum to {basic_sum:.2f}, expected 100")
    non_basic = [row.share_class.value for row in rows if row.share_class not in BASIC_SHARE_CLASSES and row.percentage_of_basic]
    if non_basic:
        issues.append(f"Non-voting classes carry basic ownership: {', '.join(non_basic)}")

    diluted_sum = sum(row.percentage_of_diluted for row in rows)
    if abs(diluted_sum - 100.0) > tolerance:
        issues.append(f"Diluted percentages sum to {diluted_sum:.2f}, expected 100")

    for row in rows:
        if not row.holders:
            continue
        held = sum(holder.shares for holder in row.holders)
        if held != row.total_shares:
            issues.append(
                f"Holders of {row.share_class.value} own {held} shares, class total is {row.total_shares}"
            )
        stray = [holder.name for holder in row.holders if holder.share_class != row.share_class]
        if stray:
            issues.append(f"Holders listed under {row.share_class.value} belong to another class: {', '.join(stray)}")
    return issues


def validate_cap_table(classes: Iterable[ShareClassInfo], tolerance: float = 0.1) -> None:
    issues = cap_table_issues(classes, tolerance=tolerance)
    if issues:
        raise CapTableInvariantError(issues)


def holder_ownership(share_class: ShareClassInfo, holder: ShareHolder) -> Tuple[float, float]:
    fraction = safe_ratio(holder.shares, share_class.total_shares)
    return (
        round(fraction * share_class.percentage_of_basic, 2),
        round(fraction * share_class.percentage_of_diluted, 2),
    )


def summarize_cap_table(classes: Iterable[ShareClassInfo]) -> CapTableSummary:
    rows = list(classes)
    basic_total = sum(row.total_shares for row in rows if row.share_class in BASIC_SHARE_CLASSES)
    sponsor_basic = 0
    public_basic = 0
    for row in rows:
        if row.share_class not in BASIC_SHARE_CLASSES:
            continue
        for holder in row.holders:
            if holder.holder_type == HolderType.sponsor:
                sponsor_basic += holder.shares
            elif holder.holder_type == HolderType.public:
                public_basic += holder.shares
    return CapTableSummary(
        basic_shares=basic_total,
        fully_diluted_shares=sum(row.total_shares for row in rows),
        sponsor_basic_percent=round(safe_ratio(sponsor_basic, basic_total) * 100, 2),
        public_basic_percent=round(safe_ratio(public_basic, basic_total) * 100, 2),
    )
