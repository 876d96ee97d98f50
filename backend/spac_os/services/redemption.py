"""Redemption scenario modelling for a business combination."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from spac_os.services.common import safe_ratio

DEFAULT_SCENARIO_RATES = (0, 25, 50, 75, 90)


@dataclass
class RedemptionInputs:
    public_shares: int
    redemption_price: float
    trust_value: float
    sponsor_shares: int
    pipe_commitment: float
    pipe_price_per_share: float
    minimum_cash: float
    target_equity_value: float


@dataclass
class RedemptionScenario:
    redemption_rate: float
    shares_redeemed: int
    remaining_public_shares: int
    cash_from_trust: float
    pipe_proceeds: float
    total_cash: float
    pro_forma_shares: float
    public_ownership: float
    sponsor_ownership: float
    target_ownership: float
    implied_valuation: float
    cash_per_share: float
    meets_minimum_cash: bool
    cash_deficit: float

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def calculate_scenario(inputs: RedemptionInputs, redemption_rate: float) -> RedemptionScenario:
    """Pro-forma economics at `redemption_rate` percent of public shares redeemed."""
    if not 0 <= redemption_rate <= 100:
        raise ValueError(f"redemption_rate must be a percentage within 0-100, got {redemption_rate}")
    shares_redeemed = math.floor(inputs.public_shares * (redemption_rate / 100))
    remaining_public = inputs.public_shares - shares_redeemed
    cash_from_trust = inputs.trust_value - shares_redeemed * inputs.redemption_price
    pipe_shares = safe_ratio(inputs.pipe_commitment, inputs.pipe_price_per_share)
    total_cash = cash_from_trust + inputs.pipe_commitment

    spac_shares = remaining_public + inputs.sponsor_shares + pipe_shares
    implied_share_price = safe_ratio(total_cash, spac_shares)
    target_shares = safe_ratio(inputs.target_equity_value, implied_share_price)
    pro_forma = spac_shares + target_shares

    meets_minimum = total_cash >= inputs.minimum_cash
    return RedemptionScenario(
        redemption_rate=redemption_rate,
        shares_redeemed=shares_redeemed,
        remaining_public_shares=remaining_public,
        cash_from_trust=cash_from_trust,
        pipe_proceeds=inputs.pipe_commitment,
        total_cash=total_cash,
        pro_forma_shares=pro_forma,
        public_ownership=safe_ratio(remaining_public, pro_forma) * 100,
        sponsor_ownership=safe_ratio(inputs.sponsor_shares, pro_forma) * 100,
        target_ownership=safe_ratio(target_shares, pro_forma) * 100,
        implied_valuation=total_cash + inputs.target_equity_value,
        cash_per_share=implied_share_price,
        meets_minimum_cash=meets_minimum,
        cash_deficit=0.0 if meets_minimum else inputs.minimum_cash - total_cash,
    )


def calculate_scenarios(
    inputs: RedemptionInputs,
    rates: Iterable[float] = DEFAULT_SCENARIO_RATES,
) -> List[RedemptionScenario]:
    return [calculate_scenario(inputs, rate) for rate in rates]


def max_viable_redemption(inputs: RedemptionInputs) -> int:
    for rate in range(100, -1, -1):
        if calculate_scenario(inputs, rate).meets_minimum_cash:
            return rate
    return 0
