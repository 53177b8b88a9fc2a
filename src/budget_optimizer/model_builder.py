"""Integer budget model: one final-shares variable per target under a single budget cap"""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from allocation_base import OptimizationRequest, ModelError

# Guards floor() against float noise such as 1000 * 0.6 / 300 == 1.9999999999999998
_FLOOR_EPSILON = 1e-9


@dataclass(frozen=True)
class ShareVariable:
    """Decision variable holding the final share count of one target instrument"""
    name: str
    etf_name: str
    price: float
    target_percentage: float
    target_value: float
    allowed_deviation: float
    min_shares: int
    max_shares: int

    @property
    def forced_sale(self) -> bool:
        return self.target_percentage == 0


@dataclass(frozen=True)
class BudgetModel:
    """
    Solver-agnostic model: maximize sum(price * shares) subject to sum(price * shares) <= budget.
    With `balance_targets` set, ties on invested value are broken toward the target values.
    """
    liquidation_budget: float
    variables: Tuple[ShareVariable, ...]
    objective: str = 'maximize_invested_value'
    balance_targets: bool = True

    def variable_for(self, etf_name: str) -> Optional[ShareVariable]:
        return next((v for v in self.variables if v.etf_name == etf_name), None)

    @property
    def minimum_required_spend(self) -> float:
        return sum(v.min_shares * v.price for v in self.variables)


def floor_shares(value: float, price: float) -> int:
    """Whole units of `price` that fit in `value`"""
    if value <= 0:
        return 0
    return int(math.floor(value / price + _FLOOR_EPSILON))


class BudgetModelBuilder:
    """Turn an optimization request into a clean-slate integer model"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def build(self, request: OptimizationRequest) -> BudgetModel:
        """
        Build the model. Every current holding is treated as liquidated, so the
        budget is extra cash plus the market value of all holdings.

        Raises:
            ModelError: a target has a non-positive price or a negative percentage
        """
        budget = request.liquidation_budget
        self.logger.debug(
            f"Liquidation budget ${budget:,.2f} (holdings ${request.holdings_value:,.2f} "
            f"+ cash ${request.extra_cash:,.2f}) across {len(request.target_etfs)} targets"
        )

        variables: List[ShareVariable] = []
        for index, target in enumerate(request.target_etfs):
            price = target.price_per_share
            if not price or price <= 0 or math.isnan(price):
                raise ModelError(f"Target {target.name} has invalid price: {price}")
            if target.target_percentage < 0 or math.isnan(target.target_percentage):
                raise ModelError(f"Target {target.name} has negative percentage: {target.target_percentage}")

            target_value = budget * target.target_percentage / 100
            deviation = max(0.0, target.allowed_deviation)

            if target.target_percentage == 0:
                min_shares = max_shares = 0
                self.logger.debug(f"{target.name}: 0% target, forcing full sale")
            else:
                lower_value = max(0.0, target_value * (1 - deviation / 100))
                upper_value = target_value * (1 + deviation / 100)
                min_shares = floor_shares(lower_value, price)
                max_shares = floor_shares(upper_value, price)
                self.logger.debug(
                    f"{target.name}: target {target.target_percentage}% = ${target_value:,.2f}, "
                    f"band ±{deviation}% -> shares [{min_shares}, {max_shares}] @ ${price:.2f}"
                )

            variables.append(ShareVariable(
                name=f"shares_{index}_{re.sub(r'[^a-zA-Z0-9]', '_', target.name)}",
                etf_name=target.name,
                price=price,
                target_percentage=target.target_percentage,
                target_value=target_value,
                allowed_deviation=deviation,
                min_shares=min_shares,
                max_shares=max_shares,
            ))

        return BudgetModel(
            liquidation_budget=budget,
            variables=tuple(variables),
            balance_targets=request.objectives.fairness_weight > 0,
        )


def diagnose_infeasibility(model: BudgetModel) -> List[str]:
    """Explain which bounds make the model impossible to satisfy"""
    findings = []
    budget = model.liquidation_budget

    for var in model.variables:
        if var.min_shares > var.max_shares:
            findings.append(
                f"{var.etf_name}: lower bound {var.min_shares} shares exceeds upper bound {var.max_shares}"
            )
        floor_cost = var.min_shares * var.price
        if floor_cost > budget:
            findings.append(
                f"{var.etf_name}: minimum {var.min_shares} shares @ ${var.price:.2f} = ${floor_cost:,.2f} "
                f"exceeds budget ${budget:,.2f}"
            )

    required = model.minimum_required_spend
    if required > budget:
        findings.append(
            f"Combined minimum allocations ${required:,.2f} exceed budget ${budget:,.2f} "
            f"(deficit ${required - budget:,.2f})"
        )

    if not findings:
        findings.append("No single bound is impossible; solver reported the model infeasible")
    return findings
