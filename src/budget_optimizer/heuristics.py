"""
Greedy allocation strategies used when the solver is unavailable, infeasible,
or leaves too much cash undeployed.

Every strategy starts from per-target floor shares (whole units of the target
value) and spends the leftover budget in its own order. Strategies receive
frozen buy orders and return a fresh ticker -> final shares map.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from allocation_base import OptimizationRequest, OptimizationResult, OptimizationStrategy, SolverStatus
from optimizer_config import HeuristicConfig, get_config
from .model_builder import floor_shares
from .solution import SolutionProcessor

# Absorbs float noise when comparing a price against the remaining budget
_AFFORD_EPSILON = 1e-9


@dataclass(frozen=True)
class BuyOrder:
    ticker: str
    price: float
    target_percentage: float
    target_value: float
    floor_shares: int
    remainder: float
    efficiency: float

    @property
    def purchasable(self) -> bool:
        return self.target_percentage > 0


def build_buy_orders(request: OptimizationRequest) -> List[BuyOrder]:
    """
    Clean-slate buy orders for every target. Percentages summing past 100 are
    scaled down so the floor shares alone never exceed the budget.
    """
    budget = request.liquidation_budget
    percentage_total = sum(t.target_percentage for t in request.target_etfs)
    scale = max(100.0, percentage_total)

    orders = []
    for target in request.target_etfs:
        target_value = budget * target.target_percentage / scale
        exact = target_value / target.price_per_share
        floored = floor_shares(target_value, target.price_per_share)
        signal = request.momentum_scores.get(target.name, target_value / budget if budget > 0 else 0.0)
        orders.append(BuyOrder(
            ticker=target.name,
            price=target.price_per_share,
            target_percentage=target.target_percentage,
            target_value=target_value,
            floor_shares=floored if target.target_percentage > 0 else 0,
            remainder=max(0.0, exact - floored),
            efficiency=signal / target.price_per_share,
        ))
    return orders


def _floor_fill(orders: List[BuyOrder], budget: float) -> Tuple[Dict[str, int], float]:
    shares = {order.ticker: order.floor_shares for order in orders}
    spent = sum(order.floor_shares * order.price for order in orders)
    return shares, budget - spent


def _affordable(order: BuyOrder, remaining: float) -> bool:
    return order.purchasable and order.price <= remaining + _AFFORD_EPSILON


def _remainder_pass(orders: List[BuyOrder], shares: Dict[str, int], remaining: float) -> float:
    """One extra share each, largest fractional remainder first"""
    for order in sorted(orders, key=lambda o: (-o.remainder, o.price)):
        if order.remainder > 0 and _affordable(order, remaining):
            shares[order.ticker] += 1
            remaining -= order.price
    return remaining


def _ordered_fill(ordered: List[BuyOrder], shares: Dict[str, int], remaining: float) -> float:
    """
    Repeatedly buy the first affordable order in the given ranking. Buying one
    order until it is unaffordable before moving on is the same walk, done in bulk.
    """
    for order in ordered:
        if _affordable(order, remaining):
            count = floor_shares(remaining + _AFFORD_EPSILON, order.price)
            shares[order.ticker] += count
            remaining -= count * order.price
    return remaining


def _by_price(orders: List[BuyOrder]) -> List[BuyOrder]:
    return sorted(orders, key=lambda o: (o.price, o.ticker))


class HeuristicStrategy(ABC):
    """One greedy way of spending the leftover budget"""

    strategy_id: OptimizationStrategy

    def __init__(self, config: HeuristicConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    def allocate(self, orders: List[BuyOrder], budget: float) -> Dict[str, int]:
        """Return ticker -> final shares without exceeding `budget`"""
        pass


class MinimizeLeftoverStrategy(HeuristicStrategy):
    strategy_id = OptimizationStrategy.MINIMIZE_LEFTOVER

    def allocate(self, orders: List[BuyOrder], budget: float) -> Dict[str, int]:
        shares, remaining = _floor_fill(orders, budget)
        remaining = _remainder_pass(orders, shares, remaining)
        _ordered_fill(_by_price(orders), shares, remaining)
        return shares


class MaximizeSharesStrategy(HeuristicStrategy):
    strategy_id = OptimizationStrategy.MAXIMIZE_SHARES

    def allocate(self, orders: List[BuyOrder], budget: float) -> Dict[str, int]:
        shares, remaining = _floor_fill(orders, budget)
        _ordered_fill(_by_price(orders), shares, remaining)
        return shares


class MomentumWeightedStrategy(HeuristicStrategy):
    """Spend leftover cash on the best signal per dollar first"""
    strategy_id = OptimizationStrategy.MOMENTUM_WEIGHTED

    def allocate(self, orders: List[BuyOrder], budget: float) -> Dict[str, int]:
        shares, remaining = _floor_fill(orders, budget)
        ranked = sorted(orders, key=lambda o: (-o.efficiency, o.price, o.ticker))
        _ordered_fill(ranked, shares, remaining)
        return shares


class EnhancedBudgetStrategy(HeuristicStrategy):
    """
    Three phases: remainder-first fill, bounded expansion while each weight stays
    within target + expansion band, then an unconstrained fill so no whole share
    of any target remains affordable. Each phase loop is capped.
    """
    strategy_id = OptimizationStrategy.ENHANCED_BUDGET

    def allocate(self, orders: List[BuyOrder], budget: float) -> Dict[str, int]:
        shares, remaining = _floor_fill(orders, budget)
        remaining = _remainder_pass(orders, shares, remaining)
        remaining = self._bounded_expansion(orders, shares, remaining, budget)
        self._final_fill(orders, shares, remaining, budget)
        return shares

    def _weight(self, order: BuyOrder, count: int, budget: float) -> float:
        return count * order.price / budget * 100 if budget > 0 else 0.0

    def _bounded_expansion(self, orders: List[BuyOrder], shares: Dict[str, int],
                           remaining: float, budget: float) -> float:
        band = self.config.expansion_band_percent
        for _ in range(self.config.max_phase_iterations):
            candidates = [
                o for o in orders
                if _affordable(o, remaining)
                and self._weight(o, shares[o.ticker] + 1, budget) <= o.target_percentage + band
            ]
            if not candidates:
                break
            pick = max(candidates, key=lambda o: (
                o.target_percentage - self._weight(o, shares[o.ticker], budget), -o.price
            ))
            shares[pick.ticker] += 1
            remaining -= pick.price
        else:
            self.logger.debug(f"Bounded expansion hit its {self.config.max_phase_iterations} iteration cap")
        return remaining

    def _final_fill(self, orders: List[BuyOrder], shares: Dict[str, int],
                    remaining: float, budget: float) -> float:
        for _ in range(self.config.max_phase_iterations):
            candidates = [o for o in orders if _affordable(o, remaining)]
            if not candidates:
                break
            pick = max(candidates, key=lambda o: (
                o.target_percentage - self._weight(o, shares[o.ticker], budget), -o.price
            ))
            count = max(1, floor_shares(remaining + _AFFORD_EPSILON, pick.price) // len(candidates))
            shares[pick.ticker] += count
            remaining -= count * pick.price
        else:
            self.logger.debug(f"Final fill hit its {self.config.max_phase_iterations} iteration cap")
        return remaining


STRATEGIES: Dict[OptimizationStrategy, Type[HeuristicStrategy]] = {
    strategy.strategy_id: strategy
    for strategy in (MinimizeLeftoverStrategy, MaximizeSharesStrategy,
                     MomentumWeightedStrategy, EnhancedBudgetStrategy)
}


class HeuristicFallbackEngine:
    """Produce an allocation without the solver using one selectable strategy"""

    def __init__(self, processor: Optional[SolutionProcessor] = None, config: Optional[HeuristicConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.processor = processor or SolutionProcessor()
        self.config = config or get_config().heuristics
        self.logger = logger or logging.getLogger(__name__)

    def strategy_for(self, strategy_id: OptimizationStrategy) -> HeuristicStrategy:
        try:
            strategy_cls = STRATEGIES[OptimizationStrategy(strategy_id)]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown optimization strategy: {strategy_id}")
        return strategy_cls(self.config, self.logger)

    def allocate(self, request: OptimizationRequest, strategy: HeuristicStrategy) -> Dict[str, int]:
        return strategy.allocate(build_buy_orders(request), request.liquidation_budget)

    def run(self, request: OptimizationRequest, strategy: Optional[HeuristicStrategy] = None,
            status: SolverStatus = SolverStatus.HEURISTIC, reason: Optional[str] = None,
            optimization_time: float = 0.0) -> OptimizationResult:
        strategy = strategy or self.strategy_for(request.optimization_strategy)
        final_shares = self.allocate(request, strategy)
        result = self.processor.assemble(
            request,
            final_shares,
            status,
            optimization_time,
            strategy=strategy.strategy_id,
            fallback_used=True,
            fallback_reason=reason,
        )
        self.logger.info(
            f"Heuristic {strategy.strategy_id.value} allocation: "
            f"{result.optimization_metrics.utilization_rate:.2f}% of ${request.liquidation_budget:,.2f} deployed"
        )
        return result
