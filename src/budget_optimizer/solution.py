"""Turn final share counts into allocation rows and utilization metrics"""

import logging
from typing import Dict, List, Optional
from allocation_base import (
    OptimizationRequest, OptimizationResult, OptimizationMetrics,
    Allocation, AllocationAction, HoldingToSell, SolverStatus,
)
from .model_builder import BudgetModel
from .solver import SolverOutcome


def classify_action(current_shares: int, final_shares: int) -> AllocationAction:
    if final_shares == current_shares:
        return AllocationAction.HOLD
    if final_shares > current_shares:
        return AllocationAction.BUY
    if final_shares == 0:
        return AllocationAction.SELL
    return AllocationAction.REBALANCE


class SolutionProcessor:
    """Map final-shares values back onto the request as an OptimizationResult"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def process(self, outcome: SolverOutcome, model: BudgetModel, request: OptimizationRequest,
                optimization_time: float = 0.0) -> OptimizationResult:
        """Convert a raw solver outcome; an infeasible outcome yields an empty, fully-unused result"""
        if not outcome.feasible:
            return self.infeasible_result(request, optimization_time)

        final_shares = {
            var.etf_name: max(0, int(round(outcome.values.get(var.name, 0))))
            for var in model.variables
        }
        return self.assemble(request, final_shares, SolverStatus.OPTIMAL, optimization_time)

    def assemble(self, request: OptimizationRequest, final_shares: Dict[str, int], status: SolverStatus,
                 optimization_time: float = 0.0, **extra) -> OptimizationResult:
        """Build a complete result from a ticker -> final shares map"""
        allocations = self.build_allocations(request, final_shares)
        metrics = self.compute_metrics(request.liquidation_budget, allocations, optimization_time)

        if metrics.unused_percentage > 10:
            self.logger.debug(f"High unused cash after {status.value} allocation: {metrics.unused_percentage:.2f}%")
            for allocation in allocations:
                if allocation.final_shares == 0 and allocation.target_percentage > 0:
                    self.logger.debug(
                        f"{allocation.etf_name} holds 0 shares against a {allocation.target_percentage}% target"
                    )

        return OptimizationResult(
            solver_status=status,
            allocations=allocations,
            holdings_to_sell=self.identify_holdings_to_sell(request),
            optimization_metrics=metrics,
            strategy=extra.pop('strategy', request.optimization_strategy),
            **extra,
        )

    def infeasible_result(self, request: OptimizationRequest, optimization_time: float = 0.0,
                          diagnostics: Optional[List[str]] = None) -> OptimizationResult:
        budget = request.liquidation_budget
        return OptimizationResult(
            solver_status=SolverStatus.INFEASIBLE,
            allocations=[],
            holdings_to_sell=self.identify_holdings_to_sell(request),
            optimization_metrics=OptimizationMetrics(
                total_available_budget=budget,
                total_budget_used=0.0,
                unused_budget=budget,
                unused_percentage=100.0,
                optimization_time=optimization_time,
            ),
            strategy=request.optimization_strategy,
            diagnostics=list(diagnostics or []),
        )

    def build_allocations(self, request: OptimizationRequest, final_shares: Dict[str, int]) -> List[Allocation]:
        budget = request.liquidation_budget
        allocations = []

        for target in request.target_etfs:
            current = request.current_shares_of(target.name)
            final = 0 if target.target_percentage == 0 else int(final_shares.get(target.name, 0))
            to_buy = max(0, final - current)
            to_sell = max(0, current - final)
            final_value = final * target.price_per_share
            actual_percentage = final_value / budget * 100 if budget > 0 else 0.0

            allocations.append(Allocation(
                etf_name=target.name,
                price_per_share=target.price_per_share,
                current_shares=current,
                final_shares=final,
                shares_to_buy=to_buy,
                shares_to_sell=to_sell,
                cost_of_purchase=to_buy * target.price_per_share,
                final_value=final_value,
                target_percentage=target.target_percentage,
                actual_percentage=actual_percentage,
                deviation=actual_percentage - target.target_percentage,
                action=classify_action(current, final),
            ))

        return allocations

    @staticmethod
    def compute_metrics(budget: float, allocations: List[Allocation], optimization_time: float = 0.0) -> OptimizationMetrics:
        used = sum(a.final_value for a in allocations)
        unused = budget - used
        return OptimizationMetrics(
            total_available_budget=budget,
            total_budget_used=used,
            unused_budget=unused,
            unused_percentage=unused / budget * 100 if budget > 0 else 100.0,
            optimization_time=optimization_time,
        )

    @staticmethod
    def identify_holdings_to_sell(request: OptimizationRequest) -> List[HoldingToSell]:
        """Every holding absent from the targets is liquidated in full"""
        target_names = set(request.target_names)
        return [
            HoldingToSell(
                name=holding.name,
                shares=holding.shares,
                price_per_share=holding.price,
                total_value=holding.value,
            )
            for holding in request.current_holdings
            if holding.name not in target_names
        ]
