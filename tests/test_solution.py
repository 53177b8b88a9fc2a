"""
tests/test_solution.py
----------------------
Unit tests for SolutionProcessor: allocation rows, action labels,
non-target liquidation and utilization metrics.
"""

import unittest

from allocation_base import (
    OptimizationRequest, Holding, TargetInstrument, AllocationAction, SolverStatus, OptimizationStrategy,
)
from budget_optimizer.model_builder import BudgetModelBuilder
from budget_optimizer.solution import SolutionProcessor, classify_action
from budget_optimizer.solver import SolverOutcome


def _request() -> OptimizationRequest:
    return OptimizationRequest(
        current_holdings=[
            Holding(name="A", shares=10, price=100),
            Holding(name="Z", shares=5, price=80),
            Holding(name="V", shares=20, price=50),
        ],
        target_etfs=[
            TargetInstrument(name="A", target_percentage=40, price_per_share=100),
            TargetInstrument(name="B", target_percentage=60, price_per_share=40),
            TargetInstrument(name="V", target_percentage=0, price_per_share=50),
        ],
        extra_cash=600,
    )


class TestClassifyAction(unittest.TestCase):

    def test_labels(self):
        self.assertEqual(classify_action(5, 5), AllocationAction.HOLD)
        self.assertEqual(classify_action(0, 0), AllocationAction.HOLD)
        self.assertEqual(classify_action(2, 5), AllocationAction.BUY)
        self.assertEqual(classify_action(5, 0), AllocationAction.SELL)
        self.assertEqual(classify_action(5, 3), AllocationAction.REBALANCE)


class TestAssemble(unittest.TestCase):

    def setUp(self):
        self.processor = SolutionProcessor()
        self.request = _request()
        # Budget: 1000 + 400 + 1000 + 600
        self.result = self.processor.assemble(self.request, {"A": 12, "B": 30, "V": 7}, SolverStatus.OPTIMAL)

    def test_allocation_rows(self):
        a = self.result.allocation_for("A")
        self.assertEqual((a.current_shares, a.final_shares, a.shares_to_buy, a.shares_to_sell), (10, 12, 2, 0))
        self.assertEqual(a.cost_of_purchase, 200)
        self.assertEqual(a.final_value, 1200)
        self.assertAlmostEqual(a.actual_percentage, 40.0)
        self.assertAlmostEqual(a.deviation, 0.0)
        self.assertEqual(a.action, AllocationAction.BUY)

    def test_share_identity_holds(self):
        for a in self.result.allocations:
            self.assertEqual(a.final_shares, a.current_shares + a.shares_to_buy - a.shares_to_sell)
            self.assertGreaterEqual(a.final_shares, 0)
            self.assertGreaterEqual(a.shares_to_buy, 0)
            self.assertGreaterEqual(a.shares_to_sell, 0)

    def test_zero_target_forced_to_zero(self):
        v = self.result.allocation_for("V")
        self.assertEqual(v.final_shares, 0)
        self.assertEqual(v.shares_to_sell, 20)
        self.assertEqual(v.action, AllocationAction.SELL)

    def test_non_targets_fully_liquidated(self):
        self.assertEqual(len(self.result.holdings_to_sell), 1)
        z = self.result.holdings_to_sell[0]
        self.assertEqual((z.name, z.shares, z.price_per_share, z.total_value), ("Z", 5, 80, 400))

    def test_metrics(self):
        metrics = self.result.optimization_metrics
        self.assertEqual(metrics.total_available_budget, 3000)
        self.assertEqual(metrics.total_budget_used, 2400)
        self.assertEqual(metrics.unused_budget, 600)
        self.assertAlmostEqual(metrics.unused_percentage, 20.0)

    def test_extra_fields_and_strategy(self):
        result = self.processor.assemble(
            self.request, {"A": 1}, SolverStatus.HEURISTIC,
            strategy=OptimizationStrategy.MAXIMIZE_SHARES, fallback_used=True, fallback_reason="timeout",
        )
        self.assertEqual(result.strategy, OptimizationStrategy.MAXIMIZE_SHARES)
        self.assertTrue(result.fallback_used)
        self.assertEqual(result.fallback_reason, "timeout")
        self.assertEqual(result.allocation_for("B").final_shares, 0)


class TestProcess(unittest.TestCase):

    def setUp(self):
        self.processor = SolutionProcessor()

    def test_maps_variable_values(self):
        request = OptimizationRequest(
            target_etfs=[TargetInstrument(name="A", target_percentage=100, price_per_share=100)],
            extra_cash=1000,
        )
        model = BudgetModelBuilder().build(request)
        outcome = SolverOutcome(feasible=True, values={model.variables[0].name: 10}, status="OPTIMAL")

        result = self.processor.process(outcome, model, request, optimization_time=12.5)
        self.assertEqual(result.solver_status, SolverStatus.OPTIMAL)
        self.assertEqual(result.final_shares, {"A": 10})
        self.assertAlmostEqual(result.unused_percentage, 0.0)
        self.assertEqual(result.optimization_metrics.optimization_time, 12.5)

    def test_infeasible_outcome(self):
        request = _request()
        model = BudgetModelBuilder().build(request)
        result = self.processor.process(SolverOutcome(feasible=False, status="INFEASIBLE"), model, request)

        self.assertEqual(result.solver_status, SolverStatus.INFEASIBLE)
        self.assertEqual(result.allocations, [])
        self.assertEqual(result.unused_percentage, 100.0)
        self.assertEqual(result.optimization_metrics.unused_budget, 3000)
        self.assertEqual([h.name for h in result.holdings_to_sell], ["Z"])

    def test_infeasible_result_carries_diagnostics(self):
        result = self.processor.infeasible_result(_request(), diagnostics=["A: lower bound exceeds upper bound"])
        self.assertEqual(result.diagnostics, ["A: lower bound exceeds upper bound"])


if __name__ == "__main__":
    unittest.main()
