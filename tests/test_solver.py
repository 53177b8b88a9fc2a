"""
tests/test_solver.py
--------------------
Unit tests for the CP-SAT adapter. Small models are solved for real; timeouts
and internal failures are simulated by replacing the blocking solve.
"""

import time
import unittest
from unittest.mock import patch

from allocation_base import OptimizationRequest, TargetInstrument, SolverTimeout, SolverFault
from optimizer_config import SolverConfig
from budget_optimizer.model_builder import BudgetModelBuilder, BudgetModel, ShareVariable
from budget_optimizer.solver import MilpSolverAdapter, SolverOutcome


def _model(targets, extra_cash=1000.0) -> BudgetModel:
    request = OptimizationRequest(target_etfs=targets, extra_cash=extra_cash)
    return BudgetModelBuilder().build(request)


def _values_by_etf(model: BudgetModel, outcome: SolverOutcome) -> dict:
    return {v.etf_name: outcome.values[v.name] for v in model.variables}


class TestSolve(unittest.TestCase):

    def setUp(self):
        self.adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10, num_workers=1))

    def test_maximizes_invested_value(self):
        model = _model([
            TargetInstrument(name="X", target_percentage=60, price_per_share=300),
            TargetInstrument(name="Y", target_percentage=40, price_per_share=50),
        ])
        outcome = self.adapter.solve(model)

        self.assertTrue(outcome.feasible)
        self.assertEqual(outcome.status, "OPTIMAL")
        self.assertEqual(_values_by_etf(model, outcome), {"X": 2, "Y": 8})

    def test_respects_budget_cap(self):
        model = _model([
            TargetInstrument(name="A", target_percentage=50, price_per_share=33.33, allowed_deviation=40),
            TargetInstrument(name="B", target_percentage=50, price_per_share=71.17, allowed_deviation=40),
        ])
        outcome = self.adapter.solve(model)
        values = _values_by_etf(model, outcome)
        self.assertLessEqual(values["A"] * 33.33 + values["B"] * 71.17, 1000 + 1e-6)

    def test_prices_finer_than_fixed_point_never_overspend(self):
        # 1.00004 scales to 10000.4; rounding that down would buy 100000 shares for $100,004
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=1.00004)],
                       extra_cash=100_000)
        outcome = self.adapter.solve(model)

        shares = _values_by_etf(model, outcome)["A"]
        self.assertTrue(outcome.feasible)
        self.assertLessEqual(shares * 1.00004, 100_000)
        self.assertGreater(shares, 99_900)

    def test_stays_inside_share_bounds(self):
        model = _model([
            TargetInstrument(name="A", target_percentage=50, price_per_share=10),
            TargetInstrument(name="B", target_percentage=50, price_per_share=10),
        ])
        outcome = self.adapter.solve(model)
        for var in model.variables:
            self.assertGreaterEqual(outcome.values[var.name], var.min_shares)
            self.assertLessEqual(outcome.values[var.name], var.max_shares)

    def test_tie_break_prefers_target_values(self):
        # Both 50/50 splits and lopsided ones invest the full 1000
        model = _model([
            TargetInstrument(name="A", target_percentage=50, price_per_share=100, allowed_deviation=60),
            TargetInstrument(name="B", target_percentage=50, price_per_share=100, allowed_deviation=60),
        ])
        outcome = self.adapter.solve(model)
        self.assertEqual(_values_by_etf(model, outcome), {"A": 5, "B": 5})

    def test_zero_target_held_at_zero(self):
        model = _model([
            TargetInstrument(name="V", target_percentage=0, price_per_share=50),
            TargetInstrument(name="U", target_percentage=100, price_per_share=10),
        ])
        outcome = self.adapter.solve(model)
        self.assertEqual(_values_by_etf(model, outcome)["V"], 0)

    def test_infeasible_when_minimums_exceed_budget(self):
        model = _model([
            TargetInstrument(name="A", target_percentage=80, price_per_share=10, allowed_deviation=0),
            TargetInstrument(name="B", target_percentage=80, price_per_share=10, allowed_deviation=0),
        ])
        outcome = self.adapter.solve(model)
        self.assertFalse(outcome.feasible)
        self.assertEqual(outcome.status, "INFEASIBLE")

    def test_empty_range_is_infeasible_without_solving(self):
        variable = ShareVariable(
            name="shares_0_A", etf_name="A", price=10, target_percentage=100, target_value=1000,
            allowed_deviation=5, min_shares=5, max_shares=4,
        )
        with patch("budget_optimizer.solver.cp_model.CpSolver") as solver_cls:
            outcome = self.adapter.solve(BudgetModel(liquidation_budget=1000, variables=(variable,)))
        self.assertFalse(outcome.feasible)
        solver_cls.assert_not_called()


class TestSolveWithTimeout(unittest.IsolatedAsyncioTestCase):

    async def test_returns_outcome(self):
        adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10, num_workers=1))
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=100)])
        outcome = await adapter.solve_with_timeout(model)
        self.assertTrue(outcome.feasible)
        self.assertEqual(_values_by_etf(model, outcome), {"A": 10})

    async def test_slow_solve_raises_timeout(self):
        adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10, timeout_grace_seconds=0))
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=100)])

        with patch.object(adapter, "solve", side_effect=lambda m, t: time.sleep(0.5)):
            with self.assertRaises(SolverTimeout) as ctx:
                await adapter.solve_with_timeout(model, timeout_seconds=0.1)
        self.assertEqual(ctx.exception.timeout_seconds, 0.1)

    async def test_solution_at_time_limit_is_kept(self):
        adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10, timeout_grace_seconds=1))
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=100)])

        def finishes_late(m, t):
            time.sleep(0.3)
            return SolverOutcome(feasible=True, values={"shares_0_A": 10}, status="FEASIBLE")

        with patch.object(adapter, "solve", side_effect=finishes_late):
            outcome = await adapter.solve_with_timeout(model, timeout_seconds=0.1)
        self.assertEqual(outcome.status, "FEASIBLE")

    async def test_internal_error_raises_fault(self):
        adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10))
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=100)])

        with patch.object(adapter, "solve", side_effect=RuntimeError("solver crashed")):
            with self.assertRaises(SolverFault):
                await adapter.solve_with_timeout(model)

    async def test_solver_errors_pass_through(self):
        adapter = MilpSolverAdapter(SolverConfig(timeout_seconds=10))
        model = _model([TargetInstrument(name="A", target_percentage=100, price_per_share=100)])

        with patch.object(adapter, "solve", side_effect=SolverTimeout(10)):
            with self.assertRaises(SolverTimeout):
                await adapter.solve_with_timeout(model)


if __name__ == "__main__":
    unittest.main()
