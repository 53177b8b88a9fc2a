"""
tests/test_model_builder.py
---------------------------
Unit tests for BudgetModelBuilder and infeasibility diagnostics.
"""

import unittest

from allocation_base import OptimizationRequest, Holding, TargetInstrument, Objectives, ModelError
from budget_optimizer.model_builder import (
    BudgetModelBuilder, BudgetModel, ShareVariable, floor_shares, diagnose_infeasibility,
)


def _request(targets, extra_cash=1000.0, holdings=None, **kwargs) -> OptimizationRequest:
    return OptimizationRequest(
        current_holdings=holdings or [],
        target_etfs=targets,
        extra_cash=extra_cash,
        **kwargs,
    )


def _variable(name, price, min_shares, max_shares, pct=50.0) -> ShareVariable:
    return ShareVariable(
        name=f"shares_{name}", etf_name=name, price=price, target_percentage=pct,
        target_value=0.0, allowed_deviation=5.0, min_shares=min_shares, max_shares=max_shares,
    )


class TestFloorShares(unittest.TestCase):

    def test_whole_units(self):
        self.assertEqual(floor_shares(1000, 300), 3)
        self.assertEqual(floor_shares(299.99, 300), 0)

    def test_float_noise_does_not_lose_a_share(self):
        self.assertEqual(floor_shares(1000 * 0.6, 300), 2)

    def test_non_positive_value(self):
        self.assertEqual(floor_shares(0, 10), 0)
        self.assertEqual(floor_shares(-5, 10), 0)


class TestBudgetModelBuilder(unittest.TestCase):

    def setUp(self):
        self.builder = BudgetModelBuilder()

    def test_share_bounds_from_tolerance_band(self):
        model = self.builder.build(_request([
            TargetInstrument(name="X", target_percentage=60, price_per_share=300),
            TargetInstrument(name="Y", target_percentage=40, price_per_share=50),
        ]))

        x, y = model.variables
        self.assertAlmostEqual(x.target_value, 600)
        self.assertEqual((x.min_shares, x.max_shares), (1, 2))
        self.assertEqual((y.min_shares, y.max_shares), (7, 8))
        self.assertEqual(model.liquidation_budget, 1000)

    def test_clean_slate_budget_includes_holdings(self):
        model = self.builder.build(_request(
            [TargetInstrument(name="A", target_percentage=100, price_per_share=100)],
            extra_cash=0,
            holdings=[Holding(name="A", shares=10, price=100)],
        ))
        self.assertEqual(model.liquidation_budget, 1000)
        self.assertEqual((model.variables[0].min_shares, model.variables[0].max_shares), (9, 10))

    def test_zero_target_forced_to_zero(self):
        model = self.builder.build(_request([
            TargetInstrument(name="V", target_percentage=0, price_per_share=50, allowed_deviation=60),
            TargetInstrument(name="U", target_percentage=100, price_per_share=10),
        ], holdings=[Holding(name="V", shares=20, price=50)]))

        v = model.variable_for("V")
        self.assertTrue(v.forced_sale)
        self.assertEqual((v.min_shares, v.max_shares), (0, 0))

    def test_wider_band_widens_bounds(self):
        targets = [TargetInstrument(name="X", target_percentage=100, price_per_share=30, allowed_deviation=30)]
        x = self.builder.build(_request(targets)).variables[0]
        # [700, 1300] / 30
        self.assertEqual((x.min_shares, x.max_shares), (23, 43))

    def test_variable_names_are_sanitized_and_unique(self):
        model = self.builder.build(_request([
            TargetInstrument(name="BRK.B", target_percentage=50, price_per_share=400),
            TargetInstrument(name="BRK B", target_percentage=50, price_per_share=400),
        ]))
        names = [v.name for v in model.variables]
        self.assertEqual(names, ["shares_0_BRK_B", "shares_1_BRK_B"])

    def test_non_positive_price_is_model_error(self):
        with self.assertRaises(ModelError):
            self.builder.build(_request([TargetInstrument(name="X", target_percentage=100, price_per_share=0)]))

    def test_negative_percentage_is_model_error(self):
        with self.assertRaises(ModelError):
            self.builder.build(_request([TargetInstrument(name="X", target_percentage=-1, price_per_share=10)]))

    def test_fairness_weight_controls_target_balancing(self):
        targets = [TargetInstrument(name="X", target_percentage=100, price_per_share=10)]
        self.assertTrue(self.builder.build(_request(targets)).balance_targets)
        relaxed = _request(targets, objectives=Objectives(budget_weight=1.0, fairness_weight=0.0))
        self.assertFalse(self.builder.build(relaxed).balance_targets)

    def test_request_is_not_mutated(self):
        request = _request([TargetInstrument(name="X", target_percentage=100, price_per_share=10)])
        before = request.model_dump()
        self.builder.build(request)
        self.assertEqual(request.model_dump(), before)


class TestDiagnoseInfeasibility(unittest.TestCase):

    def test_empty_share_range(self):
        model = BudgetModel(liquidation_budget=1000, variables=(_variable("A", 100, 3, 2),))
        findings = diagnose_infeasibility(model)
        self.assertTrue(any("lower bound 3 shares exceeds upper bound 2" in f for f in findings))

    def test_single_minimum_over_budget(self):
        model = BudgetModel(liquidation_budget=1000, variables=(_variable("A", 600, 2, 2),))
        findings = diagnose_infeasibility(model)
        self.assertTrue(any(f.startswith("A: minimum 2 shares") for f in findings))

    def test_combined_minimum_over_budget(self):
        model = BudgetModel(liquidation_budget=1000, variables=(
            _variable("A", 10, 80, 80, pct=80), _variable("B", 10, 80, 80, pct=80),
        ))
        findings = diagnose_infeasibility(model)
        self.assertEqual(len(findings), 1)
        self.assertIn("Combined minimum allocations $1,600.00 exceed budget $1,000.00", findings[0])
        self.assertEqual(model.minimum_required_spend, 1600)

    def test_no_impossible_bound(self):
        model = BudgetModel(liquidation_budget=1000, variables=(_variable("A", 10, 1, 5),))
        findings = diagnose_infeasibility(model)
        self.assertEqual(len(findings), 1)
        self.assertIn("No single bound is impossible", findings[0])


if __name__ == "__main__":
    unittest.main()
