"""
OR-Tools CP-SAT adapter for the budget model.

CP-SAT is integer-based, so prices and the budget cap are scaled to fixed point
by `SolverConfig.price_scale` before the model is handed over.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ortools.sat.python import cp_model

from allocation_base import SolverTimeout, SolverFault
from optimizer_config import SolverConfig, get_config
from .model_builder import BudgetModel

# Absorbs float noise such as 0.1 * 10000 == 1000.0000000000001 before rounding up
_SCALE_EPSILON = 1e-6


@dataclass(frozen=True)
class SolverOutcome:
    """Raw solver answer: feasibility plus the final-shares value of each variable"""
    feasible: bool
    values: Dict[str, int] = field(default_factory=dict)
    status: str = 'UNKNOWN'
    wall_time: float = 0.0


def _scaled_int(value: float, scale: int) -> int:
    """Convert float to scaled integer with deterministic rounding"""
    return int(round(float(value) * scale))


def _scaled_cost(price: float, scale: int) -> int:
    """Scaled share price rounded up, so the solver never spends more than the real budget"""
    return max(1, int(math.ceil(float(price) * scale - _SCALE_EPSILON)))


class MilpSolverAdapter:
    """Solve a BudgetModel with CP-SAT under a hard wall-clock limit. Never retries."""

    def __init__(self, config: Optional[SolverConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or get_config().solver
        self.logger = logger or logging.getLogger(__name__)

    async def solve_with_timeout(self, model: BudgetModel, timeout_seconds: Optional[float] = None) -> SolverOutcome:
        """
        Run the blocking solve in a worker thread raced against a timeout.
        CP-SAT stops itself at the time limit; the race allows `timeout_grace_seconds`
        on top so its best solution still comes back. On timeout the in-flight solve
        is abandoned.

        Raises:
            SolverTimeout: the solve did not finish in time
            SolverFault: the solver failed internally
        """
        timeout = timeout_seconds or self.config.timeout_seconds
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.solve, model, timeout)

        try:
            return await asyncio.wait_for(future, timeout=timeout + self.config.timeout_grace_seconds)
        except asyncio.TimeoutError:
            self.logger.warning(f"Solver abandoned after {timeout:g}s")
            raise SolverTimeout(timeout)
        except (SolverTimeout, SolverFault):
            raise
        except Exception as e:
            self.logger.error(f"Solver raised {type(e).__name__}: {e}")
            raise SolverFault(f"Solver failed: {e}") from e

    def solve(self, model: BudgetModel, time_limit_seconds: Optional[float] = None) -> SolverOutcome:
        """Build the CP-SAT model and solve it synchronously"""
        time_limit = float(time_limit_seconds or self.config.timeout_seconds)

        for var in model.variables:
            if var.min_shares > var.max_shares:
                self.logger.info(f"Empty share range for {var.etf_name}: [{var.min_shares}, {var.max_shares}]")
                return SolverOutcome(feasible=False, status='INFEASIBLE')

        cp, shares, total_spend, budget_cap = self._build(model)
        cp.maximize(total_spend)

        solver = self._new_solver(time_limit)
        self.logger.debug(
            f"Solving CP-SAT model: {len(shares)} variables, budget cap {budget_cap} "
            f"(scale {self.config.price_scale})"
        )
        status = solver.solve(cp)
        status_name = solver.status_name(status)

        if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            values = {name: int(solver.value(var)) for name, var in shares.items()}
            wall_time = solver.wall_time
            self.logger.debug(f"CP-SAT {status_name} in {wall_time:.3f}s: {values}")

            if (status == cp_model.OPTIMAL and self.config.fairness_tie_break
                    and model.balance_targets and len(shares) > 1):
                best_spend = int(round(solver.objective_value))
                remaining = time_limit - wall_time
                if remaining > 0:
                    values, tie_break_time = self._closest_to_targets(model, best_spend, values, remaining)
                    wall_time += tie_break_time

            return SolverOutcome(feasible=True, values=values, status=status_name, wall_time=wall_time)

        if status == cp_model.INFEASIBLE:
            self.logger.info(f"CP-SAT proved the model infeasible in {solver.wall_time:.3f}s")
            return SolverOutcome(feasible=False, status=status_name, wall_time=solver.wall_time)

        if status == cp_model.UNKNOWN:
            # Time limit reached before any solution was found
            raise SolverTimeout(time_limit)

        raise SolverFault(f"CP-SAT returned {status_name}: {cp.validate()}")

    def _build(self, model: BudgetModel) -> Tuple[cp_model.CpModel, Dict[str, cp_model.IntVar], cp_model.LinearExpr, int]:
        scale = self.config.price_scale
        cp = cp_model.CpModel()
        shares: Dict[str, cp_model.IntVar] = {}
        spend_terms = []

        for var in model.variables:
            shares[var.name] = cp.new_int_var(var.min_shares, var.max_shares, var.name)
            spend_terms.append(_scaled_cost(var.price, scale) * shares[var.name])

        budget_cap = int(math.floor(model.liquidation_budget * scale + 1e-6))
        total_spend = sum(spend_terms)
        cp.add(total_spend <= budget_cap)
        return cp, shares, total_spend, budget_cap

    def _new_solver(self, time_limit: float) -> cp_model.CpSolver:
        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = time_limit
        solver.parameters.num_workers = self.config.num_workers
        solver.parameters.log_search_progress = self.config.log_search_progress
        return solver

    def _closest_to_targets(self, model: BudgetModel, best_spend: int, values: Dict[str, int],
                            time_limit: float) -> Tuple[Dict[str, int], float]:
        """
        Among allocations investing exactly `best_spend`, pick the one with the
        smallest total distance from each target value. Keeps `values` if the
        second solve finds nothing in time.
        """
        scale = self.config.price_scale
        cp, shares, total_spend, _ = self._build(model)
        cp.add(total_spend == best_spend)

        distances = []
        for var in model.variables:
            price = _scaled_cost(var.price, scale)
            target = _scaled_int(var.target_value, scale)
            distance = cp.new_int_var(0, price * var.max_shares + target, f"distance_{var.name}")
            cp.add(distance >= price * shares[var.name] - target)
            cp.add(distance >= target - price * shares[var.name])
            cp.add_hint(shares[var.name], values[var.name])
            distances.append(distance)
        cp.minimize(sum(distances))

        solver = self._new_solver(time_limit)
        status = solver.solve(cp)
        if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            balanced = {name: int(solver.value(var)) for name, var in shares.items()}
            if balanced != values:
                self.logger.debug(f"Closest-to-target tie break moved allocation to {balanced}")
            return balanced, solver.wall_time

        self.logger.debug(f"Tie break returned {solver.status_name(status)}; keeping first solution")
        return values, solver.wall_time
