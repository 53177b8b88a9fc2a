"""
Five-phase iterative optimizer layered on the portfolio optimization service.

Phases: a widened first solve, price-ratio analysis, dynamic per-target
deviation bands, an escalating rebalancing loop, and a final tolerance pass.
Every phase returns a fresh OptimizationResult; nothing is adjusted in place.
"""
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from allocation_base import (
    OptimizationRequest, OptimizationResult, OptimizationComparison, OptimizationPhases,
    PriceRatioAnalysis, IterationRecord,
)
from optimizer_config import EnhancedConfig, get_config
from .context import OptimizationContext, get_current_context, set_current_context, set_current_phase, clear_current_context
from .logger import AppLogger
from .model_builder import floor_shares
from .price_ratios import analyze_price_ratios
from .service import PortfolioOptimizationService
from .solution import SolutionProcessor
from .tolerance import ToleranceValidator

app_logger = AppLogger(__name__)

_AFFORD_EPSILON = 1e-9

PRICE_RATIO_OPTIMIZATION = 'price_ratio_optimization'
RESIDUAL_BUDGET_UTILIZATION = 'residual_budget_utilization'
TOLERANCE_BAND_WIDENING = 'tolerance_band_widening'
CONSTRAINT_RELAXATION = 'constraint_relaxation'


class EnhancedBudgetOptimizer:
    """Squeeze idle cash out of an allocation by progressively relaxing constraints"""

    def __init__(self, service: PortfolioOptimizationService, processor: Optional[SolutionProcessor] = None,
                 tolerance_validator: Optional[ToleranceValidator] = None,
                 config: Optional[EnhancedConfig] = None):
        self.service = service
        self.processor = processor or SolutionProcessor()
        self.tolerance_validator = tolerance_validator or ToleranceValidator()
        self.config = config or get_config().enhanced

    async def optimize_budget_with_tolerance(self, request: OptimizationRequest,
                                             use_cache: bool = True) -> OptimizationResult:
        """
        Run all five phases.

        Returns:
            The converged result with `optimizationPhases` attached and
            `enhancedOptimization` set

        Raises:
            ValidationError: the request is malformed
        """
        token = None
        if get_current_context() is None:
            token = set_current_context(OptimizationContext(
                request_id=uuid.uuid4().hex[:12],
                strategy=f"enhanced/{request.optimization_strategy.value}",
            ))

        try:
            cache_key = f"{self.service.generate_cache_key(request)}:enhanced" if use_cache else None
            if cache_key:
                cached = await self.service.get_cached_result(cache_key)
                if cached is not None:
                    return cached

            result = await self._run_phases(request)

            if cache_key:
                await self.service.store_result(cache_key, result)
            return result
        finally:
            set_current_phase(None)
            if token is not None:
                clear_current_context(token)

    async def compare(self, request: OptimizationRequest) -> OptimizationComparison:
        """Plain service call against the five-phase pipeline on the same request"""
        baseline = await self.service.optimize_portfolio(request)
        enhanced = await self.optimize_budget_with_tolerance(request)
        baseline_utilization = baseline.optimization_metrics.utilization_rate
        enhanced_utilization = enhanced.optimization_metrics.utilization_rate

        app_logger.log_info(
            f"Utilization baseline {baseline_utilization:.2f}% vs enhanced {enhanced_utilization:.2f}%"
        )
        return OptimizationComparison(
            baseline=baseline,
            enhanced=enhanced,
            baseline_utilization=baseline_utilization,
            enhanced_utilization=enhanced_utilization,
            improvement=enhanced_utilization - baseline_utilization,
        )

    async def _run_phases(self, request: OptimizationRequest) -> OptimizationResult:
        start = time.perf_counter()

        set_current_phase('enhanced:initial')
        initial = await self.initial_pass(request)

        set_current_phase('enhanced:price_ratios')
        analysis = analyze_price_ratios(request.target_etfs, self.config)
        for pair in analysis.opportunities:
            app_logger.log_debug(
                f"Combinable pair: 1x {pair.expensive} ~ {pair.integer_multiple}x {pair.cheap} (ratio {pair.ratio:.3f})"
            )

        set_current_phase('enhanced:dynamic_adjustment')
        adjusted, deviations = await self.dynamic_adjustment(request, initial, analysis)

        set_current_phase('enhanced:iterative_rebalancing')
        final, iterations, converged = await self.iterative_rebalancing(request, adjusted, analysis, deviations)

        set_current_phase('enhanced:tolerance')
        validated = self.tolerance_validator.validate(final, request.objectives.tolerance_band)

        elapsed_ms = (time.perf_counter() - start) * 1000
        app_logger.log_info(
            f"Enhanced optimization finished in {elapsed_ms:.1f}ms: "
            f"{initial.optimization_metrics.utilization_rate:.2f}% -> "
            f"{validated.optimization_metrics.utilization_rate:.2f}% utilized"
        )

        return validated.model_copy(update={
            'optimization_metrics': validated.optimization_metrics.model_copy(update={'optimization_time': elapsed_ms}),
            'optimization_phases': OptimizationPhases(
                initial=initial.optimization_metrics,
                adjusted=adjusted.optimization_metrics,
                final=final.optimization_metrics,
                price_ratio_analysis=analysis,
                dynamic_deviations=deviations,
                iterations=iterations,
                converged=converged,
            ),
            'enhanced_optimization': True,
            'cached': False,
        })

    async def initial_pass(self, request: OptimizationRequest) -> OptimizationResult:
        """Phase 1: every band widened to the initial deviation, objectives tilted toward budget use"""
        widened = request.with_deviations(
            {t.name: self.config.initial_deviation_percent for t in request.target_etfs}
        ).with_objectives(use_all_budget=True, budget_weight=0.8, fairness_weight=0.2, maximize_utilization=True)

        result = await self.service.optimize_portfolio(widened, use_cache=False)
        app_logger.log_info(
            f"Initial pass: {result.solver_status.value}, {result.unused_percentage:.2f}% unused"
        )
        return result

    def dynamic_deviations(self, request: OptimizationRequest, unused_budget: float,
                           analysis: PriceRatioAnalysis) -> Dict[str, float]:
        """
        Per-target band: wider with more idle cash, for cheap instruments and for
        small weights; tighter for expensive instruments and large weights.
        """
        prices = {t.name: t.price_per_share for t in request.target_etfs}
        cheapest = prices.get(analysis.cheapest_etf)
        most_expensive = prices.get(analysis.most_expensive_etf)
        base = min(50.0, 20.0 + unused_budget / 1000)

        deviations = {}
        for target in request.target_etfs:
            if target.target_percentage == 0:
                continue

            deviation = base
            if cheapest is not None and target.price_per_share <= cheapest * 1.2:
                deviation += 10
            elif most_expensive is not None and target.price_per_share >= most_expensive * 0.8:
                deviation -= 5

            if target.target_percentage < 5:
                deviation += 15
            elif target.target_percentage > 30:
                deviation -= 5

            deviations[target.name] = max(self.config.min_deviation_percent,
                                          min(self.config.max_deviation_percent, deviation))
        return deviations

    async def dynamic_adjustment(self, request: OptimizationRequest, initial: OptimizationResult,
                                 analysis: PriceRatioAnalysis) -> Tuple[OptimizationResult, Dict[str, float]]:
        """Phase 3: re-solve with per-target bands when the initial pass left too much unused"""
        deviations = {t.name: self.config.initial_deviation_percent for t in request.target_etfs}
        if initial.unused_percentage <= self.config.dynamic_trigger_percent:
            app_logger.log_debug(
                f"Unused {initial.unused_percentage:.2f}% within {self.config.dynamic_trigger_percent:g}%, "
                f"skipping dynamic adjustment"
            )
            return initial, deviations

        deviations.update(self.dynamic_deviations(request, initial.optimization_metrics.unused_budget, analysis))
        app_logger.log_info(f"Dynamic deviation bands: {deviations}")

        adjusted_request = request.with_deviations(deviations).with_objectives(
            use_all_budget=True, budget_weight=0.9, fairness_weight=0.1
        )
        adjusted = await self.service.optimize_portfolio(adjusted_request, use_cache=False)

        if adjusted.unused_percentage <= initial.unused_percentage:
            return adjusted, deviations

        app_logger.log_info(
            f"Dynamic bands left {adjusted.unused_percentage:.2f}% unused, "
            f"keeping initial pass at {initial.unused_percentage:.2f}%"
        )
        return initial, deviations

    async def iterative_rebalancing(self, request: OptimizationRequest, start: OptimizationResult,
                                    analysis: PriceRatioAnalysis, deviations: Dict[str, float]
                                    ) -> Tuple[OptimizationResult, List[IterationRecord], bool]:
        """
        Phase 4: escalate through the rebalancing actions in order. An action is
        repeated while it improves unused percentage by at least the convergence
        threshold; once every action has stopped improving the loop has converged.
        """
        deviations = dict(deviations)
        actions: List[Tuple[str, Callable]] = [
            (PRICE_RATIO_OPTIMIZATION, lambda current: self._price_ratio_fill(request, current, analysis)),
            (RESIDUAL_BUDGET_UTILIZATION, lambda current: self._residual_fill(request, current)),
            (TOLERANCE_BAND_WIDENING, lambda current: self._widen_bands(request, deviations)),
            (CONSTRAINT_RELAXATION, lambda current: self._relax_constraints(request)),
        ]

        current = start
        records: List[IterationRecord] = []
        action_index = 0
        converged = False

        for iteration in range(1, self.config.max_iterations + 1):
            if current.unused_percentage <= self.config.fine_tune_unused_percent:
                app_logger.log_debug(f"Unused {current.unused_percentage:.2f}% needs no further rebalancing")
                converged = True
                break

            name, apply = actions[action_index]
            candidate = await apply(current)
            before = current.unused_percentage
            after = candidate.unused_percentage
            accepted = after < before - _AFFORD_EPSILON
            if accepted:
                current = candidate

            records.append(IterationRecord(
                iteration=iteration,
                action=name,
                unused_before=before,
                unused_after=after,
                accepted=accepted,
            ))
            app_logger.log_debug(
                f"Iteration {iteration} {name}: {before:.2f}% -> {after:.2f}% unused "
                f"({'accepted' if accepted else 'rejected'})"
            )

            if before - after < self.config.convergence_threshold_percent:
                action_index += 1
                if action_index == len(actions):
                    converged = True
                    break

        app_logger.log_info(
            f"Iterative rebalancing ran {len(records)} iterations, "
            f"{'converged' if converged else 'hit the iteration cap'} at {current.unused_percentage:.2f}% unused"
        )
        return current, records, converged

    async def _price_ratio_fill(self, request: OptimizationRequest, current: OptimizationResult,
                                analysis: PriceRatioAnalysis) -> OptimizationResult:
        """Spend residual cash on the best whole-share combination of a combinable pair"""
        if not current.allocations:
            return current
        unused = current.optimization_metrics.unused_budget
        prices = {t.name: t.price_per_share for t in request.target_etfs}
        best: Optional[Tuple[float, Dict[str, int]]] = None

        for pair in analysis.opportunities:
            expensive_price = prices[pair.expensive]
            cheap_price = prices[pair.cheap]
            max_expensive = min(floor_shares(unused + _AFFORD_EPSILON, expensive_price),
                                self.config.max_combination_shares)
            for expensive_count in range(max_expensive + 1):
                left = unused - expensive_count * expensive_price
                cheap_count = floor_shares(left + _AFFORD_EPSILON, cheap_price)
                spend = expensive_count * expensive_price + cheap_count * cheap_price
                if spend > 0 and (best is None or spend > best[0]):
                    best = (spend, {pair.expensive: expensive_count, pair.cheap: cheap_count})

        if best is None:
            return current
        return self._with_extra_shares(request, current, best[1])

    async def _residual_fill(self, request: OptimizationRequest, current: OptimizationResult) -> OptimizationResult:
        """Top up the cheapest positively weighted instrument with whatever cash is left"""
        buyable = [t for t in request.target_etfs if t.target_percentage > 0]
        if not buyable or not current.allocations:
            return current
        cheapest = min(buyable, key=lambda t: t.price_per_share)
        count = floor_shares(current.optimization_metrics.unused_budget + _AFFORD_EPSILON, cheapest.price_per_share)
        if count == 0:
            return current
        return self._with_extra_shares(request, current, {cheapest.name: count})

    async def _widen_bands(self, request: OptimizationRequest, deviations: Dict[str, float]) -> OptimizationResult:
        for name in deviations:
            deviations[name] = min(self.config.max_deviation_percent,
                                   deviations[name] + self.config.widening_step_percent)
        widened = request.with_deviations(deviations).with_objectives(use_all_budget=True, maximize_utilization=True)
        return await self.service.optimize_portfolio(widened, use_cache=False)

    async def _relax_constraints(self, request: OptimizationRequest) -> OptimizationResult:
        relaxed = request.with_deviations(
            {t.name: self.config.max_deviation_percent for t in request.target_etfs}
        ).with_objectives(use_all_budget=True, budget_weight=1.0, fairness_weight=0.0, maximize_utilization=True)
        return await self.service.optimize_portfolio(relaxed, use_cache=False)

    def _with_extra_shares(self, request: OptimizationRequest, current: OptimizationResult,
                           extra: Dict[str, int]) -> OptimizationResult:
        shares = current.final_shares
        for name, count in extra.items():
            shares[name] = shares.get(name, 0) + count
        return self.processor.assemble(
            request,
            shares,
            current.solver_status,
            current.optimization_metrics.optimization_time,
            strategy=current.strategy,
            fallback_used=current.fallback_used,
            fallback_reason=current.fallback_reason,
            diagnostics=list(current.diagnostics),
        )

