"""
Portfolio optimization service: validation, cache read-through, solve, heuristic
fallback, tolerance annotation and cache write-through for one request.
"""
import hashlib
import json
import time
import uuid
from typing import Optional, Union

from allocation_base import (
    OptimizationRequest, OptimizationResult, ResultCache, SolverStatus,
    SolverTimeout, SolverFault, CacheFault,
)
from optimizer_config import AppConfig, get_config
from .cache import InMemoryResultCache
from .context import OptimizationContext, get_current_context, set_current_context, set_current_phase, clear_current_context
from .heuristics import HeuristicFallbackEngine
from .logger import AppLogger
from .model_builder import BudgetModelBuilder, BudgetModel, diagnose_infeasibility
from .solution import SolutionProcessor
from .solver import MilpSolverAdapter
from .tolerance import ToleranceValidator
from .validation import validate_request

app_logger = AppLogger(__name__)


class PortfolioOptimizationService:
    """Single entry point for optimizing one request; only ValidationError escapes"""

    def __init__(self, cache: Optional[ResultCache] = None, model_builder: Optional[BudgetModelBuilder] = None,
                 solver: Optional[MilpSolverAdapter] = None, processor: Optional[SolutionProcessor] = None,
                 heuristics: Optional[HeuristicFallbackEngine] = None,
                 tolerance_validator: Optional[ToleranceValidator] = None, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self.cache = cache if cache is not None else InMemoryResultCache(self.config.cache.ttl_seconds)
        self.model_builder = model_builder or BudgetModelBuilder()
        self.solver = solver or MilpSolverAdapter(self.config.solver)
        self.processor = processor or SolutionProcessor()
        self.heuristics = heuristics or HeuristicFallbackEngine(self.processor, self.config.heuristics)
        self.tolerance_validator = tolerance_validator or ToleranceValidator()

    def generate_cache_key(self, request: OptimizationRequest) -> str:
        """Stable key over everything that changes the result"""
        canonical = json.dumps(request.to_wire(), sort_keys=True, separators=(',', ':'))
        digest = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"{self.config.cache.key_prefix}{digest}"

    async def optimize_portfolio(self, request: Union[OptimizationRequest, dict],
                                 use_cache: bool = True) -> OptimizationResult:
        """
        Optimize one request.

        Args:
            request: request model or its camelCase wire dict
            use_cache: read through and write through the result cache

        Returns:
            Always a result, possibly `infeasible` or `heuristic-forced`

        Raises:
            ValidationError: the request is malformed
        """
        if isinstance(request, dict):
            request = OptimizationRequest.from_dict(request)

        token = None
        if get_current_context() is None:
            token = set_current_context(OptimizationContext(
                request_id=uuid.uuid4().hex[:12],
                strategy=request.optimization_strategy.value,
            ))

        try:
            set_current_phase('validate')
            validate_request(request, self.config.optimizer)

            cache_key = self.generate_cache_key(request) if use_cache else None
            if cache_key:
                cached = await self.get_cached_result(cache_key)
                if cached is not None:
                    app_logger.log_info(f"Cache hit for {cache_key}")
                    return cached

            result = await self._compute(request)

            if cache_key:
                await self.store_result(cache_key, result)
            return result
        finally:
            set_current_phase(None)
            if token is not None:
                clear_current_context(token)

    async def clear_cache(self) -> int:
        try:
            removed = await self.cache.clear()
        except CacheFault as e:
            app_logger.log_warning(f"Cache clear failed: {e}")
            return 0
        app_logger.log_info(f"Cleared {removed} cached optimization results")
        return removed

    async def _compute(self, request: OptimizationRequest) -> OptimizationResult:
        start = time.perf_counter()
        budget = request.liquidation_budget
        app_logger.log_info(
            f"Optimizing {len(request.target_etfs)} targets with ${budget:,.2f} "
            f"(strategy {request.optimization_strategy.value})"
        )

        if budget <= 0:
            reason = "Liquidation budget is zero: no extra cash and no holdings to redeploy"
            app_logger.log_warning(reason)
            result = self.processor.infeasible_result(request, diagnostics=[reason])
        else:
            result = await self._solve(request)

        set_current_phase('tolerance')
        result = self.tolerance_validator.validate(result, request.objectives.tolerance_band)

        elapsed_ms = (time.perf_counter() - start) * 1000
        result = result.model_copy(update={
            'optimization_metrics': result.optimization_metrics.model_copy(update={'optimization_time': elapsed_ms}),
        })
        app_logger.log_info(
            f"Optimization finished: {result.solver_status.value}, "
            f"{result.optimization_metrics.utilization_rate:.2f}% utilized in {elapsed_ms:.1f}ms"
        )
        return result

    async def _solve(self, request: OptimizationRequest) -> OptimizationResult:
        set_current_phase('model')
        model = self.model_builder.build(request)

        set_current_phase('solve')
        try:
            outcome = await self.solver.solve_with_timeout(model, self.config.solver.timeout_seconds)
        except SolverTimeout as e:
            app_logger.log_warning(f"Solver timed out, falling back to heuristics: {e}")
            result = self._fallback(request, SolverStatus.HEURISTIC, f"Solver timeout: {e}")
        except SolverFault as e:
            app_logger.log_error(f"Solver failed, falling back to heuristics: {e}")
            result = self._fallback(request, SolverStatus.HEURISTIC, f"Solver fault: {e}")
        else:
            if outcome.feasible:
                result = self.processor.process(outcome, model, request)
                result = self._check_utilization(request, result)
            else:
                result = self._fallback(request, SolverStatus.HEURISTIC, "Solver reported the model infeasible",
                                        diagnostics=self._diagnose(model))
        return result

    def _check_utilization(self, request: OptimizationRequest, result: OptimizationResult) -> OptimizationResult:
        """Re-run through the heuristics when the solver leaves too much cash idle"""
        threshold = self.config.optimizer.fallback_threshold_percent
        if result.unused_percentage <= threshold or not self.config.optimizer.heuristic_fallback_enabled:
            return result

        set_current_phase('fallback')
        reason = f"Solver left {result.unused_percentage:.2f}% unused (threshold {threshold:g}%)"
        app_logger.log_info(f"{reason}; trying heuristic {request.optimization_strategy.value}")
        forced = self.heuristics.run(request, status=SolverStatus.HEURISTIC_FORCED, reason=reason)

        if forced.unused_percentage < result.unused_percentage:
            return forced

        note = (f"{reason}; heuristic {request.optimization_strategy.value} left "
                f"{forced.unused_percentage:.2f}% unused, keeping solver result")
        app_logger.log_info(note)
        return result.model_copy(update={'diagnostics': result.diagnostics + [note]})

    def _fallback(self, request: OptimizationRequest, status: SolverStatus, reason: str,
                  diagnostics: Optional[list] = None) -> OptimizationResult:
        set_current_phase('fallback')
        diagnostics = list(diagnostics or [])

        if not self.config.optimizer.heuristic_fallback_enabled:
            app_logger.log_warning(f"Heuristic fallback disabled; reporting infeasible ({reason})")
            return self.processor.infeasible_result(request, diagnostics=diagnostics + [reason])

        result = self.heuristics.run(request, status=status, reason=reason)
        if diagnostics:
            result = result.model_copy(update={'diagnostics': result.diagnostics + diagnostics})
        return result

    def _diagnose(self, model: BudgetModel) -> list:
        findings = diagnose_infeasibility(model)
        for finding in findings:
            app_logger.log_warning(f"Infeasible model: {finding}")
        return findings

    async def get_cached_result(self, key: str) -> Optional[OptimizationResult]:
        """Stored result tagged `cached`, or None on a miss, an unreadable entry or a cache fault"""
        try:
            payload = await self.cache.get(key)
        except CacheFault as e:
            app_logger.log_warning(f"Cache read failed, treating as miss: {e}")
            return None
        if payload is None:
            return None

        try:
            result = OptimizationResult.model_validate_json(payload)
        except ValueError as e:
            app_logger.log_warning(f"Discarding unreadable cache entry {key}: {e}")
            return None
        return result.model_copy(update={'cached': True})

    async def store_result(self, key: str, result: OptimizationResult):
        try:
            await self.cache.set(key, result.model_dump_json(by_alias=True), self.config.cache.ttl_seconds)
        except CacheFault as e:
            app_logger.log_warning(f"Cache write failed, result not cached: {e}")
