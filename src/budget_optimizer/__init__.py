from .model_builder import BudgetModelBuilder, BudgetModel, ShareVariable, diagnose_infeasibility
from .solver import MilpSolverAdapter, SolverOutcome
from .solution import SolutionProcessor
from .heuristics import HeuristicFallbackEngine, HeuristicStrategy, STRATEGIES
from .tolerance import ToleranceValidator
from .validation import validate_request, check_request
from .cache import InMemoryResultCache, NullResultCache, RedisResultCache, build_result_cache
from .service import PortfolioOptimizationService
from .enhanced import EnhancedBudgetOptimizer
from .price_ratios import analyze_price_ratios
from .report import generate_optimization_report
from .request_builder import build_optimization_request, StaticPriceSource, StaticWeightSource
from .container import OptimizerContainer
from allocation_base import OptimizationRequest, OptimizationResult

__version__ = "1.0.0"

__all__ = [
    "BudgetModelBuilder",
    "BudgetModel",
    "ShareVariable",
    "diagnose_infeasibility",
    "MilpSolverAdapter",
    "SolverOutcome",
    "SolutionProcessor",
    "HeuristicFallbackEngine",
    "HeuristicStrategy",
    "STRATEGIES",
    "ToleranceValidator",
    "validate_request",
    "check_request",
    "InMemoryResultCache",
    "NullResultCache",
    "RedisResultCache",
    "build_result_cache",
    "PortfolioOptimizationService",
    "EnhancedBudgetOptimizer",
    "analyze_price_ratios",
    "generate_optimization_report",
    "build_optimization_request",
    "StaticPriceSource",
    "StaticWeightSource",
    "OptimizerContainer",
    "OptimizationRequest",
    "OptimizationResult",
    "__version__",
]
