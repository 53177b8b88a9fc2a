"""
Service container using dependency-injector for the budget optimizer
"""
from dependency_injector import containers, providers

from optimizer_config import get_config
from .cache import build_result_cache
from .enhanced import EnhancedBudgetOptimizer
from .heuristics import HeuristicFallbackEngine
from .model_builder import BudgetModelBuilder
from .service import PortfolioOptimizationService
from .solution import SolutionProcessor
from .solver import MilpSolverAdapter
from .tolerance import ToleranceValidator


class OptimizerContainer(containers.DeclarativeContainer):
    """DI Container for the optimization engine"""

    # Configuration (override with providers.Object(AppConfig(...)) in tests)
    app_config = providers.Singleton(get_config)

    # Result cache backend selected by cache.backend
    result_cache = providers.Singleton(
        build_result_cache,
        config=app_config.provided.cache
    )

    # Engine components
    model_builder = providers.Singleton(BudgetModelBuilder)

    solver = providers.Singleton(
        MilpSolverAdapter,
        config=app_config.provided.solver
    )

    solution_processor = providers.Singleton(SolutionProcessor)

    heuristics = providers.Singleton(
        HeuristicFallbackEngine,
        processor=solution_processor,
        config=app_config.provided.heuristics
    )

    tolerance_validator = providers.Singleton(ToleranceValidator)

    # Orchestration
    optimization_service = providers.Singleton(
        PortfolioOptimizationService,
        cache=result_cache,
        model_builder=model_builder,
        solver=solver,
        processor=solution_processor,
        heuristics=heuristics,
        tolerance_validator=tolerance_validator,
        config=app_config
    )

    enhanced_optimizer = providers.Singleton(
        EnhancedBudgetOptimizer,
        service=optimization_service,
        processor=solution_processor,
        tolerance_validator=tolerance_validator,
        config=app_config.provided.enhanced
    )
