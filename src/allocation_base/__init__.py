from .base_cache import ResultCache
from .sources import PriceSource, TargetWeightSource
from .models import (
    # Request models
    Holding,
    TargetInstrument,
    Objectives,
    OptimizationStrategy,
    OptimizationRequest,
    # Result models
    Allocation,
    AllocationAction,
    HoldingToSell,
    SolverStatus,
    OptimizationMetrics,
    ToleranceMetrics,
    OptimizationResult,
    # Enhanced optimizer phase records
    PriceRatio,
    PriceRatioAnalysis,
    IterationRecord,
    OptimizationPhases,
    # Pre-flight and reporting models
    RequestCheck,
    RecommendationPriority,
    Recommendation,
    ReportSummary,
    AllocationAnalysis,
    OptimizationReport,
    OptimizationComparison,
)
from .exceptions import (
    OptimizerError,
    ValidationError,
    ModelError,
    SolverTimeout,
    SolverFault,
    CacheFault,
)

__version__ = "1.0.0"

__all__ = [
    "ResultCache",
    "PriceSource",
    "TargetWeightSource",
    "Holding",
    "TargetInstrument",
    "Objectives",
    "OptimizationStrategy",
    "OptimizationRequest",
    "Allocation",
    "AllocationAction",
    "HoldingToSell",
    "SolverStatus",
    "OptimizationMetrics",
    "ToleranceMetrics",
    "OptimizationResult",
    "PriceRatio",
    "PriceRatioAnalysis",
    "IterationRecord",
    "OptimizationPhases",
    "RequestCheck",
    "RecommendationPriority",
    "Recommendation",
    "ReportSummary",
    "AllocationAnalysis",
    "OptimizationReport",
    "OptimizationComparison",
    "OptimizerError",
    "ValidationError",
    "ModelError",
    "SolverTimeout",
    "SolverFault",
    "CacheFault",
    "__version__",
]
