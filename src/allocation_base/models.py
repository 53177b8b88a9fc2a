from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from .exceptions import ValidationError

class WireModel(BaseModel):
    """Immutable model exchanged over the request/response contract (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)

# Request models
class Holding(WireModel):
    """A currently-owned position"""
    name: str
    shares: int
    price: float

    @property
    def value(self) -> float:
        return self.shares * self.price

class TargetInstrument(WireModel):
    """A desired allocation target"""
    name: str
    target_percentage: float
    price_per_share: float
    allowed_deviation: float = 5.0  # percentage points

class Objectives(WireModel):
    """Tunable weighting hints; consumed by the iterative optimizer, never hard constraints"""
    use_all_budget: bool = False
    budget_weight: float = 0.7
    fairness_weight: float = 0.3
    maximize_utilization: bool = False
    utilization_deviation: float = 5.0
    tolerance_band: float = 0.05  # fraction, 0.05 == 5 percentage points

class OptimizationStrategy(str, Enum):
    """Heuristic fallback strategy identifiers"""
    MINIMIZE_LEFTOVER = 'minimize-leftover'
    MAXIMIZE_SHARES = 'maximize-shares'
    MOMENTUM_WEIGHTED = 'momentum-weighted'
    ENHANCED_BUDGET = 'enhanced-budget'

class OptimizationRequest(WireModel):
    """One optimization call"""
    current_holdings: List[Holding] = Field(default_factory=list)
    target_etfs: List[TargetInstrument] = Field(alias='targetETFs')
    extra_cash: float
    objectives: Objectives = Field(default_factory=Objectives)
    optimization_strategy: OptimizationStrategy = OptimizationStrategy.MINIMIZE_LEFTOVER
    momentum_scores: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> 'OptimizationRequest':
        """Parse a wire payload, reporting shape errors as ValidationError"""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed optimization request: {e}") from e

    @property
    def holdings_value(self) -> float:
        return sum(h.value for h in self.current_holdings)

    @property
    def liquidation_budget(self) -> float:
        return self.extra_cash + self.holdings_value

    @property
    def target_names(self) -> List[str]:
        return [t.name for t in self.target_etfs]

    def current_shares_of(self, name: str) -> int:
        return sum(h.shares for h in self.current_holdings if h.name == name)

    def with_deviations(self, deviations: Dict[str, float]) -> 'OptimizationRequest':
        """Copy of this request with per-target allowed deviation overrides"""
        targets = [
            t.model_copy(update={'allowed_deviation': deviations[t.name]}) if t.name in deviations else t
            for t in self.target_etfs
        ]
        return self.model_copy(update={'target_etfs': targets})

    def with_objectives(self, **overrides) -> 'OptimizationRequest':
        return self.model_copy(update={'objectives': self.objectives.model_copy(update=overrides)})

# Result models
class AllocationAction(str, Enum):
    BUY = 'BUY'
    SELL = 'SELL'
    REBALANCE = 'REBALANCE'
    HOLD = 'HOLD'

class Allocation(WireModel):
    """Result row per target instrument"""
    etf_name: str
    price_per_share: float
    current_shares: int
    final_shares: int
    shares_to_buy: int
    shares_to_sell: int
    cost_of_purchase: float
    final_value: float
    target_percentage: float
    actual_percentage: float
    deviation: float
    action: AllocationAction
    tolerance_compliant: Optional[bool] = None
    tolerance_deviation: Optional[float] = None

class HoldingToSell(WireModel):
    """Instrument held but absent from targets; always fully liquidated"""
    name: str
    shares: int
    price_per_share: float
    total_value: float

class SolverStatus(str, Enum):
    OPTIMAL = 'optimal'
    HEURISTIC = 'heuristic'
    HEURISTIC_FORCED = 'heuristic-forced'
    INFEASIBLE = 'infeasible'

class OptimizationMetrics(WireModel):
    total_available_budget: float
    total_budget_used: float
    unused_budget: float
    unused_percentage: float
    optimization_time: float = 0.0  # milliseconds

    @property
    def utilization_rate(self) -> float:
        return 100 - self.unused_percentage

class ToleranceMetrics(WireModel):
    tolerance_band: float
    compliance_rate: float
    compliant_allocations: int
    total_allocations: int

# Enhanced optimizer phase records
class PriceRatio(WireModel):
    """Price ratio between two target instruments, expensive over cheap"""
    expensive: str
    cheap: str
    ratio: float
    integer_multiple: int
    closeness: float
    combinable: bool

class PriceRatioAnalysis(WireModel):
    ratios: List[PriceRatio] = Field(default_factory=list)
    cheapest_etf: Optional[str] = None
    most_expensive_etf: Optional[str] = None

    @property
    def opportunities(self) -> List[PriceRatio]:
        return [r for r in self.ratios if r.combinable]

class IterationRecord(WireModel):
    iteration: int
    action: str
    unused_before: float
    unused_after: float
    accepted: bool

class OptimizationPhases(WireModel):
    initial: OptimizationMetrics
    adjusted: OptimizationMetrics
    final: OptimizationMetrics
    price_ratio_analysis: PriceRatioAnalysis
    dynamic_deviations: Dict[str, float] = Field(default_factory=dict)
    iterations: List[IterationRecord] = Field(default_factory=list)
    converged: bool = False

class OptimizationResult(WireModel):
    """Full optimizer response"""
    solver_status: SolverStatus
    allocations: List[Allocation] = Field(default_factory=list)
    holdings_to_sell: List[HoldingToSell] = Field(default_factory=list)
    optimization_metrics: OptimizationMetrics
    tolerance_metrics: Optional[ToleranceMetrics] = None
    fallback_used: bool = False
    fallback_reason: Optional[str] = None
    cached: bool = False
    strategy: Optional[OptimizationStrategy] = None
    diagnostics: List[str] = Field(default_factory=list)
    optimization_phases: Optional[OptimizationPhases] = None
    enhanced_optimization: bool = False

    @property
    def unused_percentage(self) -> float:
        return self.optimization_metrics.unused_percentage

    @property
    def final_shares(self) -> Dict[str, int]:
        return {a.etf_name: a.final_shares for a in self.allocations}

    def allocation_for(self, name: str) -> Optional[Allocation]:
        return next((a for a in self.allocations if a.etf_name == name), None)

# Pre-flight and reporting models
class RequestCheck(WireModel):
    """Non-raising pre-flight verdict on a request"""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

class RecommendationPriority(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'

class Recommendation(WireModel):
    type: str
    priority: RecommendationPriority
    message: str
    action_items: List[str] = Field(default_factory=list)

class ReportSummary(WireModel):
    total_budget: float
    utilized_budget: float
    unused_budget: float
    utilization_rate: float
    optimization_time: float

class AllocationAnalysis(WireModel):
    total_allocations: int
    buy_allocations: int
    sell_allocations: int
    holdings_to_sell: int

class OptimizationReport(WireModel):
    summary: ReportSummary
    solver_status: SolverStatus
    fallback_used: bool
    enhanced_optimization: bool
    allocation_analysis: AllocationAnalysis
    tolerance_analysis: Optional[ToleranceMetrics] = None
    phase_analysis: Optional[OptimizationPhases] = None
    recommendations: List[Recommendation] = Field(default_factory=list)
    quality_score: int

class OptimizationComparison(WireModel):
    """Plain service result against the five-phase result for one request"""
    baseline: OptimizationResult
    enhanced: OptimizationResult
    baseline_utilization: float
    enhanced_utilization: float
    improvement: float
