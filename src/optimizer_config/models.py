"""Pydantic models for optimizer configuration with validation."""

from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator


class SolverConfig(BaseModel):
    """Integer solver settings."""

    timeout_seconds: float = Field(
        default=30.0,
        ge=0.1,
        le=300.0,
        description="Hard wall-clock limit for a single solve"
    )
    timeout_grace_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Extra wait past the solver time limit for its best solution to be returned"
    )
    num_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Parallel search workers handed to CP-SAT"
    )
    price_scale: int = Field(
        default=10_000,
        ge=100,
        le=1_000_000,
        description="Fixed-point scale used to turn prices and budget into integers"
    )
    log_search_progress: bool = Field(
        default=False,
        description="Let CP-SAT print its search log"
    )
    fairness_tie_break: bool = Field(
        default=True,
        description="Second solve choosing, among equally invested allocations, the one closest to target values"
    )


class OptimizerConfig(BaseModel):
    """Orchestration and fallback settings."""

    fallback_threshold_percent: float = Field(
        default=8.0,
        ge=0.0,
        le=100.0,
        description="Unused budget percentage above which a solver result is re-run through the heuristics"
    )
    heuristic_fallback_enabled: bool = Field(
        default=True,
        description="When disabled an infeasible or failed solve is reported as infeasible"
    )
    default_strategy: Literal[
        'minimize-leftover', 'maximize-shares', 'momentum-weighted', 'enhanced-budget'
    ] = Field(
        default='minimize-leftover',
        description="Heuristic strategy used by the CLI when a request names none"
    )
    target_sum_warning_percent: float = Field(
        default=1.0,
        ge=0.0,
        le=50.0,
        description="Warn when target percentages drift further than this from 100"
    )


class HeuristicConfig(BaseModel):
    """Heuristic fallback engine settings."""

    max_phase_iterations: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Iteration cap for each enhanced-budget phase loop"
    )
    expansion_band_percent: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Percentage points a weight may exceed its target during bounded expansion"
    )


class EnhancedConfig(BaseModel):
    """Five-phase iterative optimizer settings."""

    initial_deviation_percent: float = Field(default=30.0, ge=0.0, le=100.0)
    dynamic_trigger_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Unused budget percentage that triggers dynamic constraint adjustment"
    )
    min_deviation_percent: float = Field(default=5.0, ge=0.0, le=100.0)
    max_deviation_percent: float = Field(default=60.0, ge=0.0, le=100.0)
    max_iterations: int = Field(default=10, ge=1, le=100)
    convergence_threshold_percent: float = Field(
        default=1.0,
        ge=0.0,
        le=100.0,
        description="Minimum unused-percentage improvement for an iteration to count as progress"
    )
    fine_tune_unused_percent: float = Field(
        default=0.5,
        ge=0.0,
        le=100.0,
        description="Stop iterating once unused budget falls to this percentage"
    )
    near_integer_tolerance: float = Field(default=0.1, gt=0.0, lt=0.5)
    min_combinable_ratio: float = Field(default=2.0, ge=1.0)
    widening_step_percent: float = Field(default=10.0, gt=0.0, le=50.0)
    max_combination_shares: int = Field(
        default=100,
        ge=0,
        le=10_000,
        description="Most shares of the expensive instrument tried when filling cash with a combinable pair"
    )

    @model_validator(mode='after')
    def check_deviation_range(self) -> 'EnhancedConfig':
        if self.min_deviation_percent > self.max_deviation_percent:
            raise ValueError(
                f"min_deviation_percent ({self.min_deviation_percent}) exceeds "
                f"max_deviation_percent ({self.max_deviation_percent})"
            )
        return self


class CacheConfig(BaseModel):
    """Result cache settings."""

    backend: Literal['memory', 'redis', 'none'] = Field(
        default='memory',
        description="Where optimization results are memoized"
    )
    ttl_seconds: int = Field(
        default=86_400,
        ge=1,
        le=30 * 86_400,
        description="How long a cached result stays valid"
    )
    redis_host: str = Field(default='localhost')
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_db: int = Field(default=0, ge=0, le=15)
    key_prefix: str = Field(default='optimization:', min_length=1)

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR'] = Field(default='INFO')
    format: Literal['json', 'text'] = Field(default='text')
    file_path: Optional[str] = Field(
        default=None,
        description="Daily-rotated, compressed log file; console only when unset"
    )


class AppConfig(BaseModel):
    """Root optimizer configuration."""

    solver: SolverConfig = Field(
        default_factory=SolverConfig,
        description="Integer solver settings"
    )
    optimizer: OptimizerConfig = Field(
        default_factory=OptimizerConfig,
        description="Orchestration and fallback settings"
    )
    heuristics: HeuristicConfig = Field(
        default_factory=HeuristicConfig,
        description="Heuristic fallback engine settings"
    )
    enhanced: EnhancedConfig = Field(
        default_factory=EnhancedConfig,
        description="Five-phase iterative optimizer settings"
    )
    cache: CacheConfig = Field(
        default_factory=CacheConfig,
        description="Result cache settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )
