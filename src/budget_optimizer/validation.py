"""
Request validation.

`validate_request` is the fatal gate in front of model building: any error
raises ValidationError and the request is never retried. `check_request` runs
the same checks plus advisory ones and reports everything without raising.
"""

import logging
import math
from collections import Counter
from typing import List, Optional

from allocation_base import OptimizationRequest, RequestCheck, ValidationError
from optimizer_config import OptimizerConfig, get_config

logger = logging.getLogger(__name__)

SMALL_CASH_THRESHOLD = 100.0
MAX_RECOMMENDED_TARGETS = 15
HIGH_DEVIATION_PERCENT = 50.0
NARROW_BAND_PERCENT = 10.0
TARGET_SUM_ADVISORY_PERCENT = 5.0


def _is_positive_number(value: float) -> bool:
    return value is not None and not math.isnan(value) and value > 0


def request_errors(request: OptimizationRequest) -> List[str]:
    """Every reason the request cannot be optimized, in input order"""
    errors = []

    if not request.target_etfs:
        errors.append("Target ETFs list is required and cannot be empty")

    for index, target in enumerate(request.target_etfs):
        if not target.name or not target.name.strip():
            errors.append(f"Target ETF at index {index} must have a valid name")
            continue
        if not _is_positive_number(target.price_per_share):
            errors.append(f"Target ETF {target.name} must have a valid positive price")
        if math.isnan(target.target_percentage) or target.target_percentage < 0:
            errors.append(f"Target ETF {target.name} must have a non-negative target percentage")
        if math.isnan(target.allowed_deviation) or target.allowed_deviation < 0:
            errors.append(f"Target ETF {target.name} must have a non-negative allowed deviation")

    duplicates = sorted(name for name, count in Counter(request.target_names).items() if name and count > 1)
    if duplicates:
        errors.append(f"Duplicate target ETFs: {', '.join(duplicates)}")

    for index, holding in enumerate(request.current_holdings):
        if not holding.name or not holding.name.strip():
            errors.append(f"Current holding at index {index} must have a valid name")
            continue
        if holding.shares < 0:
            errors.append(f"Current holding {holding.name} must have non-negative shares")
        if not _is_positive_number(holding.price):
            errors.append(f"Current holding {holding.name} must have a valid positive price")

    if math.isnan(request.extra_cash) or request.extra_cash < 0:
        errors.append("Extra cash must be a non-negative number")

    return errors


def validate_request(request: OptimizationRequest, config: Optional[OptimizerConfig] = None) -> None:
    """
    Reject a malformed request before model building.

    Raises:
        ValidationError: listing every problem found
    """
    config = config or get_config().optimizer
    errors = request_errors(request)
    if errors:
        raise ValidationError("; ".join(errors))

    percentage_total = sum(t.target_percentage for t in request.target_etfs)
    if abs(percentage_total - 100) > config.target_sum_warning_percent:
        logger.warning(f"Target percentages sum to {percentage_total:.2f}%, not 100%")


def check_request(request: OptimizationRequest) -> RequestCheck:
    """Pre-flight verdict with warnings and recommendations; never raises"""
    errors = request_errors(request)
    warnings = []
    recommendations = []

    percentage_total = sum(t.target_percentage for t in request.target_etfs)
    if request.target_etfs and abs(percentage_total - 100) > TARGET_SUM_ADVISORY_PERCENT:
        warnings.append(f"Target percentages sum to {percentage_total:.1f}% instead of 100%")

    if not errors and request.liquidation_budget <= 0:
        warnings.append("No extra cash and no holdings to redeploy: nothing will be allocated")

    if 0 < request.extra_cash < SMALL_CASH_THRESHOLD:
        warnings.append("Very small extra cash may result in limited optimization opportunities")

    if len(request.target_etfs) > MAX_RECOMMENDED_TARGETS:
        warnings.append("Large number of target ETFs may reduce optimization effectiveness")

    wide = [t.name for t in request.target_etfs if t.allowed_deviation > HIGH_DEVIATION_PERCENT]
    if wide:
        warnings.append(f"High deviation bands may result in allocations far from targets: {', '.join(wide)}")

    if request.objectives.use_all_budget and any(
        t.allowed_deviation < NARROW_BAND_PERCENT for t in request.target_etfs if t.target_percentage > 0
    ):
        recommendations.append("Consider increasing deviation bands when maximizing budget utilization")

    return RequestCheck(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        recommendations=recommendations,
    )
