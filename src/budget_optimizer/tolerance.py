"""Read-only tolerance annotation: deviation from target and pass/fail against the band"""

import logging
from typing import Optional
from allocation_base import OptimizationResult, ToleranceMetrics

DEFAULT_TOLERANCE_BAND = 0.05


class ToleranceValidator:
    """Annotate allocations with tolerance compliance; share counts are never touched"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, result: OptimizationResult, tolerance_band: float = DEFAULT_TOLERANCE_BAND) -> OptimizationResult:
        """
        Args:
            result: result to annotate
            tolerance_band: allowed deviation as a fraction (0.05 == 5 percentage points)

        Returns:
            A new result with `toleranceCompliant` set on every positively-weighted
            allocation and aggregate `toleranceMetrics`
        """
        limit = tolerance_band * 100
        allocations = []
        compliant = 0
        measured = 0

        for allocation in result.allocations:
            if allocation.target_percentage <= 0:
                allocations.append(allocation)
                continue

            deviation = abs(allocation.actual_percentage - allocation.target_percentage)
            within = deviation <= limit + 1e-9
            measured += 1
            compliant += int(within)

            self.logger.debug(
                f"Tolerance {allocation.etf_name}: target {allocation.target_percentage:.2f}%, "
                f"actual {allocation.actual_percentage:.2f}%, deviation {deviation:.2f}% "
                f"({'within' if within else 'outside'} ±{limit:g}%)"
            )
            allocations.append(allocation.model_copy(update={
                'tolerance_compliant': within,
                'tolerance_deviation': deviation,
            }))

        compliance_rate = compliant / measured * 100 if measured else 0.0
        self.logger.debug(f"Tolerance compliance {compliance_rate:.1f}% ({compliant}/{measured})")

        return result.model_copy(update={
            'allocations': allocations,
            'tolerance_metrics': ToleranceMetrics(
                tolerance_band=tolerance_band,
                compliance_rate=compliance_rate,
                compliant_allocations=compliant,
                total_allocations=measured,
            ),
        })
