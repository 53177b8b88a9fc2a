"""Operator-facing optimization report with recommendations"""

from typing import List

from allocation_base import (
    OptimizationResult, OptimizationReport, ReportSummary, AllocationAnalysis,
    Recommendation, RecommendationPriority, SolverStatus,
)

HIGH_UNUSED_PERCENT = 10.0
LOW_COMPLIANCE_PERCENT = 80.0

_QUALITY_WEIGHTS = {
    'utilization': 0.4,
    'compliance': 0.3,
    'solver': 0.3,
}

_SOLVER_SCORES = {
    SolverStatus.OPTIMAL: 100,
    SolverStatus.HEURISTIC: 75,
    SolverStatus.HEURISTIC_FORCED: 50,
    SolverStatus.INFEASIBLE: 0,
}


def generate_recommendations(result: OptimizationResult) -> List[Recommendation]:
    recommendations = []
    unused = result.unused_percentage

    if unused > HIGH_UNUSED_PERCENT:
        recommendations.append(Recommendation(
            type='budget_utilization',
            priority=RecommendationPriority.HIGH,
            message=f"High unused cash ({unused:.1f}%). Consider increasing deviation bands or adding more target ETFs.",
            action_items=[
                'Increase allowedDeviation to 30-50%',
                'Add more ETF options to the target selection',
            ],
        ))

    tolerance = result.tolerance_metrics
    if tolerance is not None and tolerance.compliance_rate < LOW_COMPLIANCE_PERCENT:
        recommendations.append(Recommendation(
            type='tolerance_compliance',
            priority=RecommendationPriority.MEDIUM,
            message=f"Low tolerance compliance ({tolerance.compliance_rate:.1f}%). Review allocation targets.",
            action_items=[
                'Review target allocation percentages',
                'Consider adjusting the tolerance band',
            ],
        ))

    if result.fallback_used:
        recommendations.append(Recommendation(
            type='optimization_quality',
            priority=RecommendationPriority.LOW,
            message='Optimization used heuristic fallback. Consider reviewing constraints.',
            action_items=[
                'Check that target percentages sum to 100',
                'Review ETF price data accuracy',
            ],
        ))

    return recommendations


def quality_score(result: OptimizationResult) -> int:
    """0-100 blend of utilization, tolerance compliance and how the allocation was produced"""
    compliance = result.tolerance_metrics.compliance_rate if result.tolerance_metrics else 0.0
    score = (
        max(0.0, result.optimization_metrics.utilization_rate) * _QUALITY_WEIGHTS['utilization']
        + compliance * _QUALITY_WEIGHTS['compliance']
        + _SOLVER_SCORES[result.solver_status] * _QUALITY_WEIGHTS['solver']
    )
    return int(round(score))


def generate_optimization_report(result: OptimizationResult) -> OptimizationReport:
    metrics = result.optimization_metrics
    return OptimizationReport(
        summary=ReportSummary(
            total_budget=metrics.total_available_budget,
            utilized_budget=metrics.total_budget_used,
            unused_budget=metrics.unused_budget,
            utilization_rate=metrics.utilization_rate,
            optimization_time=metrics.optimization_time,
        ),
        solver_status=result.solver_status,
        fallback_used=result.fallback_used,
        enhanced_optimization=result.enhanced_optimization,
        allocation_analysis=AllocationAnalysis(
            total_allocations=len(result.allocations),
            buy_allocations=sum(1 for a in result.allocations if a.shares_to_buy > 0),
            sell_allocations=sum(1 for a in result.allocations if a.shares_to_sell > 0),
            holdings_to_sell=len(result.holdings_to_sell),
        ),
        tolerance_analysis=result.tolerance_metrics,
        phase_analysis=result.optimization_phases,
        recommendations=generate_recommendations(result),
        quality_score=quality_score(result),
    )
