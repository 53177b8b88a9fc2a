"""Pairwise price ratios between positively weighted targets"""

from itertools import combinations
from typing import List, Optional

from allocation_base import TargetInstrument, PriceRatio, PriceRatioAnalysis
from optimizer_config import EnhancedConfig, get_config


def analyze_price_ratios(targets: List[TargetInstrument], config: Optional[EnhancedConfig] = None) -> PriceRatioAnalysis:
    """
    Ratio of every pair, expensive over cheap. A pair is combinable when the ratio
    exceeds `min_combinable_ratio` and sits within `near_integer_tolerance` of a
    whole number, so k shares of the cheap one stand in for one expensive share.
    """
    config = config or get_config().enhanced
    buyable = [t for t in targets if t.target_percentage > 0 and t.price_per_share > 0]
    if not buyable:
        return PriceRatioAnalysis()

    ratios = []
    for first, second in combinations(buyable, 2):
        expensive, cheap = (first, second) if first.price_per_share >= second.price_per_share else (second, first)
        ratio = expensive.price_per_share / cheap.price_per_share
        multiple = round(ratio)
        closeness = abs(ratio - multiple)
        ratios.append(PriceRatio(
            expensive=expensive.name,
            cheap=cheap.name,
            ratio=ratio,
            integer_multiple=multiple,
            closeness=closeness,
            combinable=ratio > config.min_combinable_ratio and closeness < config.near_integer_tolerance,
        ))

    return PriceRatioAnalysis(
        ratios=ratios,
        cheapest_etf=min(buyable, key=lambda t: t.price_per_share).name,
        most_expensive_etf=max(buyable, key=lambda t: t.price_per_share).name,
    )
