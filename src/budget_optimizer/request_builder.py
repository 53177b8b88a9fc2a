"""
Assemble an OptimizationRequest from the price and target-weight collaborators.

A failed or non-positive quote falls back to the last known price (explicit
fallback first, then the price recorded on a current holding). Only a ticker
with no price at all rejects the request.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from allocation_base import (
    Holding, Objectives, OptimizationRequest, OptimizationStrategy, PriceSource,
    TargetInstrument, TargetWeightSource, ValidationError,
)

logger = logging.getLogger(__name__)


class StaticPriceSource(PriceSource):
    """Prices from a fixed ticker -> price map"""

    def __init__(self, prices: Dict[str, float]):
        self.prices = dict(prices)

    def get_price(self, ticker: str) -> float:
        try:
            return self.prices[ticker]
        except KeyError:
            raise LookupError(f"No price for {ticker}")


class StaticWeightSource(TargetWeightSource):
    """Target weights from a fixed ticker -> percentage map"""

    def __init__(self, weights: Dict[str, float]):
        self.weights = dict(weights)

    def get_target_weights(self, universe: List[str], params: Optional[Dict[str, Any]] = None) -> Dict[str, float]:
        return {ticker: self.weights[ticker] for ticker in universe if ticker in self.weights}


def _usable(price: Optional[float]) -> bool:
    return price is not None and not math.isnan(price) and price > 0


def resolve_price(ticker: str, price_source: PriceSource, fallback_prices: Dict[str, float]) -> float:
    """
    Quote `ticker`, falling back to its last known price.

    Raises:
        ValidationError: neither the source nor the fallbacks have a positive price
    """
    try:
        price = price_source.get_price(ticker)
    except Exception as e:
        logger.warning(f"Price lookup for {ticker} failed: {e}")
        price = None

    if _usable(price):
        return float(price)

    fallback = fallback_prices.get(ticker)
    if _usable(fallback):
        logger.warning(f"Using last known price ${fallback:.2f} for {ticker}")
        return float(fallback)

    raise ValidationError(f"No price available for {ticker}")


def build_optimization_request(universe: List[str], price_source: PriceSource, weight_source: TargetWeightSource,
                               extra_cash: float, current_holdings: Optional[List[Holding]] = None,
                               fallback_prices: Optional[Dict[str, float]] = None,
                               weight_params: Optional[Dict[str, Any]] = None, allowed_deviation: float = 5.0,
                               objectives: Optional[Objectives] = None,
                               strategy: OptimizationStrategy = OptimizationStrategy.MINIMIZE_LEFTOVER,
                               momentum_scores: Optional[Dict[str, float]] = None) -> OptimizationRequest:
    """
    Build a request whose targets are the weighted tickers of `universe`.
    Tickers the weight source leaves out are targeted at 0% and therefore sold.
    """
    holdings = list(current_holdings or [])
    known_prices = {h.name: h.price for h in holdings}
    known_prices.update(fallback_prices or {})

    weights = weight_source.get_target_weights(universe, weight_params)
    total = sum(weights.values())
    if weights and abs(total - 100) > 1:
        logger.warning(f"Target weights for {len(weights)} tickers sum to {total:.2f}%")

    targets = [
        TargetInstrument(
            name=ticker,
            target_percentage=weights.get(ticker, 0.0),
            price_per_share=resolve_price(ticker, price_source, known_prices),
            allowed_deviation=allowed_deviation,
        )
        for ticker in universe
    ]

    return OptimizationRequest(
        current_holdings=holdings,
        target_etfs=targets,
        extra_cash=extra_cash,
        objectives=objectives or Objectives(),
        optimization_strategy=strategy,
        momentum_scores=momentum_scores or {},
    )
