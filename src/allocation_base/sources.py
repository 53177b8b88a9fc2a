from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

class PriceSource(ABC):
    """Collaborator that quotes a per-unit price for a ticker"""

    @abstractmethod
    def get_price(self, ticker: str) -> float:
        """Return a positive price; may raise when no quote is available"""
        pass

class TargetWeightSource(ABC):
    """Collaborator that produces target percentages for a universe of tickers"""

    @abstractmethod
    def get_target_weights(self, universe: List[str], params: Optional[Dict[str, Any]] = None) -> Dict[str, float]:
        """Return ticker -> target percentage, summing to roughly 100"""
        pass
