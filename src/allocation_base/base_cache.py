from abc import ABC, abstractmethod
from typing import Optional

class ResultCache(ABC):
    """Abstract key-value store for serialized optimization results"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored payload, or None on a miss or expired entry"""
        pass

    @abstractmethod
    async def set(self, key: str, payload: str, ttl_seconds: Optional[int] = None):
        """Store a payload atomically, replacing any previous entry"""
        pass

    @abstractmethod
    async def delete(self, key: str):
        """Remove a single entry"""
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry owned by this cache and return how many were removed"""
        pass
