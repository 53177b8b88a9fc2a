"""
Optimization context management using ContextVar for async-safe context propagation.
"""

from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class OptimizationContext:
    request_id: str
    strategy: Optional[str] = None
    phase: Optional[str] = None


# Context variable to store the current optimization across async boundaries
current_context: ContextVar[Optional[OptimizationContext]] = ContextVar('current_optimization', default=None)


def set_current_context(context: OptimizationContext) -> Token:
    """Set the current optimization in the context."""
    return current_context.set(context)


def get_current_context() -> Optional[OptimizationContext]:
    """Get the current optimization from the context."""
    return current_context.get()


def set_current_phase(phase: Optional[str]) -> None:
    """Tag the current optimization with the phase being executed."""
    context = current_context.get()
    if context is not None:
        current_context.set(replace(context, phase=phase))


def clear_current_context(token: Optional[Token] = None) -> None:
    """Clear the current optimization from the context."""
    if token is not None:
        current_context.reset(token)
    else:
        current_context.set(None)
