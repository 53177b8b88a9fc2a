class OptimizerError(Exception):
    """Base class for budget optimizer errors"""
    pass

class ValidationError(OptimizerError, ValueError):
    """Raised when an optimization request is malformed"""
    pass

class ModelError(OptimizerError):
    """Raised when the integer model cannot be built from a request"""
    pass

class SolverTimeout(OptimizerError):
    """Raised when the solver exceeds its wall-clock budget"""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Solver exceeded {timeout_seconds:g}s timeout")

class SolverFault(OptimizerError):
    """Raised when the solver fails internally"""
    pass

class CacheFault(OptimizerError):
    """Raised when the result cache cannot be read or written"""
    pass
