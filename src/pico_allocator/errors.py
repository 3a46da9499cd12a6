"""
Exceptions raised by the comparison-group allocator.

Input and configuration problems are raised before any solver is invoked.
Solver problems are raised after the solve and are never retried here.
"""


class AllocatorError(Exception):
    """Base class for every allocator failure."""


class InvalidInputError(AllocatorError, ValueError):
    """Item/group records are malformed or miss attribute data."""


class ConfigurationError(AllocatorError, ValueError):
    """Objective or constraint settings cannot be combined."""


class SolverError(AllocatorError, RuntimeError):
    """The solver failed for a reason unrelated to feasibility."""

    def __init__(self, message, status=None, backend=None):
        super().__init__(message)
        self.status = status
        self.backend = backend


class InfeasibleModelError(SolverError):
    """The solver proved that no feasible assignment exists."""


class SolverTimeoutError(SolverError):
    """The time budget ran out before any feasible assignment was found."""

    def __init__(self, message, timeout=None, status=None, backend=None):
        super().__init__(message, status=status, backend=backend)
        self.timeout = timeout


__all__ = [
    "AllocatorError",
    "InvalidInputError",
    "ConfigurationError",
    "SolverError",
    "InfeasibleModelError",
    "SolverTimeoutError",
]
