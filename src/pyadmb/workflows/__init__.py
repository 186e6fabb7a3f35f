"""Results and logs of fits

Definitions
===========
"""

from .log import Log, LogEntry
from .results import (
    ConvergenceStatus,
    FitResult,
    ParameterEstimate,
    Results,
    Trajectory,
    read_results,
)

__all__ = (
    'ConvergenceStatus',
    'FitResult',
    'Log',
    'LogEntry',
    'ParameterEstimate',
    'Results',
    'Trajectory',
    'read_results',
)
