"""
chaindiag: effective sample size and R-hat diagnostics for MCMC draws.
"""

from .diagnostics import (
    ConfigurationError,
    CapabilityMissingError,
    EssRhatResult,
    Quantile,
    ess,
    ess_rhat,
    rhat,
)

__version__ = "0.1.0"

__all__ = [
    'ess',
    'rhat',
    'ess_rhat',
    'EssRhatResult',
    'Quantile',
    'ConfigurationError',
    'CapabilityMissingError',
]
