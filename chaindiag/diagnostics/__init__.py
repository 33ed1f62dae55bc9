"""
Convergence diagnostics for MCMC sampling.

This module provides split-chain effective sample size (ESS) and potential
scale reduction factor (R-hat) estimates, in their basic, bulk, tail and
rank-normalized variants.
"""

from .autocovariance import (
    AutocovarianceMethod,
    DirectAutocovariance,
    FFTAutocovariance,
    VariogramAutocovariance,
    get_method,
)
from .convergence import (
    ConvergenceDiagnostics,
    ConvergenceResult,
    quick_convergence_check,
)
from .errors import (
    CapabilityMissingError,
    ConfigurationError,
    DiagnosticError,
    LagRangeError,
)
from .ess_rhat import (
    DiagnosticWorkspace,
    EssRhatResult,
    ess,
    ess_rhat,
    rhat,
)
from .settings import DiagnosticSettings
from .transforms import (
    Quantile,
    expectand_proxy,
    fold_around_median,
    rank_normalize,
)

__all__ = [
    # Estimators
    'ess',
    'rhat',
    'ess_rhat',
    'EssRhatResult',
    'DiagnosticWorkspace',
    'DiagnosticSettings',
    # Autocovariance methods
    'AutocovarianceMethod',
    'DirectAutocovariance',
    'FFTAutocovariance',
    'VariogramAutocovariance',
    'get_method',
    # Transforms
    'Quantile',
    'expectand_proxy',
    'fold_around_median',
    'rank_normalize',
    # Report
    'ConvergenceDiagnostics',
    'ConvergenceResult',
    'quick_convergence_check',
    # Errors
    'DiagnosticError',
    'ConfigurationError',
    'CapabilityMissingError',
    'LagRangeError',
]
