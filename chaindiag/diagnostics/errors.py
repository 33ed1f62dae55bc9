"""
Exceptions raised by the convergence diagnostics.

Missing draws are not an error: a parameter with a missing draw simply gets
masked ESS and R-hat values.
"""


class DiagnosticError(Exception):
    """Base class for all diagnostic errors."""


class ConfigurationError(DiagnosticError, ValueError):
    """Invalid combination of arguments, detected before any computation."""


class CapabilityMissingError(DiagnosticError, ImportError):
    """The FFT backend was requested without a usable transform."""


class LagRangeError(DiagnosticError, IndexError):
    """An autocovariance was requested for a lag outside [0, niter)."""

    def __init__(self, lag: int, niter: int):
        super().__init__(f"only lags >= 0 and < {niter} are supported, got {lag}")
        self.lag = lag
        self.niter = niter
