"""
Settings shared by the ESS and R-hat diagnostics.
"""

import numbers
from dataclasses import dataclass, replace
from typing import Union

from .autocovariance import AutocovarianceMethod, get_method
from .errors import ConfigurationError

# Recommended limits (Vehtari et al. 2021)
RHAT_THRESHOLD = 1.01
MIN_ESS_PER_CHAIN = 100


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class DiagnosticSettings:
    """Validated keyword arguments of a diagnostic call."""

    method: Union[str, AutocovarianceMethod] = "direct"
    split_chains: int = 2  # Pieces each chain is split into
    maxlag: int = 250  # Largest lag of the autocorrelation sum
    tail_prob: float = 0.1  # Probability mass in both tails together

    def __post_init__(self):
        if not _is_integer(self.split_chains):
            raise ConfigurationError(f"split_chains must be an integer, got {self.split_chains!r}")
        if self.split_chains < 1:
            raise ConfigurationError(f"split_chains must be >= 1, got {self.split_chains}")
        if not _is_integer(self.maxlag):
            raise ConfigurationError(f"maxlag must be an integer, got {self.maxlag!r}")
        if self.maxlag <= 0:
            raise ConfigurationError(f"maxlag must be > 0, got {self.maxlag}")
        if not 0 < self.tail_prob < 1:
            raise ConfigurationError(f"tail_prob must be in (0, 1), got {self.tail_prob}")
        # resolve names eagerly so unknown methods fail at call entry
        object.__setattr__(self, "method", get_method(self.method))

    def with_overrides(self, **kwargs) -> "DiagnosticSettings":
        """Validated copy with some fields replaced."""
        unknown = set(kwargs) - {"method", "split_chains", "maxlag", "tail_prob"}
        if unknown:
            raise ConfigurationError(f"unknown settings: {sorted(unknown)}")
        return replace(self, **kwargs)
