"""
Convergence report built on the ESS and R-hat diagnostics.

A set of chains is considered converged when, for every parameter:
- Rank-normalized split R-hat is below the threshold (1.01 recommended)
- Bulk-ESS and tail-ESS both reach the minimum (100 per chain recommended)

Reference:
    Vehtari et al. (2021) "Rank-normalization, folding, and localization:
    An improved R-hat for assessing convergence of MCMC"
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import numpy as np

from .autocovariance import AutocovarianceMethod
from .ess_rhat import ess, ess_rhat
from .settings import MIN_ESS_PER_CHAIN, RHAT_THRESHOLD, DiagnosticSettings
from .transforms import as_samples


@dataclass
class ConvergenceResult:
    """Results from convergence diagnostics."""
    converged: bool
    ess_bulk: Optional[np.ma.MaskedArray] = None  # Per parameter
    ess_tail: Optional[np.ma.MaskedArray] = None
    rhat: Optional[np.ma.MaskedArray] = None  # Rank-normalized split R-hat
    min_ess: Optional[float] = None  # Worst of bulk and tail ESS
    max_rhat: Optional[float] = None
    required_ess: Optional[float] = None
    warnings: List[str] = field(default_factory=list)


class ConvergenceDiagnostics:
    """
    Check ESS and R-hat of a set of chains against recommended limits.
    """

    def __init__(
        self,
        rhat_threshold: float = RHAT_THRESHOLD,
        min_ess_per_chain: int = MIN_ESS_PER_CHAIN,
        method: Union[str, AutocovarianceMethod] = "direct",
        split_chains: int = 2,
        maxlag: int = 250,
        tail_prob: float = 0.1,
    ):
        """
        Args:
            rhat_threshold: Largest acceptable R-hat
            min_ess_per_chain: Smallest acceptable ESS per chain
            method, split_chains, maxlag, tail_prob: Passed to the estimators
        """
        self.rhat_threshold = rhat_threshold
        self.min_ess_per_chain = min_ess_per_chain
        self.settings = DiagnosticSettings(method, split_chains, maxlag, tail_prob)

    @staticmethod
    def _estimator_kwargs(settings: DiagnosticSettings) -> Dict[str, Any]:
        return {
            "method": settings.method,
            "split_chains": settings.split_chains,
            "maxlag": settings.maxlag,
            "tail_prob": settings.tail_prob,
        }

    def diagnose(self, samples, **overrides) -> ConvergenceResult:
        """
        Run the diagnostics.

        Args:
            samples: Draws of shape (draws, chains, parameters), or
                (draws, chains) for a single parameter
            **overrides: method, split_chains, maxlag or tail_prob for this
                call only

        Returns:
            ConvergenceResult with diagnostic information
        """
        settings = self.settings.with_overrides(**overrides)
        x = as_samples(samples)
        draws, chains, _ = x.shape

        niter = draws // settings.split_chains
        if niter < 100:
            warnings.warn(
                f"Only {niter} draws per split chain - diagnostics may be unreliable",
                category=UserWarning,
            )

        kwargs = self._estimator_kwargs(settings)
        ess_bulk, rhat = ess_rhat(x, type="rank", **kwargs)
        ess_tail = ess(x, type="tail", **kwargs)

        result = ConvergenceResult(
            converged=True,
            ess_bulk=ess_bulk,
            ess_tail=ess_tail,
            rhat=rhat,
            required_ess=float(self.min_ess_per_chain * chains),
        )

        missing = np.flatnonzero(np.ma.getmaskarray(rhat))
        if missing.size:
            warnings.warn(
                f"{missing.size} parameter(s) have missing draws and were not diagnosed",
                category=UserWarning,
            )
            result.warnings.append(f"Missing draws for parameters {missing.tolist()}")

        if missing.size == rhat.size:
            result.converged = False
            return result

        result.max_rhat = float(rhat.max())
        result.min_ess = float(min(ess_bulk.min(), ess_tail.min()))

        for i in np.flatnonzero(~np.ma.getmaskarray(rhat)):
            if not rhat[i] < self.rhat_threshold:
                result.converged = False
                result.warnings.append(
                    f"Parameter {i}: R-hat={rhat[i]:.3f} >= {self.rhat_threshold}"
                )
            if ess_bulk[i] < result.required_ess:
                result.converged = False
                result.warnings.append(
                    f"Parameter {i}: low bulk-ESS {ess_bulk[i]:.1f} < {result.required_ess:.0f}"
                )
            if ess_tail[i] < result.required_ess:
                result.converged = False
                result.warnings.append(
                    f"Parameter {i}: low tail-ESS {ess_tail[i]:.1f} < {result.required_ess:.0f}"
                )

        return result

    def recommend_sampling_params(self, result: ConvergenceResult) -> Dict[str, Any]:
        """
        Recommend sampling parameters based on diagnostics.

        Args:
            result: Convergence diagnostic results

        Returns:
            Dictionary of recommended parameters
        """
        recommendations = {}

        if result.max_rhat is not None and not result.max_rhat < self.rhat_threshold:
            recommendations['increase_warmup'] = True
            recommendations['suggested_warmup_multiplier'] = 2.0

        if result.min_ess is not None and result.required_ess is not None:
            if result.min_ess < result.required_ess:
                increase_factor = result.required_ess / max(result.min_ess, 1.0)
                recommendations['increase_samples'] = True
                recommendations['suggested_sample_multiplier'] = max(2.0, increase_factor)

        return recommendations


def quick_convergence_check(samples, verbose: bool = True) -> bool:
    """
    Quick convergence check with default parameters.

    Args:
        samples: Draws of shape (draws, chains, parameters) or (draws, chains)
        verbose: Whether to print diagnostic information

    Returns:
        Whether the samples appear to have converged
    """
    diagnostics = ConvergenceDiagnostics()
    result = diagnostics.diagnose(samples)

    if verbose:
        print("=== Convergence Diagnostics ===")
        if result.max_rhat is not None:
            print(f"Max R-hat: {result.max_rhat:.3f}")
        if result.min_ess is not None:
            print(f"Min ESS (bulk/tail): {result.min_ess:.1f} (required {result.required_ess:.0f})")

        print(f"\nConverged: {result.converged}")
        if result.warnings:
            print("Warnings:")
            for warning in result.warnings:
                print(f"  - {warning}")

    return result.converged
