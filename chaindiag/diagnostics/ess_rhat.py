"""
Effective sample size (ESS) and potential scale reduction factor (R-hat).

Draws are arranged as (draws, chains, parameters). Every chain is split into
``split_chains`` pieces, R-hat compares the variance within the split chains
with the variance between them, and the ESS follows from the integrated
autocorrelation time, truncated with Geyer's initial monotone sequence.

Diagnostic types:
- basic: ESS and R-hat of the raw draws
- bulk: ESS and R-hat of the rank-normalized draws
- tail: worst ESS and R-hat of the indicators of the two tail quantiles
- rank: bulk ESS with the worse of bulk and tail R-hat

Instead of a type, an estimator (mean, median, std, mad, quantile) can be
given; the ESS is then computed for an expectand whose mean-ESS approximates
the ESS of that estimator.

References:
    Vehtari et al. (2021) "Rank-normalization, folding, and localization:
        An improved R-hat for assessing convergence of MCMC"
    Geyer (1992) "Practical Markov Chain Monte Carlo"
    Gelman et al. (2013) "Bayesian Data Analysis", 3rd edition
"""

import math
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

import numpy as np

from .autocovariance import AutocovarianceMethod
from .errors import ConfigurationError
from .settings import DiagnosticSettings
from .splitting import copyto_split, split_sizes
from .transforms import (
    Estimator,
    Quantile,
    as_samples,
    expectand_proxy,
    missing_parameters,
    rank_normalize,
)

TYPES = ("basic", "bulk", "tail", "rank")


@dataclass(frozen=True)
class EssRhatResult:
    """
    ESS and R-hat per parameter.

    Both arrays are masked for parameters with missing draws. The result
    unpacks as ``ess, rhat = result``.
    """
    ess: np.ma.MaskedArray
    rhat: np.ma.MaskedArray

    def __iter__(self) -> Iterator[np.ma.MaskedArray]:
        yield self.ess
        yield self.rhat

    @property
    def missing(self) -> np.ndarray:
        """Boolean flag per parameter: were the outputs undefined."""
        return np.ma.getmaskarray(self.ess) | np.ma.getmaskarray(self.rhat)


class DiagnosticWorkspace:
    """
    Scratch buffers of one diagnostic call.

    The split-chain buffer, the chain means and variances, and the
    autocovariance cache are allocated once and overwritten for every
    parameter. A workspace must not be shared between concurrent calls.
    """

    def __init__(
        self,
        draws: int,
        chains: int,
        split_chains: int,
        maxlag: int,
        method: Optional[AutocovarianceMethod] = None,
    ):
        """
        Args:
            draws: Draws per chain
            chains: Number of chains
            split_chains: Pieces each chain is split into
            maxlag: Largest lag of the autocorrelation sum (> 0)
            method: Autocovariance method, None if only R-hat is needed
        """
        self.niter, self.nchains = split_sizes(draws, chains, split_chains)

        # the last pair of autocorrelations is poorly estimated and only
        # matters for poorly mixing chains, so it is left out of the sum
        if not self.niter > 4:
            raise ConfigurationError(
                f"number of draws after splitting must be > 4 but is {self.niter} "
                f"({draws} draws split {split_chains} ways)"
            )
        if maxlag <= 0:
            raise ConfigurationError(f"maxlag must be > 0, got {maxlag}")
        self.maxlag = min(maxlag, self.niter - 4)

        self.ntotal = self.niter * self.nchains
        self.ess_max = self.ntotal * math.log10(self.ntotal)
        self.correction = (self.niter - 1) / self.niter

        self.samples = np.empty((self.niter, self.nchains))
        self.chain_mean = np.empty(self.nchains)
        self.chain_var = np.empty(self.nchains)

        self.method = method
        self.cache = method.build(self.samples, self.chain_var) if method is not None else None

    def _moments(self, chains_slice: np.ndarray) -> Tuple[float, float]:
        copyto_split(self.samples, chains_slice)
        np.mean(self.samples, axis=0, out=self.chain_mean)
        np.var(self.samples, axis=0, ddof=1, out=self.chain_var)

        # constant draws, exactly: rounding in the means must not leak into R-hat
        self.chain_var[np.ptp(self.samples, axis=0) == 0] = 0.0
        if np.ptp(self.samples) == 0:
            return 0.0, 0.0

        within = float(np.mean(self.chain_var))
        # a single chain has no between-chain variance
        if self.nchains > 1:
            between = float(np.var(self.chain_mean, ddof=1))
        else:
            between = 0.0
        var_plus = self.correction * within + between
        return within, var_plus

    @staticmethod
    def _rhat(within: float, var_plus: float) -> float:
        if math.isnan(within) or math.isnan(var_plus):
            return math.nan
        if within > 0:
            return math.sqrt(var_plus / within)
        return 1.0 if var_plus == 0 else math.inf

    def rhat(self, chains_slice: np.ndarray) -> float:
        """Split R-hat of one parameter, shape (draws, chains)."""
        within, var_plus = self._moments(chains_slice)
        return self._rhat(within, var_plus)

    def estimate(self, chains_slice: np.ndarray) -> Tuple[float, float]:
        """
        ESS and split R-hat of one parameter.

        Args:
            chains_slice: Draws of shape (draws, chains) without missing values

        Returns:
            ess: Effective sample size
            rhat: Potential scale reduction factor
        """
        if self.method is None:
            raise ConfigurationError("workspace was built without an autocovariance method")

        within, var_plus = self._moments(chains_slice)
        rhat = self._rhat(within, var_plus)
        if math.isnan(var_plus):
            return math.nan, math.nan
        if var_plus == 0:
            # constant draws: nothing is autocorrelated
            return self.ess_max, rhat

        self.samples -= self.chain_mean
        self.method.update(self.cache)

        def autocorr(lag):
            return 1 - (within - self.method.mean_autocov(self.cache, lag)) / var_plus

        # lag 0 is exactly 1
        rho_even = 1.0
        rho_odd = autocorr(1)
        p_t = rho_even + rho_odd
        sum_p_t = p_t

        maxlag = self.maxlag
        k = 2
        while k < maxlag - 1:
            rho_even = autocorr(k)
            rho_odd = autocorr(k + 1)

            delta = rho_even + rho_odd
            if delta <= 0:
                break

            # initial monotone sequence
            p_t = min(delta, p_t)
            sum_p_t += p_t
            k += 2

        # for antithetic chains, average the truncation at the odd lag with the
        # truncation at the next even lag and keep tau nonnegative
        # (Vehtari et al. 2021, section 3.2)
        rho_even = autocorr(k) if maxlag > 1 else 0.0
        tau = max(0.0, 2 * sum_p_t + max(0.0, rho_even) - 1)

        ess = self.ntotal / tau if tau > 0 else math.inf
        return min(ess, self.ess_max), rhat


def _resolve_type(type) -> str:
    if isinstance(type, str) and type.lower() in TYPES:
        return type.lower()
    raise ConfigurationError(f"the `type` {type!r} is not supported (expected one of {TYPES})")


def _check_exclusive(type, estimator) -> None:
    if type is not None and estimator is not None:
        raise ConfigurationError("only one of `estimator` and `type` can be specified")


def _check_draws(samples, split_chains: int) -> np.ma.MaskedArray:
    # fail before any transform is computed
    x = as_samples(samples)
    niter, _ = split_sizes(x.shape[0], x.shape[1], split_chains)
    if not niter > 4:
        raise ConfigurationError(
            f"number of draws after splitting must be > 4 but is {niter} "
            f"({x.shape[0]} draws split {split_chains} ways)"
        )
    return x


def _masked(values: np.ndarray, missing: np.ndarray) -> np.ma.MaskedArray:
    return np.ma.masked_array(values, mask=missing.copy())


def _ess_rhat_basic(samples, settings: DiagnosticSettings) -> EssRhatResult:
    x = as_samples(samples)
    draws, chains, nparams = x.shape
    workspace = DiagnosticWorkspace(
        draws, chains, settings.split_chains, settings.maxlag, settings.method
    )

    missing = missing_parameters(x)
    ess = np.zeros(nparams)
    rhat = np.zeros(nparams)
    for i in range(nparams):
        if missing[i]:
            continue
        ess[i], rhat[i] = workspace.estimate(x.data[:, :, i])

    return EssRhatResult(_masked(ess, missing), _masked(rhat, missing))


def _rhat_basic(samples, split_chains: int) -> np.ma.MaskedArray:
    x = as_samples(samples)
    draws, chains, nparams = x.shape
    workspace = DiagnosticWorkspace(draws, chains, split_chains, maxlag=1)

    missing = missing_parameters(x)
    rhat = np.zeros(nparams)
    for i in range(nparams):
        if not missing[i]:
            rhat[i] = workspace.rhat(x.data[:, :, i])
    return _masked(rhat, missing)


def _tail_quantiles(tail_prob: float) -> Tuple[Quantile, Quantile]:
    return Quantile(tail_prob / 2), Quantile(1 - tail_prob / 2)


def _ess_rhat_tail(x, settings: DiagnosticSettings) -> EssRhatResult:
    lower_q, upper_q = _tail_quantiles(settings.tail_prob)
    lower = _ess_rhat_basic(expectand_proxy(lower_q, x), settings)
    upper = _ess_rhat_basic(expectand_proxy(upper_q, x), settings)
    return EssRhatResult(
        np.ma.minimum(lower.ess, upper.ess),
        np.ma.maximum(lower.rhat, upper.rhat),
    )


def _rhat_tail(x, settings: DiagnosticSettings) -> np.ma.MaskedArray:
    lower_q, upper_q = _tail_quantiles(settings.tail_prob)
    return np.ma.maximum(
        _rhat_basic(expectand_proxy(lower_q, x), settings.split_chains),
        _rhat_basic(expectand_proxy(upper_q, x), settings.split_chains),
    )


def _dispatch(kind: str, x, settings: DiagnosticSettings) -> EssRhatResult:
    if kind == "basic":
        return _ess_rhat_basic(x, settings)
    if kind == "bulk":
        return _ess_rhat_basic(rank_normalize(x), settings)
    if kind == "tail":
        return _ess_rhat_tail(x, settings)

    bulk = _ess_rhat_basic(rank_normalize(x), settings)
    return EssRhatResult(bulk.ess, np.ma.maximum(bulk.rhat, _rhat_tail(x, settings)))


def ess_rhat(
    samples,
    *,
    type: Optional[str] = None,
    estimator: Optional[Estimator] = None,
    method: Union[str, AutocovarianceMethod] = "direct",
    split_chains: int = 2,
    maxlag: int = 250,
    tail_prob: float = 0.1,
) -> EssRhatResult:
    """
    Estimate ESS and R-hat of draws of shape (draws, chains, parameters).

    Computing both together is cheaper than calling ``ess`` and ``rhat``.

    Args:
        samples: Draws; masked cells of a numpy masked array are missing
        type: "basic", "bulk", "tail" or "rank" (default: "rank")
        estimator: Estimator whose ESS is wanted, exclusive with ``type``
        method: Autocovariance method, "direct", "fft" or "variogram"
        split_chains: Pieces each chain is split into; when the draws do not
            divide evenly, one draw is dropped from the front of each of the
            first ``draws % split_chains`` pieces
        maxlag: Largest lag of the autocorrelation sum (> 0)
        tail_prob: Total probability of the two tails for the tail diagnostics

    Returns:
        EssRhatResult with one (masked) entry per parameter
    """
    _check_exclusive(type, estimator)
    settings = DiagnosticSettings(method, split_chains, maxlag, tail_prob)
    x = _check_draws(samples, settings.split_chains)

    if estimator is not None:
        return _ess_rhat_basic(expectand_proxy(estimator, x), settings)
    return _dispatch(_resolve_type(type or "rank"), x, settings)


def ess(
    samples,
    *,
    type: Optional[str] = None,
    estimator: Optional[Estimator] = None,
    method: Union[str, AutocovarianceMethod] = "direct",
    split_chains: int = 2,
    maxlag: int = 250,
    tail_prob: float = 0.1,
) -> np.ma.MaskedArray:
    """
    Estimate the effective sample size of draws of shape (draws, chains, parameters).

    For a given estimand, an ESS of at least 100 per chain is recommended.

    Args:
        samples: Draws; masked cells of a numpy masked array are missing
        type: "basic", "bulk", "tail" or "rank" (default: "basic");
            "rank" gives the bulk ESS
        estimator: Estimator whose ESS is wanted, exclusive with ``type``
        method: Autocovariance method, "direct", "fft" or "variogram"
        split_chains: Pieces each chain is split into
        maxlag: Largest lag of the autocorrelation sum (> 0)
        tail_prob: Total probability of the two tails for type "tail"

    Returns:
        ESS per parameter, masked where draws are missing
    """
    _check_exclusive(type, estimator)
    settings = DiagnosticSettings(method, split_chains, maxlag, tail_prob)
    x = _check_draws(samples, settings.split_chains)

    if estimator is not None:
        return _ess_rhat_basic(expectand_proxy(estimator, x), settings).ess

    kind = _resolve_type(type or "basic")
    if kind == "rank":
        kind = "bulk"
    return _dispatch(kind, x, settings).ess


def rhat(
    samples,
    *,
    type: str = "rank",
    split_chains: int = 2,
    tail_prob: float = 0.1,
) -> np.ma.MaskedArray:
    """
    Estimate the split R-hat of draws of shape (draws, chains, parameters).

    Only the variances are needed, so this skips the autocorrelation sum.
    R-hat below 1.01 is recommended.

    Args:
        samples: Draws; masked cells of a numpy masked array are missing
        type: "basic", "bulk", "tail" or "rank"
        split_chains: Pieces each chain is split into
        tail_prob: Total probability of the two tails for types "tail" and "rank"

    Returns:
        R-hat per parameter, masked where draws are missing
    """
    kind = _resolve_type(type)
    settings = DiagnosticSettings(split_chains=split_chains, tail_prob=tail_prob)
    x = _check_draws(samples, settings.split_chains)

    if kind == "basic":
        return _rhat_basic(x, settings.split_chains)
    if kind == "bulk":
        return _rhat_basic(rank_normalize(x), settings.split_chains)
    if kind == "tail":
        return _rhat_tail(x, settings)
    return np.ma.maximum(
        _rhat_basic(rank_normalize(x), settings.split_chains),
        _rhat_tail(x, settings),
    )
