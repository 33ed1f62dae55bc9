"""
Mean cross-chain autocovariance estimators.

Three interchangeable methods share one contract:

- ``build(samples, chain_var)`` creates a cache around the split-chain buffer
  and the vector of within-chain variances. Both arrays are referenced, not
  copied, so the caller refreshes them in place for every parameter.
- ``update(cache)`` must be called after the buffer was refilled and centered.
- ``mean_autocov(cache, lag)`` returns the autocovariance at ``lag``, averaged
  over chains, for ``0 <= lag < niter``.

Methods:
- DirectAutocovariance: biased dot-product estimator (Geyer 1992)
- FFTAutocovariance: same estimator through a zero-padded power spectrum
- VariogramAutocovariance: variogram estimator from BDA3

References:
    Geyer (1992) "Practical Markov Chain Monte Carlo"
    Gelman et al. (2013) "Bayesian Data Analysis", 3rd edition
    Vehtari et al. (2021) "Rank-normalization, folding, and localization"
"""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional, Union

import numpy as np
from scipy import fft as scipy_fft

from .errors import CapabilityMissingError, ConfigurationError, LagRangeError


@dataclass
class DirectCache:
    """Cache of the direct method: just the buffers."""
    samples: np.ndarray  # (niter, nchains) centered draws
    chain_var: np.ndarray  # (nchains,) Bessel-corrected variances


@dataclass
class FFTCache:
    """Cache of the FFT method: padded transform buffer and bound transforms."""
    samples: np.ndarray
    chain_var: np.ndarray
    buffer: np.ndarray  # (nfft, nchains) complex
    plan: Callable[[np.ndarray], np.ndarray]
    inverse_plan: Callable[[np.ndarray], np.ndarray]


@dataclass
class VariogramCache:
    """Cache of the variogram method: running mean of chain variances."""
    samples: np.ndarray
    chain_var: np.ndarray
    mean_chain_var: float = 0.0


def _check_dimensions(samples: np.ndarray, chain_var: np.ndarray) -> None:
    if samples.ndim != 2:
        raise ConfigurationError(
            f"samples buffer must be 2-dimensional, got shape {samples.shape}"
        )
    if chain_var.shape != (samples.shape[1],):
        raise ConfigurationError(
            f"chain variance vector has length {chain_var.size}, "
            f"expected {samples.shape[1]} (one per chain)"
        )


def _check_lag(lag: int, niter: int) -> None:
    if not 0 <= lag < niter:
        raise LagRangeError(lag, niter)


class AutocovarianceMethod(ABC):
    """Interface of the mean-autocovariance estimators."""

    name: str = ""

    def build(self, samples: np.ndarray, chain_var: np.ndarray):
        """
        Create the cache for a split-chain buffer.

        Args:
            samples: Buffer of shape (niter, nchains), refilled per parameter
            chain_var: Within-chain variances of shape (nchains,)

        Returns:
            Method-specific cache object
        """
        _check_dimensions(samples, chain_var)
        return self._build(samples, chain_var)

    @abstractmethod
    def _build(self, samples: np.ndarray, chain_var: np.ndarray):
        ...

    def update(self, cache) -> None:
        """Refresh the cache after the buffer contents changed."""

    @abstractmethod
    def mean_autocov(self, cache, lag: int) -> float:
        """Mean autocovariance across chains at ``lag``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DirectAutocovariance(AutocovarianceMethod):
    """
    Direct estimator of the autocovariance.

    Every query costs O(niter * nchains). The lagged products are divided by
    ``niter`` instead of ``niter - lag``, which gives the biased but more
    stable estimator discussed by Geyer (1992).
    """

    name = "direct"

    def _build(self, samples, chain_var):
        return DirectCache(samples, chain_var)

    def mean_autocov(self, cache: DirectCache, lag: int) -> float:
        samples = cache.samples
        niter = samples.shape[0]
        _check_lag(lag, niter)

        products = np.sum(samples[:niter - lag] * samples[lag:], axis=0)
        return float(np.mean(products)) / niter


class FFTAutocovariance(AutocovarianceMethod):
    """
    Autocovariance from the power spectrum of the zero-padded chains.

    ``update`` pays for one forward and one inverse transform per call, after
    which every lag is a lookup. The transform itself is supplied from
    outside: any module-like object with ``fft(x, axis=...)`` and
    ``ifft(x, axis=...)`` works (``scipy.fft`` by default, ``numpy.fft``, or
    the ``pyfftw.interfaces.scipy_fft`` wrapper).
    """

    name = "fft"

    def __init__(self, transform: Optional[Union[str, Any]] = None):
        """
        Args:
            transform: Transform module, or its dotted import path
                (default: scipy.fft)
        """
        self.transform = self._resolve_transform(transform)

    @staticmethod
    def _resolve_transform(transform):
        if transform is None:
            transform = scipy_fft
        elif isinstance(transform, str):
            try:
                transform = importlib.import_module(transform)
            except ImportError as err:
                raise CapabilityMissingError(
                    f"FFT method requires the transform module {transform!r}, "
                    f"which could not be imported"
                ) from err

        for attr in ("fft", "ifft"):
            if not callable(getattr(transform, attr, None)):
                raise CapabilityMissingError(
                    f"FFT method requires a transform providing `{attr}`, "
                    f"got {transform!r}"
                )
        return transform

    def _build(self, samples, chain_var):
        niter, nchains = samples.shape
        nfft = scipy_fft.next_fast_len(2 * niter - 1)
        buffer = np.zeros((nfft, nchains), dtype=np.complex128)
        plan = partial(self.transform.fft, axis=0)
        inverse_plan = partial(self.transform.ifft, axis=0)
        return FFTCache(samples, chain_var, buffer, plan, inverse_plan)

    def update(self, cache: FFTCache) -> None:
        niter = cache.samples.shape[0]
        buffer = cache.buffer

        # copy and zero pad
        buffer[:niter] = cache.samples
        buffer[niter:] = 0

        # unnormalized autocovariance
        buffer[...] = cache.plan(buffer)
        buffer[...] = buffer.real ** 2 + buffer.imag ** 2
        buffer[...] = cache.inverse_plan(buffer)

    def mean_autocov(self, cache: FFTCache, lag: int) -> float:
        niter = cache.samples.shape[0]
        _check_lag(lag, niter)

        energy = cache.buffer[0].real
        lagged = cache.buffer[lag].real
        # a constant chain has no energy at lag 0 and no autocovariance
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(energy > 0, lagged / energy, 0.0)

        # undo the Bessel correction of chain_var
        uncorrection = (niter - 1) / niter
        return float(np.mean(ratio * cache.chain_var)) * uncorrection

    def __repr__(self) -> str:
        return f"FFTAutocovariance(transform={getattr(self.transform, '__name__', self.transform)!r})"


class VariogramAutocovariance(AutocovarianceMethod):
    """
    Variogram estimator of the autocovariance (Gelman et al. 2013, BDA3).

    The autocovariance at lag k is the mean within-chain variance minus half
    the mean squared difference of draws k apart.
    """

    name = "variogram"

    def _build(self, samples, chain_var):
        return VariogramCache(samples, chain_var, float(np.mean(chain_var)))

    def update(self, cache: VariogramCache) -> None:
        cache.mean_chain_var = float(np.mean(cache.chain_var))

    def mean_autocov(self, cache: VariogramCache, lag: int) -> float:
        samples = cache.samples
        niter = samples.shape[0]
        _check_lag(lag, niter)

        n = niter - lag
        diff = samples[:n] - samples[lag:]
        variogram = float(np.mean(np.sum(diff ** 2, axis=0)))
        return cache.mean_chain_var - variogram / (2 * n)


_METHODS = {
    "direct": DirectAutocovariance,
    "ess": DirectAutocovariance,
    "fft": FFTAutocovariance,
    "variogram": VariogramAutocovariance,
    "bda": VariogramAutocovariance,
}


def get_method(method: Union[str, AutocovarianceMethod]) -> AutocovarianceMethod:
    """
    Resolve an autocovariance method from its name.

    Args:
        method: "direct", "fft", "variogram" (aliases "ess" and "bda"),
            or an AutocovarianceMethod instance

    Returns:
        AutocovarianceMethod instance
    """
    if isinstance(method, AutocovarianceMethod):
        return method
    if isinstance(method, str) and method.lower() in _METHODS:
        return _METHODS[method.lower()]()
    raise ConfigurationError(
        f"Unknown method: {method!r} (expected one of {sorted(_METHODS)})"
    )
