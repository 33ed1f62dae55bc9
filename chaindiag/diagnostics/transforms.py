"""
Transforms of the draws used as expectands for the ESS estimator.

The ESS estimator measures the efficiency of the mean. For another statistic
f, an expectand z is chosen such that mean-ESS(z) approximates f-ESS(x):
indicators below the median or a quantile, squared deviations for the
standard deviation, and normal scores of the ranks for the bulk diagnostics.

Reference:
    Vehtari et al. (2021) "Rank-normalization, folding, and localization:
    An improved R-hat for assessing convergence of MCMC"
"""

from dataclasses import dataclass
from typing import Callable, Tuple, Union

import numpy as np
from scipy import stats

from .errors import ConfigurationError


@dataclass(frozen=True)
class Quantile:
    """Quantile estimator at probability ``p``."""
    p: float

    def __post_init__(self):
        if not 0 <= self.p <= 1:
            raise ConfigurationError(f"quantile probability must be in [0, 1], got {self.p}")


Estimator = Union[str, Quantile, Tuple[str, float], Callable]

_is_none = np.frompyfunc(lambda value: value is None, 1, 1)


def as_samples(samples) -> np.ma.MaskedArray:
    """
    Coerce draws to a float64 masked array of shape (draws, chains, parameters).

    Masked cells and ``None`` cells are missing draws. A 2D array is read as a
    single parameter.
    """
    if np.ma.isMaskedArray(samples):
        values, mask = samples.data, np.ma.getmaskarray(samples)
    else:
        values = np.asarray(samples)
        mask = np.zeros(values.shape, dtype=bool)
    if values.dtype == object:
        # None cells of lists and object arrays are missing draws
        missing = np.asarray(_is_none(values), dtype=bool)
        mask = mask | missing
        values = np.where(missing, np.nan, values)
    values = values.astype(np.float64, copy=False)

    if values.ndim == 2:
        values = values[:, :, np.newaxis]
        mask = mask[:, :, np.newaxis]
    if values.ndim != 3:
        raise ConfigurationError(
            f"samples must have shape (draws, chains, parameters), got {values.shape}"
        )
    return np.ma.masked_array(values, mask=mask)


def missing_parameters(x: np.ma.MaskedArray) -> np.ndarray:
    """Boolean flag per parameter: does the slice hold any missing draw."""
    return np.ma.getmaskarray(x).any(axis=(0, 1))


def _map_slices(x: np.ma.MaskedArray, func: Callable[[np.ndarray], np.ndarray]) -> np.ma.MaskedArray:
    # statistics over a slice are undefined with missing draws: mask it whole
    missing = missing_parameters(x)
    data = np.zeros(x.shape)
    mask = np.zeros(x.shape, dtype=bool)
    for p in range(x.shape[2]):
        if missing[p]:
            mask[:, :, p] = True
        else:
            data[:, :, p] = func(x.data[:, :, p])
    return np.ma.masked_array(data, mask=mask)


def _rank_normalize_slice(values: np.ndarray) -> np.ndarray:
    ranks = stats.rankdata(values, method="average").reshape(values.shape)
    n = values.size
    return stats.norm.ppf((ranks - 3 / 8) / (n + 1 / 4))


def rank_normalize(samples) -> np.ma.MaskedArray:
    """
    Rank-normalize the draws of each parameter.

    All draws of a parameter are ranked jointly with tied ranks averaged, and
    each rank r out of n is mapped to the normal quantile of
    (r - 3/8) / (n + 1/4). The transform is monotonic.

    Args:
        samples: Draws of shape (draws, chains, parameters)

    Returns:
        Normal scores with the same shape; parameters with missing draws are masked
    """
    return _map_slices(as_samples(samples), _rank_normalize_slice)


def fold_around_median(samples) -> np.ma.MaskedArray:
    """Absolute deviation of each draw from the median of its parameter."""
    return _map_slices(as_samples(samples), lambda v: np.abs(v - np.median(v)))


def _median_indicator(values):
    return (values <= np.median(values)).astype(np.float64)


def _squared_deviation(values):
    return (values - np.mean(values)) ** 2


def _quantile_indicator(p):
    def indicator(values):
        return (values <= np.quantile(values, p)).astype(np.float64)
    return indicator


def _resolve_estimator(estimator):
    """Map the accepted spellings of an estimator to (name, p)."""
    if isinstance(estimator, Quantile):
        return "quantile", estimator.p
    if isinstance(estimator, tuple) and len(estimator) == 2 and estimator[0] == "quantile":
        try:
            p = float(estimator[1])
        except (TypeError, ValueError) as err:
            raise ConfigurationError(
                f"the estimator {estimator!r} is not supported by `ess`"
            ) from err
        return "quantile", Quantile(p).p
    if isinstance(estimator, str) and estimator.lower() in ("mean", "median", "std", "mad"):
        return estimator.lower(), None
    if callable(estimator):
        for func, name in (
            (np.mean, "mean"),
            (np.median, "median"),
            (np.std, "std"),
            (stats.median_abs_deviation, "mad"),
        ):
            if estimator is func:
                return name, None
    raise ConfigurationError(f"the estimator {estimator!r} is not supported by `ess`")


def expectand_proxy(estimator: Estimator, samples) -> np.ma.MaskedArray:
    """
    Transform the draws so that their mean-ESS approximates the ESS of ``estimator``.

    Args:
        estimator: "mean", "median", "std", "mad", Quantile(p) or ("quantile", p),
            or one of np.mean, np.median, np.std, scipy.stats.median_abs_deviation
        samples: Draws of shape (draws, chains, parameters)

    Returns:
        Transformed draws with the same shape
    """
    name, p = _resolve_estimator(estimator)
    x = as_samples(samples)

    if name == "mean":
        return x
    if name == "median":
        return _map_slices(x, _median_indicator)
    if name == "std":
        return _map_slices(x, _squared_deviation)
    if name == "mad":
        return _map_slices(fold_around_median(x), _median_indicator)
    return _map_slices(x, _quantile_indicator(p))
