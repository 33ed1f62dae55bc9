"""
Tests of rank normalization, folding and the expectand proxies.
"""

import numpy as np
import pytest
import sys
from pathlib import Path
from scipy import stats

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chaindiag.diagnostics.errors import ConfigurationError
from chaindiag.diagnostics.transforms import (
    Quantile,
    as_samples,
    expectand_proxy,
    fold_around_median,
    rank_normalize,
)


def column(values):
    """Draws of one chain and one parameter, shape (draws, 1, 1)."""
    return np.asarray(values, dtype=float).reshape(-1, 1, 1)


class TestRankNormalize:

    def test_preserves_order(self):
        rng = np.random.default_rng(1)
        x = rng.standard_cauchy((50, 4, 3))
        z = rank_normalize(x)
        for p in range(3):
            np.testing.assert_array_equal(
                stats.rankdata(z[:, :, p]), stats.rankdata(x[:, :, p])
            )

    def test_blom_scores(self):
        z = rank_normalize(column([10.0, -3.0, 7.0, 0.5]))
        ranks = np.array([4, 1, 3, 2])
        expected = stats.norm.ppf((ranks - 3 / 8) / (4 + 1 / 4))
        np.testing.assert_allclose(z[:, 0, 0], expected)

    def test_ties_share_mean_rank(self):
        z = rank_normalize(column([1.0, 2.0, 2.0, 3.0]))
        assert z[1, 0, 0] == z[2, 0, 0]
        expected = stats.norm.ppf((2.5 - 3 / 8) / (4 + 1 / 4))
        assert z[1, 0, 0] == pytest.approx(expected)

    def test_parameters_independent(self):
        x = np.stack([np.arange(8.0), 100 - np.arange(8.0)], axis=-1).reshape(4, 2, 2)
        z = rank_normalize(x)
        np.testing.assert_allclose(z[:, :, 0], -z[:, :, 1])

    def test_missing_masks_parameter(self):
        x = np.ma.masked_array(np.random.default_rng(2).normal(size=(10, 2, 2)))
        x[3, 0, 1] = np.ma.masked
        z = rank_normalize(x)
        assert not np.ma.getmaskarray(z[:, :, 0]).any()
        assert np.ma.getmaskarray(z[:, :, 1]).all()


class TestExpectandProxy:

    def test_mean_is_identity(self):
        x = column([3.0, 1.0, 2.0])
        np.testing.assert_array_equal(expectand_proxy("mean", x), x)
        np.testing.assert_array_equal(expectand_proxy(np.mean, x), x)

    def test_median_indicator(self):
        x = column(np.arange(1.0, 10.0))
        y = expectand_proxy("median", x)
        np.testing.assert_array_equal(y[:, 0, 0], [1, 1, 1, 1, 1, 0, 0, 0, 0])

    def test_std_squared_deviation(self):
        x = column([1.0, 2.0, 3.0, 6.0])
        y = expectand_proxy(np.std, x)
        np.testing.assert_allclose(y[:, 0, 0], [4.0, 1.0, 0.0, 9.0])

    def test_mad_folds_then_median(self):
        x = column([1.0, 2.0, 3.0, 4.0, 100.0])
        # |x - 3| = 2, 1, 0, 1, 97 with median 1
        y = expectand_proxy("mad", x)
        np.testing.assert_array_equal(y[:, 0, 0], [0, 1, 1, 1, 0])
        np.testing.assert_array_equal(
            expectand_proxy(stats.median_abs_deviation, x), y
        )

    def test_quantile_indicator(self):
        x = column(np.arange(1.0, 10.0))
        y = expectand_proxy(Quantile(0.25), x)
        np.testing.assert_array_equal(y[:, 0, 0], [1, 1, 1, 0, 0, 0, 0, 0, 0])
        np.testing.assert_array_equal(expectand_proxy(("quantile", 0.25), x), y)

    @pytest.mark.parametrize("estimator", ["median", "std", "mad", Quantile(0.3)])
    def test_missing_masks_parameter(self, estimator):
        x = np.ma.masked_array(np.arange(20.0).reshape(5, 2, 2))
        x[0, 0, 0] = np.ma.masked
        y = expectand_proxy(estimator, x)
        assert np.ma.getmaskarray(y[:, :, 0]).all()
        assert not np.ma.getmaskarray(y[:, :, 1]).any()

    def test_unsupported_estimator(self):
        with pytest.raises(ConfigurationError, match="variance"):
            expectand_proxy("variance", column([1.0, 2.0]))
        with pytest.raises(ConfigurationError):
            expectand_proxy(np.var, column([1.0, 2.0]))

    @pytest.mark.parametrize("estimator", [("quantile", "abc"), ("quantile", None)])
    def test_quantile_probability_not_a_number(self, estimator):
        with pytest.raises(ConfigurationError, match="not supported by `ess`"):
            expectand_proxy(estimator, column([1.0, 2.0]))

    def test_quantile_probability_range(self):
        with pytest.raises(ConfigurationError):
            Quantile(1.5)


def test_fold_around_median():
    x = column([1.0, 5.0, 2.0])
    np.testing.assert_array_equal(fold_around_median(x)[:, 0, 0], [1.0, 3.0, 0.0])


def test_as_samples_shapes():
    assert as_samples(np.zeros((10, 3))).shape == (10, 3, 1)
    assert as_samples(np.zeros((10, 3, 2))).shape == (10, 3, 2)
    with pytest.raises(ConfigurationError):
        as_samples(np.zeros(10))


def test_as_samples_none_is_missing():
    draws = [[[1.0, 2.0], [3.0, None]], [[5.0, 6.0], [7.0, 8.0]], [[9.0, 0.5], [1.5, 2.5]]]
    x = as_samples(draws)
    assert x.dtype == np.float64
    assert x.shape == (3, 2, 2)
    assert np.ma.getmaskarray(x).sum() == 1
    assert x.mask[0, 1, 1]
    assert x[2, 1, 1] == 2.5

    # object arrays too, keeping an existing mask
    y = np.ma.masked_array(np.array(draws, dtype=object))
    y[2, 0, 0] = np.ma.masked
    mask = np.ma.getmaskarray(as_samples(y))
    assert mask[0, 1, 1] and mask[2, 0, 0]
    assert mask.sum() == 2
