"""
Splitting of chains into shorter sub-chains.

Comparing the halves (or thirds, ...) of each chain exposes non-stationarity
that a comparison across chains alone would miss.
"""

from typing import Tuple

import numpy as np

from .errors import ConfigurationError


def split_sizes(draws: int, chains: int, split_chains: int) -> Tuple[int, int]:
    """
    Shape of the split-chain buffer.

    Args:
        draws: Number of draws per chain
        chains: Number of chains
        split_chains: Number of pieces each chain is split into

    Returns:
        niter: Draws per split chain
        nchains: Number of split chains
    """
    if split_chains < 1:
        raise ConfigurationError(f"split_chains must be >= 1, got {split_chains}")
    return draws // split_chains, chains * split_chains


def copyto_split(out: np.ndarray, x: np.ndarray) -> np.ndarray:
    """
    Copy the chains of ``x`` into ``out``, splitting each chain.

    Column ``chain * split_chains + k`` of ``out`` holds piece ``k`` of
    ``chain``. When the draws do not divide evenly, i.e.
    ``d = draws % split_chains > 0``, the first draw of each of the first
    ``d`` pieces is dropped so that the tail of every chain is kept.

    Args:
        out: Preallocated buffer of shape (niter, chains * split_chains)
        x: Draws of one parameter, shape (draws, chains)

    Returns:
        out, filled in place
    """
    niter, nchains_out = out.shape
    draws, chains = x.shape
    split_chains, extra_cols = divmod(nchains_out, chains)
    if extra_cols or split_chains < 1:
        raise ConfigurationError(
            f"output has {nchains_out} columns, not a multiple of {chains} chains"
        )
    if draws // split_chains != niter:
        raise ConfigurationError(
            f"output has {niter} rows, expected {draws // split_chains} "
            f"for {draws} draws split {split_chains} ways"
        )

    extra = draws - niter * split_chains
    for k in range(split_chains):
        start = k * niter + min(k + 1, extra)
        out[:, k::split_chains] = x[start:start + niter]
    return out
