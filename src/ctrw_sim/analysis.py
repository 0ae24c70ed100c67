"""
Diffusion statistics of an ensemble of walks.

For walks stored as a (2, T, n_walks) array and lag s = 1 .. T-1:

-   **EA-MSD:** <|r(s) - r(0)|^2> averaged over walks.
-   **TA-MSD:** per walk, the mean of |r(i+s) - r(i)|^2 over i in [0, T-s).
-   **EATA-MSD:** TA-MSD with lag 1 over a window of length s, averaged
    over walks.
-   **EB:** ergodicity breaking parameter, Var[TA-MSD] / E[TA-MSD]^2 across
    walks, divided by the lag.

The per-walk pass is a Numba `prange` over walks; each iteration owns one
column of the output arrays. Empty windows produce NaN, which is zeroed
before every aggregation step.
"""

from __future__ import annotations

from dataclasses import dataclass

import numba
import numpy as np
from numba import njit, prange
from scipy.stats import linregress


@njit(cache=True, fastmath=True)
def _squared_dist(x1: float, x2: float, y1: float, y2: float) -> float:
    a = x1 - x2
    b = y1 - y2
    return a * a + b * b


@njit(cache=True)
def _tamsd(walk: np.ndarray, t: int, delta: int) -> float:
    diff = t - delta
    if diff <= 0:
        return np.nan
    integral = 0.0
    for i in range(diff):
        integral += _squared_dist(
            walk[0, i + delta], walk[0, i], walk[1, i + delta], walk[1, i]
        )
    return integral / diff


@njit(cache=True, parallel=True)
def _per_walk_msd(
    walks_coords: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    walk_length = walks_coords.shape[1]
    n_walks = walks_coords.shape[2]
    ea_all = np.zeros((walk_length - 1, n_walks), dtype=np.float64)
    ta = np.zeros((walk_length - 1, n_walks), dtype=np.float64)
    eata_all = np.zeros((walk_length - 1, n_walks), dtype=np.float64)

    for i in prange(n_walks):
        walk = walks_coords[:, :, i]
        x0 = walk[0, 0]
        y0 = walk[1, 0]
        for j in range(1, walk_length):
            ea_all[j - 1, i] = _squared_dist(walk[0, j], x0, walk[1, j], y0)
            ta[j - 1, i] = _tamsd(walk, walk_length, j)
            eata_all[j - 1, i] = _tamsd(walk, j, 1)
    return ea_all, ta, eata_all


def _zero_nonfinite(arr: np.ndarray) -> np.ndarray:
    arr[~np.isfinite(arr)] = 0.0
    return arr


def resolve_jobs(n_jobs: int | None) -> int:
    """Numba thread count for `n_jobs`; values below 1 mean every thread."""
    max_threads = numba.config.NUMBA_NUM_THREADS
    if n_jobs is None or n_jobs < 1:
        return max_threads
    return min(int(n_jobs), max_threads)


def time_averaged_msd(walk: np.ndarray, t: int, delta: int) -> float:
    """
    Time-averaged MSD of one (2, T) walk at lag `delta` over a window of
    length `t`. A window with no displacement pairs gives 0.
    """
    value = _tamsd(np.asarray(walk, dtype=np.float64), int(t), int(delta))
    return float(value) if np.isfinite(value) else 0.0


@dataclass
class AnalysisResult:
    ensemble_msd: np.ndarray
    ensemble_time_msd: np.ndarray
    ergodicity: np.ndarray
    time_msd: np.ndarray

    @property
    def lags(self) -> np.ndarray:
        return np.arange(1, self.ensemble_msd.shape[0] + 1, dtype=np.float64)

    @property
    def matrix(self) -> np.ndarray:
        """Columns: EA-MSD, EATA-MSD, EB, then one TA-MSD per walk."""
        return np.column_stack(
            (self.ensemble_msd, self.ensemble_time_msd, self.ergodicity, self.time_msd)
        )


def ergodicity_breaking(time_msd: np.ndarray) -> np.ndarray:
    """EB per lag from a (lags, n_walks) TA-MSD array, normalised by lag."""
    mean_sq = np.square(time_msd.mean(axis=1))
    with np.errstate(divide="ignore", invalid="ignore"):
        eb = time_msd.var(axis=1) / mean_sq
        _zero_nonfinite(eb)
        eb /= np.arange(1, time_msd.shape[0] + 1, dtype=np.float64)
    return _zero_nonfinite(eb)


def analyse_walks(walks_coords: np.ndarray, n_jobs: int | None = -1) -> AnalysisResult:
    """
    Computes EA-MSD, EATA-MSD, EB and the per-walk TA-MSD curves.

    Args:
        walks_coords: (2, walk_length, n_walks) unwrapped trajectories.
        n_jobs: Numba threads for the per-walk pass (< 1 uses all of them).
    """
    walks_coords = np.ascontiguousarray(walks_coords, dtype=np.float64)
    if walks_coords.ndim != 3 or walks_coords.shape[0] != 2:
        raise ValueError(
            f"Expected walks of shape (2, walk_length, n_walks), got {walks_coords.shape}"
        )

    previous = numba.get_num_threads()
    numba.set_num_threads(resolve_jobs(n_jobs))
    try:
        ea_all, ta, eata_all = _per_walk_msd(walks_coords)
    finally:
        numba.set_num_threads(previous)

    _zero_nonfinite(ea_all)
    _zero_nonfinite(ta)
    _zero_nonfinite(eata_all)

    with np.errstate(invalid="ignore"):
        ea = _zero_nonfinite(ea_all.mean(axis=1))
        eata = _zero_nonfinite(eata_all.mean(axis=1))

    return AnalysisResult(
        ensemble_msd=ea,
        ensemble_time_msd=eata,
        ergodicity=ergodicity_breaking(ta),
        time_msd=ta,
    )


def fit_anomalous_exponent(
    msd: np.ndarray, lag_min: int = 1, lag_max: int | None = None
) -> tuple[float, float, float]:
    """
    Fits MSD ~ K * lag^alpha on a log-log scale.

    `msd[k]` is taken to be the value at lag k + 1. Zero entries are
    dropped before fitting.

    Returns:
        Tuple of (alpha, K, r_squared)
    """
    msd = np.asarray(msd, dtype=np.float64)
    lags = np.arange(1, msd.shape[0] + 1, dtype=np.float64)
    if lag_max is None:
        lag_max = msd.shape[0]
    window = (lags >= lag_min) & (lags <= lag_max) & (msd > 0) & np.isfinite(msd)
    if np.count_nonzero(window) < 2:
        raise ValueError("Too few positive MSD points to fit an exponent.")

    slope, intercept, r_value, p_value, std_err = linregress(
        np.log(lags[window]), np.log(msd[window])
    )
    return float(slope), float(np.exp(intercept)), float(r_value**2)


__all__ = [
    "AnalysisResult",
    "analyse_walks",
    "ergodicity_breaking",
    "fit_anomalous_exponent",
    "resolve_jobs",
    "time_averaged_msd",
]
