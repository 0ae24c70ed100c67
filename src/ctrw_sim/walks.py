"""
Continuous-time random walks confined to a percolation cluster.

Each walk is built in three passes over preallocated arrays:

1.  **Lattice walk:** `sim_length` steps between occupied nearest
    neighbours, starting on a rejection-sampled site that has at least one
    occupied neighbour. Every step is tagged with the periodic seam it
    crossed, if any.
2.  **CTRW clock:** event times are cumulative waiting times. With
    `beta > 0` a waiting time is `tau0 * exp(E)`, E ~ Exponential(beta),
    which is Pareto distributed with tail exponent beta. With `beta == 0`
    the clock ticks 1, 2, 3, ...
3.  **Subordination and unwrap:** real-time tick j shows the site reached
    after every event with time <= j. Seam crossings passed on the way
    shift a running (x, y) cell offset, which turns the periodic walk into
    a continuous trajectory.

All random draws come from the single Generator handed in by the caller,
in a fixed order, so a seeded run is reproducible.
"""

from __future__ import annotations

import math

import numpy as np
from numba import njit

from .lattice import LatticeTopology
from .percolation import empty_code, largest_cluster_sites

###############################################################################
# Constants
###############################################################################

ALL_SITES = 0
LARGEST_CLUSTER = 1
WALK_MODES = {"all": ALL_SITES, "largest": LARGEST_CLUSTER}

NO_CROSSING = 0
CROSS_TOP = 1
CROSS_BOTTOM = 2
CROSS_RIGHT = 3
CROSS_LEFT = 4

MIN_START_ATTEMPTS = 100_000
MAX_START_ATTEMPTS = 100_000_000


def sim_length(walk_length: int, tau0: float) -> int:
    """Lattice steps needed so the CTRW clock can cover `walk_length` ticks."""
    if tau0 < 1.0:
        return int(walk_length / tau0)
    return int(walk_length)


def max_start_attempts(n_sites: int) -> int:
    return int(min(max(n_sites, MIN_START_ATTEMPTS), MAX_START_ATTEMPTS))


def start_pool(lattice: np.ndarray, walk_mode: int) -> np.ndarray:
    """Candidate start sites: every occupied site, or the largest cluster."""
    if walk_mode == LARGEST_CLUSTER:
        return largest_cluster_sites(lattice)
    return np.flatnonzero(lattice != empty_code(lattice.shape[0])).astype(np.int64)


###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _count_occupied(lattice: np.ndarray, neighbours: np.ndarray, pos: int) -> int:
    empty = -lattice.shape[0] - 1
    count = 0
    for k in range(neighbours.shape[1]):
        if lattice[neighbours[pos, k]] != empty:
            count += 1
    return count


@njit(cache=True)
def _step(
    rng: np.random.Generator, lattice: np.ndarray, neighbours: np.ndarray, pos: int
) -> int:
    """Moves to an occupied neighbour chosen uniformly at random."""
    empty = -lattice.shape[0] - 1
    pick = rng.integers(0, _count_occupied(lattice, neighbours, pos))
    for k in range(neighbours.shape[1]):
        site = neighbours[pos, k]
        if lattice[site] != empty:
            if pick == 0:
                return site
            pick -= 1
    return pos


@njit(cache=True)
def _classify_crossing(
    prev: int,
    pos: int,
    is_first_row: np.ndarray,
    is_last_row: np.ndarray,
    column_size: int,
    n_sites: int,
) -> int:
    if is_first_row[prev] and is_last_row[pos]:
        return CROSS_TOP
    if is_last_row[prev] and is_first_row[pos]:
        return CROSS_BOTTOM
    if prev >= n_sites - column_size and pos < column_size:
        return CROSS_RIGHT
    if prev < column_size and pos >= n_sites - column_size:
        return CROSS_LEFT
    return NO_CROSSING


@njit(cache=True)
def _pick_start(
    rng: np.random.Generator,
    lattice: np.ndarray,
    neighbours: np.ndarray,
    pool: np.ndarray,
    max_attempts: int,
) -> tuple[int, bool]:
    """
    Rejection-samples a start site with at least one occupied neighbour.

    Returns (site, mobile). After `max_attempts` failures the last sampled
    site is returned with mobile=False. An empty pool pins the walk to
    site 0 without drawing.
    """
    if pool.shape[0] == 0:
        return 0, False
    attempts = 0
    while True:
        pos = pool[rng.integers(0, pool.shape[0])]
        if _count_occupied(lattice, neighbours, pos) > 0:
            return pos, True
        if attempts >= max_attempts:
            return pos, False
        attempts += 1


@njit(cache=True)
def _lattice_walk(
    rng: np.random.Generator,
    lattice: np.ndarray,
    neighbours: np.ndarray,
    is_first_row: np.ndarray,
    is_last_row: np.ndarray,
    column_size: int,
    start: int,
    mobile: bool,
    walk: np.ndarray,
    crossings: np.ndarray,
) -> None:
    n_sites = lattice.shape[0]
    pos = start
    walk[0] = pos
    crossings[0] = NO_CROSSING
    for j in range(1, walk.shape[0]):
        if mobile:
            prev = pos
            pos = _step(rng, lattice, neighbours, prev)
            crossings[j] = _classify_crossing(
                prev, pos, is_first_row, is_last_row, column_size, n_sites
            )
        else:
            crossings[j] = NO_CROSSING
        walk[j] = pos


@njit(cache=True)
def _ctrw_times(
    rng: np.random.Generator,
    times: np.ndarray,
    walk_length: int,
    beta: float,
    tau0: float,
) -> int:
    """
    Fills `times` with the CTRW event clock and returns the index of the
    first event at or past `walk_length`, which is clamped to it.
    """
    n = times.shape[0]
    if beta > 0.0:
        scale = 1.0 / beta
        acc = 0.0
        for k in range(n):
            acc += tau0 * math.exp(rng.exponential(scale))
            times[k] = acc
    else:
        for k in range(n):
            times[k] = k + 1.0

    boundary = n - 1
    for k in range(n):
        if times[k] >= walk_length:
            boundary = k
            break
    times[boundary] = walk_length
    return boundary


@njit(cache=True)
def _subordinate(
    walk: np.ndarray,
    crossings: np.ndarray,
    times: np.ndarray,
    boundary: int,
    site_coords: np.ndarray,
    unit_cell: np.ndarray,
    out: np.ndarray,
) -> None:
    """Writes the unwrapped (2, walk_length) trajectory of one walk to `out`."""
    counter = 0
    nx_cell = 0
    ny_cell = 0
    for j in range(out.shape[1]):
        while counter < boundary and times[counter] <= j:
            counter += 1
            flag = crossings[counter]
            if flag == CROSS_TOP:
                ny_cell += 1
            elif flag == CROSS_BOTTOM:
                ny_cell -= 1
            elif flag == CROSS_RIGHT:
                nx_cell += 1
            elif flag == CROSS_LEFT:
                nx_cell -= 1
        site = walk[counter]
        out[0, j] = site_coords[0, site] + nx_cell * unit_cell[0]
        out[1, j] = site_coords[1, site] + ny_cell * unit_cell[1]


@njit(cache=True)
def _simulate_walks(
    rng: np.random.Generator,
    lattice: np.ndarray,
    neighbours: np.ndarray,
    is_first_row: np.ndarray,
    is_last_row: np.ndarray,
    column_size: int,
    site_coords: np.ndarray,
    unit_cell: np.ndarray,
    pool: np.ndarray,
    n_walks: int,
    walk_length: int,
    n_steps: int,
    beta: float,
    tau0: float,
    max_attempts: int,
) -> np.ndarray:
    coords = np.zeros((2, walk_length, n_walks), dtype=np.float64)
    walk = np.empty(n_steps, dtype=np.int64)
    crossings = np.zeros(n_steps, dtype=np.int8)
    times = np.empty(n_steps, dtype=np.float64)
    out = np.empty((2, walk_length), dtype=np.float64)

    for i in range(n_walks):
        start, mobile = _pick_start(rng, lattice, neighbours, pool, max_attempts)
        _lattice_walk(
            rng,
            lattice,
            neighbours,
            is_first_row,
            is_last_row,
            column_size,
            start,
            mobile,
            walk,
            crossings,
        )
        boundary = _ctrw_times(rng, times, walk_length, beta, tau0)
        _subordinate(walk, crossings, times, boundary, site_coords, unit_cell, out)
        coords[:, :, i] = out
    return coords


###############################################################################
# Public API
###############################################################################


def ctrw_times(
    rng: np.random.Generator,
    n_steps: int,
    walk_length: int,
    beta: float,
    tau0: float,
) -> np.ndarray:
    """Truncated CTRW event clock; the last entry equals `walk_length`."""
    times = np.empty(int(n_steps), dtype=np.float64)
    boundary = _ctrw_times(rng, times, int(walk_length), float(beta), float(tau0))
    return times[: boundary + 1]


def subordinate(
    walk: np.ndarray,
    crossings: np.ndarray,
    times: np.ndarray,
    walk_length: int,
    site_coords: np.ndarray,
    unit_cell: np.ndarray,
) -> np.ndarray:
    """
    Resamples a lattice walk onto `walk_length` unit ticks of a truncated
    CTRW clock and unwraps it. Returns a (2, walk_length) array.
    """
    times = np.asarray(times, dtype=np.float64)
    out = np.empty((2, int(walk_length)), dtype=np.float64)
    _subordinate(
        np.asarray(walk, dtype=np.int64),
        np.asarray(crossings, dtype=np.int8),
        times,
        times.shape[0] - 1,
        np.asarray(site_coords, dtype=np.float64),
        np.asarray(unit_cell, dtype=np.float64),
        out,
    )
    return out


def simulate_walks(
    rng: np.random.Generator,
    topology: LatticeTopology,
    lattice: np.ndarray,
    pool: np.ndarray,
    n_walks: int,
    walk_length: int,
    tau0: float = 1.0,
    beta: float = 0.0,
    site_coords: np.ndarray | None = None,
) -> np.ndarray:
    """
    Runs `n_walks` subordinated walks on the occupied sites of `lattice`.

    Returns the unwrapped coordinates as a (2, walk_length, n_walks) array.
    Walks that cannot move (no occupied neighbour within the start budget)
    stay on their start site for the whole run.
    """
    if site_coords is None:
        site_coords = topology.site_coordinates()
    n_steps = max(sim_length(walk_length, tau0), 1)
    return _simulate_walks(
        rng,
        np.asarray(lattice, dtype=np.int64),
        topology.neighbours,
        topology.is_first_row,
        topology.is_last_row,
        topology.column_size,
        np.asarray(site_coords, dtype=np.float64),
        topology.unit_cell,
        np.asarray(pool, dtype=np.int64),
        int(n_walks),
        int(walk_length),
        n_steps,
        float(beta),
        float(tau0),
        max_start_attempts(topology.n_sites),
    )


def add_noise(coords: np.ndarray, noise: float, rng: np.random.Generator) -> np.ndarray:
    """Adds N(0, noise^2) to every coordinate in place."""
    if noise > 0.0:
        coords += rng.normal(0.0, noise, size=coords.shape)
    return coords


__all__ = [
    "ALL_SITES",
    "LARGEST_CLUSTER",
    "WALK_MODES",
    "NO_CROSSING",
    "CROSS_TOP",
    "CROSS_BOTTOM",
    "CROSS_RIGHT",
    "CROSS_LEFT",
    "add_noise",
    "ctrw_times",
    "max_start_attempts",
    "sim_length",
    "simulate_walks",
    "start_pool",
    "subordinate",
]
