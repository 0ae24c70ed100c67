"""
Newman-Ziff site percolation on a periodic lattice.

Sites are occupied one at a time in a random order. Every occupied site
holds a union-find code in a flat int64 array:

-   `EMPTY = -N - 1` for a site that was never occupied,
-   `-size` for the root of a cluster of `size` sites,
-   a non-negative index pointing towards the root otherwise.

M. E. J. Newman and R. M. Ziff, "A fast Monte Carlo algorithm for site or
bond percolation", Phys. Rev. E 64, 016706 (2001).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numba import njit


def empty_code(n_sites: int) -> int:
    return -int(n_sites) - 1


def occupied_count(n_sites: int, threshold: float) -> int:
    """Number of sites occupied for a target fraction: floor(pN) - 1, clamped."""
    if not math.isfinite(threshold):
        return 0
    count = int(math.floor(threshold * n_sites)) - 1
    return max(0, min(count, int(n_sites)))


@njit(cache=True)
def _random_order(n_sites: int, rng: np.random.Generator) -> np.ndarray:
    order = np.arange(n_sites, dtype=np.int64)
    for i in range(n_sites):
        j = i + rng.integers(0, n_sites - i)
        tmp = order[i]
        order[i] = order[j]
        order[j] = tmp
    return order


def random_order(n_sites: int, rng: np.random.Generator) -> np.ndarray:
    """Fisher-Yates shuffle of [0, n_sites) driven by the shared generator."""
    return _random_order(int(n_sites), rng)


@njit(cache=True)
def find_root(lattice: np.ndarray, i: int) -> int:
    """
    Iterative root find with full path compression.

    The first pass walks up to the root; the second repoints every site
    on the path directly at it.
    """
    root = i
    while lattice[root] >= 0:
        root = lattice[root]
    while lattice[i] >= 0:
        parent = lattice[i]
        lattice[i] = root
        i = parent
    return root


@njit(cache=True)
def _percolate(
    neighbours: np.ndarray, order: np.ndarray, n_occupied: int
) -> tuple[np.ndarray, int]:
    n_sites = neighbours.shape[0]
    empty = -n_sites - 1
    lattice = np.full(n_sites, empty, dtype=np.int64)
    big = 0

    for i in range(n_occupied):
        s1 = order[i]
        r1 = s1
        lattice[s1] = -1
        if big < 1:
            big = 1
        for k in range(neighbours.shape[1]):
            s2 = neighbours[s1, k]
            if lattice[s2] == empty:
                continue
            r2 = find_root(lattice, s2)
            if r2 == r1:
                continue
            # Weighted union: the smaller cluster hangs under the larger
            if lattice[r1] > lattice[r2]:
                lattice[r2] += lattice[r1]
                lattice[r1] = r2
                r1 = r2
            else:
                lattice[r1] += lattice[r2]
                lattice[r2] = r1
            if -lattice[r1] > big:
                big = -lattice[r1]
    return lattice, big


@njit(cache=True)
def _cluster_labels(lattice: np.ndarray) -> np.ndarray:
    n_sites = lattice.shape[0]
    empty = -n_sites - 1
    labels = np.full(n_sites, -1, dtype=np.int64)
    for i in range(n_sites):
        if lattice[i] == empty:
            continue
        root = i
        hops = 0
        while lattice[root] >= 0 and hops < n_sites:
            root = lattice[root]
            hops += 1
        labels[i] = root
    return labels


def cluster_labels(lattice: np.ndarray) -> np.ndarray:
    """Root index of every site (-1 when empty). Does not touch `lattice`."""
    return _cluster_labels(np.asarray(lattice, dtype=np.int64))


def largest_cluster_sites(lattice: np.ndarray) -> np.ndarray:
    """
    Site indices of the single largest cluster (ties go to the lowest root).
    Empty when nothing is occupied.
    """
    lattice = np.asarray(lattice, dtype=np.int64)
    empty = empty_code(lattice.shape[0])
    roots = np.flatnonzero((lattice < 0) & (lattice != empty))
    if roots.size == 0:
        return np.empty(0, dtype=np.int64)
    biggest = roots[np.argmin(lattice[roots])]
    return np.flatnonzero(cluster_labels(lattice) == biggest).astype(np.int64)


@dataclass
class PercolationResult:
    lattice: np.ndarray
    order: np.ndarray
    n_occupied: int
    largest_cluster: int

    @property
    def occupied(self) -> np.ndarray:
        return self.lattice != empty_code(self.lattice.shape[0])


def percolate(
    neighbours: np.ndarray, order: np.ndarray, threshold: float
) -> PercolationResult:
    """
    Occupies sites in `order` up to `threshold` and unions them into clusters.

    Thresholds outside (0, 1) are not rejected: they give an empty or a
    nearly full lattice.
    """
    n_sites = neighbours.shape[0]
    n_occupied = occupied_count(n_sites, threshold)
    lattice, big = _percolate(neighbours, order, n_occupied)
    return PercolationResult(
        lattice=lattice, order=order, n_occupied=n_occupied, largest_cluster=int(big)
    )


__all__ = [
    "PercolationResult",
    "cluster_labels",
    "empty_code",
    "find_root",
    "largest_cluster_sites",
    "occupied_count",
    "percolate",
    "random_order",
]
