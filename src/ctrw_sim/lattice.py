"""
Periodic lattice topologies for percolation and CTRW simulations.

Two lattice shapes are supported, both with periodic boundary conditions:

-   **Square:** N = L^2 sites with 4 neighbours. Site i sits at
    (i // L, i % L), so each run of L consecutive indices is one column.
-   **Honeycomb:** N = 4 L^2 sites with 3 neighbours and bond length 1.
    Columns of L sites cycle through four phases with x offsets
    (0, 1/2, 3/2, 2) inside a repeat of width 3. Index 0 of a column is
    its top site.

Each topology also records its two horizontal seams: the top row
(`first_row`) and the bottom row (`last_row`). A step from the top row
straight to the bottom row (or back) is a wrap through the periodic y
boundary, and a step between the first and last column is a wrap in x.
Walks use this to unwrap their trajectories.
"""

from __future__ import annotations

from typing import Mapping

import numpy as np
from numba import njit

###############################################################################
# Constants
###############################################################################

SQUARE = 0
HONEYCOMB = 1
LATTICE_MODES = {"square": SQUARE, "honeycomb": HONEYCOMB}

# Site percolation thresholds, see doi:10.1088/1751-8113/47/13/135001
PERCOLATION_THRESHOLDS = {SQUARE: 0.592746, HONEYCOMB: 0.697040230}

SQRT3 = 1.7320508075688772
SQRT3_2 = 0.8660254037844386

# Per-phase x offset and y shift of a honeycomb column
HONEYCOMB_X_OFFSETS = np.array([0.0, 0.5, 1.5, 2.0], dtype=np.float64)
HONEYCOMB_Y_SHIFTS = np.array([SQRT3_2, 0.0, 0.0, SQRT3_2], dtype=np.float64)


def resolve_mode(value, modes: Mapping[str, int], kind: str) -> int:
    """
    Map a mode name (or its integer code) to the integer code.

    Raises ValueError for anything not in `modes`.
    """
    if isinstance(value, str):
        key = value.strip().lower()
        if key in modes:
            return modes[key]
    elif isinstance(value, (int, np.integer)) and int(value) in modes.values():
        return int(value)
    raise ValueError(
        f"Unsupported {kind} mode: {value!r} (expected one of {sorted(modes)})"
    )


###############################################################################
# Neighbour tables (Numba kernels)
###############################################################################


@njit(cache=True)
def _square_neighbours(grid_size: int) -> np.ndarray:
    """Up/down within a column and left/right across columns, all periodic."""
    n = grid_size * grid_size
    nn = np.empty((n, 4), dtype=np.int64)
    for i in range(n):
        nn[i, 0] = (i + 1) % n
        nn[i, 1] = (i + n - 1) % n
        nn[i, 2] = (i + grid_size) % n
        nn[i, 3] = (i + n - grid_size) % n
        if i % grid_size == 0:
            nn[i, 1] = i + grid_size - 1
        if (i + 1) % grid_size == 0:
            nn[i, 0] = i - grid_size + 1
    return nn


@njit(cache=True)
def _honeycomb_neighbours(
    grid_size: int, top: np.ndarray, bottom: np.ndarray
) -> np.ndarray:
    """
    Builds the 3-neighbour table of a periodic honeycomb.

    Interior sites follow the 4-phase column cycle; the top/bottom masks
    switch on the y-seam bonds. The first and last columns (and the
    corners between them) carry the x-seam bonds.
    """
    L = grid_size
    n = 4 * L * L
    nn = np.empty((n, 3), dtype=np.int64)
    for i in range(n):
        phase = (i // L) % 4
        if i == 0:  # top-left corner
            nn[i, 0] = i + L
            nn[i, 1] = i + 2 * L - 1
            nn[i, 2] = i + n - L
        elif i == n - L:  # top-right corner
            nn[i, 0] = i - 1
            nn[i, 1] = i - L
            nn[i, 2] = i - n + L
        elif i == n - L - 1:  # bottom of the second-to-last column
            nn[i, 0] = i - L
            nn[i, 1] = i + L
            nn[i, 2] = i + 1
        elif i < L:  # first column
            nn[i, 0] = i + L - 1
            nn[i, 1] = i + L
            nn[i, 2] = i + n - L
        elif i > n - L:  # last column
            nn[i, 0] = i - L - 1
            nn[i, 1] = i - L
            nn[i, 2] = i - n + L
        elif phase == 0:
            nn[i, 0] = i - L
            nn[i, 2] = i + L
            nn[i, 1] = i + 2 * L - 1 if top[i] else i + L - 1
        elif phase == 1:
            nn[i, 0] = i - L
            if bottom[i]:
                nn[i, 1] = i + L
                nn[i, 2] = i - 2 * L + 1
            else:
                nn[i, 1] = i - L + 1
                nn[i, 2] = i + L
        elif phase == 2:
            nn[i, 0] = i - L
            nn[i, 1] = i + L
            nn[i, 2] = i + 1 if bottom[i] else i + L + 1
        else:
            nn[i, 1] = i - L
            nn[i, 2] = i + L
            nn[i, 0] = i - 1 if top[i] else i - L - 1
    return nn


###############################################################################
# Seams
###############################################################################


def square_seams(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """Top (y = L-1) and bottom (y = 0) rows of the square lattice."""
    n = grid_size * grid_size
    first_row = np.arange(grid_size - 1, n, grid_size, dtype=np.int64)
    last_row = np.arange(0, n, grid_size, dtype=np.int64)
    return first_row, last_row


def honeycomb_seams(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Top and bottom rows of the honeycomb.

    The top row is the first site of every column in phase 0 or 3, the
    bottom row the last site of every column in phase 1 or 2:

        first_row[k-1] = 2kL - 3L/2 + (-1)^k L/2
        last_row[k-1]  = L/2 (4k + (-1)^(k+1) - 1) - 1,   k = 1 .. 2L
    """
    L = grid_size
    k = np.arange(1, 2 * L + 1, dtype=np.int64)
    sign = np.where(k % 2 == 0, 1, -1)
    first_row = (4 * k * L - 3 * L + sign * L) // 2
    last_row = L * (4 * k - sign - 1) // 2 - 1
    return first_row.astype(np.int64), last_row.astype(np.int64)


###############################################################################
# Topology
###############################################################################


class LatticeTopology:
    """
    Immutable neighbour table, seams and geometry of a periodic lattice.
    """

    def __init__(self, grid_size: int, mode: str | int = "square") -> None:
        if int(grid_size) < 1:
            raise ValueError(f"grid_size must be >= 1, got {grid_size}")
        self.grid_size = int(grid_size)
        self.mode = resolve_mode(mode, LATTICE_MODES, "lattice")

        L = self.grid_size
        if self.mode == HONEYCOMB:
            self.n_sites = 4 * L * L
            self.first_row, self.last_row = honeycomb_seams(L)
        else:
            self.n_sites = L * L
            self.first_row, self.last_row = square_seams(L)

        self.is_first_row = np.zeros(self.n_sites, dtype=np.bool_)
        self.is_first_row[self.first_row] = True
        self.is_last_row = np.zeros(self.n_sites, dtype=np.bool_)
        self.is_last_row[self.last_row] = True

        if self.mode == HONEYCOMB:
            self.neighbours = _honeycomb_neighbours(
                L, self.is_first_row, self.is_last_row
            )
            self.unit_cell = np.array([3.0 * L, SQRT3 * L], dtype=np.float64)
        else:
            self.neighbours = _square_neighbours(L)
            self.unit_cell = np.array([float(L), float(L)], dtype=np.float64)

        for arr in (
            self.neighbours,
            self.first_row,
            self.last_row,
            self.is_first_row,
            self.is_last_row,
            self.unit_cell,
        ):
            arr.setflags(write=False)

    @property
    def mode_name(self) -> str:
        return "honeycomb" if self.mode == HONEYCOMB else "square"

    @property
    def coordination(self) -> int:
        return int(self.neighbours.shape[1])

    @property
    def column_size(self) -> int:
        """Sites per column; the first column is i < L, the last i >= N - L."""
        return self.grid_size

    @property
    def critical_threshold(self) -> float:
        return PERCOLATION_THRESHOLDS[self.mode]

    def site_coordinates(self) -> np.ndarray:
        """Returns a (2, N) array with the real-space (x, y) of every site."""
        L = self.grid_size
        idx = np.arange(self.n_sites, dtype=np.int64)
        col = idx // L
        row = idx % L
        coords = np.empty((2, self.n_sites), dtype=np.float64)
        if self.mode == HONEYCOMB:
            phase = col % 4
            coords[0] = 3.0 * (col // 4) + HONEYCOMB_X_OFFSETS[phase]
            coords[1] = (L - 1 - row) * SQRT3 + HONEYCOMB_Y_SHIFTS[phase]
        else:
            coords[0] = col
            coords[1] = row
        return coords

    def __repr__(self) -> str:
        return (
            f"LatticeTopology(grid_size={self.grid_size}, "
            f"mode={self.mode_name!r}, n_sites={self.n_sites})"
        )


__all__ = [
    "SQUARE",
    "HONEYCOMB",
    "LATTICE_MODES",
    "PERCOLATION_THRESHOLDS",
    "LatticeTopology",
    "honeycomb_seams",
    "square_seams",
    "resolve_mode",
]
