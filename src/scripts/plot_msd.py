#!/usr/bin/env python3
"""
Plot a saved CTRW run: the percolation lattice, the MSD estimators and the
ergodicity breaking parameter. Prints the anomalous exponent fitted to the
ensemble- and ensemble-time-averaged MSD.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
from matplotlib import pyplot as plt

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ctrw_sim import fit_anomalous_exponent, utils


def plot_lattice(ax, lattice_coords: np.ndarray, walks_coords: np.ndarray | None, n_show: int = 3):
    occupied = lattice_coords[2] > 0
    ax.scatter(
        lattice_coords[0, ~occupied], lattice_coords[1, ~occupied], s=2, c="0.85", lw=0
    )
    ax.scatter(
        lattice_coords[0, occupied],
        lattice_coords[1, occupied],
        s=3,
        c=lattice_coords[2, occupied],
        cmap="tab20",
        lw=0,
    )
    if walks_coords is not None:
        for i in range(min(n_show, walks_coords.shape[2])):
            ax.plot(walks_coords[0, :, i], walks_coords[1, :, i], lw=0.8)
    ax.set_aspect("equal")
    ax.set_title("Percolation cluster and walks")


def plot_msd(ax, analysis: np.ndarray, n_show: int = 20):
    lags = np.arange(1, analysis.shape[0] + 1)
    for i in range(3, min(analysis.shape[1], 3 + n_show)):
        ax.loglog(lags, analysis[:, i], c="0.7", lw=0.5)
    ax.loglog(lags, analysis[:, 0], c="C0", lw=2, label="EA-MSD")
    ax.loglog(lags, analysis[:, 1], c="C1", lw=2, label="EATA-MSD")
    ax.set_xlabel("lag")
    ax.set_ylabel("MSD")
    ax.legend()
    ax.set_title("Mean squared displacement")


def plot_ergodicity(ax, analysis: np.ndarray):
    lags = np.arange(1, analysis.shape[0] + 1)
    ax.semilogx(lags, analysis[:, 2], c="C2")
    ax.set_xlabel("lag")
    ax.set_ylabel("EB")
    ax.set_title("Ergodicity breaking")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Plot a saved CTRW simulation")
    parser.add_argument("input", help="Path to .npz written by run_single.py")
    parser.add_argument("--out", default=None, help="Output image (default: <input>.png)")
    parser.add_argument("--lag-min", type=int, default=1, help="Smallest lag in the fit")
    parser.add_argument("--lag-max", type=int, default=None, help="Largest lag in the fit")
    args = parser.parse_args(argv)

    result = utils.load_result(args.input)
    if result.lattice_coords is None:
        raise ValueError(f"{args.input} has no lattice coordinates")

    has_walks = result.analysis is not None and result.analysis.shape[0] > 0
    n_panels = 3 if has_walks else 1
    fig, axes = plt.subplots(1, n_panels, figsize=(5 * n_panels, 5))
    axes = np.atleast_1d(axes)

    plot_lattice(axes[0], result.lattice_coords, result.walks_coords)
    if has_walks:
        plot_msd(axes[1], result.analysis)
        plot_ergodicity(axes[2], result.analysis)
        for name, column in (("EA-MSD", 0), ("EATA-MSD", 1)):
            try:
                alpha, K, r2 = fit_anomalous_exponent(
                    result.analysis[:, column], args.lag_min, args.lag_max
                )
            except ValueError as e:
                print(f"{name}: {e}")
                continue
            print(f"{name}: alpha = {alpha:.4f}, K = {K:.4f}, R^2 = {r2:.4f}")

    out = args.out or str(Path(args.input).with_suffix(".png"))
    fig.tight_layout()
    fig.savefig(out, dpi=150)
    plt.close(fig)
    print(f"Figure saved to: {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
