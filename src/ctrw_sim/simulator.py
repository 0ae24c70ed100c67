"""
CTRW on percolation clusters: one simulation run end to end.

Stages, in order, all sharing one seeded Generator:

1.  Random occupation order (Fisher-Yates).
2.  Newman-Ziff percolation up to the target occupied fraction.
3.  Lattice coordinates with a cluster tag per site.
4.  Subordinated random walks (only when `n_walks > 0`).
5.  Additive Gaussian noise (only when `noise > 0`).
6.  MSD / ergodicity analysis, parallel over walks.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np

from . import utils
from .analysis import AnalysisResult, analyse_walks
from .lattice import LATTICE_MODES, LatticeTopology, resolve_mode
from .percolation import (
    PercolationResult,
    cluster_labels,
    percolate,
    random_order,
)
from .walks import WALK_MODES, add_noise, sim_length, simulate_walks, start_pool


@dataclass
class CTRWConfig:
    """Parameters of a single run. `threshold=None` uses the critical value."""

    grid_size: int = 64
    n_walks: int = 100
    walk_length: int = 1000
    threshold: Optional[float] = None
    beta: float = 0.0
    tau0: float = 1.0
    noise: float = 0.0
    lattice_mode: str | int = "square"
    walk_mode: str | int = "all"
    n_jobs: int = -1
    seed: Optional[int] = None
    verbose: bool = True

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> "CTRWConfig":
        return cls(**dict(params))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class CTRWSimulator:
    """
    The Manager Class.

    Responsibilities:
    1. Validate the configuration and own the run's Generator.
    2. Hold the topology and every output array of the run.
    3. Drive the Numba kernels stage by stage.
    """

    def __init__(self, config: CTRWConfig | None = None) -> None:
        self.config = config or CTRWConfig()
        cfg = self.config

        # 1. Static configuration checks, before any random draw
        self.lattice_mode = resolve_mode(cfg.lattice_mode, LATTICE_MODES, "lattice")
        self.walk_mode = resolve_mode(cfg.walk_mode, WALK_MODES, "walk")
        if cfg.n_walks < 0:
            raise ValueError(f"n_walks must be >= 0, got {cfg.n_walks}")
        if cfg.n_walks > 0 and cfg.walk_length < 2:
            raise ValueError(f"walk_length must be >= 2, got {cfg.walk_length}")
        if not cfg.tau0 > 0.0:
            raise ValueError(f"tau0 must be > 0, got {cfg.tau0}")

        # 2. Generator and topology
        self.rng = utils.make_rng(cfg.seed)
        self.topology = self._stage(
            "Searching neighbours...",
            lambda: LatticeTopology(cfg.grid_size, self.lattice_mode),
        )
        self.threshold = (
            self.topology.critical_threshold
            if cfg.threshold is None
            else float(cfg.threshold)
        )
        self.sim_length = sim_length(cfg.walk_length, cfg.tau0)

        # 3. Output placeholders (filled by run())
        self.order: Optional[np.ndarray] = None
        self.percolation: Optional[PercolationResult] = None
        self.lattice_coords: Optional[np.ndarray] = None
        self.walks_coords: Optional[np.ndarray] = None
        self.results: Optional[AnalysisResult] = None

    # ------------------------------------------------------------------ helpers
    def _stage(self, label: str, func: Callable[[], Any]) -> Any:
        if not self.config.verbose:
            return func()
        print(f"{label:<28}", end="", flush=True)
        start = time.perf_counter()
        out = func()
        print(f"{time.perf_counter() - start:.6f} s")
        return out

    @property
    def lattice(self) -> Optional[np.ndarray]:
        return None if self.percolation is None else self.percolation.lattice

    @property
    def analysis(self) -> Optional[np.ndarray]:
        return None if self.results is None else self.results.matrix

    def build_lattice_coords(self) -> np.ndarray:
        """(3, N): x, y and a cluster tag (root index + 1, 0 when empty)."""
        coords = np.empty((3, self.topology.n_sites), dtype=np.float64)
        coords[:2] = self.topology.site_coordinates()
        coords[2] = cluster_labels(self.lattice) + 1
        return coords

    # ------------------------------------------------------------------ public
    def run(self) -> None:
        """Runs every stage of the simulation."""
        cfg = self.config
        if cfg.verbose:
            print(
                f"Running CTRW: {self.topology.mode_name} {cfg.grid_size}x{cfg.grid_size} "
                f"(N={self.topology.n_sites}), p={self.threshold:.6f}, "
                f"walks={cfg.n_walks}x{cfg.walk_length}, beta={cfg.beta}, tau0={cfg.tau0}"
            )

        self.order = self._stage(
            "Randomizing occupations...",
            lambda: random_order(self.topology.n_sites, self.rng),
        )
        self.percolation = self._stage(
            "Running percolation...",
            lambda: percolate(self.topology.neighbours, self.order, self.threshold),
        )
        self.lattice_coords = self._stage("Building lattice...", self.build_lattice_coords)

        if cfg.n_walks == 0:
            return

        pool = start_pool(self.lattice, self.walk_mode)
        self.walks_coords = self._stage(
            "Simulating random walks...",
            lambda: simulate_walks(
                self.rng,
                self.topology,
                self.lattice,
                pool,
                cfg.n_walks,
                cfg.walk_length,
                tau0=cfg.tau0,
                beta=cfg.beta,
                site_coords=self.lattice_coords[:2],
            ),
        )
        if cfg.noise > 0.0:
            self._stage(
                "Adding noise...",
                lambda: add_noise(self.walks_coords, cfg.noise, self.rng),
            )
        self.results = self._stage(
            "Analysing random walks...",
            lambda: analyse_walks(self.walks_coords, cfg.n_jobs),
        )

    def snapshot(self) -> Dict[str, Any]:
        """Scalar summary of the run so far."""
        snap: Dict[str, Any] = {
            "lattice_mode": self.topology.mode_name,
            "grid_size": self.topology.grid_size,
            "n_sites": self.topology.n_sites,
            "threshold": self.threshold,
            "sim_length": self.sim_length,
            "seed": self.config.seed,
        }
        if self.percolation is not None:
            snap["occupied"] = self.percolation.n_occupied
            snap["largest_cluster"] = self.percolation.largest_cluster
        if self.walks_coords is not None:
            snap["n_walks"] = int(self.walks_coords.shape[2])
            snap["walk_length"] = int(self.walks_coords.shape[1])
        return snap

    def to_result(self) -> utils.SimulationResult:
        meta = self.config.to_dict()
        meta.update(self.snapshot())
        meta["model"] = "ctrw"
        return utils.SimulationResult(
            lattice_coords=self.lattice_coords,
            walks_coords=self.walks_coords,
            analysis=self.analysis,
            meta=meta,
        )


def run_model(config: CTRWConfig | Mapping[str, Any] | None = None) -> utils.SimulationResult:
    """Builds, runs and packages a simulation from a config or a plain dict."""
    if isinstance(config, Mapping):
        config = CTRWConfig.from_dict(config)
    sim = CTRWSimulator(config)
    sim.run()
    return sim.to_result()


__all__ = ["CTRWConfig", "CTRWSimulator", "run_model"]


if __name__ == "__main__":
    # Standalone execution for testing
    sim = CTRWSimulator(CTRWConfig(grid_size=32, n_walks=20, walk_length=200, seed=42))
    sim.run()
    print(sim.snapshot())
