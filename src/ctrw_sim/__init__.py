"""
CTRW Simulation Library - anomalous diffusion on percolation clusters

This package provides:
- LatticeTopology: periodic square and honeycomb neighbour tables
- percolate: Newman-Ziff site percolation with weighted union-find
- simulate_walks: continuous-time random walks on the occupied sites
- analyse_walks: ensemble/time-averaged MSD and ergodicity breaking
- CTRWSimulator: a full run wired together from a CTRWConfig
"""

from .lattice import LatticeTopology, PERCOLATION_THRESHOLDS
from .percolation import PercolationResult, percolate, random_order
from .walks import add_noise, simulate_walks
from .analysis import AnalysisResult, analyse_walks, fit_anomalous_exponent
from .simulator import CTRWConfig, CTRWSimulator, run_model
from . import utils

__all__ = [
    # Simulator
    "CTRWSimulator",
    "CTRWConfig",
    "run_model",
    # Stages
    "LatticeTopology",
    "PERCOLATION_THRESHOLDS",
    "PercolationResult",
    "percolate",
    "random_order",
    "simulate_walks",
    "add_noise",
    "AnalysisResult",
    "analyse_walks",
    "fit_anomalous_exponent",
    # Utilities
    "utils",
]
