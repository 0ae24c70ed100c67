# src/ctrw_sim/utils.py
from __future__ import annotations

import json
import os
import time
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class SimulationResult:
    """Common container for CTRW simulation outputs."""

    lattice_coords: Optional[np.ndarray] = None
    walks_coords: Optional[np.ndarray] = None
    analysis: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Create the single PCG64 generator owned by a simulation run.

    A negative or missing seed draws fresh entropy from the OS.
    """
    if seed is None or seed < 0:
        return np.random.default_rng()
    return np.random.default_rng(seed)


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def save_result(
    path: str | os.PathLike[str], result: SimulationResult, *, overwrite: bool = True
) -> None:
    """Serialize a SimulationResult to a compressed .npz."""
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {}
    if result.lattice_coords is not None:
        out["lattice_coords"] = np.asarray(result.lattice_coords, dtype=np.float64)
    if result.walks_coords is not None:
        out["walks_coords"] = np.asarray(result.walks_coords, dtype=np.float64)
    if result.analysis is not None:
        out["analysis"] = np.asarray(result.analysis, dtype=np.float64)

    # Arrays in meta go to the top level, scalars stay in the meta dict
    meta = result.meta or {}
    meta_clean = {}
    for key, value in meta.items():
        if isinstance(value, np.ndarray):
            out[key] = value
        else:
            meta_clean[key] = value
    out["meta"] = meta_clean

    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    np.savez_compressed(path, **out)


def load_result(path: str | os.PathLike[str]) -> SimulationResult:
    """
    Load a .npz written by save_result.
    """
    if not Path(path).exists():
        raise FileNotFoundError(f"Missing result file: {path}")
    data = np.load(path, allow_pickle=True)
    lattice_coords = data["lattice_coords"] if "lattice_coords" in data else None
    walks_coords = data["walks_coords"] if "walks_coords" in data else None
    analysis = data["analysis"] if "analysis" in data else None
    meta: Dict[str, Any] = {}
    if "meta" in data:
        meta_raw = data["meta"]
        try:
            meta = dict(meta_raw.item())
        except (ValueError, TypeError):
            meta = {}
    return SimulationResult(
        lattice_coords=lattice_coords,
        walks_coords=walks_coords,
        analysis=analysis,
        meta=meta,
    )


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
