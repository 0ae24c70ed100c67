#!/usr/bin/env python3
"""
Single CTRW Simulation Runner

Runs one percolation + CTRW simulation and saves the lattice, walks and
analysis matrix to a compressed .npz.
"""

import argparse
import sys
import time
from pathlib import Path

# Add src/ to path so the script runs from a plain checkout
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ctrw_sim import CTRWConfig, CTRWSimulator, utils


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a single CTRW-on-percolation simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML parameter file")
    parser.add_argument("--grid-size", type=int, default=None, help="Linear lattice size L")
    parser.add_argument("--walks", type=int, default=None, help="Number of walks")
    parser.add_argument("--length", type=int, default=None, help="Real-time samples per walk")
    parser.add_argument("--threshold", type=float, default=None, help="Occupied fraction")
    parser.add_argument("--beta", type=float, default=None, help="CTRW waiting-time exponent")
    parser.add_argument("--tau0", type=float, default=None, help="CTRW time scale")
    parser.add_argument("--noise", type=float, default=None, help="Gaussian noise std")
    parser.add_argument(
        "--lattice",
        choices=["square", "honeycomb"],
        default=None,
        help="Lattice shape",
    )
    parser.add_argument(
        "--walk-mode",
        choices=["all", "largest"],
        default=None,
        help="Start walks on any occupied site or on the largest cluster",
    )
    parser.add_argument("--jobs", type=int, default=None, help="Analysis threads (<1: all)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (<0: entropy)")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output .npz file path (auto-generated if not provided)",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress stage timings")
    return parser


def config_from_args(args: argparse.Namespace) -> CTRWConfig:
    params = utils.load_params(args.config) if args.config else {}
    overrides = {
        "grid_size": args.grid_size,
        "n_walks": args.walks,
        "walk_length": args.length,
        "threshold": args.threshold,
        "beta": args.beta,
        "tau0": args.tau0,
        "noise": args.noise,
        "lattice_mode": args.lattice,
        "walk_mode": args.walk_mode,
        "n_jobs": args.jobs,
        "seed": args.seed,
    }
    params.update({key: value for key, value in overrides.items() if value is not None})
    params["verbose"] = not args.quiet
    return CTRWConfig.from_dict(params)


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    start_time = time.time()
    simulator = CTRWSimulator(config)
    simulator.run()
    elapsed_time = time.time() - start_time

    # Generate output path if not provided
    if args.out is None:
        output_dir = Path("results")
        output_dir.mkdir(exist_ok=True)
        args.out = str(
            output_dir
            / f"ctrw_{simulator.topology.mode_name}_L{config.grid_size}"
            f"_S{config.seed}_{utils.now_str()}.npz"
        )

    result = simulator.to_result()
    result.ensure_meta()["time_elapsed"] = elapsed_time
    utils.save_result(args.out, result)

    snap = simulator.snapshot()
    print("\nSimulation completed successfully!")
    print(f"   Time elapsed: {elapsed_time:.2f} seconds")
    print(f"   Occupied sites: {snap['occupied']}/{snap['n_sites']}")
    print(f"   Largest cluster: {snap['largest_cluster']}")
    print(f"   Output saved to: {args.out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
