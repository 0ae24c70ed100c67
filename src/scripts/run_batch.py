#!/usr/bin/env python3
"""
Batch CTRW Simulation Runner

Runs the same configuration over a range of seeds in parallel and writes
one .npz per seed plus a JSON manifest.
"""

import argparse
import json
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ctrw_sim import CTRWConfig, CTRWSimulator, utils


def run_single_simulation(params: Dict[str, Any], seed: int, output_path: str) -> Dict[str, Any]:
    """
    Run a single simulation and save it.

    Called in worker processes by ProcessPoolExecutor, so it must live at
    module level for pickling.
    """
    config = CTRWConfig.from_dict({**params, "seed": seed, "verbose": False})
    simulator = CTRWSimulator(config)
    simulator.run()
    utils.save_result(output_path, simulator.to_result())

    snap = simulator.snapshot()
    return {
        "output_path": output_path,
        "seed": seed,
        "occupied": int(snap["occupied"]),
        "largest_cluster": int(snap["largest_cluster"]),
        "success": True,
    }


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Generate a batch of CTRW simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML parameter file")
    parser.add_argument("--count", type=int, required=True, help="Number of simulations")
    parser.add_argument("--jobs", type=int, default=1, help="Parallel processes (default: 1)")
    parser.add_argument("--name", type=str, default="batch", help="Batch name (default: 'batch')")
    parser.add_argument(
        "--base-seed",
        type=int,
        default=42,
        help="Base seed (each simulation gets base_seed + index) (default: 42)",
    )
    parser.add_argument("--out-dir", type=str, default="results", help="Output root directory")
    args = parser.parse_args(argv)

    params = utils.load_params(args.config) if args.config else {}
    # Check the config before starting workers
    CTRWConfig.from_dict({**params, "verbose": False})
    # One analysis thread per worker process
    params.setdefault("n_jobs", 1)

    first_seed = args.base_seed
    last_seed = args.base_seed + args.count - 1
    timestamp = utils.now_str()
    batch_dir = Path(args.out_dir) / "batches" / f"{args.name}_S{first_seed}-{last_seed}_{timestamp}"
    batch_dir.mkdir(parents=True, exist_ok=True)

    manifest: Dict[str, Any] = {
        "params": params,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "timestamp": timestamp,
        "batch_name": args.name,
    }
    manifest_path = batch_dir / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print("Batch generation started:")
    print(f"  Total simulations: {args.count}")
    print(f"  Parallel jobs: {args.jobs}")
    print(f"  Output directory: {batch_dir}")
    print(f"  Base seed: {args.base_seed}")
    print()

    tasks = []
    for i in range(args.count):
        seed = args.base_seed + i
        tasks.append((params, seed, str(batch_dir / f"{seed}.npz")))

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {
            executor.submit(run_single_simulation, *task): task for task in tasks
        }
        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
                results.append(result)
                print(
                    f"  [{completed}/{args.count}] Completed: seed={result['seed']}, "
                    f"largest cluster={result['largest_cluster']}"
                )
            except Exception as e:
                failed.append({"seed": task[1], "error": str(e)})
                print(f"  [{completed}/{args.count}] FAILED: seed={task[1]} - {e}")

    elapsed_time = time.time() - start_time

    manifest["results"] = {
        "total": args.count,
        "successful": len(results),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["simulations"] = sorted(results, key=lambda r: r["seed"])
    if failed:
        manifest["failures"] = failed
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print()
    print("=" * 60)
    print("Batch generation completed!")
    print(f"  Successful: {len(results)}/{args.count}")
    print(f"  Failed: {len(failed)}/{args.count}")
    print(f"  Total time: {elapsed_time:.2f} seconds")
    print(f"  Manifest: {manifest_path}")
    print("=" * 60)

    return 0 if len(failed) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
