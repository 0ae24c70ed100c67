# tests/test_simulator.py
import numpy as np
import pytest

from ctrw_sim import CTRWConfig, CTRWSimulator, fit_anomalous_exponent, run_model, utils
from ctrw_sim.percolation import cluster_labels, empty_code


def _run(**kwargs):
    params = dict(verbose=False)
    params.update(kwargs)
    sim = CTRWSimulator(CTRWConfig(**params))
    sim.run()
    return sim


def test_end_to_end_square_scenario():
    sim = _run(
        grid_size=10,
        lattice_mode="square",
        threshold=0.6,
        n_walks=5,
        walk_length=50,
        beta=0.0,
        tau0=1.0,
        noise=0.0,
        seed=42,
    )

    assert sim.analysis.shape == (49, 8)
    assert np.all(np.isfinite(sim.analysis))
    assert sim.lattice_coords.shape == (3, 100)
    assert sim.walks_coords.shape == (2, 50, 5)
    assert sim.percolation.n_occupied == 59


def test_seeded_runs_are_identical():
    params = dict(
        grid_size=8,
        lattice_mode="honeycomb",
        threshold=0.75,
        n_walks=6,
        walk_length=60,
        beta=0.6,
        tau0=0.5,
        noise=0.1,
        seed=123,
    )
    a = _run(**params)
    b = _run(**params)

    assert np.array_equal(a.order, b.order)
    assert np.array_equal(a.lattice, b.lattice)
    assert np.array_equal(a.walks_coords, b.walks_coords)
    assert np.array_equal(a.analysis, b.analysis)

    c = _run(**{**params, "seed": 124})
    assert not np.array_equal(a.order, c.order)


def test_noise_is_drawn_after_the_walks():
    params = dict(grid_size=10, threshold=0.9, n_walks=20, walk_length=100, seed=8)
    clean = _run(**params)
    noisy = _run(**params, noise=0.3)

    residual = noisy.walks_coords - clean.walks_coords
    assert residual.std() == pytest.approx(0.3, rel=0.05)


def test_zero_walks_skips_walk_stages():
    sim = _run(grid_size=12, n_walks=0, walk_length=1, threshold=0.5, seed=1)

    assert sim.lattice_coords.shape == (3, 144)
    assert sim.walks_coords is None
    assert sim.results is None
    assert sim.analysis is None


def test_lattice_coords_tag_clusters():
    sim = _run(grid_size=16, n_walks=0, threshold=0.55, seed=2)
    tags = sim.lattice_coords[2]
    occupied = sim.lattice != empty_code(sim.topology.n_sites)

    assert np.all(tags[~occupied] == 0)
    assert np.all(tags[occupied] >= 1)
    assert np.array_equal(tags[occupied] - 1, cluster_labels(sim.lattice)[occupied])
    assert np.allclose(sim.lattice_coords[:2], sim.topology.site_coordinates())


def test_near_zero_threshold_gives_stationary_walks():
    sim = _run(grid_size=10, threshold=0.02, n_walks=4, walk_length=30, seed=3)

    assert np.allclose(sim.walks_coords, sim.walks_coords[:, :1, :])
    assert np.all(sim.analysis == 0.0)


@pytest.mark.parametrize("lattice_mode", ["square", "honeycomb"])
def test_diffusive_msd_grows_with_lag(lattice_mode):
    sim = _run(
        grid_size=12,
        lattice_mode=lattice_mode,
        threshold=1.0,
        walk_mode="largest",
        n_walks=200,
        walk_length=100,
        seed=5,
    )
    ea = sim.results.ensemble_msd

    assert ea[0] == pytest.approx(1.0)
    assert ea[-10:].mean() > 10 * ea[:5].mean()
    alpha, _, _ = fit_anomalous_exponent(ea)
    assert alpha == pytest.approx(1.0, abs=0.25)


def test_heavy_tailed_waiting_times_are_subdiffusive():
    params = dict(
        grid_size=16,
        threshold=1.0,
        walk_mode="largest",
        n_walks=300,
        walk_length=200,
        tau0=1.0,
        seed=9,
    )
    normal = _run(**params, beta=0.0)
    slow = _run(**params, beta=0.5)

    alpha_normal, _, _ = fit_anomalous_exponent(normal.results.ensemble_msd, lag_min=10)
    alpha_slow, _, _ = fit_anomalous_exponent(slow.results.ensemble_msd, lag_min=10)
    assert alpha_slow < alpha_normal - 0.2


def test_default_threshold_is_critical():
    sim = CTRWSimulator(CTRWConfig(grid_size=4, lattice_mode="honeycomb", verbose=False))
    assert sim.threshold == pytest.approx(0.697040230)


@pytest.mark.parametrize(
    "bad",
    [
        {"lattice_mode": "triangle"},
        {"walk_mode": "nowhere"},
        {"grid_size": 0},
        {"tau0": 0.0},
        {"n_walks": -1},
        {"n_walks": 3, "walk_length": 1},
    ],
)
def test_invalid_configuration_raises(bad):
    with pytest.raises(ValueError):
        CTRWSimulator(CTRWConfig(**{"verbose": False, **bad}))


def test_verbose_run_prints_stages(capsys):
    sim = CTRWSimulator(CTRWConfig(grid_size=6, n_walks=2, walk_length=10, seed=0))
    sim.run()
    out = capsys.readouterr().out
    for label in ("Searching neighbours", "Running percolation", "Analysing random walks"):
        assert label in out
    assert "Adding noise" not in out


def test_snapshot_and_result_roundtrip(tmp_path):
    result = run_model(
        {"grid_size": 8, "n_walks": 3, "walk_length": 20, "threshold": 0.8, "seed": 4, "verbose": False}
    )
    assert result.meta["model"] == "ctrw"
    assert result.meta["n_sites"] == 64
    assert result.meta["occupied"] == 50

    path = tmp_path / "run.npz"
    utils.save_result(path, result)
    loaded = utils.load_result(path)

    assert np.array_equal(loaded.lattice_coords, result.lattice_coords)
    assert np.array_equal(loaded.walks_coords, result.walks_coords)
    assert np.array_equal(loaded.analysis, result.analysis)
    assert loaded.meta["seed"] == 4

    with pytest.raises(FileExistsError):
        utils.save_result(path, result, overwrite=False)
