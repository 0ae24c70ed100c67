# tests/test_walks.py
import numpy as np
import pytest

from ctrw_sim import utils
from ctrw_sim.lattice import LatticeTopology
from ctrw_sim.percolation import empty_code, percolate, random_order
from ctrw_sim.walks import (
    ALL_SITES,
    CROSS_RIGHT,
    CROSS_TOP,
    LARGEST_CLUSTER,
    add_noise,
    ctrw_times,
    max_start_attempts,
    sim_length,
    simulate_walks,
    start_pool,
    subordinate,
)


def _setup(mode, grid_size, threshold, seed=0):
    topo = LatticeTopology(grid_size, mode)
    rng = utils.make_rng(seed)
    result = percolate(topo.neighbours, random_order(topo.n_sites, rng), threshold)
    return topo, result.lattice, rng


def test_sim_length():
    assert sim_length(100, 1.0) == 100
    assert sim_length(100, 3.0) == 100
    assert sim_length(100, 0.5) == 200
    assert sim_length(10, 0.3) == 33


def test_max_start_attempts_is_clamped():
    assert max_start_attempts(10) == 100_000
    assert max_start_attempts(250_000) == 250_000
    assert max_start_attempts(10**9) == 100_000_000


def test_unit_tick_clock():
    rng = utils.make_rng(0)
    assert ctrw_times(rng, 10, 10, 0.0, 1.0).tolist() == [float(k) for k in range(1, 11)]
    # Extra microsteps beyond walk_length are cut off
    assert ctrw_times(rng, 20, 10, 0.0, 0.5).tolist() == [float(k) for k in range(1, 11)]


def test_heavy_tailed_clock_is_increasing_and_truncated():
    rng = utils.make_rng(1)
    for _ in range(20):
        times = ctrw_times(rng, 200, 50, 0.7, 0.5)
        assert times[-1] == 50.0
        assert np.all(np.diff(times) > 0)
        assert np.all(times[:-1] < 50.0)
        assert times[0] >= 0.5


def test_subordinate_unit_ticks_and_unwrap():
    site_coords = np.array([[0.0, 1.0, 2.0, 3.0], [0.0, 0.0, 0.0, 0.0]])
    walk = np.array([0, 1, 2, 3])
    crossings = np.array([0, 0, CROSS_RIGHT, 0])
    times = np.array([1.0, 2.0, 3.0, 4.0])

    out = subordinate(walk, crossings, times, 4, site_coords, np.array([10.0, 10.0]))

    assert out[0].tolist() == [0.0, 1.0, 12.0, 13.0]
    assert out[1].tolist() == [0.0, 0.0, 0.0, 0.0]


def test_subordinate_holds_site_between_events():
    site_coords = np.array([[0.0, 1.0, 2.0], [0.0, 0.0, 0.0]])
    walk = np.array([0, 1, 2])
    crossings = np.array([0, CROSS_TOP, 0])
    times = np.array([2.5, 6.0])

    out = subordinate(walk, crossings, times, 6, site_coords, np.array([5.0, 5.0]))

    assert out[0].tolist() == [0.0, 0.0, 0.0, 1.0, 1.0, 1.0]
    assert out[1].tolist() == [0.0, 0.0, 0.0, 5.0, 5.0, 5.0]


def test_start_pool_modes():
    topo, lattice, _ = _setup("square", 20, 0.55, seed=2)
    occupied = np.flatnonzero(lattice != empty_code(topo.n_sites))
    everything = start_pool(lattice, ALL_SITES)
    largest = start_pool(lattice, LARGEST_CLUSTER)

    assert np.array_equal(everything, occupied)
    assert 0 < largest.size <= everything.size
    assert np.all(np.isin(largest, everything))


@pytest.mark.parametrize("mode,grid_size", [("square", 6), ("honeycomb", 4)])
def test_unwrapped_steps_have_unit_length(mode, grid_size):
    """On a nearly full lattice every tick is one bond, seams included."""
    topo, lattice, rng = _setup(mode, grid_size, 1.0, seed=4)
    pool = start_pool(lattice, LARGEST_CLUSTER)

    coords = simulate_walks(rng, topo, lattice, pool, n_walks=10, walk_length=300)

    assert coords.shape == (2, 300, 10)
    steps = np.diff(coords, axis=1)
    assert np.allclose(np.hypot(steps[0], steps[1]), 1.0)
    # Long walks leave the first unit cell
    spread = coords.max(axis=(1, 2)) - coords.min(axis=(1, 2))
    assert np.any(spread > topo.unit_cell)


def test_walks_stay_on_occupied_sites():
    topo, lattice, rng = _setup("square", 12, 0.7, seed=9)
    pool = start_pool(lattice, ALL_SITES)
    coords = simulate_walks(rng, topo, lattice, pool, n_walks=5, walk_length=100)

    sites = topo.site_coordinates()
    occupied = lattice != empty_code(topo.n_sites)
    wrapped = np.mod(coords, topo.unit_cell[:, None, None])
    for i in range(5):
        for j in range(100):
            match = np.flatnonzero(np.all(np.isclose(sites, wrapped[:, j, i][:, None]), axis=0))
            assert match.size == 1
            assert occupied[match[0]]


def test_isolated_site_gives_stationary_walks():
    # floor(0.02 * 100) - 1 = 1 occupied site, which has no occupied neighbour
    topo, lattice, rng = _setup("square", 10, 0.02, seed=6)
    pool = start_pool(lattice, ALL_SITES)
    assert pool.size == 1

    coords = simulate_walks(rng, topo, lattice, pool, n_walks=3, walk_length=40)
    site = topo.site_coordinates()[:, pool[0]]
    assert np.allclose(coords, site[:, None, None])


def test_empty_pool_pins_walks_to_site_zero():
    topo, lattice, rng = _setup("honeycomb", 3, 0.0)
    pool = start_pool(lattice, ALL_SITES)
    coords = simulate_walks(rng, topo, lattice, pool, n_walks=2, walk_length=10)

    site = topo.site_coordinates()[:, 0]
    assert np.allclose(coords, site[:, None, None])


def test_walks_are_seed_reproducible():
    runs = []
    for _ in range(2):
        topo, lattice, rng = _setup("honeycomb", 5, 0.75, seed=13)
        pool = start_pool(lattice, ALL_SITES)
        runs.append(
            simulate_walks(rng, topo, lattice, pool, 4, 80, tau0=0.5, beta=0.8)
        )
    assert np.array_equal(runs[0], runs[1])


def test_add_noise():
    coords = np.zeros((2, 1000, 20))
    rng = utils.make_rng(0)

    add_noise(coords, 0.0, rng)
    assert np.all(coords == 0.0)

    add_noise(coords, 0.5, rng)
    assert coords.std() == pytest.approx(0.5, rel=0.05)
    assert abs(coords.mean()) < 0.02
