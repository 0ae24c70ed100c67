# tests/test_lattice.py
import numpy as np
import pytest

from ctrw_sim.lattice import (
    HONEYCOMB,
    SQUARE,
    SQRT3,
    LatticeTopology,
    honeycomb_seams,
)

CASES = [
    ("square", 1),
    ("square", 2),
    ("square", 3),
    ("square", 6),
    ("honeycomb", 1),
    ("honeycomb", 2),
    ("honeycomb", 3),
    ("honeycomb", 5),
]


@pytest.mark.parametrize("mode,grid_size", CASES)
def test_neighbour_table_shape_and_range(mode, grid_size):
    topo = LatticeTopology(grid_size, mode)
    k = 4 if mode == "square" else 3
    n_expected = grid_size**2 if mode == "square" else 4 * grid_size**2

    assert topo.n_sites == n_expected
    assert topo.neighbours.shape == (n_expected, k)
    assert topo.neighbours.min() >= 0
    assert topo.neighbours.max() < n_expected


@pytest.mark.parametrize("mode,grid_size", CASES)
def test_neighbour_relation_is_symmetric(mode, grid_size):
    topo = LatticeTopology(grid_size, mode)
    nn = topo.neighbours
    for a in range(topo.n_sites):
        for b in nn[a]:
            assert a in nn[b], f"{a} -> {b} has no reverse bond"


@pytest.mark.parametrize("mode,grid_size", [("square", 3), ("square", 5), ("honeycomb", 2), ("honeycomb", 4)])
def test_bonds_have_unit_length_modulo_unit_cell(mode, grid_size):
    topo = LatticeTopology(grid_size, mode)
    coords = topo.site_coordinates()
    cell = topo.unit_cell[:, None]
    for k in range(topo.coordination):
        d = coords[:, topo.neighbours[:, k]] - coords
        d -= cell * np.round(d / cell)
        assert np.allclose(np.hypot(d[0], d[1]), 1.0)


@pytest.mark.parametrize("mode", ["square", "honeycomb"])
def test_seams_are_top_and_bottom_rows(mode):
    topo = LatticeTopology(4, mode)
    coords = topo.site_coordinates()

    assert np.allclose(coords[1, topo.first_row], coords[1].max())
    assert np.allclose(coords[1, topo.last_row], 0.0)
    assert topo.is_first_row.sum() == topo.first_row.size
    assert topo.is_last_row.sum() == topo.last_row.size


def test_honeycomb_seam_closed_form():
    first_row, last_row = honeycomb_seams(2)
    assert first_row.tolist() == [0, 6, 8, 14]
    assert last_row.tolist() == [3, 5, 11, 13]

    first_row, last_row = honeycomb_seams(5)
    assert first_row.size == last_row.size == 10
    assert first_row[:4].tolist() == [0, 15, 20, 35]
    assert last_row[:4].tolist() == [9, 14, 29, 34]


def test_unit_cells():
    assert np.allclose(LatticeTopology(7, "square").unit_cell, [7.0, 7.0])
    assert np.allclose(LatticeTopology(3, "honeycomb").unit_cell, [9.0, 3 * SQRT3])


def test_mode_codes_and_names():
    assert LatticeTopology(3, 0).mode == SQUARE
    assert LatticeTopology(3, "Honeycomb").mode == HONEYCOMB
    assert LatticeTopology(3, "honeycomb").mode_name == "honeycomb"
    assert LatticeTopology(3, "square").critical_threshold == pytest.approx(0.592746)


def test_topology_is_deterministic_and_read_only():
    a = LatticeTopology(5, "honeycomb")
    b = LatticeTopology(5, "honeycomb")
    assert np.array_equal(a.neighbours, b.neighbours)
    with pytest.raises(ValueError):
        a.neighbours[0, 0] = 1


@pytest.mark.parametrize("mode", ["triangle", "", 2, None])
def test_unsupported_mode_raises(mode):
    with pytest.raises(ValueError):
        LatticeTopology(4, mode)


def test_invalid_grid_size_raises():
    with pytest.raises(ValueError):
        LatticeTopology(0, "square")
