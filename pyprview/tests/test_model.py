"""
Unit tests for the grid, basis and superposition model.

Tests cover:
  - sinc limit and transform kernel layout
  - Grid spacing, index clamping and dict round-trip
  - Basis lobe maximum of exactly 1 at the peak radius
  - Lobe support (zero on the wrong side of r0)
  - Mirroring keeps the peak radius
  - Seed node layout
  - recompute: P(0) = 0, totals equal the sum of components
  - Area normalisation, idempotence and the zero-area guard
"""

import numpy as np
import pytest

from pyprview.core.basis import (
    Node,
    basis_value,
    seed_nodes,
    peak_radius,
    r0_for_peak,
    SEED_AMPLITUDES,
)
from pyprview.core.grid import Grid, sinc, make_q_grid
from pyprview.core.model import recompute, normalize_area, solve, area_of
from pyprview.core.state import ViewerState


def _small_state(nodes):
    """ViewerState on a coarse grid holding *nodes*."""
    st = ViewerState(grid=Grid(r_max=50.0, n_r=501, n_q=100), nodes=list(nodes))
    st.reset_curves()
    return st


# ──────────────────────────────────────────────────────────────────────────────
# Grid
# ──────────────────────────────────────────────────────────────────────────────

class TestGrid:
    def test_sinc_at_zero(self):
        assert sinc(np.array([0.0]))[0] == 1.0
        assert abs(sinc(np.array([np.pi]))[0]) < 1e-12

    def test_q_grid_points(self):
        q = make_q_grid(0.005, 0.4, 300)
        assert len(q) == 301
        np.testing.assert_allclose([q[0], q[-1]], [0.005, 0.4], rtol=1e-12)

    def test_spacing_and_kernel_shape(self):
        g = Grid(r_max=10.0, n_r=11, n_q=4)
        assert g.dr == pytest.approx(1.0)
        assert g.kernel.shape == (11, 5)
        # r = 0 row: sinc(0) · dr
        np.testing.assert_allclose(g.kernel[0], g.dr)

    def test_index_of_clamps(self):
        g = Grid(r_max=10.0, n_r=11, n_q=4)
        assert g.index_of(-5.0) == 0
        assert g.index_of(1e6) == 10
        assert g.index_of(3.4) == 3

    def test_with_r_max(self):
        g = Grid(r_max=10.0, n_r=11, n_q=4)
        g2 = g.with_r_max(20.0)
        assert g2.n_r == 11
        assert g2.r[-1] == pytest.approx(20.0)
        assert g.r[-1] == pytest.approx(10.0)

    def test_dict_round_trip(self):
        g = Grid(r_max=30.0, n_r=301, q_min=0.01, q_max=1.0, n_q=50)
        g2 = Grid.from_dict(g.to_dict())
        assert g2.to_dict() == g.to_dict()


# ──────────────────────────────────────────────────────────────────────────────
# Basis lobes
# ──────────────────────────────────────────────────────────────────────────────

class TestBasis:
    @pytest.mark.parametrize("D,alpha,direction", [
        (1.0, 0.3, +1),
        (2.0, 0.7, +1),
        (5.0, 2.0, -1),
        (20.0, 1.5, -1),
    ])
    def test_unit_maximum_at_peak(self, D, alpha, direction):
        r0 = 25.0
        r_pk = peak_radius(r0, D, alpha, direction)
        assert basis_value(r_pk, r0, D, alpha, direction) == pytest.approx(1.0, rel=1e-9)

        r = np.linspace(0.0, 60.0, 6001)
        phi = basis_value(r, r0, D, alpha, direction)
        assert phi.max() <= 1.0 + 1e-12
        assert abs(r[np.argmax(phi)] - r_pk) <= 0.01

    def test_zero_outside_support(self):
        r = np.linspace(0.0, 20.0, 201)
        phi = basis_value(r, 10.0, 2.0, 0.7, +1)
        assert np.all(phi[r <= 10.0] == 0.0)
        phi_m = basis_value(r, 10.0, 2.0, 0.7, -1)
        assert np.all(phi_m[r >= 10.0] == 0.0)

    def test_scalar_returns_float(self):
        assert isinstance(basis_value(3.0, 1.0, 2.0, 0.7, +1), float)

    def test_r0_inverts_peak(self):
        r0 = r0_for_peak(12.0, 3.0, 0.5, -1)
        assert peak_radius(r0, 3.0, 0.5, -1) == pytest.approx(12.0)

    def test_mirror_keeps_peak(self):
        nd = Node.at_peak(15.0, 0.8, D=3.0, alpha=0.6)
        nd.set_direction(-1)
        assert nd.direction == -1
        assert nd.r_peak == pytest.approx(15.0)
        assert nd.r0 > 15.0
        nd.set_direction(+1)
        assert nd.r0 == pytest.approx(15.0 - 3.0 / 0.6)

    def test_from_dict_normalises_direction(self):
        nd = Node.from_dict({'r0': 1.0, 'A': -0.5, 'direction': -3})
        assert nd.direction == -1
        assert nd.A == -0.5

    @pytest.mark.parametrize("bad", [
        {'alpha': 0.0},
        {'alpha': -0.5},
        {'D': 0.0},
        {'D': float('nan')},
        {'alpha': float('inf')},
        {'r0': float('nan')},
        {'A': float('inf')},
    ])
    def test_from_dict_rejects_unusable_values(self, bad):
        d = {'r0': 1.0, 'A': 1.0, 'D': 2.0, 'alpha': 0.7}
        d.update(bad)
        with pytest.raises(ValueError):
            Node.from_dict(d)

    def test_seed_layout(self):
        nodes = seed_nodes()
        assert len(nodes) == 4
        assert tuple(nd.A for nd in nodes) == SEED_AMPLITUDES
        assert all(nd.r0 >= 0.0 for nd in nodes)
        # the first peak would need a negative onset and is clamped
        assert nodes[0].r0 == 0.0
        peaks = np.logspace(np.log10(2.0), np.log10(40.0), 4)
        np.testing.assert_allclose([nd.r_peak for nd in nodes[1:]], peaks[1:])


# ──────────────────────────────────────────────────────────────────────────────
# Superposition model
# ──────────────────────────────────────────────────────────────────────────────

class TestModel:
    def test_recompute_components(self):
        st = _small_state(seed_nodes())
        recompute(st)
        assert st.p[0] == 0.0
        assert st.p_nodes.shape == (4, st.grid.n_r)
        assert st.iq_nodes.shape == (4, len(st.grid.q))
        np.testing.assert_allclose(st.p[1:], st.p_nodes.sum(axis=0)[1:])
        np.testing.assert_allclose(st.iq, st.iq_nodes.sum(axis=0))
        np.testing.assert_allclose(st.iq_nodes, st.p_nodes @ st.grid.kernel)

    def test_empty_model(self):
        st = _small_state([])
        recompute(st)
        assert np.all(st.p == 0.0)
        assert np.all(st.iq == 0.0)
        assert st.p_nodes.shape == (0, st.grid.n_r)

    def test_solve_normalises_area(self):
        st = _small_state(seed_nodes())
        scale = solve(st)
        assert scale is not None
        assert area_of(st.p, st.dr) == pytest.approx(1.0, rel=1e-10)
        assert st.p[0] == 0.0

    def test_solve_idempotent(self):
        st = _small_state(seed_nodes())
        solve(st)
        amps = [nd.A for nd in st.nodes]
        scale = solve(st)
        assert scale == pytest.approx(1.0, rel=1e-10)
        np.testing.assert_allclose([nd.A for nd in st.nodes], amps, rtol=1e-10)

    def test_amplitude_ratios_preserved(self):
        st = _small_state(seed_nodes())
        solve(st)
        ratios = np.array([nd.A for nd in st.nodes]) / st.nodes[0].A
        np.testing.assert_allclose(ratios, np.array(SEED_AMPLITUDES) / SEED_AMPLITUDES[0])

    def test_zero_area_guard(self):
        st = _small_state([Node.at_peak(10.0, 1.0), Node.at_peak(10.0, -1.0)])
        recompute(st)
        assert normalize_area(st) is None
        assert [nd.A for nd in st.nodes] == [1.0, -1.0]
        assert solve(st) is None

    def test_iq_linear_in_amplitude(self):
        st = _small_state([Node.at_peak(8.0, 1.0)])
        recompute(st)
        iq1 = st.iq.copy()
        st.nodes[0].A = 2.5
        recompute(st)
        np.testing.assert_allclose(st.iq, 2.5 * iq1)

    def test_forward_scattering_equals_area(self):
        st = _small_state([Node.at_peak(8.0, 1.0)])
        solve(st)
        # sinc(q r) ≈ 1 at the lowest q for the compact lobe
        assert st.iq[0] == pytest.approx(1.0, rel=1e-2)
