"""
Unit tests for the GNOM-style I(q) scale fit.

Tests cover:
  - Pure scale recovery (no background)
  - Scale + background recovery
  - 1/σ² weighting suppresses a badly measured point
  - q window limits and the minimum point count
  - Rejection of non-positive scales and non-overlapping ranges
  - apply_gnom_scale writes scale, resets the offset, keeps state on failure
"""

import math

import numpy as np
import pytest

from pyprview.core.gnom_scale import (
    fit_gnom_scale,
    apply_gnom_scale,
    interp_linear,
    GnomScaleResult,
)
from pyprview.core.grid import Grid
from pyprview.core.state import ViewerState, ExperimentalCurve


def _linear_model(n=50):
    q = np.logspace(-2, 0, n)
    return q, 2.0 * q


def _state_with_linear_model():
    st = ViewerState(grid=Grid(r_max=50.0, n_r=200, n_q=100))
    st.iq = 2.0 * st.grid.q
    return st


# ──────────────────────────────────────────────────────────────────────────────
# fit_gnom_scale
# ──────────────────────────────────────────────────────────────────────────────

class TestFitGnomScale:
    def test_pure_scale(self):
        q, i_mod = _linear_model()
        res = fit_gnom_scale(q, 3.0 * i_mod, None, q, i_mod)
        assert isinstance(res, GnomScaleResult)
        assert res.s == pytest.approx(3.0, rel=1e-10)
        assert res.b == 0.0
        assert res.n_used == 50
        assert res.q_lo == pytest.approx(q[0])
        assert res.q_hi == pytest.approx(q[-1])
        assert res.scale_log == pytest.approx(math.log10(3.0))

    def test_scale_and_background(self):
        q, i_mod = _linear_model()
        res = fit_gnom_scale(q, 3.0 * i_mod + 0.5, None, q, i_mod, use_background=True)
        assert res.s == pytest.approx(3.0, rel=1e-8)
        assert res.b == pytest.approx(0.5, rel=1e-8)

    def test_weights(self):
        q, i_mod = _linear_model()
        i_exp = 3.0 * i_mod
        err = np.full_like(q, 0.01)
        i_exp[10] += 10.0
        err[10] = 1e6
        res = fit_gnom_scale(q, i_exp, err, q, i_mod)
        assert res.s == pytest.approx(3.0, rel=1e-8)

    def test_missing_errors_get_unit_weight(self):
        q, i_mod = _linear_model()
        err = np.full_like(q, np.nan)
        res = fit_gnom_scale(q, 3.0 * i_mod, err, q, i_mod)
        assert res.s == pytest.approx(3.0, rel=1e-10)

    def test_window(self):
        q, i_mod = _linear_model()
        res = fit_gnom_scale(q, 3.0 * i_mod, None, q, i_mod, q_min=0.05, q_max=0.5)
        assert res.q_lo == pytest.approx(0.05)
        assert res.q_hi == pytest.approx(0.5)
        assert res.n_used == int(np.count_nonzero((q >= 0.05) & (q <= 0.5)))

    def test_too_few_points(self):
        q, i_mod = _linear_model()
        assert fit_gnom_scale(q, 3.0 * i_mod, None, q, i_mod,
                              q_min=0.1, q_max=0.12) is None
        res = fit_gnom_scale(q, 3.0 * i_mod, None, q, i_mod,
                             q_min=0.1, q_max=0.12, min_points=1)
        assert res is not None

    def test_negative_scale_rejected(self):
        q, i_mod = _linear_model()
        assert fit_gnom_scale(q, -i_mod, None, q, i_mod) is None

    def test_no_overlap(self):
        q, i_mod = _linear_model()
        assert fit_gnom_scale(q + 10.0, i_mod, None, q, i_mod) is None

    def test_empty_input(self):
        q, i_mod = _linear_model()
        assert fit_gnom_scale(np.zeros(0), np.zeros(0), None, q, i_mod) is None

    def test_model_interpolated(self):
        q, i_mod = _linear_model(200)
        q_exp = np.linspace(0.02, 0.9, 40)
        res = fit_gnom_scale(q_exp, 4.0 * 2.0 * q_exp, None, q, i_mod)
        assert res.s == pytest.approx(4.0, rel=1e-6)

    def test_interp_needs_two_knots(self):
        assert interp_linear([1.0], [2.0], [1.0, 2.0]) is None
        np.testing.assert_allclose(interp_linear([0.0, 1.0], [0.0, 2.0], [0.5, 5.0]),
                                   [1.0, 2.0])


# ──────────────────────────────────────────────────────────────────────────────
# apply_gnom_scale
# ──────────────────────────────────────────────────────────────────────────────

class TestApplyGnomScale:
    def test_applies_scale_and_resets_offset(self):
        st = _state_with_linear_model()
        q = st.grid.q
        st.exp_iq = ExperimentalCurve(q.copy(), 6.0 * q)
        st.exp_iq_offset_log = 0.7
        res = apply_gnom_scale(st)
        assert res is not None
        assert st.iq_scale_log == pytest.approx(math.log10(3.0))
        assert st.exp_iq_offset_log == 0.0
        assert st.iq_background == 0.0

    def test_background_recorded(self):
        st = _state_with_linear_model()
        q = st.grid.q
        st.exp_iq = ExperimentalCurve(q.copy(), 6.0 * q + 0.25)
        apply_gnom_scale(st, use_background=True)
        assert st.iq_background == pytest.approx(0.25, rel=1e-6)

    def test_failure_leaves_state(self):
        st = _state_with_linear_model()
        q = st.grid.q
        st.exp_iq = ExperimentalCurve(q.copy(), -6.0 * q)
        st.iq_scale_log = 0.25
        st.exp_iq_offset_log = 0.7
        assert apply_gnom_scale(st) is None
        assert st.iq_scale_log == 0.25
        assert st.exp_iq_offset_log == 0.7

    def test_without_experiment(self):
        st = _state_with_linear_model()
        assert apply_gnom_scale(st) is None
        assert st.iq_scale_log == 0.0
