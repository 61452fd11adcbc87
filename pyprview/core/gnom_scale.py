"""
GNOM-style scaling of the model I(q) onto experimental I(q).

Solves, in the least-squares sense over the overlapping q-range,

    I_exp(q_i) ≈ s · I_model(q_i)              (no background)
    I_exp(q_i) ≈ s · I_model(q_i) + b          (with background)

with weights w_i = 1/σ_i² when the experimental uncertainty σ_i is finite
and positive, else w_i = 1.  The model is linearly interpolated onto the
experimental q points.

A successful fit writes ``iq_scale_log = log10(s)`` on the viewer state,
resets ``exp_iq_offset_log`` to 0 and records ``b`` in ``iq_background``.
Any failure (too few points, singular normal equations, non-positive s)
returns ``None`` and leaves the state untouched.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

log = logging.getLogger(__name__)

MIN_POINTS = 20
DET_EPS = 1e-24


@dataclass(frozen=True)
class GnomScaleResult:
    """Outcome of one scale fit (q limits in nm⁻¹)."""

    s: float
    b: float
    n_used: int
    q_lo: float
    q_hi: float

    @property
    def scale_log(self) -> float:
        return math.log10(self.s)


def interp_linear(x: np.ndarray, y: np.ndarray, x_new) -> Optional[np.ndarray]:
    """
    Linear interpolation on ascending *x*, clamped to the end values outside
    the range.  Returns ``None`` when fewer than two knots are available.
    """
    x = np.asarray(x, dtype=float)
    if len(x) < 2:
        return None
    return np.interp(x_new, x, np.asarray(y, dtype=float))


def fit_gnom_scale(
    q_exp: np.ndarray,
    i_exp: np.ndarray,
    err_exp: Optional[np.ndarray],
    q_model: np.ndarray,
    i_model: np.ndarray,
    q_min: Optional[float] = None,
    q_max: Optional[float] = None,
    use_background: bool = False,
    min_points: int = MIN_POINTS,
) -> Optional[GnomScaleResult]:
    """
    Weighted least-squares scale (and optional background) of a model curve.

    Args:
        q_exp, i_exp: Experimental curve, q ascending [nm⁻¹].
        err_exp:      Uncertainties aligned with *i_exp*, or ``None``.
        q_model, i_model: Model curve on its own ascending q grid.
        q_min, q_max: Optional window applied on top of the overlap.
        use_background: Also fit a flat background b.
        min_points:   Minimum number of usable points.

    Returns:
        :class:`GnomScaleResult`, or ``None`` if no acceptable fit exists.
    """
    q_exp = np.asarray(q_exp, dtype=float)
    i_exp = np.asarray(i_exp, dtype=float)
    q_model = np.asarray(q_model, dtype=float)
    i_model = np.asarray(i_model, dtype=float)

    if len(q_exp) == 0 or len(i_exp) == 0 or len(q_model) == 0 or len(i_model) == 0:
        return None

    q_lo = max(q_exp[0], q_model[0], q_min if q_min is not None else -np.inf)
    q_hi = min(q_exp[-1], q_model[-1], q_max if q_max is not None else np.inf)
    if not q_hi > q_lo:
        log.debug("fit_gnom_scale: no q overlap (%g … %g)", q_lo, q_hi)
        return None

    i_mod = interp_linear(q_model, i_model, q_exp)
    if i_mod is None:
        return None

    in_window = (q_exp >= q_lo) & (q_exp <= q_hi)
    usable = in_window & np.isfinite(i_exp) & np.isfinite(i_mod)

    w = np.ones_like(q_exp)
    if err_exp is not None:
        err = np.asarray(err_exp, dtype=float)
        with np.errstate(invalid='ignore'):
            has_err = np.isfinite(err) & (err > 0)
        w[has_err] = 1.0 / err[has_err] ** 2

    n_used = int(np.count_nonzero(usable))
    if n_used < min_points:
        log.debug("fit_gnom_scale: only %d usable points (need %d)", n_used, min_points)
        return None

    x = i_mod[usable]
    y = i_exp[usable]
    w = w[usable]

    s_w = np.sum(w)
    s_x = np.sum(w * x)
    s_y = np.sum(w * y)
    s_xx = np.sum(w * x * x)
    s_xy = np.sum(w * x * y)

    if use_background:
        det = s_xx * s_w - s_x * s_x
        if abs(det) < DET_EPS:
            log.debug("fit_gnom_scale: singular normal equations (det=%g)", det)
            return None
        s = (s_xy * s_w - s_y * s_x) / det
        b = (s_xx * s_y - s_x * s_xy) / det
    else:
        if abs(s_xx) < DET_EPS:
            log.debug("fit_gnom_scale: model intensity vanishes in window")
            return None
        s = s_xy / s_xx
        b = 0.0

    if not np.isfinite(s) or s <= 0:
        log.info("fit_gnom_scale: rejected non-positive scale %g", s)
        return None

    return GnomScaleResult(s=float(s), b=float(b), n_used=n_used,
                           q_lo=float(q_lo), q_hi=float(q_hi))


def apply_gnom_scale(
    state,
    q_min: Optional[float] = None,
    q_max: Optional[float] = None,
    use_background: bool = False,
    min_points: int = MIN_POINTS,
) -> Optional[GnomScaleResult]:
    """
    Fit the current model I(q) of *state* to its experimental I(q) and
    apply the result.

    On success sets ``iq_scale_log``, clears ``exp_iq_offset_log`` and stores
    the background.  Returns the fit result or ``None``.
    """
    exp = state.exp_iq
    if exp is None or len(exp) == 0:
        return None
    if state.iq is None or len(state.iq) == 0:
        return None

    result = fit_gnom_scale(
        exp.x, exp.y, exp.err, state.grid.q, state.iq,
        q_min=q_min, q_max=q_max,
        use_background=use_background, min_points=min_points,
    )
    if result is None:
        return None

    state.iq_scale_log = result.scale_log
    state.exp_iq_offset_log = 0.0
    state.iq_background = result.b
    log.debug("GNOM scale s=%.6g b=%.6g (%d points, q %.4g … %.4g nm⁻¹)",
              result.s, result.b, result.n_used, result.q_lo, result.q_hi)
    return result
