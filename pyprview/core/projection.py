"""
Projection of the viewer state into plot (pixel) space.

:func:`project_pr` and :func:`project_iq` turn a :class:`ViewerState` into
render-ready frames: display-unit curve arrays, node markers, axis bounds and
a :class:`Mapping` with the forward (data → pixel) and inverse
(pixel → data) transforms.  The frame returned for one redraw is what the
interaction controller hit-tests against on the next pointer event.

Pixel space follows screen conventions: x grows to the right, y grows
downward, the plot area spans ``left … right`` × ``top … bottom``.

I(q) has two modes:

``'log'``
    x = log10 q_display, y = log10 |I| (+ shift).  The mapping is returned
    and curve dragging / rectangle selection are available.
``'linear'``
    x = q_display, y = I × 10^shift.  No mapping is returned, which disables
    all I(q) interaction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from pyprview.core.state import IQ_LOG


# ──────────────────────────────────────────────────────────────────────────────
# Style constants
# ──────────────────────────────────────────────────────────────────────────────

NODE_COLORS = ("#e41a1c", "#377eb8", "#4daf4a", "#984ea3", "#ff7f00", "#a65628")
TOTAL_PR_COLOR = "#00ffff"
MODEL_IQ_COLOR = "#ff00ff"
EXP_COLOR = "#ffffff"

# (left, right, top, bottom) plot-area margins in pixels
DEFAULT_MARGINS = (60, 30, 30, 35)
NO_MARGINS = (0, 0, 0, 0)

LOG_EPS = 1e-14
LOG_Q_EPS = 1e-12

AMP_MARKER_RADIUS = 4.0
TOTAL_MARKER_RADIUS = 6.0


def node_color(k: int) -> str:
    return NODE_COLORS[k % len(NODE_COLORS)]


def pulse_size(phase: float, selected: bool) -> float:
    """Extra marker radius [px] of a selected node."""
    return 1.5 * math.sin(phase) + 2.0 if selected else 0.0


def data_bounds(values) -> Tuple[float, float]:
    """
    Padded (min, max) of the finite entries of *values*.

    Falls back to (-1, 1) when nothing is finite; a span below 1e-6 is
    widened to 1; the result is padded by 5 % on each side.
    """
    arr = np.asarray(values, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        lo, hi = -1.0, 1.0
    else:
        lo, hi = float(arr.min()), float(arr.max())
    if abs(hi - lo) < 1e-6:
        hi = lo + 1.0
    pad = 0.05 * (hi - lo)
    return lo - pad, hi + pad


# ──────────────────────────────────────────────────────────────────────────────
# Mapping
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Mapping:
    """Linear data ↔ pixel transform of one plot area."""

    x_min: float
    x_max: float
    y_min: float
    y_max: float
    left: float
    right: float
    top: float
    bottom: float

    @classmethod
    def for_size(cls, width: float, height: float,
                 x_min: float, x_max: float, y_min: float, y_max: float,
                 margins: Tuple[float, float, float, float] = DEFAULT_MARGINS) -> 'Mapping':
        m_left, m_right, m_top, m_bottom = margins
        return cls(x_min, x_max, y_min, y_max,
                   left=m_left, right=width - m_right,
                   top=m_top, bottom=height - m_bottom)

    @property
    def _x_span(self) -> float:
        return (self.x_max - self.x_min) or 1e-6

    @property
    def _y_span(self) -> float:
        return (self.y_max - self.y_min) or 1e-6

    def x_pix(self, x):
        return self.left + (np.asarray(x, dtype=float) - self.x_min) / self._x_span * (self.right - self.left)

    def y_pix(self, y):
        return self.bottom - (np.asarray(y, dtype=float) - self.y_min) / self._y_span * (self.bottom - self.top)

    def x_from_pix(self, px: float) -> float:
        t = (px - self.left) / ((self.right - self.left) or 1e-6)
        return self.x_min + t * (self.x_max - self.x_min)

    def y_from_pix(self, py: float) -> float:
        t = (self.bottom - py) / ((self.bottom - self.top) or 1e-6)
        return self.y_min + t * self._y_span

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.x_min, self.x_max, self.y_min, self.y_max


# ──────────────────────────────────────────────────────────────────────────────
# Frame records
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class Curve:
    x: np.ndarray
    y: np.ndarray
    color: str
    width: float = 1.0
    dashed: bool = False


@dataclass
class NodeMarker:
    """Both markers of one node, in display data units."""

    index: int
    x: float              # peak radius (display unit)
    y_amp: float          # node amplitude A
    y_total: float        # total P(r) at the peak radius
    radius_amp: float
    radius_total: float
    color: str
    selected: bool


@dataclass
class ExpPoints:
    x: np.ndarray
    y: np.ndarray
    lo: Optional[np.ndarray] = None      # lower error-bar end (None: no bars)
    hi: Optional[np.ndarray] = None


@dataclass
class PrFrame:
    mapping: Mapping
    x_label: str
    y_label: str
    components: List[Curve] = field(default_factory=list)
    total: Optional[Curve] = None
    exp: Optional[ExpPoints] = None
    markers: List[NodeMarker] = field(default_factory=list)


@dataclass
class IqFrame:
    mode: str
    bounds: Tuple[float, float, float, float]
    mapping: Optional[Mapping]        # None in linear mode
    x_label: str
    y_label: str
    components: List[Curve] = field(default_factory=list)
    total: Optional[Curve] = None
    exp: Optional[ExpPoints] = None
    # log-mode arrays used for hit testing
    model_log_q: Optional[np.ndarray] = None
    model_log_i: Optional[np.ndarray] = None
    exp_log_q: Optional[np.ndarray] = None
    exp_log_i: Optional[np.ndarray] = None


# ──────────────────────────────────────────────────────────────────────────────
# P(r)
# ──────────────────────────────────────────────────────────────────────────────

def project_pr(state, width: float, height: float,
               margins: Tuple[float, float, float, float] = DEFAULT_MARGINS) -> PrFrame:
    """Build the P(r) frame for a plot area of *width* × *height* pixels."""
    uf = state.unit_factor_r()
    grid = state.grid
    r_disp = grid.r * uf

    if len(state.p):
        state.p[0] = 0.0

    y_vals = [state.p]
    exp_points = None
    exp = state.exp_pr
    if exp is not None and len(exp):
        y_vals.append(exp.y)
        lo = hi = None
        if exp.err is not None:
            finite = np.isfinite(exp.err)
            y_vals.append((exp.y + exp.err)[finite])
            y_vals.append((exp.y - exp.err)[finite])
            lo = np.where(finite, exp.y - exp.err, exp.y)
            hi = np.where(finite, exp.y + exp.err, exp.y)
        ok = np.isfinite(exp.x) & np.isfinite(exp.y)
        exp_points = ExpPoints(
            x=exp.x[ok] * uf, y=exp.y[ok],
            lo=None if lo is None else lo[ok],
            hi=None if hi is None else hi[ok],
        )

    raw_min, raw_max = data_bounds(np.concatenate([np.ravel(v) for v in y_vals]))
    m_abs = max(abs(raw_min), abs(raw_max))
    if np.isfinite(m_abs) and m_abs > 0:
        y_min, y_max = -m_abs, m_abs
    else:
        y_min, y_max = -1.0, 1.0

    mapping = Mapping.for_size(width, height, 0.0, grid.r_max * uf,
                               y_min, y_max, margins=margins)

    components = []
    for k, nd in enumerate(state.nodes):
        if k >= len(state.p_nodes):
            continue
        components.append(Curve(r_disp, state.p_nodes[k], node_color(k),
                                dashed=nd.A < 0))

    markers = []
    for k, nd in enumerate(state.nodes):
        r_pk = nd.r_peak
        selected = k in state.selected
        pulse = pulse_size(state.pulse_phase, selected)
        markers.append(NodeMarker(
            index=k,
            x=r_pk * uf,
            y_amp=nd.A,
            y_total=float(state.p[grid.index_of(r_pk)]),
            radius_amp=AMP_MARKER_RADIUS + pulse,
            radius_total=TOTAL_MARKER_RADIUS + pulse,
            color=node_color(k),
            selected=selected,
        ))

    return PrFrame(
        mapping=mapping,
        x_label=state.r_label(),
        y_label='P(r)',
        components=components,
        total=Curve(r_disp, state.p, TOTAL_PR_COLOR, width=2.0),
        exp=exp_points,
        markers=markers,
    )


# ──────────────────────────────────────────────────────────────────────────────
# I(q)
# ──────────────────────────────────────────────────────────────────────────────

def exp_iq_logs(exp) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]]:
    """
    Unshifted log10 arrays of an experimental I(q): (log q, log I, lo, hi).

    Error-bar ends equal log I where no finite uncertainty exists.
    """
    if exp is None or len(exp) == 0:
        return None
    log_q = np.log10(np.maximum(exp.x, LOG_Q_EPS))
    i_pos = np.maximum(exp.y, LOG_EPS)
    log_i = np.log10(i_pos)
    if exp.err is None:
        return log_q, log_i, log_i.copy(), log_i.copy()
    finite = np.isfinite(exp.err)
    e = np.where(finite, exp.err, 0.0)
    log_lo = np.where(finite, np.log10(np.maximum(i_pos - e, LOG_EPS)), log_i)
    log_hi = np.where(finite, np.log10(np.maximum(i_pos + e, LOG_EPS)), log_i)
    return log_q, log_i, log_lo, log_hi


def project_iq(state, width: float, height: float,
               margins: Tuple[float, float, float, float] = DEFAULT_MARGINS) -> IqFrame:
    """Build the I(q) frame for a plot area of *width* × *height* pixels."""
    if state.iq_plot_mode == IQ_LOG:
        return _project_iq_log(state, width, height, margins)
    return _project_iq_linear(state, width, height, margins)


def _log_abs(values: np.ndarray) -> np.ndarray:
    return np.log10(np.maximum(np.abs(values), LOG_EPS))


def _project_iq_log(state, width, height, margins) -> IqFrame:
    uf_q = state.unit_factor_q()
    q_disp = state.grid.q * uf_q

    log_q_model = np.log10(np.maximum(q_disp, LOG_EPS))
    log_i_model = _log_abs(state.iq) + state.iq_scale_log

    x_vals = [log_q_model]
    y_vals = [log_i_model]

    exp_points = None
    exp_log_q = exp_log_i = None
    logs = exp_iq_logs(state.exp_iq)
    if logs is not None:
        log_q, log_i, log_lo, log_hi = logs
        shift = state.exp_iq_offset_log
        exp_log_q = log_q + math.log10(uf_q)
        exp_log_i = log_i + shift
        lo = log_lo + shift
        hi = log_hi + shift
        x_vals.append(exp_log_q)
        y_vals.extend([exp_log_i, lo, hi])
        has_bars = state.exp_iq.err is not None
        exp_points = ExpPoints(exp_log_q, exp_log_i,
                               lo if has_bars else None,
                               hi if has_bars else None)

    xs = np.concatenate(x_vals)
    xs = xs[np.isfinite(xs)]
    x_min, x_max = float(xs.min()), float(xs.max())
    y_min, y_max = data_bounds(np.concatenate(y_vals))

    mapping = Mapping.for_size(width, height, x_min, x_max, y_min, y_max,
                               margins=margins)

    components = []
    for k, nd in enumerate(state.nodes):
        if k >= len(state.iq_nodes):
            continue
        components.append(Curve(log_q_model,
                                _log_abs(state.iq_nodes[k]) + state.iq_scale_log,
                                node_color(k), dashed=nd.A < 0))

    unit = state.q_unit_label()
    return IqFrame(
        mode=IQ_LOG,
        bounds=mapping.bounds,
        mapping=mapping,
        x_label=f'log₁₀ q ({unit})',
        y_label='log₁₀ I(q)',
        components=components,
        total=Curve(log_q_model, log_i_model, MODEL_IQ_COLOR, width=2.0),
        exp=exp_points,
        model_log_q=log_q_model,
        model_log_i=log_i_model,
        exp_log_q=exp_log_q,
        exp_log_i=exp_log_i,
    )


def _project_iq_linear(state, width, height, margins) -> IqFrame:
    uf_q = state.unit_factor_q()
    q_disp = state.grid.q * uf_q
    model_scale = 10.0 ** state.iq_scale_log
    model_y = state.iq * model_scale

    y_vals = [model_y]
    exp_points = None
    exp = state.exp_iq
    if exp is not None and len(exp):
        exp_scale = 10.0 ** state.exp_iq_offset_log
        exp_y = exp.y * exp_scale
        y_vals.append(exp_y)
        lo = hi = None
        if exp.err is not None:
            e = np.where(np.isfinite(exp.err), exp.err, 0.0) * exp_scale
            lo, hi = exp_y - e, exp_y + e
        exp_points = ExpPoints(exp.x * uf_q, exp_y, lo, hi)

    y_min, y_max = data_bounds(np.concatenate(y_vals))
    x_min, x_max = float(q_disp[0]), float(q_disp[-1])

    components = []
    for k, nd in enumerate(state.nodes):
        if k >= len(state.iq_nodes):
            continue
        components.append(Curve(q_disp, state.iq_nodes[k] * model_scale,
                                node_color(k), dashed=nd.A < 0))

    unit = state.q_unit_label()
    return IqFrame(
        mode=state.iq_plot_mode,
        bounds=(x_min, x_max, y_min, y_max),
        mapping=None,
        x_label=f'q ({unit})',
        y_label='I(q)',
        components=components,
        total=Curve(q_disp, model_y, MODEL_IQ_COLOR, width=2.0),
        exp=exp_points,
    )
