"""
The single mutable state record of a P(r) / I(q) viewer.

One ``ViewerState`` is owned by one :class:`~pyprview.core.viewer.PrIqViewer`
and handed by reference to every component (model, fitter, projection,
interaction).  Nothing in the package keeps module-level viewer state, so
several independent viewers can coexist and each component can be tested
with a bare ``ViewerState``.

Internal units are always nm (r) and nm⁻¹ (q); ``unit_mode`` only affects
what is displayed and how dropped tables are interpreted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Set

import numpy as np

from pyprview.core.basis import Node, check_shape, DEFAULT_D, DEFAULT_ALPHA, DEFAULT_DIR
from pyprview.core.grid import Grid


UNIT_NM = 'nm'
UNIT_ANGSTROM = 'A'
UNIT_MODES = (UNIT_NM, UNIT_ANGSTROM)

IQ_LOG = 'log'
IQ_LINEAR = 'linear'
IQ_PLOT_MODES = (IQ_LOG, IQ_LINEAR)

# Å ↔ nm
A_TO_NM = 0.1
NM_TO_A = 10.0


def normalize_unit_mode(mode: str) -> str:
    """Map 'nm' / 'A' / 'Å' onto the two supported unit modes."""
    if mode in ('A', 'Å', 'Angstrom', 'angstrom'):
        return UNIT_ANGSTROM
    if mode == UNIT_NM:
        return UNIT_NM
    raise ValueError(f"Unknown unit mode '{mode}'. Use 'nm' or 'A'.")


@dataclass
class ExperimentalCurve:
    """
    An experimental overlay in internal units.

    ``x`` is r [nm] for P(r) data or q [nm⁻¹] for I(q) data, sorted
    ascending without duplicates.  ``err`` is ``None`` when the source had no
    uncertainty column; individual missing uncertainties are NaN.
    """

    x: np.ndarray
    y: np.ndarray
    err: Optional[np.ndarray] = None

    def __post_init__(self):
        self.x = np.asarray(self.x, dtype=float)
        self.y = np.asarray(self.y, dtype=float)
        if self.err is not None:
            self.err = np.asarray(self.err, dtype=float)

    def __len__(self) -> int:
        return len(self.x)

    @property
    def has_errors(self) -> bool:
        return self.err is not None and bool(np.any(np.isfinite(self.err)))


@dataclass
class ViewerState:
    """
    Mutable viewer record: grid, nodes, derived curves, overlays and UI state.

    Derived curves (``p``, ``iq``, ``p_nodes``, ``iq_nodes``) are recomputed
    from ``nodes`` and ``grid`` by :func:`pyprview.core.model.recompute` and
    are never edited directly.
    """

    grid: Grid = field(default_factory=Grid)
    nodes: list = field(default_factory=list)

    # ── Model curves (derived) ────────────────────────────────────────────────
    p: np.ndarray = None
    iq: np.ndarray = None
    p_nodes: np.ndarray = None       # shape (n_nodes, Nr)
    iq_nodes: np.ndarray = None      # shape (n_nodes, Nq + 1)

    # ── Experimental overlays (internal units) ────────────────────────────────
    exp_pr: Optional[ExperimentalCurve] = None
    exp_iq: Optional[ExperimentalCurve] = None

    # ── Model ↔ experiment scaling ────────────────────────────────────────────
    iq_scale_log: float = 0.0         # log10 of the model → experiment factor
    exp_iq_offset_log: float = 0.0    # vertical log-shift of the exp curve only
    iq_background: float = 0.0        # b from the last fit with background

    auto_gnom_scale: bool = True
    gnom_use_background: bool = False
    gnom_q_min: Optional[float] = None   # nm⁻¹
    gnom_q_max: Optional[float] = None

    # ── Defaults for new nodes / slider values ────────────────────────────────
    gui_d: float = DEFAULT_D
    gui_alpha: float = DEFAULT_ALPHA
    gui_dir: int = DEFAULT_DIR

    # ── Display modes ─────────────────────────────────────────────────────────
    unit_mode: str = UNIT_NM
    iq_plot_mode: str = IQ_LOG

    # ── Selection ─────────────────────────────────────────────────────────────
    selected: Set[int] = field(default_factory=set)
    active: Optional[int] = None

    pulse_phase: float = 0.0

    def __post_init__(self):
        self.reset_curves()

    # ── Grid helpers ──────────────────────────────────────────────────────────

    @property
    def dr(self) -> float:
        return self.grid.dr

    @property
    def r_max(self) -> float:
        return self.grid.r_max

    def rebuild_grid(self, r_max: float) -> None:
        """Replace the grid with one of support *r_max* and clear model curves."""
        self.grid = self.grid.with_r_max(r_max)
        self.reset_curves()

    def reset_curves(self) -> None:
        n_r = self.grid.n_r
        n_q = len(self.grid.q)
        self.p = np.zeros(n_r)
        self.iq = np.zeros(n_q)
        self.p_nodes = np.zeros((len(self.nodes), n_r))
        self.iq_nodes = np.zeros((len(self.nodes), n_q))

    # ── Display unit conversions (purely visual) ──────────────────────────────

    def unit_factor_r(self) -> float:
        """r_display = r_internal × factor (1 for nm, 10 for Å)."""
        return 1.0 if self.unit_mode == UNIT_NM else NM_TO_A

    def unit_factor_q(self) -> float:
        """q_display = q_internal × factor (1 for nm⁻¹, 0.1 for Å⁻¹)."""
        return 1.0 if self.unit_mode == UNIT_NM else A_TO_NM

    def r_label(self) -> str:
        return 'r  (nm)' if self.unit_mode == UNIT_NM else 'r  (Å)'

    def q_unit_label(self) -> str:
        return 'nm⁻¹' if self.unit_mode == UNIT_NM else 'Å⁻¹'

    # ── Node helpers ──────────────────────────────────────────────────────────

    def has_active(self) -> bool:
        return self.active is not None and 0 <= self.active < len(self.nodes)

    def target_nodes(self) -> list:
        """Indices a control change applies to: selection, else active node."""
        if self.selected:
            return sorted(self.selected)
        if self.has_active():
            return [self.active]
        return []

    def clamp_radius(self, r: float) -> float:
        return max(0.0, min(self.grid.r_max, r))

    # ── Persistence ───────────────────────────────────────────────────────────

    def settings_to_dict(self) -> dict:
        """Serialise settings and nodes (not derived curves or overlays)."""
        d = self.grid.to_dict()
        d.update({
            'gui_d':               self.gui_d,
            'gui_alpha':           self.gui_alpha,
            'gui_dir':             self.gui_dir,
            'unit_mode':           self.unit_mode,
            'iq_plot_mode':        self.iq_plot_mode,
            'auto_gnom_scale':     self.auto_gnom_scale,
            'gnom_use_background': self.gnom_use_background,
            'gnom_q_min':          self.gnom_q_min,
            'gnom_q_max':          self.gnom_q_max,
            'iq_scale_log':        self.iq_scale_log,
            'nodes':               [nd.to_dict() for nd in self.nodes],
        })
        return d

    def apply_settings(self, d: dict) -> None:
        """Restore settings written by :meth:`settings_to_dict`.

        A ``None``/missing ``nodes`` entry leaves the current nodes untouched.
        Bad nodes, default shape or plot mode raise ``ValueError`` before
        anything is changed.
        """
        nodes = d.get('nodes')
        if nodes is not None:
            nodes = [Node.from_dict(nd) for nd in nodes]
        gui_d, gui_alpha = check_shape(d.get('gui_d', self.gui_d),
                                       d.get('gui_alpha', self.gui_alpha))
        mode = d.get('iq_plot_mode', self.iq_plot_mode)
        if mode not in IQ_PLOT_MODES:
            raise ValueError(f"Unknown I(q) plot mode '{mode}'.")

        grid_keys = ('r_max', 'n_r', 'q_min', 'q_max', 'n_q')
        if any(k in d for k in grid_keys):
            merged = self.grid.to_dict()
            merged.update({k: d[k] for k in grid_keys if d.get(k) is not None})
            self.grid = Grid.from_dict(merged)

        self.gui_d = gui_d
        self.gui_alpha = gui_alpha
        self.gui_dir = +1 if int(d.get('gui_dir', self.gui_dir)) >= 0 else -1
        self.unit_mode = normalize_unit_mode(d.get('unit_mode', self.unit_mode))
        self.iq_plot_mode = mode
        self.auto_gnom_scale = bool(d.get('auto_gnom_scale', self.auto_gnom_scale))
        self.gnom_use_background = bool(d.get('gnom_use_background',
                                              self.gnom_use_background))
        self.gnom_q_min = d.get('gnom_q_min', self.gnom_q_min)
        self.gnom_q_max = d.get('gnom_q_max', self.gnom_q_max)
        self.iq_scale_log = float(d.get('iq_scale_log', self.iq_scale_log))

        if nodes is not None:
            self.nodes = nodes
            self.selected = set()
            self.active = None
        self.reset_curves()
