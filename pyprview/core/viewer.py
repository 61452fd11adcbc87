"""
Redraw orchestrator of the P(r) / I(q) viewer.

:class:`PrIqViewer` owns one :class:`ViewerState`, an
:class:`InteractionController` and a renderer.  Every mutation (pointer,
keyboard, control change, data drop, structure load) ends in
:meth:`PrIqViewer.full_redraw_with_norm`, which

    1. solves the model (recompute → normalise area → recompute),
    2. projects and draws P(r),
    3. projects and draws I(q),
    4. syncs the control widgets to the active node.

The renderer is anything implementing the :class:`Renderer` methods.  The
Qt panel is one; :class:`NullRenderer` is used headless and in tests.  The
frames returned by the last draw are passed explicitly to the interaction
controller on the next pointer event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from pyprview.core.basis import seed_nodes
from pyprview.core.gnom_scale import apply_gnom_scale, GnomScaleResult, MIN_POINTS
from pyprview.core.interaction import InteractionController
from pyprview.core.model import solve
from pyprview.core.projection import project_pr, project_iq, DEFAULT_MARGINS
from pyprview.core.state import (
    ViewerState, ExperimentalCurve, UNIT_ANGSTROM, IQ_PLOT_MODES, A_TO_NM,
    normalize_unit_mode,
)
from pyprview.core.structure import (
    parse_pdb_ca, read_pdb_ca, required_r_max, structure_curves, DEFAULT_ATOM,
)
from pyprview.io.text_table import (
    parse_table, read_table, sort_and_dedup, write_table, KIND_PR, KIND_IQ,
)

log = logging.getLogger(__name__)

DEFAULT_STRUCTURE = '3V03.pdb'
PULSE_STEP = 0.1

PR = 'pr'
IQ = 'iq'


@dataclass
class ControlValues:
    """What the control widgets should show after a redraw."""

    d: float
    alpha: float
    mirrored: bool
    unit_mode: str
    iq_plot_mode: str
    auto_gnom_scale: bool
    gnom_use_background: bool


class Renderer:
    """Drawing surface interface; the base class draws nothing."""

    def plot_size(self, which: str) -> Tuple[float, float]:
        return 800.0, 400.0

    def plot_margins(self, which: str) -> Tuple[float, float, float, float]:
        return DEFAULT_MARGINS

    def draw_pr(self, frame) -> None:
        pass

    def draw_iq(self, frame) -> None:
        pass

    def sync_controls(self, values: ControlValues) -> None:
        pass


class NullRenderer(Renderer):
    """Headless renderer with a fixed 800 × 400 px plot area."""


class PrIqViewer:
    """
    Interactive P(r) / I(q) basis-function model.

    Args:
        state:    Existing state to drive (a fresh one by default).
        renderer: Drawing surface (headless by default).
        settings: Optional ``pr_viewer`` settings dict (see
                  :class:`~pyprview.state.StateManager`).
        seed:     Seed the four default nodes when the state has none.
    """

    def __init__(self, state: Optional[ViewerState] = None,
                 renderer: Optional[Renderer] = None,
                 settings: Optional[dict] = None,
                 seed: bool = True):
        self.state = state if state is not None else ViewerState()
        self.renderer = renderer if renderer is not None else NullRenderer()

        self.pr_frame = None
        self.iq_frame = None
        self.last_fit: Optional[GnomScaleResult] = None

        self.default_structure = DEFAULT_STRUCTURE
        self.atom_name = DEFAULT_ATOM
        self.min_points = MIN_POINTS
        self.structure_coords: Optional[np.ndarray] = None
        self.structure_source: Optional[str] = None
        self._default_attempted = False

        self.controller = InteractionController(
            self.state,
            on_change=self.full_redraw_with_norm,
            on_iq_change=self.redraw_iq,
            on_fit=self.fit_scale,
        )

        if settings:
            self.apply_settings(settings)
        if seed and not self.state.nodes:
            self.state.nodes = seed_nodes(self.state.gui_d, self.state.gui_alpha)
            self.state.reset_curves()

        self.full_redraw_with_norm()

    # ── Redraw pipeline ───────────────────────────────────────────────────────

    def full_redraw_with_norm(self) -> None:
        """Solve the model, redraw both plots and sync the controls."""
        solve(self.state)
        self.render()
        self.renderer.sync_controls(self.sync_sliders_to_active_node())

    def render(self) -> None:
        """Project and draw both plots from the current curves."""
        self.redraw_pr()
        self.redraw_iq()

    def redraw_pr(self) -> None:
        w, h = self.renderer.plot_size(PR)
        self.pr_frame = project_pr(self.state, w, h, self.renderer.plot_margins(PR))
        self.renderer.draw_pr(self.pr_frame)

    def redraw_iq(self) -> None:
        w, h = self.renderer.plot_size(IQ)
        self.iq_frame = project_iq(self.state, w, h, self.renderer.plot_margins(IQ))
        self.renderer.draw_iq(self.iq_frame)

    def animate_tick(self) -> bool:
        """
        One animation frame: advance the selection pulse and redraw.

        Errors are logged and swallowed so the frame loop keeps running.
        """
        try:
            self.state.pulse_phase += PULSE_STEP
            self.render()
            return True
        except Exception:
            log.exception("Frame update failed")
            return False

    def sync_sliders_to_active_node(self) -> ControlValues:
        """
        Copy the active node's shape into the control defaults and return the
        values the widgets should display.
        """
        st = self.state
        if st.has_active():
            nd = st.nodes[st.active]
            st.gui_d = nd.D
            st.gui_alpha = nd.alpha
            st.gui_dir = nd.direction
        return ControlValues(
            d=st.gui_d,
            alpha=st.gui_alpha,
            mirrored=st.gui_dir < 0,
            unit_mode=st.unit_mode,
            iq_plot_mode=st.iq_plot_mode,
            auto_gnom_scale=st.auto_gnom_scale,
            gnom_use_background=st.gnom_use_background,
        )

    # ── Control mutators ──────────────────────────────────────────────────────

    def set_d(self, value: float) -> None:
        """D slider: integer D on the target nodes and as the default."""
        new_d = float(round(value))
        if not np.isfinite(new_d) or new_d <= 0:
            return
        self.state.gui_d = new_d
        for k in self.state.target_nodes():
            self.state.nodes[k].D = new_d
        self.full_redraw_with_norm()

    def set_alpha(self, value: float) -> None:
        """Alpha slider: decay rate on the target nodes and as the default."""
        new_alpha = float(value)
        if not np.isfinite(new_alpha) or new_alpha <= 0:
            return
        self.state.gui_alpha = new_alpha
        for k in self.state.target_nodes():
            self.state.nodes[k].alpha = new_alpha
        self.full_redraw_with_norm()

    def set_mirrored(self, mirrored: bool) -> None:
        """Mirror checkbox: flip direction, peak radii stay in place."""
        new_dir = -1 if mirrored else +1
        self.state.gui_dir = new_dir
        for k in self.state.target_nodes():
            self.state.nodes[k].set_direction(new_dir)
        self.full_redraw_with_norm()

    def set_unit_mode(self, mode: str) -> None:
        self.state.unit_mode = normalize_unit_mode(mode)
        self.full_redraw_with_norm()

    def set_iq_plot_mode(self, mode: str) -> None:
        if mode not in IQ_PLOT_MODES:
            raise ValueError(f"Unknown I(q) plot mode '{mode}'. Use 'log' or 'linear'.")
        self.controller.reset()
        self.state.iq_plot_mode = mode
        self.full_redraw_with_norm()

    def set_auto_gnom_scale(self, enabled: bool) -> None:
        self.state.auto_gnom_scale = bool(enabled)

    def set_gnom_use_background(self, enabled: bool) -> None:
        self.state.gnom_use_background = bool(enabled)

    def reset_nodes(self) -> None:
        """Replace all nodes by the four seed nodes."""
        st = self.state
        st.nodes = seed_nodes(st.gui_d, st.gui_alpha)
        st.selected = set()
        st.active = None
        self.controller.reset()
        st.reset_curves()
        self.full_redraw_with_norm()

    # ── Pointer / keyboard adapters ───────────────────────────────────────────

    def pr_press(self, mx: float, my: float, shift: bool = False) -> bool:
        return self.controller.pr_press(self.pr_frame, mx, my, shift)

    def pr_move(self, mx: float, my: float) -> bool:
        return self.controller.pr_move(self.pr_frame, mx, my)

    def pr_release(self) -> bool:
        return self.controller.pr_release()

    def pr_double_click(self, mx: float, my: float) -> bool:
        return self.controller.pr_double_click(self.pr_frame, mx, my)

    def key_press(self, key: str) -> bool:
        return self.controller.key_press(key)

    def iq_press(self, mx: float, my: float, shift: bool = False) -> bool:
        return self.controller.iq_press(self.iq_frame, mx, my, shift)

    def iq_move(self, mx: float, my: float) -> bool:
        return self.controller.iq_move(self.iq_frame, mx, my)

    def iq_release(self, mx: float, my: float) -> bool:
        return self.controller.iq_release(self.iq_frame, mx, my)

    # ── Scale fitting ─────────────────────────────────────────────────────────

    def fit_scale(self, q_min: Optional[float] = None,
                  q_max: Optional[float] = None) -> Optional[GnomScaleResult]:
        """
        GNOM-style fit of the model I(q) to the experimental I(q).

        Without explicit limits the stored fit window (if any) is used.
        A failed fit leaves the scale untouched.
        """
        st = self.state
        if q_min is None:
            q_min = st.gnom_q_min
        if q_max is None:
            q_max = st.gnom_q_max
        result = apply_gnom_scale(st, q_min=q_min, q_max=q_max,
                                  use_background=st.gnom_use_background,
                                  min_points=self.min_points)
        if result is None:
            log.info("Scale fit rejected (no usable overlap)")
        else:
            self.last_fit = result
        self.full_redraw_with_norm()
        return result

    def clear_fit_window(self) -> None:
        self.state.gnom_q_min = None
        self.state.gnom_q_max = None

    def _auto_fit(self) -> None:
        st = self.state
        if not st.auto_gnom_scale:
            return
        result = apply_gnom_scale(st, q_min=st.gnom_q_min, q_max=st.gnom_q_max,
                                  use_background=st.gnom_use_background,
                                  min_points=self.min_points)
        if result is not None:
            self.last_fit = result

    # ── Experimental tables ───────────────────────────────────────────────────

    def set_exp_pr(self, curve: Optional[ExperimentalCurve]) -> bool:
        if curve is None or len(curve) == 0:
            return False
        self.state.exp_pr = curve
        self.full_redraw_with_norm()
        return True

    def set_exp_iq(self, curve: Optional[ExperimentalCurve]) -> bool:
        """New experimental I(q): clear the manual offset and auto-fit."""
        if curve is None or len(curve) == 0:
            return False
        st = self.state
        st.exp_iq = curve
        st.exp_iq_offset_log = 0.0
        solve(st)
        self._auto_fit()
        self.full_redraw_with_norm()
        return True

    def drop_pr_text(self, text: str) -> bool:
        """A P(r) table dropped onto the P(r) plot."""
        return self.set_exp_pr(parse_table(text, KIND_PR, self.state.unit_mode))

    def drop_iq_text(self, text: str) -> bool:
        """An I(q) table dropped onto the I(q) plot."""
        return self.set_exp_iq(parse_table(text, KIND_IQ, self.state.unit_mode))

    def load_pr_file(self, path: Union[str, Path]) -> bool:
        return self.set_exp_pr(read_table(path, KIND_PR, self.state.unit_mode))

    def load_iq_file(self, path: Union[str, Path]) -> bool:
        return self.set_exp_iq(read_table(path, KIND_IQ, self.state.unit_mode))

    def update_pr_from_structure(self, r, p, unit: str = 'nm') -> bool:
        """
        Replace the experimental P(r) with externally computed arrays.

        *r* is in *unit* ('nm' or 'A'); the overlay is stored in nm.
        Arrays of unequal length are cut to the shorter one.
        """
        factor = A_TO_NM if normalize_unit_mode(unit) == UNIT_ANGSTROM else 1.0
        r = np.ravel(np.asarray(r, dtype=float))
        p = np.ravel(np.asarray(p, dtype=float))
        n = min(len(r), len(p))
        if len(r) != len(p):
            log.warning("P(r) arrays differ in length (%d vs %d); using the first %d points",
                        len(r), len(p), n)
        x, y, _ = sort_and_dedup(r[:n] * factor, p[:n])
        if len(x) == 0:
            return False
        return self.set_exp_pr(ExperimentalCurve(x, y, None))

    # ── Structures ────────────────────────────────────────────────────────────

    def set_structure(self, coords: Optional[np.ndarray],
                      source: Optional[str] = None) -> bool:
        """
        Derive experimental P(r) and Debye I(q) from marker coordinates [nm].

        Expands r_max (and rebuilds the grid) if the structure would be
        clipped.  Structures with fewer than two atoms are ignored.
        """
        if coords is None or len(coords) < 2:
            log.warning("Structure %s has fewer than two usable atoms", source or '')
            return False
        self.structure_coords = np.asarray(coords, dtype=float)
        self.structure_source = source
        return self.reload_structure()

    def reload_structure(self) -> bool:
        """Recompute the structure overlays on the current grid."""
        coords = self.structure_coords
        if coords is None:
            return False
        st = self.state

        new_r_max = required_r_max(coords, st.r_max)
        if new_r_max is not None:
            log.info("Expanding r_max %.1f → %.1f nm to fit structure", st.r_max, new_r_max)
            st.rebuild_grid(new_r_max)
            self.controller.reset()

        pr, iq = structure_curves(coords, st.grid)
        st.exp_pr = ExperimentalCurve(st.grid.r.copy(), pr, None)
        st.exp_iq = ExperimentalCurve(st.grid.q.copy(), iq, None)
        st.exp_iq_offset_log = 0.0

        solve(st)
        self._auto_fit()
        self.full_redraw_with_norm()
        log.info("Structure %s: %d atoms", self.structure_source or '', len(coords))
        return True

    def load_structure_text(self, text: str, source: Optional[str] = None) -> bool:
        return self.set_structure(parse_pdb_ca(text, self.atom_name), source)

    def load_structure_file(self, path: Union[str, Path]) -> bool:
        coords = read_pdb_ca(path, self.atom_name)
        return self.set_structure(coords, str(path))

    def take_default_structure(self) -> Optional[Path]:
        """
        Claim the one-shot default structure load.

        Returns the path to read, or ``None`` if the load was already
        attempted or the file does not exist.
        """
        if self._default_attempted:
            return None
        self._default_attempted = True
        path = Path(self.default_structure)
        if not path.is_file():
            log.warning("Default structure %s not found; no overlay", path)
            return None
        return path

    def load_default_structure(self) -> bool:
        """Load the default structure once; missing files are not an error."""
        path = self.take_default_structure()
        if path is None:
            return False
        return self.load_structure_file(path)

    # ── Settings ──────────────────────────────────────────────────────────────

    def settings_to_dict(self) -> dict:
        d = self.state.settings_to_dict()
        d['default_structure'] = self.default_structure
        d['atom_name'] = self.atom_name
        d['gnom_min_points'] = self.min_points
        return d

    def apply_settings(self, d: dict) -> None:
        """Apply a ``pr_viewer`` settings dict (nodes included when present)."""
        self.default_structure = d.get('default_structure', self.default_structure)
        self.atom_name = d.get('atom_name', self.atom_name)
        self.min_points = int(d.get('gnom_min_points', self.min_points))
        self.controller.reset()
        self.state.apply_settings(d)

    def save_settings(self, state_manager, tool: str = 'pr_viewer') -> bool:
        state_manager.update(tool, self.settings_to_dict())
        return state_manager.save()

    # ── Export ────────────────────────────────────────────────────────────────

    def export_model(self, prefix: Union[str, Path]) -> Tuple[Path, Path]:
        """
        Write the model as two text tables in the current display unit.

        ``<prefix>_pr.txt``: r, total P(r), one column per node.
        ``<prefix>_iq.txt``: q, scaled model I(q).
        """
        st = self.state
        prefix = Path(prefix)
        uf_r = st.unit_factor_r()
        uf_q = st.unit_factor_q()
        r_unit = 'nm' if uf_r == 1.0 else 'A'

        pr_cols = [st.grid.r * uf_r, st.p] + [row for row in st.p_nodes]
        pr_names = [f'r[{r_unit}]', 'P_total'] + [f'P_{k + 1}' for k in range(len(st.p_nodes))]
        pr_path = write_table(prefix.with_name(prefix.name + '_pr.txt'), pr_cols, pr_names,
                              comment=f'pyPrView model P(r), {len(st.nodes)} nodes')

        scale = 10.0 ** st.iq_scale_log
        iq_path = write_table(prefix.with_name(prefix.name + '_iq.txt'),
                              [st.grid.q * uf_q, st.iq * scale],
                              [f'q[1/{r_unit}]', 'I_model'],
                              comment=f'pyPrView model I(q), scale={scale:.6g}')
        return pr_path, iq_path
