"""
Pointer and keyboard interaction for the P(r) and I(q) plots.

The module has two layers:

* pure state mutators (``find_hit_node``, ``add_node_at``, ``delete_node``,
  ``begin_node_drag`` / ``apply_node_drag``, ``nudge_amplitude``, ...) that
  act on a :class:`ViewerState` and need no GUI;
* :class:`InteractionController`, a small state machine that turns pointer
  positions (in the pixel space of the last drawn frame) into calls of those
  mutators and notifies the owner through callbacks.

All pixel coordinates are relative to the plot widget, as produced by the
:class:`~pyprview.core.projection.Mapping` of the frame passed in.  Without
a frame (nothing drawn yet) every handler is a no-op.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from pyprview.core.basis import Node

log = logging.getLogger(__name__)

HIT_RADIUS = 10.0             # px, node marker hit radius
IQ_PICK_THRESHOLD = 10.0      # px, curve pick distance on the I(q) plot
IQ_MODEL_STEP = 5             # every n-th model point is hit-tested
AMP_STEP = 1.1                # Up/Down arrow amplitude factor
R_STEP = 0.2                  # nm, Left/Right arrow radius step
RECT_MIN_PIXELS = 3.0         # narrower rectangle selections are ignored

KEY_UP = 'up'
KEY_DOWN = 'down'
KEY_LEFT = 'left'
KEY_RIGHT = 'right'


class Mode(enum.Enum):
    IDLE = 'idle'
    NODE_DRAG = 'node-dragging'
    CURVE_SCALE_DRAG = 'curve-scale-dragging'
    CURVE_OFFSET_DRAG = 'curve-offset-dragging'
    RECT_SELECT = 'rect-select'


# ──────────────────────────────────────────────────────────────────────────────
# Pure mutators
# ──────────────────────────────────────────────────────────────────────────────

def find_hit_node(frame, mx: float, my: float, radius: float = HIT_RADIUS) -> Optional[int]:
    """
    Index of the node whose marker is nearest to (mx, my) within *radius*.

    Both the amplitude marker and the marker on the total curve are tested.
    """
    if frame is None or frame.mapping is None:
        return None
    mp = frame.mapping
    best_k, best_d2 = None, radius * radius
    for mk in frame.markers:
        xp = float(mp.x_pix(mk.x))
        for y in (mk.y_total, mk.y_amp):
            d2 = (mx - xp) ** 2 + (my - float(mp.y_pix(y))) ** 2
            if d2 <= best_d2 and (best_k is None or d2 < best_d2):
                best_k, best_d2 = mk.index, d2
    return best_k


def r_from_pix(mapping, px: float) -> float:
    """Display-unit radius under pixel column *px*, clamped to [0, x_max]."""
    return max(0.0, min(mapping.x_max, mapping.x_from_pix(px)))


def select_node(state, index: int, toggle: bool = False) -> None:
    """Select *index* alone, or toggle its membership; it becomes active."""
    if not 0 <= index < len(state.nodes):
        raise IndexError(f"node index {index} out of range")
    if toggle:
        if index in state.selected:
            state.selected.discard(index)
        else:
            state.selected.add(index)
        if not state.selected:
            state.selected.add(index)
    else:
        state.selected = {index}
    state.active = index


def add_node_at(state, r_peak: float, amplitude: float) -> int:
    """
    Append a node with its peak at *r_peak* [nm] and amplitude *amplitude*,
    shaped by the current control defaults.  The new node is selected alone
    and made active.  Returns its index.
    """
    node = Node.at_peak(r_peak, amplitude, state.gui_d, state.gui_alpha, state.gui_dir)
    state.nodes.append(node)
    idx = len(state.nodes) - 1
    state.selected = {idx}
    state.active = idx
    return idx


def delete_node(state, index: int) -> None:
    """Remove a node and re-index the selection and the active node."""
    if not 0 <= index < len(state.nodes):
        raise IndexError(f"node index {index} out of range")
    del state.nodes[index]

    remaining = [k - 1 if k > index else k
                 for k in sorted(state.selected) if k != index]
    state.selected = set(remaining)

    if state.active == index:
        state.active = remaining[-1] if remaining else None
    elif state.active is not None and state.active > index:
        state.active -= 1


@dataclass
class NodeDrag:
    """Start of a collective node drag (r in display units)."""

    start_r: float
    start_p: float
    per_node: List[Tuple[int, float, float]] = field(default_factory=list)


def begin_node_drag(state, start_r: float, start_p: float) -> NodeDrag:
    """Capture peak radius and amplitude of every selected node."""
    per_node = [(k, state.nodes[k].r_peak, state.nodes[k].A)
                for k in sorted(state.selected) if 0 <= k < len(state.nodes)]
    return NodeDrag(start_r, start_p, per_node)


def apply_node_drag(state, drag: NodeDrag, cur_r: float, cur_p: float) -> None:
    """
    Move all captured nodes by the same (Δr, ΔA) from their start values.

    Δr is converted from display units to nm; peak radii are clamped to
    [0, r_max] and r0 is re-derived from the new peak.
    """
    d_r = (cur_r - drag.start_r) / state.unit_factor_r()
    d_a = cur_p - drag.start_p
    for k, r_peak0, a0 in drag.per_node:
        if k >= len(state.nodes):
            continue
        nd = state.nodes[k]
        nd.move_peak_to(state.clamp_radius(r_peak0 + d_r))
        nd.A = a0 + d_a


def nudge_amplitude(state, up: bool) -> bool:
    """Multiply selected amplitudes by 1.1 (up) or 1/1.1 (down)."""
    if not state.selected:
        return False
    factor = AMP_STEP if up else 1.0 / AMP_STEP
    for k in sorted(state.selected):
        state.nodes[k].A *= factor
    return True


def nudge_radius(state, direction: int) -> bool:
    """Shift selected peak radii by ±0.2 nm, clamped to [0, r_max]."""
    if not state.selected:
        return False
    step = R_STEP if direction > 0 else -R_STEP
    for k in sorted(state.selected):
        nd = state.nodes[k]
        nd.move_peak_to(state.clamp_radius(nd.r_peak + step))
    return True


def pick_iq_curve(frame, mx: float, my: float,
                  threshold: float = IQ_PICK_THRESHOLD,
                  step: int = IQ_MODEL_STEP) -> Tuple[Optional[str], Optional[int]]:
    """
    Decide which I(q) curve a press at (mx, my) grabs.

    Returns ``('exp', i)`` if an experimental point lies within *threshold*
    and no closer than the nearest (coarsely sampled) model point,
    ``('model', j)`` if only the model is within reach, else ``(None, None)``.
    """
    if frame is None or frame.mapping is None or frame.model_log_q is None:
        return None, None
    mp = frame.mapping

    xs = mp.x_pix(frame.model_log_q[::step])
    ys = mp.y_pix(frame.model_log_i[::step])
    d2_model = (mx - xs) ** 2 + (my - ys) ** 2
    best_model = int(np.argmin(d2_model)) if d2_model.size else -1
    best_d2_model = float(d2_model[best_model]) if best_model >= 0 else np.inf

    best_exp, best_d2_exp = -1, np.inf
    if frame.exp_log_q is not None and len(frame.exp_log_q):
        d2_exp = ((mx - mp.x_pix(frame.exp_log_q)) ** 2
                  + (my - mp.y_pix(frame.exp_log_i)) ** 2)
        best_exp = int(np.argmin(d2_exp))
        best_d2_exp = float(d2_exp[best_exp])

    thr2 = threshold * threshold
    if best_exp >= 0 and best_d2_exp <= thr2 and best_d2_exp <= best_d2_model:
        return 'exp', best_exp
    if best_model >= 0 and best_d2_model <= thr2:
        return 'model', best_model * step
    return None, None


# ──────────────────────────────────────────────────────────────────────────────
# State machine
# ──────────────────────────────────────────────────────────────────────────────

class InteractionController:
    """
    Translate pointer/keyboard input into state mutations.

    Args:
        state:        The shared :class:`ViewerState`.
        on_change:    Called after any node mutation; expected to run the full
                      recompute → normalise → recompute → redraw cycle.
        on_iq_change: Called after scale/offset dragging; only I(q) needs a
                      redraw.  Defaults to *on_change*.
        on_fit:       Called with ``(q_min, q_max)`` [nm⁻¹] when a rectangle
                      selection on the I(q) plot is released.
    """

    def __init__(
        self,
        state,
        on_change: Callable[[], None],
        on_iq_change: Optional[Callable[[], None]] = None,
        on_fit: Optional[Callable[[float, float], None]] = None,
    ):
        self.state = state
        self.on_change = on_change
        self.on_iq_change = on_iq_change or on_change
        self.on_fit = on_fit
        self.reset()

    def reset(self) -> None:
        self.mode = Mode.IDLE
        self.node_drag: Optional[NodeDrag] = None
        self._base_ref_log_i = 0.0
        self._start_offset = 0.0
        self._start_log_i = 0.0
        self.rect_start_px: Optional[float] = None
        self.rect_end_px: Optional[float] = None

    # ── P(r) plot ─────────────────────────────────────────────────────────────

    def pr_press(self, frame, mx: float, my: float, shift: bool = False) -> bool:
        """Select / toggle a node or create one, then start dragging."""
        if frame is None or frame.mapping is None:
            return False
        mp = frame.mapping
        start_r = r_from_pix(mp, mx)
        start_p = mp.y_from_pix(my)

        hit = find_hit_node(frame, mx, my)
        if hit is not None:
            select_node(self.state, hit, toggle=shift)
        else:
            add_node_at(self.state, start_r / self.state.unit_factor_r(), start_p)

        self.on_change()
        self.node_drag = begin_node_drag(self.state, start_r, start_p)
        self.mode = Mode.NODE_DRAG
        return True

    def pr_move(self, frame, mx: float, my: float) -> bool:
        if self.mode is not Mode.NODE_DRAG or self.node_drag is None:
            return False
        if frame is None or frame.mapping is None:
            return False
        mp = frame.mapping
        apply_node_drag(self.state, self.node_drag,
                        r_from_pix(mp, mx), mp.y_from_pix(my))
        self.on_change()
        return True

    def pr_release(self) -> bool:
        if self.mode is not Mode.NODE_DRAG:
            return False
        self.reset()
        self.on_change()
        return True

    def pr_double_click(self, frame, mx: float, my: float) -> bool:
        """Delete the node under the pointer, if any."""
        hit = find_hit_node(frame, mx, my)
        if hit is None:
            return False
        self.reset()
        delete_node(self.state, hit)
        self.on_change()
        return True

    def key_press(self, key: str) -> bool:
        """Arrow-key nudging of the selected nodes."""
        if key in (KEY_UP, KEY_DOWN):
            changed = nudge_amplitude(self.state, up=(key == KEY_UP))
        elif key in (KEY_LEFT, KEY_RIGHT):
            changed = nudge_radius(self.state, +1 if key == KEY_RIGHT else -1)
        else:
            return False
        if changed:
            self.on_change()
        return changed

    # ── I(q) plot (log mode only) ─────────────────────────────────────────────

    def iq_press(self, frame, mx: float, my: float, shift: bool = False) -> bool:
        """Start a rectangle selection (shift) or grab the nearest curve."""
        if frame is None or frame.mapping is None:
            return False
        if shift:
            self.mode = Mode.RECT_SELECT
            self.rect_start_px = mx
            self.rect_end_px = mx
            return True

        kind, idx = pick_iq_curve(frame, mx, my)
        if kind == 'exp':
            self.mode = Mode.CURVE_OFFSET_DRAG
            self._start_offset = self.state.exp_iq_offset_log
            self._start_log_i = frame.mapping.y_from_pix(my)
            return True
        if kind == 'model':
            self.mode = Mode.CURVE_SCALE_DRAG
            self._base_ref_log_i = float(frame.model_log_i[idx]) - self.state.iq_scale_log
            return True
        return False

    def iq_move(self, frame, mx: float, my: float) -> bool:
        if frame is None or frame.mapping is None:
            return False
        log_i = frame.mapping.y_from_pix(my)
        if self.mode is Mode.CURVE_SCALE_DRAG:
            self.state.iq_scale_log = log_i - self._base_ref_log_i
        elif self.mode is Mode.CURVE_OFFSET_DRAG:
            self.state.exp_iq_offset_log = self._start_offset + (log_i - self._start_log_i)
        elif self.mode is Mode.RECT_SELECT:
            self.rect_end_px = mx
            return True
        else:
            return False
        self.on_iq_change()
        return True

    def iq_release(self, frame, mx: float, my: float) -> bool:
        mode = self.mode
        start_px = self.rect_start_px
        self.reset()
        if mode is not Mode.RECT_SELECT:
            return mode is not Mode.IDLE
        if frame is None or frame.mapping is None or start_px is None:
            return False
        if abs(mx - start_px) < RECT_MIN_PIXELS:
            return False

        q_min, q_max = self.q_window(frame.mapping, start_px, mx)
        self.state.gnom_q_min = q_min
        self.state.gnom_q_max = q_max
        log.debug("q window %.4g … %.4g nm⁻¹", q_min, q_max)
        if self.on_fit is not None:
            self.on_fit(q_min, q_max)
        return True

    def q_window(self, mapping, px0: float, px1: float) -> Tuple[float, float]:
        """Internal-unit q range [nm⁻¹] between two pixel columns of a log plot."""
        lq0 = mapping.x_from_pix(px0)
        lq1 = mapping.x_from_pix(px1)
        uf_q = self.state.unit_factor_q()
        return 10.0 ** min(lq0, lq1) / uf_q, 10.0 ** max(lq0, lq1) / uf_q
