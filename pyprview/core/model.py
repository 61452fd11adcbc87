"""
Superposition model: P(r) and I(q) from a list of basis nodes.

    P_k(r_i)   = A_k · φ_k(r_i)
    P(r_i)     = Σ_k P_k(r_i),          P(r_0 = 0) ≡ 0
    I_k(q_j)   = Σ_i P_k(r_i) · sinc(q_j r_i) · dr
    I(q_j)     = Σ_k I_k(q_j)

Area normalisation rescales the node amplitudes (never the grid or the
curves) so that ∫ P(r) dr = 1.  Because the curves are derived from the
amplitudes, normalising invalidates them; :func:`solve` performs the
compute / normalise / compute sequence as one operation.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

log = logging.getLogger(__name__)

# Areas below this magnitude are treated as degenerate (no rescaling)
AREA_EPS = 1e-12


def recompute(state) -> None:
    """
    Rebuild ``p``, ``iq``, ``p_nodes`` and ``iq_nodes`` on *state* from its
    nodes and grid.

    I(q) is evaluated as a matrix product with the cached transform kernel,
    O(nodes × Nr × Nq).
    """
    grid = state.grid
    r = grid.r
    n_nodes = len(state.nodes)

    p_nodes = np.zeros((n_nodes, grid.n_r))
    for k, nd in enumerate(state.nodes):
        p_nodes[k] = nd.values(r)

    p = p_nodes.sum(axis=0) if n_nodes else np.zeros(grid.n_r)
    if p.size:
        p[0] = 0.0

    iq_nodes = p_nodes @ grid.kernel if n_nodes else np.zeros((0, len(grid.q)))
    iq = iq_nodes.sum(axis=0) if n_nodes else np.zeros(len(grid.q))

    state.p_nodes = p_nodes
    state.p = p
    state.iq_nodes = iq_nodes
    state.iq = iq


def area_of(p: np.ndarray, dr: float) -> float:
    """Rectangle-rule area Σ P_i · dr."""
    return float(np.sum(p) * dr)


def normalize_area(state) -> Optional[float]:
    """
    Scale every node amplitude by 1/area of the current P(r).

    Returns the applied factor, or ``None`` when the area is non-finite or
    smaller than ``AREA_EPS`` (amplitudes are then left untouched).
    """
    area = area_of(state.p, state.dr)
    if not np.isfinite(area) or abs(area) < AREA_EPS:
        log.debug("normalize_area: degenerate area %r, skipped", area)
        return None
    scale = 1.0 / area
    for nd in state.nodes:
        nd.A *= scale
    return scale


def solve(state) -> Optional[float]:
    """
    Two-phase solve: compute unnormalised curves, normalise the amplitudes,
    recompute.  Returns the normalisation factor (``None`` if skipped).
    """
    recompute(state)
    scale = normalize_area(state)
    recompute(state)
    return scale
