"""
Core modelling modules for pyPrView.

This module contains the P(r) / I(q) engine:
- radial / reciprocal grids and the parametric basis lobes
- superposition model with area normalisation
- GNOM-style scale fitting against experimental I(q)
- structure-derived (Debye) curves
- projection, interaction and redraw orchestration

Classes:
    Node: One basis lobe of the P(r) model
    Grid: Radial grid, q grid and cached transform kernel
    ViewerState: Mutable state record of one viewer
    PrIqViewer: Redraw orchestrator driving a renderer
"""

from pyprview.core.basis import Node, basis_value, seed_nodes
from pyprview.core.grid import Grid
from pyprview.core.model import recompute, normalize_area, solve
from pyprview.core.gnom_scale import apply_gnom_scale, fit_gnom_scale, GnomScaleResult
from pyprview.core.state import ViewerState, ExperimentalCurve
from pyprview.core.viewer import PrIqViewer

__all__ = [
    "Node", "basis_value", "seed_nodes",
    "Grid",
    "recompute", "normalize_area", "solve",
    "apply_gnom_scale", "fit_gnom_scale", "GnomScaleResult",
    "ViewerState", "ExperimentalCurve",
    "PrIqViewer",
]
