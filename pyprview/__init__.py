"""
pyPrView: interactive P(r) / I(q) basis-function modelling for SAXS

This package models a pair-distance distribution function P(r) as a sum of
draggable, peak-normalised basis lobes, transforms it to the scattering
intensity I(q) and scales the model GNOM-style onto experimental I(q) data
or onto the Debye curves of a structure file.

Modules:
    core: Grid, basis, model, scale fitting, structure curves and the viewer
    io: Text table input/output
    state: Persistent user settings
    gui: Qt panel with live pyqtgraph plots
    plotting: Static matplotlib figures

Example:
    >>> from pyprview import PrIqViewer
    >>> viewer = PrIqViewer()
    >>> viewer.load_structure_file("3V03.pdb")
    >>> viewer.state.iq_scale_log

Headless example:
    >>> from pyprview import model_structure
    >>> r = model_structure("3V03.pdb", "pyprview_config.json")
    >>> if r and r["success"]:
    ...     print(f"scale = {r['parameters']['iq_scale']:.4g}")

References:
    Svergun, D. I. (1992). J. Appl. Cryst. 25, 495-503
    Debye, P. (1915). Ann. Phys. 351, 809-823
"""

__version__ = "0.1.0"

from pyprview.core.basis import Node
from pyprview.core.state import ViewerState
from pyprview.core.viewer import PrIqViewer
from pyprview.batch import model_structure, model_batch

try:
    from pyprview.plotting.plot_priq import plot_priq
except ImportError:
    pass  # matplotlib not installed

__all__ = [
    "Node",
    "ViewerState",
    "PrIqViewer",
    "model_structure",
    "model_batch",
    "plot_priq",
]
