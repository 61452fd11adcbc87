"""
pyqtgraph plotting helpers shared by the pyPrView panels.

The core projection layer (:mod:`pyprview.core.projection`) already decides
bounds, colours and dash styles.  These helpers only turn its frame records
into pyqtgraph items, so the two plots of the viewer look the same and share
the right-click "Save graph as JPEG…" action.

Design notes
------------
* Plots are created on an :class:`InteractiveViewBox`.  Its view range is
  set to the frame bounds with zero padding, and pan/zoom are disabled, so
  ViewBox-local pixels equal the pixels of the frame's ``Mapping`` built
  with ``NO_MARGINS``.
* The I(q) plot in log mode receives log10 values from the projection layer
  and is drawn on **linear** axes; ``setLogMode`` is never used.
* Mouse handlers forward ViewBox-local pixel positions to callbacks.  Every
  override is wrapped in ``try/except`` so no Python exception reaches the
  Qt virtual-method boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pyqtgraph as pg

try:
    from PySide6.QtWidgets import QFileDialog, QMessageBox
    from PySide6.QtCore import Qt
except ImportError:
    from PyQt6.QtWidgets import QFileDialog, QMessageBox
    from PyQt6.QtCore import Qt

log = logging.getLogger(__name__)


# ===========================================================================
# Style constants
# ===========================================================================

class PrIqPlotStyle:
    """Visual style of the P(r) and I(q) plots (dark background)."""

    BACKGROUND       = 'k'
    AXIS_COLOR       = (220, 220, 220)
    GRID_ALPHA       = 0.15

    # ── Experimental points ──────────────────────────────────────────────
    EXP_SIZE         = 4                               # symbol diameter (px)
    ERROR_PEN        = pg.mkPen((200, 200, 200, 160), width=1)
    ERROR_CAP_FRAC   = 0.004   # half-cap width as fraction of the x span

    # ── Node markers ─────────────────────────────────────────────────────
    MARKER_PEN       = pg.mkPen((0, 0, 0), width=1)
    SELECTED_PEN     = pg.mkPen((255, 255, 255), width=2)

    # ── q-window selection ───────────────────────────────────────────────
    WINDOW_BRUSH     = pg.mkBrush(255, 215, 0, 50)
    WINDOW_PEN       = pg.mkPen((255, 215, 0), width=1, style=Qt.PenStyle.DashLine)

    # ── Zero line of the P(r) plot ───────────────────────────────────────
    ZERO_PEN         = pg.mkPen((120, 120, 120), width=1, style=Qt.PenStyle.DotLine)


# ===========================================================================
# InteractiveViewBox
# ===========================================================================

class InteractiveViewBox(pg.ViewBox):
    """ViewBox that reports left-button pointer input in local pixels.

    Parameters
    ----------
    on_press : callable(x, y, shift)
    on_move : callable(x, y)
    on_release : callable(x, y)
    on_double_click : callable(x, y) or None

    A single click is reported as press + release.  Right-button events go
    to pyqtgraph so the context menu keeps working.
    """

    def __init__(self, on_press, on_move, on_release, on_double_click=None, **kwargs):
        super().__init__(**kwargs)
        self._on_press = on_press
        self._on_move = on_move
        self._on_release = on_release
        self._on_double_click = on_double_click
        self.setMouseEnabled(x=False, y=False)
        self.disableAutoRange()

    @staticmethod
    def _shift(ev) -> bool:
        return bool(ev.modifiers() & Qt.KeyboardModifier.ShiftModifier)

    def mouseClickEvent(self, ev):
        if ev.button() != Qt.MouseButton.LeftButton:
            try:
                super().mouseClickEvent(ev)
            except Exception:
                ev.ignore()
            return
        try:
            pos = ev.pos()
            if ev.double():
                if self._on_double_click is not None:
                    self._on_double_click(pos.x(), pos.y())
            else:
                self._on_press(pos.x(), pos.y(), self._shift(ev))
                self._on_release(pos.x(), pos.y())
            ev.accept()
        except Exception:
            log.exception("Click handler failed")
            ev.ignore()

    def mouseDragEvent(self, ev, axis=None):
        if ev.button() != Qt.MouseButton.LeftButton:
            ev.ignore()
            return
        try:
            if ev.isStart():
                start = ev.buttonDownPos()
                self._on_press(start.x(), start.y(), self._shift(ev))
            pos = ev.pos()
            self._on_move(pos.x(), pos.y())
            if ev.isFinish():
                self._on_release(pos.x(), pos.y())
            ev.accept()
        except Exception:
            log.exception("Drag handler failed")
            ev.ignore()

    def wheelEvent(self, ev, axis=None):
        ev.ignore()

    def pixel_size(self):
        """(width, height) of the data area in pixels."""
        rect = self.boundingRect()
        return float(rect.width()), float(rect.height())


# ===========================================================================
# Plot factory
# ===========================================================================

def make_priq_plot(
    graphics_layout: pg.GraphicsLayoutWidget,
    row: int,
    col: int,
    view_box: InteractiveViewBox,
    x_label: str = 'r  (nm)',
    y_label: str = 'P(r)',
    parent_widget=None,
    jpeg_default_name: str = 'pyprview_graph',
) -> pg.PlotItem:
    """Create a linear-axes plot on *view_box* with pyPrView styling.

    Parameters
    ----------
    graphics_layout : pg.GraphicsLayoutWidget
        The parent graphics layout.
    row, col : int
        Grid position within *graphics_layout*.
    view_box : InteractiveViewBox
        ViewBox receiving the pointer input of this plot.
    x_label, y_label : str
        Initial axis labels; frames replace them on every draw.
    parent_widget : QWidget or None
        Parent for the JPEG file dialog.  ``None`` suppresses the menu entry.
    jpeg_default_name : str
        Default file stem for the JPEG export dialog.
    """
    plot = graphics_layout.addPlot(row=row, col=col, viewBox=view_box)
    plot.setLabel('left', y_label)
    plot.setLabel('bottom', x_label)
    plot.showGrid(x=True, y=True, alpha=PrIqPlotStyle.GRID_ALPHA)
    plot.hideButtons()
    style_axes(plot)
    plot.getAxis('left').setWidth(60)
    if parent_widget is not None:
        _add_jpeg_export(plot, parent_widget, jpeg_default_name)
    return plot


def style_axes(plot_item, color=PrIqPlotStyle.AXIS_COLOR):
    """Light axes on the dark background; no SI prefix scaling."""
    for side in ('left', 'bottom'):
        ax = plot_item.getAxis(side)
        ax.setPen(pg.mkPen(color))
        ax.setTextPen(pg.mkPen(color))
        ax.enableAutoSIPrefix(False)


def set_frame_range(plot: pg.PlotItem, bounds) -> None:
    """Pin the view to ``(x_min, x_max, y_min, y_max)`` with no padding."""
    x_min, x_max, y_min, y_max = bounds
    if not (np.all(np.isfinite(bounds)) and x_max > x_min and y_max > y_min):
        return
    plot.getViewBox().setRange(xRange=(x_min, x_max), yRange=(y_min, y_max), padding=0)


# ===========================================================================
# JPEG export
# ===========================================================================

def _add_jpeg_export(plot: pg.PlotItem, parent_widget, default_name: str):
    """Append a 'Save graph as JPEG…' entry to the ViewBox right-click menu."""
    vb = plot.getViewBox()
    vb.menu.addSeparator()
    action = vb.menu.addAction("Save graph as JPEG…")
    action.triggered.connect(
        lambda checked=False, p=plot, pw=parent_widget, n=default_name:
            save_plot_as_jpeg(p, pw, n)
    )


def save_plot_as_jpeg(plot: pg.PlotItem, parent, default_name: str,
                      folder: str | None = None):
    """Export *plot* to a JPEG file chosen via a save dialog."""
    from pyqtgraph.exporters import ImageExporter
    default_path = str(Path(folder or Path.home()) / f'{default_name}.jpg')
    file_path, _ = QFileDialog.getSaveFileName(
        parent, 'Save Graph as JPEG', default_path,
        'JPEG Images (*.jpg *.jpeg);;All Files (*)',
    )
    if not file_path:
        return
    try:
        exporter = ImageExporter(plot)
        exporter.parameters()['width'] = 1600
        exporter.export(file_path)
    except Exception as exc:
        QMessageBox.warning(parent, 'Export Failed',
                            f'Could not save image:\n{exc}')


# ===========================================================================
# Frame → items
# ===========================================================================

def curve_pen(curve):
    """Pen for a :class:`~pyprview.core.projection.Curve`."""
    style = Qt.PenStyle.DashLine if curve.dashed else Qt.PenStyle.SolidLine
    return pg.mkPen(curve.color, width=curve.width, style=style)


class CurvePool:
    """Reusable PlotDataItems for a varying number of curves.

    Items are created on demand and emptied (not removed) when fewer curves
    are drawn, so a redraw at frame rate never rebuilds the scene.
    """

    def __init__(self, plot: pg.PlotItem, z: float = 0.0):
        self.plot = plot
        self.z = z
        self.items = []

    def draw(self, curves) -> None:
        for k, curve in enumerate(curves):
            if k >= len(self.items):
                item = pg.PlotDataItem()
                item.setZValue(self.z)
                self.plot.addItem(item)
                self.items.append(item)
            self.items[k].setData(np.asarray(curve.x), np.asarray(curve.y),
                                  pen=curve_pen(curve))
        for item in self.items[len(curves):]:
            item.setData([], [])


def error_bar_segments(x, lo, hi, cap: float):
    """NaN-separated (x, y) lists of vertical bars with end caps.

    Points where ``lo == hi`` (no uncertainty) get no bar.  Python lists are
    returned; pyqtgraph draws them with ``connect='finite'``.
    """
    x_lines: list[float] = []
    y_lines: list[float] = []
    for xi, lo_i, hi_i in zip(x, lo, hi):
        if not (np.isfinite(xi) and np.isfinite(lo_i) and np.isfinite(hi_i)) or hi_i <= lo_i:
            continue
        x_lines.extend([xi, xi, np.nan])
        y_lines.extend([lo_i, hi_i, np.nan])
        x_lines.extend([xi - cap, xi + cap, np.nan])
        y_lines.extend([hi_i, hi_i, np.nan])
        x_lines.extend([xi - cap, xi + cap, np.nan])
        y_lines.extend([lo_i, lo_i, np.nan])
    return x_lines, y_lines


class ExpOverlay:
    """Scatter of experimental points plus optional error whiskers."""

    def __init__(self, plot: pg.PlotItem, color: str, z: float = 5.0):
        self.scatter = pg.ScatterPlotItem(
            pen=None, brush=pg.mkBrush(color), size=PrIqPlotStyle.EXP_SIZE)
        self.scatter.setZValue(z)
        self.errors = pg.PlotDataItem(pen=PrIqPlotStyle.ERROR_PEN, connect='finite')
        self.errors.setZValue(z - 0.5)
        plot.addItem(self.errors)
        plot.addItem(self.scatter)

    def draw(self, points, x_span: float) -> None:
        if points is None or len(points.x) == 0:
            self.scatter.setData([], [])
            self.errors.setData([], [])
            return
        self.scatter.setData(x=np.asarray(points.x), y=np.asarray(points.y))
        if points.lo is None or points.hi is None:
            self.errors.setData([], [])
            return
        xs, ys = error_bar_segments(points.x, points.lo, points.hi,
                                    PrIqPlotStyle.ERROR_CAP_FRAC * x_span)
        if xs:
            self.errors.setData(xs, ys, connect='finite')
        else:
            self.errors.setData([], [])


def marker_spots(markers, which: str):
    """Spot dicts for the ``'amp'`` or ``'total'`` markers of a P(r) frame."""
    spots = []
    for mk in markers:
        y = mk.y_amp if which == 'amp' else mk.y_total
        radius = mk.radius_amp if which == 'amp' else mk.radius_total
        spots.append({
            'pos': (mk.x, y),
            'size': 2.0 * radius,
            'brush': pg.mkBrush(mk.color),
            'pen': PrIqPlotStyle.SELECTED_PEN if mk.selected else PrIqPlotStyle.MARKER_PEN,
            'symbol': 's' if which == 'amp' else 'o',
        })
    return spots
