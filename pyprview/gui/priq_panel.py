"""
Interactive P(r) / I(q) modelling panel for pyPrView.

Provides PrIqGraphWindow (two stacked pyqtgraph plots: P(r) on top, I(q)
below) and PrIqPanel (controls + graph) driving a
:class:`~pyprview.core.viewer.PrIqViewer`.

Pointer input on the plots is forwarded in ViewBox pixels to the viewer's
interaction controller; a 16 ms QTimer advances the selection pulse.  The
default structure is read once on a background QThread and merged on the
GUI thread.
"""

try:
    from PySide6.QtWidgets import (
        QApplication, QWidget, QVBoxLayout, QHBoxLayout,
        QPushButton, QLabel, QComboBox, QCheckBox, QSlider, QSplitter,
        QMessageBox, QScrollArea, QGroupBox, QSizePolicy, QFrame, QTextEdit,
        QFileDialog,
    )
    from PySide6.QtCore import Qt, Signal, QThread, QTimer
except ImportError:
    try:
        from PyQt6.QtWidgets import (
            QApplication, QWidget, QVBoxLayout, QHBoxLayout,
            QPushButton, QLabel, QComboBox, QCheckBox, QSlider, QSplitter,
            QMessageBox, QScrollArea, QGroupBox, QSizePolicy, QFrame, QTextEdit,
            QFileDialog,
        )
        from PyQt6.QtCore import Qt, pyqtSignal as Signal, QThread, QTimer
    except ImportError:
        raise ImportError("Neither PySide6 nor PyQt6 found. Install with: pip install PySide6")

import logging
import sys
from pathlib import Path

import numpy as np
import pyqtgraph as pg

from pyprview import __version__
from pyprview.core.interaction import Mode, KEY_UP, KEY_DOWN, KEY_LEFT, KEY_RIGHT
from pyprview.core.projection import NO_MARGINS, EXP_COLOR
from pyprview.core.state import UNIT_NM, UNIT_ANGSTROM, IQ_LOG, IQ_LINEAR
from pyprview.core.structure import read_pdb_ca
from pyprview.core.viewer import PrIqViewer, Renderer, PR, IQ
from pyprview.gui.plot_style import (
    PrIqPlotStyle, InteractiveViewBox, CurvePool, ExpOverlay,
    make_priq_plot, set_frame_range, marker_spots,
)
from pyprview.state.state_manager import StateManager, CONFIG_HEADER, load_config

log = logging.getLogger(__name__)

TOOL = 'pr_viewer'
FRAME_INTERVAL_MS = 16
STRUCTURE_SUFFIXES = ('.pdb', '.ent')

D_MIN, D_MAX = 1, 20
ALPHA_STEPS = 100                 # slider ticks per nm⁻¹
ALPHA_MIN, ALPHA_MAX = 5, 300     # 0.05 … 3.00 nm⁻¹

_KEY_NAMES = {
    Qt.Key.Key_Up: KEY_UP,
    Qt.Key.Key_Down: KEY_DOWN,
    Qt.Key.Key_Left: KEY_LEFT,
    Qt.Key.Key_Right: KEY_RIGHT,
}


def _key_name(key):
    """Arrow-key name of a QKeyEvent key code, or None."""
    for qt_key, name in _KEY_NAMES.items():
        if key == qt_key or key == getattr(qt_key, "value", qt_key):
            return name
    return None


# ─────────────────────────────────────────────────────────────────────────────
# StructureLoader  (background read of a PDB file)
# ─────────────────────────────────────────────────────────────────────────────

class StructureLoader(QThread):
    """Read Cα coordinates off the GUI thread; the result is merged by the panel."""

    loaded = Signal(object, str)   # coords [nm], source path
    failed = Signal(str)

    def __init__(self, path, atom_name: str, parent=None):
        super().__init__(parent)
        self.path = Path(path)
        self.atom_name = atom_name

    def run(self):
        try:
            coords = read_pdb_ca(self.path, self.atom_name)
        except Exception as exc:
            self.failed.emit(f"{self.path.name}: {exc}")
            return
        if coords is None:
            self.failed.emit(f"Could not read {self.path.name}")
            return
        self.loaded.emit(coords, str(self.path))


# ─────────────────────────────────────────────────────────────────────────────
# QtRenderer  (Renderer interface on top of PrIqGraphWindow)
# ─────────────────────────────────────────────────────────────────────────────

class QtRenderer(Renderer):
    """Draws viewer frames into a :class:`PrIqGraphWindow`.

    Frames are projected with ``NO_MARGINS`` onto the ViewBox pixel size, so
    pointer positions reported by the ViewBox are directly frame pixels.
    """

    def __init__(self, graph_window, on_sync=None, on_iq_drawn=None):
        self.graph_window = graph_window
        self._on_sync = on_sync
        self._on_iq_drawn = on_iq_drawn

    def plot_size(self, which):
        vb = self.graph_window.view_box(which)
        w, h = vb.pixel_size()
        if w < 2 or h < 2:
            return super().plot_size(which)
        return w, h

    def plot_margins(self, which):
        return NO_MARGINS

    def draw_pr(self, frame):
        self.graph_window.draw_pr(frame)

    def draw_iq(self, frame):
        self.graph_window.draw_iq(frame)
        if self._on_iq_drawn is not None:
            self._on_iq_drawn(frame)

    def sync_controls(self, values):
        if self._on_sync is not None:
            self._on_sync(values)


# ─────────────────────────────────────────────────────────────────────────────
# PrIqGraphWindow
# ─────────────────────────────────────────────────────────────────────────────

class PrIqGraphWindow(QWidget):
    """
    pyqtgraph window with two stacked plots:
      - Row 0: P(r) with node components, total curve and node markers
      - Row 1: I(q), log10/log10 or linear, with model and experimental curves
    Plus a status message box at the bottom.

    Pointer input, arrow keys and dropped files are re-emitted as signals.
    """

    pr_pressed = Signal(float, float, bool)
    pr_moved = Signal(float, float)
    pr_released = Signal(float, float)
    pr_double_clicked = Signal(float, float)
    iq_pressed = Signal(float, float, bool)
    iq_moved = Signal(float, float)
    iq_released = Signal(float, float)
    key_pressed = Signal(str)
    file_dropped = Signal(str, str)    # target plot ('pr' / 'iq'), path
    text_dropped = Signal(str, str)    # target plot, table text

    def __init__(self, parent=None):
        super().__init__(parent)
        self.data_folder = None
        self._labels = {PR: (None, None), IQ: (None, None)}
        self.setAcceptDrops(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.init_ui()

    def init_ui(self):
        layout = QVBoxLayout()
        layout.setContentsMargins(4, 4, 4, 4)
        layout.setSpacing(2)

        # ── pyqtgraph widget ─────────────────────────────────────────────────
        self.graphics_layout = pg.GraphicsLayoutWidget()
        self.graphics_layout.setBackground(PrIqPlotStyle.BACKGROUND)
        self.graphics_layout.setAcceptDrops(False)
        self.graphics_layout.setFocusPolicy(Qt.FocusPolicy.NoFocus)

        self.pr_vb = InteractiveViewBox(
            on_press=lambda x, y, s: self._emit_press(self.pr_pressed, x, y, s),
            on_move=self.pr_moved.emit,
            on_release=self.pr_released.emit,
            on_double_click=self.pr_double_clicked.emit,
        )
        self.iq_vb = InteractiveViewBox(
            on_press=lambda x, y, s: self._emit_press(self.iq_pressed, x, y, s),
            on_move=self.iq_moved.emit,
            on_release=self.iq_released.emit,
        )

        self.pr_plot = make_priq_plot(
            self.graphics_layout, 0, 0, self.pr_vb,
            x_label='r  (nm)', y_label='P(r)',
            parent_widget=self, jpeg_default_name='pyprview_pr',
        )
        self.iq_plot = make_priq_plot(
            self.graphics_layout, 1, 0, self.iq_vb,
            x_label='log₁₀ q (nm⁻¹)', y_label='log₁₀ I(q)',
            parent_widget=self, jpeg_default_name='pyprview_iq',
        )

        # ── P(r) items ───────────────────────────────────────────────────────
        self._zero_line = pg.InfiniteLine(pos=0, angle=0, pen=PrIqPlotStyle.ZERO_PEN)
        self.pr_plot.addItem(self._zero_line)
        self.pr_components = CurvePool(self.pr_plot, z=1.0)
        self.pr_total = CurvePool(self.pr_plot, z=3.0)
        self.pr_exp = ExpOverlay(self.pr_plot, EXP_COLOR, z=2.0)
        self.amp_markers = pg.ScatterPlotItem()
        self.amp_markers.setZValue(10.0)
        self.total_markers = pg.ScatterPlotItem()
        self.total_markers.setZValue(11.0)
        self.pr_plot.addItem(self.amp_markers)
        self.pr_plot.addItem(self.total_markers)

        # ── I(q) items ───────────────────────────────────────────────────────
        self.iq_components = CurvePool(self.iq_plot, z=1.0)
        self.iq_total = CurvePool(self.iq_plot, z=3.0)
        self.iq_exp = ExpOverlay(self.iq_plot, EXP_COLOR, z=2.0)
        self.q_window = pg.LinearRegionItem(values=(0, 0), movable=False,
                                            brush=PrIqPlotStyle.WINDOW_BRUSH)
        for line in self.q_window.lines:
            line.setPen(PrIqPlotStyle.WINDOW_PEN)
        self.q_window.setZValue(-10)
        self.q_window.hide()
        self.iq_plot.addItem(self.q_window)

        layout.addWidget(self.graphics_layout)

        # ── Status message (QTextEdit so the user can select/copy text) ─────────
        self.status_message = QTextEdit("")
        self.status_message.setReadOnly(True)
        self.status_message.setMaximumHeight(60)
        self.status_message.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAsNeeded)
        self.status_message.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.status_message.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        layout.addWidget(self.status_message)
        self.show_message("Click to add a node, drag to move, double-click to delete. "
                          "Shift-drag on I(q) selects the fit window.")

        self.setLayout(layout)

    def view_box(self, which: str) -> InteractiveViewBox:
        return self.pr_vb if which == PR else self.iq_vb

    def _emit_press(self, signal, x, y, shift):
        self.setFocus()
        signal.emit(x, y, shift)

    # ── Frame drawing ────────────────────────────────────────────────────────

    def _set_labels(self, which, plot, x_label, y_label):
        if self._labels[which] != (x_label, y_label):
            plot.setLabel('bottom', x_label)
            plot.setLabel('left', y_label)
            self._labels[which] = (x_label, y_label)

    def draw_pr(self, frame):
        bounds = frame.mapping.bounds
        set_frame_range(self.pr_plot, bounds)
        self._set_labels(PR, self.pr_plot, frame.x_label, frame.y_label)
        self.pr_components.draw(frame.components)
        self.pr_total.draw([frame.total] if frame.total is not None else [])
        self.pr_exp.draw(frame.exp, bounds[1] - bounds[0])
        self.amp_markers.setData(spots=marker_spots(frame.markers, 'amp'))
        self.total_markers.setData(spots=marker_spots(frame.markers, 'total'))

    def draw_iq(self, frame):
        bounds = frame.bounds
        set_frame_range(self.iq_plot, bounds)
        self._set_labels(IQ, self.iq_plot, frame.x_label, frame.y_label)
        self.iq_components.draw(frame.components)
        self.iq_total.draw([frame.total] if frame.total is not None else [])
        self.iq_exp.draw(frame.exp, bounds[1] - bounds[0])

    def show_q_window(self, x0=None, x1=None):
        """Shade ``[x0, x1]`` (plot x units) on the I(q) plot; no args hides it."""
        if x0 is None or x1 is None or not (np.isfinite(x0) and np.isfinite(x1)):
            self.q_window.hide()
            return
        self.q_window.setRegion((min(x0, x1), max(x0, x1)))
        self.q_window.show()

    # ── Keyboard ─────────────────────────────────────────────────────────────

    def keyPressEvent(self, event):
        name = _key_name(event.key())
        if name is None:
            super().keyPressEvent(event)
            return
        self.key_pressed.emit(name)
        event.accept()

    # ── Drag & drop ──────────────────────────────────────────────────────────

    def _target_at(self, pos) -> str:
        """Plot ('pr' or 'iq') under a drop position in widget coordinates."""
        view_pos = self.graphics_layout.mapFrom(self, pos.toPoint())
        scene_pos = self.graphics_layout.mapToScene(view_pos)
        if self.iq_plot.sceneBoundingRect().contains(scene_pos):
            return IQ
        return PR

    def dragEnterEvent(self, event):
        mime = event.mimeData()
        if mime.hasUrls() or mime.hasText():
            event.acceptProposedAction()
            return
        event.ignore()

    def dragMoveEvent(self, event):
        mime = event.mimeData()
        if mime.hasUrls() or mime.hasText():
            event.acceptProposedAction()
        else:
            event.ignore()

    def dropEvent(self, event):
        try:
            mime = event.mimeData()
            target = self._target_at(event.position())
            if mime.hasUrls():
                paths = [url.toLocalFile() for url in mime.urls() if url.isLocalFile()]
                if paths:
                    event.acceptProposedAction()
                    for path in paths:
                        self.file_dropped.emit(target, path)
                    return
            if mime.hasText():
                event.acceptProposedAction()
                self.text_dropped.emit(target, mime.text())
                return
        except Exception:
            log.exception("Drop handler failed")
        event.ignore()

    # ── Status helpers ───────────────────────────────────────────────────────

    def show_message(self, text, color='#2c3e50'):
        print(text)   # always echo to terminal so messages can be copy-pasted there too
        self.status_message.setPlainText(text)
        self.status_message.setStyleSheet(f"""
            QTextEdit {{
                color: {color};
                background-color: #f8f9fa;
                border: 1px solid #dee2e6;
                border-radius: 3px;
                padding: 4px 8px;
                font-size: 11px;
            }}
        """)

    def show_error_message(self, text):
        self.show_message(text, '#c0392b')

    def show_success_message(self, text):
        self.show_message(text, '#27ae60')


# ─────────────────────────────────────────────────────────────────────────────
# PrIqPanel
# ─────────────────────────────────────────────────────────────────────────────

class PrIqPanel(QWidget):
    """
    Main P(r) / I(q) modelling panel.

    Left panel: node shape, display, scale fit and file controls.
    Right panel: PrIqGraphWindow (P(r) above I(q)).
    """

    def __init__(self, parent=None, state_manager=None, load_default=True):
        super().__init__(parent)
        self.graph_window = None
        self.viewer = None
        self._loader = None

        self.state_manager = state_manager if state_manager is not None else StateManager()

        self.init_ui()

        settings = self.state_manager.get(TOOL)
        try:
            self.viewer = PrIqViewer(
                renderer=QtRenderer(self.graph_window,
                                    on_sync=self._sync_controls,
                                    on_iq_drawn=self._update_q_window),
                settings=settings,
            )
        except Exception as exc:
            print(f"Warning: could not restore {TOOL} state: {exc}")
            self.viewer = PrIqViewer(
                renderer=QtRenderer(self.graph_window,
                                    on_sync=self._sync_controls,
                                    on_iq_drawn=self._update_q_window),
            )
        self._connect_graph()

        self.timer = QTimer(self)
        self.timer.timeout.connect(self._on_tick)
        self.timer.start(FRAME_INTERVAL_MS)

        if load_default:
            self._start_default_structure()

    # ── UI construction ──────────────────────────────────────────────────────

    def init_ui(self):
        self.setWindowTitle(f"pyPrView {__version__} - P(r) / I(q) model")

        main_splitter = QSplitter(Qt.Orientation.Horizontal)

        left_panel = self._create_control_panel()
        main_splitter.addWidget(left_panel)

        self.graph_window = PrIqGraphWindow()
        self.graph_window.data_folder = self._get_data_folder()
        main_splitter.addWidget(self.graph_window)

        main_splitter.setSizes([330, 900])
        main_splitter.setStretchFactor(0, 1)
        main_splitter.setStretchFactor(1, 3)
        self.main_splitter = main_splitter

        root_layout = QVBoxLayout()
        root_layout.setContentsMargins(0, 0, 0, 0)
        root_layout.addWidget(main_splitter)
        self.setLayout(root_layout)

        self.setMinimumSize(1100, 800)
        self.resize(1280, 900)

    def _create_control_panel(self) -> QWidget:
        """Build the left control panel inside a scroll area."""
        outer = QWidget()
        outer.setSizePolicy(QSizePolicy.Policy.Fixed, QSizePolicy.Policy.Preferred)
        outer.setMinimumWidth(330)
        outer.setMaximumWidth(330)

        outer_layout = QVBoxLayout(outer)
        outer_layout.setContentsMargins(0, 0, 0, 0)
        outer_layout.setSpacing(0)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        scroll.setFrameShape(QFrame.Shape.NoFrame)

        inner = QWidget()
        layout = QVBoxLayout(inner)
        layout.setContentsMargins(10, 10, 10, 10)
        layout.setSpacing(6)

        # ── Title ────────────────────────────────────────────────────────────
        title = QLabel("P(r) / I(q) Model")
        title.setStyleSheet("""
            QLabel {
                font-size: 14px; font-weight: bold;
                color: #2c3e50;
                background-color: #ecf0f1;
                padding: 8px;
                border: 1px solid #bdc3c7;
            }
        """)
        layout.addWidget(title)

        # ── Node shape ───────────────────────────────────────────────────────
        shape_box = QGroupBox("Node Shape (selected nodes / new nodes)")
        shape_layout = QVBoxLayout(shape_box)
        shape_layout.setSpacing(4)

        row = QHBoxLayout()
        row.addWidget(QLabel("D:"))
        self.d_slider = QSlider(Qt.Orientation.Horizontal)
        self.d_slider.setRange(D_MIN, D_MAX)
        self.d_slider.setValue(2)
        self.d_slider.valueChanged.connect(self._on_d_changed)
        row.addWidget(self.d_slider)
        self.d_value = QLabel("2")
        self.d_value.setMinimumWidth(40)
        row.addWidget(self.d_value)
        shape_layout.addLayout(row)

        row = QHBoxLayout()
        row.addWidget(QLabel("α:"))
        self.alpha_slider = QSlider(Qt.Orientation.Horizontal)
        self.alpha_slider.setRange(ALPHA_MIN, ALPHA_MAX)
        self.alpha_slider.setValue(70)
        self.alpha_slider.valueChanged.connect(self._on_alpha_changed)
        row.addWidget(self.alpha_slider)
        self.alpha_value = QLabel("0.70")
        self.alpha_value.setMinimumWidth(40)
        row.addWidget(self.alpha_value)
        shape_layout.addLayout(row)

        self.mirror_check = QCheckBox("Mirrored (decay towards r = 0)")
        self.mirror_check.toggled.connect(self._on_mirror_toggled)
        shape_layout.addWidget(self.mirror_check)

        self.reset_nodes_button = QPushButton("Reset Nodes")
        self.reset_nodes_button.setMinimumHeight(26)
        self.reset_nodes_button.setStyleSheet("""
            QPushButton { background-color: #e67e22; color: white; font-weight: bold; }
            QPushButton:hover { background-color: #d35400; }
        """)
        self.reset_nodes_button.clicked.connect(self._on_reset_nodes)
        shape_layout.addWidget(self.reset_nodes_button)

        layout.addWidget(shape_box)

        # ── Display ──────────────────────────────────────────────────────────
        display_box = QGroupBox("Display")
        display_layout = QVBoxLayout(display_box)
        display_layout.setSpacing(4)

        row = QHBoxLayout()
        row.addWidget(QLabel("Units:"))
        self.unit_combo = QComboBox()
        self.unit_combo.addItem("nm", UNIT_NM)
        self.unit_combo.addItem("Å", UNIT_ANGSTROM)
        self.unit_combo.currentIndexChanged.connect(self._on_unit_changed)
        row.addWidget(self.unit_combo)
        row.addSpacing(12)
        row.addWidget(QLabel("I(q):"))
        self.iq_mode_combo = QComboBox()
        self.iq_mode_combo.addItem("log", IQ_LOG)
        self.iq_mode_combo.addItem("linear", IQ_LINEAR)
        self.iq_mode_combo.currentIndexChanged.connect(self._on_iq_mode_changed)
        row.addWidget(self.iq_mode_combo)
        row.addStretch()
        display_layout.addLayout(row)

        hint = QLabel("Arrow keys: ↑/↓ amplitude ×1.1, ←/→ radius ±0.2 nm")
        hint.setStyleSheet("color: #7f8c8d; font-size: 10px;")
        display_layout.addWidget(hint)

        layout.addWidget(display_box)

        # ── Scale fit ────────────────────────────────────────────────────────
        fit_box = QGroupBox("I(q) Scale Fit")
        fit_layout = QVBoxLayout(fit_box)
        fit_layout.setSpacing(4)

        self.auto_fit_check = QCheckBox("Fit automatically on new I(q)")
        self.auto_fit_check.setChecked(True)
        self.auto_fit_check.toggled.connect(self._on_auto_fit_toggled)
        fit_layout.addWidget(self.auto_fit_check)

        self.background_check = QCheckBox("Fit constant background")
        self.background_check.toggled.connect(self._on_background_toggled)
        fit_layout.addWidget(self.background_check)

        btn_row = QHBoxLayout()
        self.fit_button = QPushButton("Fit Scale")
        self.fit_button.setMinimumHeight(30)
        self.fit_button.setStyleSheet("""
            QPushButton { background-color: #27ae60; color: white; font-weight: bold; }
            QPushButton:hover { background-color: #229954; }
        """)
        self.fit_button.clicked.connect(self._on_fit_scale)
        btn_row.addWidget(self.fit_button)

        self.clear_window_button = QPushButton("Clear q Window")
        self.clear_window_button.setMinimumHeight(30)
        self.clear_window_button.clicked.connect(self._on_clear_window)
        btn_row.addWidget(self.clear_window_button)
        fit_layout.addLayout(btn_row)

        self.fit_result_label = QLabel("—")
        self.fit_result_label.setStyleSheet(
            "background-color: #ecf0f1; color: #2c3e50; padding: 4px;")
        self.fit_result_label.setWordWrap(True)
        fit_layout.addWidget(self.fit_result_label)

        hint = QLabel("Drag the model (magenta) to scale it, the data (white) to "
                      "offset it; shift-drag selects the fit q window.")
        hint.setWordWrap(True)
        hint.setStyleSheet("color: #7f8c8d; font-size: 10px;")
        fit_layout.addWidget(hint)

        layout.addWidget(fit_box)

        # ── Data ─────────────────────────────────────────────────────────────
        data_box = QGroupBox("Experimental Data")
        data_layout = QVBoxLayout(data_box)
        data_layout.setSpacing(4)

        self.load_structure_button = QPushButton("Load Structure (PDB)…")
        self.load_structure_button.clicked.connect(self._on_load_structure)
        data_layout.addWidget(self.load_structure_button)

        row = QHBoxLayout()
        self.load_pr_button = QPushButton("Load P(r)…")
        self.load_pr_button.clicked.connect(self._on_load_pr)
        row.addWidget(self.load_pr_button)
        self.load_iq_button = QPushButton("Load I(q)…")
        self.load_iq_button.clicked.connect(self._on_load_iq)
        row.addWidget(self.load_iq_button)
        data_layout.addLayout(row)

        hint = QLabel("Tables or PDB files can also be dropped onto the plots.")
        hint.setWordWrap(True)
        hint.setStyleSheet("color: #7f8c8d; font-size: 10px;")
        data_layout.addWidget(hint)

        layout.addWidget(data_box)

        # ── Storage buttons ──────────────────────────────────────────────────
        store_row = QHBoxLayout()

        self.save_state_button = QPushButton("Save State")
        self.save_state_button.setMinimumHeight(26)
        self.save_state_button.setStyleSheet("""
            QPushButton { background-color: #3498db; color: white; font-weight: bold; }
            QPushButton:hover { background-color: #2980b9; }
        """)
        self.save_state_button.clicked.connect(self.save_state)
        store_row.addWidget(self.save_state_button)

        self.export_model_button = QPushButton("Export Model")
        self.export_model_button.setMinimumHeight(26)
        self.export_model_button.setStyleSheet("background-color: lightgreen;")
        self.export_model_button.setToolTip(
            "Write the model P(r) and I(q) as text tables in the current units."
        )
        self.export_model_button.clicked.connect(self.export_model)
        store_row.addWidget(self.export_model_button)

        layout.addLayout(store_row)

        params_row = QHBoxLayout()

        self.export_params_button = QPushButton("Export Parameters")
        self.export_params_button.setMinimumHeight(26)
        self.export_params_button.setStyleSheet("background-color: lightgreen;")
        self.export_params_button.setToolTip(
            "Export nodes and settings to a pyPrView JSON config file."
        )
        self.export_params_button.clicked.connect(self.export_parameters)
        params_row.addWidget(self.export_params_button)

        self.import_params_button = QPushButton("Import Parameters")
        self.import_params_button.setMinimumHeight(26)
        self.import_params_button.setStyleSheet("background-color: lightgreen;")
        self.import_params_button.setToolTip(
            "Load nodes and settings from a pyPrView JSON config file."
        )
        self.import_params_button.clicked.connect(self.import_parameters)
        params_row.addWidget(self.import_params_button)

        layout.addLayout(params_row)

        # ── Status label (left panel) ────────────────────────────────────────
        self.status_label = QLabel("Ready")
        self.status_label.setStyleSheet("""
            QLabel { color: #7f8c8d; padding: 5px; border-top: 1px solid #bdc3c7; font-size: 10px; }
        """)
        layout.addWidget(self.status_label)

        layout.addStretch()

        scroll.setWidget(inner)
        outer_layout.addWidget(scroll)
        return outer

    def _connect_graph(self):
        gw = self.graph_window
        gw.pr_pressed.connect(self._on_pr_pressed)
        gw.pr_moved.connect(self._on_pr_moved)
        gw.pr_released.connect(self._on_pr_released)
        gw.pr_double_clicked.connect(self._on_pr_double_clicked)
        gw.iq_pressed.connect(self._on_iq_pressed)
        gw.iq_moved.connect(self._on_iq_moved)
        gw.iq_released.connect(self._on_iq_released)
        gw.key_pressed.connect(self._on_key)
        gw.file_dropped.connect(self._on_file_dropped)
        gw.text_dropped.connect(self._on_text_dropped)

    # ── Frame loop ───────────────────────────────────────────────────────────

    def _on_tick(self):
        self.viewer.animate_tick()

    def _update_q_window(self, frame):
        """Shade the live rectangle selection or the stored fit window."""
        if self.viewer is None or frame.mapping is None:
            self.graph_window.show_q_window()
            return
        ctrl = self.viewer.controller
        mp = frame.mapping
        if ctrl.mode is Mode.RECT_SELECT and ctrl.rect_start_px is not None:
            self.graph_window.show_q_window(mp.x_from_pix(ctrl.rect_start_px),
                                            mp.x_from_pix(ctrl.rect_end_px))
            return
        st = self.viewer.state
        if st.gnom_q_min is None or st.gnom_q_max is None:
            self.graph_window.show_q_window()
            return
        uf_q = st.unit_factor_q()
        self.graph_window.show_q_window(np.log10(st.gnom_q_min * uf_q),
                                        np.log10(st.gnom_q_max * uf_q))

    # ── Pointer / keyboard slots ─────────────────────────────────────────────

    def _on_pr_pressed(self, x, y, shift):
        self.viewer.pr_press(x, y, shift)

    def _on_pr_moved(self, x, y):
        self.viewer.pr_move(x, y)

    def _on_pr_released(self, x, y):
        self.viewer.pr_release()

    def _on_pr_double_clicked(self, x, y):
        if self.viewer.pr_double_click(x, y):
            self.status_label.setText(f"{len(self.viewer.state.nodes)} nodes")

    def _on_iq_pressed(self, x, y, shift):
        self.viewer.iq_press(x, y, shift)

    def _on_iq_moved(self, x, y):
        if self.viewer.iq_move(x, y) and self.viewer.controller.mode is Mode.RECT_SELECT:
            self.viewer.redraw_iq()

    def _on_iq_released(self, x, y):
        was_rect = self.viewer.controller.mode is Mode.RECT_SELECT
        fit_before = self.viewer.last_fit
        self.viewer.iq_release(x, y)
        if not was_rect:
            return
        if self.viewer.last_fit is not fit_before:
            self._show_fit(self.viewer.last_fit)
        elif self.viewer.state.gnom_q_min is not None:
            self.graph_window.show_error_message(
                "Scale fit rejected: too few experimental points in the q window.")
        self.viewer.redraw_iq()

    def _on_key(self, name):
        self.viewer.key_press(name)

    def keyPressEvent(self, event):
        name = _key_name(event.key())
        if name is None:
            super().keyPressEvent(event)
            return
        self._on_key(name)
        event.accept()

    # ── Control slots ────────────────────────────────────────────────────────

    def _sync_controls(self, values):
        """Show the viewer's control values without re-triggering the slots."""
        widgets = (self.d_slider, self.alpha_slider, self.mirror_check,
                   self.unit_combo, self.iq_mode_combo,
                   self.auto_fit_check, self.background_check)
        for w in widgets:
            w.blockSignals(True)
        try:
            d = int(np.clip(round(values.d), D_MIN, D_MAX))
            self.d_slider.setValue(d)
            self.d_value.setText(f"{values.d:g}")
            a = int(np.clip(round(values.alpha * ALPHA_STEPS), ALPHA_MIN, ALPHA_MAX))
            self.alpha_slider.setValue(a)
            self.alpha_value.setText(f"{values.alpha:.2f}")
            self.mirror_check.setChecked(values.mirrored)
            self.unit_combo.setCurrentIndex(max(0, self.unit_combo.findData(values.unit_mode)))
            self.iq_mode_combo.setCurrentIndex(
                max(0, self.iq_mode_combo.findData(values.iq_plot_mode)))
            self.auto_fit_check.setChecked(values.auto_gnom_scale)
            self.background_check.setChecked(values.gnom_use_background)
        finally:
            for w in widgets:
                w.blockSignals(False)

    def _on_d_changed(self, value):
        self.d_value.setText(str(value))
        self.viewer.set_d(value)

    def _on_alpha_changed(self, value):
        alpha = value / ALPHA_STEPS
        self.alpha_value.setText(f"{alpha:.2f}")
        self.viewer.set_alpha(alpha)

    def _on_mirror_toggled(self, checked):
        self.viewer.set_mirrored(checked)

    def _on_unit_changed(self, index):
        self.viewer.set_unit_mode(self.unit_combo.itemData(index))

    def _on_iq_mode_changed(self, index):
        self.viewer.set_iq_plot_mode(self.iq_mode_combo.itemData(index))

    def _on_auto_fit_toggled(self, checked):
        self.viewer.set_auto_gnom_scale(checked)

    def _on_background_toggled(self, checked):
        self.viewer.set_gnom_use_background(checked)

    def _on_reset_nodes(self):
        self.viewer.reset_nodes()
        self.status_label.setText("Nodes reset")

    def _on_fit_scale(self):
        try:
            result = self.viewer.fit_scale()
        except Exception:
            log.exception("Scale fit failed")
            self.graph_window.show_error_message("Scale fit failed; see the log for details.")
            return
        if result is None:
            self.graph_window.show_error_message(
                "Scale fit rejected: load experimental I(q) overlapping the model q range.")
        else:
            self._show_fit(result)

    def _on_clear_window(self):
        self.viewer.clear_fit_window()
        self.viewer.redraw_iq()
        self.status_label.setText("Fit window cleared (full overlap)")

    def _show_fit(self, result):
        bg = f", background = {result.b:.4g}" if self.viewer.state.gnom_use_background else ""
        uf_q = self.viewer.state.unit_factor_q()
        unit = self.viewer.state.q_unit_label()
        text = (f"scale = {result.s:.4g}{bg}\n"
                f"{result.n_used} points, q = {result.q_lo * uf_q:.4g} … "
                f"{result.q_hi * uf_q:.4g} {unit}")
        self.fit_result_label.setText(text)
        self.graph_window.show_success_message(f"Scale fit: {text.replace(chr(10), ', ')}")

    # ── Data loading ─────────────────────────────────────────────────────────

    def _get_data_folder(self) -> str:
        folder = self.state_manager.get('files', 'last_folder', '')
        if folder and Path(folder).is_dir():
            return folder
        return str(Path.cwd())

    def _remember_folder(self, path):
        folder = str(Path(path).parent)
        self.state_manager.set('files', 'last_folder', folder)
        self.graph_window.data_folder = folder

    def _start_default_structure(self):
        path = self.viewer.take_default_structure()
        if path is None:
            self.status_label.setText("No default structure; drop a PDB or table")
            return
        self._start_structure_loader(path)

    def _start_structure_loader(self, path):
        if self._loader is not None and self._loader.isRunning():
            self.graph_window.show_error_message("A structure is still loading.")
            return
        self._loader = StructureLoader(path, self.viewer.atom_name, self)
        self._loader.loaded.connect(self._on_structure_loaded)
        self._loader.failed.connect(self._on_structure_failed)
        self.status_label.setText(f"Loading {Path(path).name}…")
        self._loader.start()

    def _on_structure_loaded(self, coords, source):
        try:
            ok = self.viewer.set_structure(coords, source)
        except Exception:
            log.exception("Applying structure %s failed", source)
            ok = False
        if ok:
            msg = (f"Structure {Path(source).name}: {len(coords)} atoms, "
                   f"r_max = {self.viewer.state.r_max:.1f} nm")
            self.status_label.setText(msg)
            if self.viewer.last_fit is not None and self.viewer.state.auto_gnom_scale:
                self._show_fit(self.viewer.last_fit)
            else:
                self.graph_window.show_success_message(msg)
        else:
            self._on_structure_failed(f"No usable atoms in {Path(source).name}")

    def _on_structure_failed(self, message):
        log.warning("Structure load failed: %s", message)
        self.status_label.setText("Structure not loaded")
        self.graph_window.show_error_message(message)

    def _load_file(self, target, path):
        path = Path(path)
        self._remember_folder(path)
        if path.suffix.lower() in STRUCTURE_SUFFIXES:
            self._start_structure_loader(path)
            return
        try:
            if target == PR:
                ok = self.viewer.load_pr_file(path)
            else:
                ok = self.viewer.load_iq_file(path)
        except Exception:
            log.exception("Loading %s failed", path)
            self.graph_window.show_error_message(f"Could not load {path.name}.")
            return
        self._report_table(ok, target, path.name)

    def _report_table(self, ok, target, name):
        label = 'P(r)' if target == PR else 'I(q)'
        if not ok:
            self.graph_window.show_error_message(f"No numeric rows read from {name}.")
            return
        st = self.viewer.state
        curve = st.exp_pr if target == PR else st.exp_iq
        msg = f"{label} data: {name}, {len(curve)} points"
        self.status_label.setText(msg)
        if target == IQ and st.auto_gnom_scale and self.viewer.last_fit is not None:
            self._show_fit(self.viewer.last_fit)
        else:
            self.graph_window.show_success_message(msg)

    def _on_file_dropped(self, target, path):
        self._load_file(target, path)

    def _on_text_dropped(self, target, text):
        try:
            if target == PR:
                ok = self.viewer.drop_pr_text(text)
            else:
                ok = self.viewer.drop_iq_text(text)
        except Exception:
            log.exception("Dropped text could not be used")
            self.graph_window.show_error_message("Dropped text could not be used.")
            return
        self._report_table(ok, target, "dropped text")

    def _on_load_structure(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Load Structure", self._get_data_folder(),
            "PDB Files (*.pdb *.ent);;All Files (*)",
        )
        if file_path:
            self._load_file(PR, file_path)

    def _on_load_pr(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Load P(r) Table", self._get_data_folder(),
            "Text Tables (*.txt *.dat *.out *.csv);;All Files (*)",
        )
        if file_path:
            self._load_file(PR, file_path)

    def _on_load_iq(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Load I(q) Table", self._get_data_folder(),
            "Text Tables (*.txt *.dat *.csv);;All Files (*)",
        )
        if file_path:
            self._load_file(IQ, file_path)

    # ── State / export ───────────────────────────────────────────────────────

    def save_state(self):
        if self.viewer.save_settings(self.state_manager, TOOL):
            QMessageBox.information(self, "State Saved", "State saved successfully.")
            self.status_label.setText("State saved")
        else:
            QMessageBox.warning(self, "Save Failed", "Failed to save state.")

    def export_model(self):
        default_path = str(Path(self._get_data_folder()) / "pyprview_model")
        file_path, _ = QFileDialog.getSaveFileName(
            self, "Export Model Tables (prefix)", default_path,
            "Text Tables (*.txt);;All Files (*)",
        )
        if not file_path:
            return
        prefix = Path(file_path)
        if prefix.suffix.lower() == '.txt':
            prefix = prefix.with_suffix('')
        try:
            pr_path, iq_path = self.viewer.export_model(prefix)
        except Exception as e:
            QMessageBox.warning(self, "Export Failed", f"Could not write tables:\n{e}")
            return
        self._remember_folder(pr_path)
        self.graph_window.show_success_message(
            f"Model written: {pr_path.name}, {iq_path.name}")

    def export_parameters(self):
        """Export nodes and settings to a pyPrView JSON config file."""
        default_path = str(Path(self._get_data_folder()) / "pyprview_config.json")

        file_path, _ = QFileDialog.getSaveFileName(
            self,
            "Export P(r) Model Parameters",
            default_path,
            "pyPrView Config (*.json);;All Files (*)"
        )
        if not file_path:
            return

        file_path = Path(file_path)

        if file_path.exists():
            config = load_config(file_path)
            if config is None:
                QMessageBox.warning(
                    self,
                    "Not a pyPrView File",
                    f"The selected file is not a pyPrView configuration file:\n{file_path}\n\n"
                    "Choose a different file or enter a new filename."
                )
                return
            if TOOL in config:
                reply = QMessageBox.question(
                    self,
                    "Overwrite Model Parameters?",
                    f"File already contains P(r) model parameters:\n{file_path}\n\n"
                    "Overwrite the existing group?",
                    QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
                )
                if reply != QMessageBox.StandardButton.Yes:
                    return

        self.state_manager.update(TOOL, self.viewer.settings_to_dict())
        if not self.state_manager.export_tool_state(TOOL, file_path, __version__):
            QMessageBox.warning(self, "Export Failed", f"Could not write file:\n{file_path}")
            return

        msg = f"Model parameters saved to: {file_path.name}"
        self.status_label.setText(msg)
        self.graph_window.show_success_message(msg)

    def import_parameters(self):
        """Import nodes and settings from a pyPrView JSON config file."""
        file_path, _ = QFileDialog.getOpenFileName(
            self,
            "Import P(r) Model Parameters",
            self._get_data_folder(),
            "pyPrView Config (*.json);;All Files (*)"
        )
        if not file_path:
            return

        file_path = Path(file_path)
        config = load_config(file_path)
        if config is None:
            QMessageBox.warning(
                self,
                "Not a pyPrView File",
                f"The selected file is not a readable pyPrView configuration file "
                f"(missing '{CONFIG_HEADER}' header):\n{file_path}"
            )
            return
        if TOOL not in config:
            QMessageBox.warning(
                self,
                "No Model Parameters",
                f"The file does not contain P(r) model parameters:\n{file_path}"
            )
            return

        try:
            self.viewer.apply_settings(config[TOOL])
        except (ValueError, KeyError, TypeError) as e:
            QMessageBox.warning(self, "Import Failed", f"Invalid parameters:\n{e}")
            return

        try:
            if self.viewer.structure_coords is not None:
                self.viewer.reload_structure()
            else:
                self.viewer.full_redraw_with_norm()
        except Exception:
            log.exception("Redraw after parameter import failed")
            self.graph_window.show_error_message("Parameters loaded but the model could not be drawn.")
            return

        msg = f"Model parameters loaded from: {file_path.name}"
        self.status_label.setText(msg)
        self.graph_window.show_success_message(msg)

    def closeEvent(self, event):
        self.timer.stop()
        if self._loader is not None and self._loader.isRunning():
            self._loader.wait(2000)
        super().closeEvent(event)


def main():
    """Main entry point for the P(r) / I(q) modelling GUI."""
    app = QApplication(sys.argv)

    # Set application style
    app.setStyle('Fusion')

    window = PrIqPanel()
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
