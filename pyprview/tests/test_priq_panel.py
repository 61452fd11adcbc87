"""
Tests for the Qt panel's slot error handling.

Each slot that calls into the viewer must log a failure and report it in
the status box instead of letting the exception escape into the Qt event
loop.  Runs on the offscreen platform; skipped without a Qt binding.
"""

import logging
import os

import pytest

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
pytest.importorskip('pyqtgraph')
QtWidgets = pytest.importorskip('PySide6.QtWidgets')

from pyprview.gui.priq_panel import PrIqPanel
from pyprview.core.viewer import PR, IQ
from pyprview.state.state_manager import StateManager


@pytest.fixture(scope='module')
def qapp():
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication([])
    yield app


@pytest.fixture
def panel(qapp, tmp_path):
    p = PrIqPanel(state_manager=StateManager(tmp_path / 'state.json'), load_default=False)
    p.timer.stop()
    yield p
    p.close()


def _boom(*args, **kwargs):
    raise RuntimeError("boom")


class TestSlotGuards:
    def test_fit_scale_failure_is_logged(self, panel, monkeypatch, caplog):
        monkeypatch.setattr(panel.viewer, 'fit_scale', _boom)
        with caplog.at_level(logging.ERROR, logger='pyprview.gui.priq_panel'):
            panel._on_fit_scale()
        assert "Scale fit failed" in caplog.text
        assert "failed" in panel.graph_window.status_message.toPlainText()

    def test_file_load_failure_is_logged(self, panel, monkeypatch, caplog, tmp_path):
        monkeypatch.setattr(panel.viewer, 'load_iq_file', _boom)
        path = tmp_path / 'data.txt'
        path.write_text("0.1 1.0\n0.2 0.5\n")
        with caplog.at_level(logging.ERROR, logger='pyprview.gui.priq_panel'):
            panel._on_file_dropped(IQ, str(path))
        assert "Loading" in caplog.text
        assert "data.txt" in panel.graph_window.status_message.toPlainText()

    def test_text_drop_failure_is_logged(self, panel, monkeypatch, caplog):
        monkeypatch.setattr(panel.viewer, 'drop_pr_text', _boom)
        with caplog.at_level(logging.ERROR, logger='pyprview.gui.priq_panel'):
            panel._on_text_dropped(PR, "1 2\n3 4\n")
        assert "Dropped text could not be used" in caplog.text

    def test_structure_apply_failure_reported(self, panel, monkeypatch):
        monkeypatch.setattr(panel.viewer, 'set_structure', _boom)
        panel._on_structure_loaded(None, 'model.pdb')
        assert panel.status_label.text() == "Structure not loaded"
