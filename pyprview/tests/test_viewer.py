"""
Tests for the redraw orchestrator, persistence and the batch API.

Tests cover:
  - Start-up state (seed nodes, unit area) and renderer calls
  - Control mutators acting on the selection and the defaults
  - Dropped P(r) / I(q) tables, offset reset and auto-fit
  - Structure loading, r_max expansion and the one-shot default structure
  - Model export in display units
  - Settings round-trip through StateManager and config files
  - Headless model_structure / model_batch
"""

import json
import math

import numpy as np
import pytest

from pyprview.batch import model_structure, model_batch, summarize
from pyprview.core.structure import write_pdb_ca, pair_distance_histogram
from pyprview.core.viewer import PrIqViewer, Renderer
from pyprview.io.text_table import read_table
from pyprview.state.state_manager import StateManager, load_config, CONFIG_HEADER


class RecordingRenderer(Renderer):
    """Renderer that keeps every frame and control update it receives."""

    def __init__(self):
        self.pr_frames = []
        self.iq_frames = []
        self.controls = []

    def draw_pr(self, frame):
        self.pr_frames.append(frame)

    def draw_iq(self, frame):
        self.iq_frames.append(frame)

    def sync_controls(self, values):
        self.controls.append(values)


def _blob(n=120, radius=2.0, seed=5):
    """Random points inside a sphere of *radius* nm."""
    rng = np.random.default_rng(seed)
    pts = rng.normal(size=(n, 3))
    pts /= np.linalg.norm(pts, axis=1)[:, None]
    return pts * (radius * rng.random(n) ** (1.0 / 3.0))[:, None]


def _iq_text(q, i):
    return "\n".join(f"{a:.10e} {b:.10e}" for a, b in zip(q, i))


# ──────────────────────────────────────────────────────────────────────────────
# Redraw pipeline and controls
# ──────────────────────────────────────────────────────────────────────────────

class TestViewerBasics:
    def test_startup(self):
        rec = RecordingRenderer()
        viewer = PrIqViewer(renderer=rec)
        st = viewer.state
        assert len(st.nodes) == 4
        assert np.sum(st.p) * st.dr == pytest.approx(1.0, rel=1e-10)
        assert len(rec.pr_frames) == 1
        assert len(rec.iq_frames) == 1
        assert len(rec.controls) == 1
        assert rec.controls[0].d == st.gui_d
        assert not rec.controls[0].mirrored

    def test_no_seed(self):
        viewer = PrIqViewer(seed=False)
        assert viewer.state.nodes == []
        assert np.all(viewer.state.p == 0.0)

    def test_set_d_targets_selection(self):
        viewer = PrIqViewer()
        viewer.state.selected = {1, 2}
        viewer.set_d(4.4)
        st = viewer.state
        assert st.gui_d == 4.0
        assert [nd.D for nd in st.nodes] == [2.0, 4.0, 4.0, 2.0]
        viewer.set_d(0)
        assert st.gui_d == 4.0

    def test_set_alpha_targets_active(self):
        viewer = PrIqViewer()
        viewer.state.active = 3
        viewer.set_alpha(1.5)
        assert viewer.state.nodes[3].alpha == 1.5
        assert viewer.state.nodes[0].alpha == pytest.approx(0.7)
        viewer.set_alpha(-1.0)
        assert viewer.state.gui_alpha == 1.5

    def test_mirror_keeps_peaks(self):
        viewer = PrIqViewer()
        st = viewer.state
        st.selected = {2, 3}
        peaks = [nd.r_peak for nd in st.nodes]
        viewer.set_mirrored(True)
        assert [nd.direction for nd in st.nodes] == [1, 1, -1, -1]
        np.testing.assert_allclose([nd.r_peak for nd in st.nodes], peaks)

    def test_active_node_drives_controls(self):
        rec = RecordingRenderer()
        viewer = PrIqViewer(renderer=rec)
        st = viewer.state
        st.nodes[2].D = 6.0
        st.nodes[2].set_direction(-1)
        st.active = 2
        viewer.full_redraw_with_norm()
        assert rec.controls[-1].d == 6.0
        assert rec.controls[-1].mirrored
        assert st.gui_d == 6.0

    def test_bad_plot_mode(self):
        viewer = PrIqViewer()
        with pytest.raises(ValueError):
            viewer.set_iq_plot_mode('semilog')

    def test_reset_nodes(self):
        viewer = PrIqViewer()
        viewer.state.selected = {0}
        viewer.state.active = 0
        viewer.state.nodes.pop()
        viewer.reset_nodes()
        assert len(viewer.state.nodes) == 4
        assert viewer.state.selected == set()
        assert viewer.state.active is None

    def test_animate_tick(self):
        rec = RecordingRenderer()
        viewer = PrIqViewer(renderer=rec)
        assert viewer.animate_tick()
        assert viewer.state.pulse_phase == pytest.approx(0.1)
        assert len(rec.pr_frames) == 2


# ──────────────────────────────────────────────────────────────────────────────
# Experimental data
# ──────────────────────────────────────────────────────────────────────────────

class TestExperimentalData:
    def test_drop_iq_auto_fits(self):
        viewer = PrIqViewer()
        st = viewer.state
        st.exp_iq_offset_log = 0.4
        text = _iq_text(st.grid.q, 5.0 * st.iq)
        assert viewer.drop_iq_text(text)
        assert st.iq_scale_log == pytest.approx(math.log10(5.0), abs=1e-6)
        assert st.exp_iq_offset_log == 0.0
        assert viewer.last_fit is not None

    def test_drop_iq_without_auto_fit(self):
        viewer = PrIqViewer()
        viewer.set_auto_gnom_scale(False)
        st = viewer.state
        assert viewer.drop_iq_text(_iq_text(st.grid.q, 5.0 * st.iq))
        assert st.iq_scale_log == 0.0
        # the explicit fit still works
        res = viewer.fit_scale()
        assert res.s == pytest.approx(5.0, rel=1e-6)

    def test_windowed_fit(self):
        viewer = PrIqViewer()
        st = viewer.state
        viewer.drop_iq_text(_iq_text(st.grid.q, 2.0 * st.iq))
        res = viewer.fit_scale(q_min=0.02, q_max=0.2)
        assert res.q_lo == pytest.approx(0.02)
        assert res.q_hi == pytest.approx(0.2)
        viewer.state.gnom_q_min, viewer.state.gnom_q_max = 0.02, 0.2
        viewer.clear_fit_window()
        assert viewer.state.gnom_q_min is None

    def test_drop_garbage(self):
        viewer = PrIqViewer()
        assert not viewer.drop_iq_text("not a table\n# at all\n")
        assert not viewer.drop_pr_text("")
        assert viewer.state.exp_iq is None
        assert viewer.state.exp_pr is None

    def test_drop_pr_angstrom(self):
        viewer = PrIqViewer()
        viewer.set_unit_mode('Å')
        assert viewer.drop_pr_text("10 0.1 0.01\n20 0.2 0.01\n30 0.1 0.01\n")
        np.testing.assert_allclose(viewer.state.exp_pr.x, [1.0, 2.0, 3.0])
        assert viewer.pr_frame.exp.x[0] == pytest.approx(10.0)

    def test_load_iq_file(self, tmp_path):
        viewer = PrIqViewer()
        st = viewer.state
        path = tmp_path / 'iq.dat'
        path.write_text(_iq_text(st.grid.q, 3.0 * st.iq))
        assert viewer.load_iq_file(path)
        assert st.iq_scale_log == pytest.approx(math.log10(3.0), abs=1e-6)
        assert not viewer.load_iq_file(tmp_path / 'missing.dat')

    def test_update_pr_from_structure(self):
        viewer = PrIqViewer()
        coords_a = 10.0 * _blob()
        r, p = pair_distance_histogram(coords_a, bin_width=5.0, r_max=2000.0)
        assert viewer.update_pr_from_structure(r, p, unit='A')
        np.testing.assert_allclose(viewer.state.exp_pr.x, 0.1 * r)
        assert not viewer.update_pr_from_structure([], [])

    def test_update_pr_from_structure_unequal_lengths(self):
        viewer = PrIqViewer()
        r = np.linspace(0.0, 10.0, 50)
        assert viewer.update_pr_from_structure(r, np.ones(40))
        np.testing.assert_allclose(viewer.state.exp_pr.x, r[:40])
        assert viewer.update_pr_from_structure(r[:30], np.ones(40))
        assert len(viewer.state.exp_pr) == 30


# ──────────────────────────────────────────────────────────────────────────────
# Structures
# ──────────────────────────────────────────────────────────────────────────────

class TestStructures:
    def test_set_structure(self):
        viewer = PrIqViewer()
        assert viewer.set_structure(_blob(), source='blob')
        st = viewer.state
        assert st.r_max == 100.0
        assert len(st.exp_pr) == st.grid.n_r
        assert len(st.exp_iq) == len(st.grid.q)
        assert st.exp_iq_offset_log == 0.0
        assert viewer.last_fit is not None
        assert viewer.last_fit.s > 0

    def test_r_max_expansion(self):
        viewer = PrIqViewer()
        coords = np.vstack([_blob(), [[150.0, 0.0, 0.0]]])
        assert viewer.set_structure(coords)
        st = viewer.state
        diag = float(np.linalg.norm(coords.max(axis=0) - coords.min(axis=0)))
        assert st.r_max >= 1.05 * diag
        assert st.r_max <= 1.05 * diag + 0.1 + 1e-9
        assert st.grid.n_r == 1000
        assert len(st.nodes) == 4
        assert viewer.pr_frame.mapping.x_max == pytest.approx(st.r_max)

    def test_too_few_atoms(self):
        viewer = PrIqViewer()
        assert not viewer.set_structure(np.zeros((1, 3)))
        assert not viewer.set_structure(None)
        assert viewer.state.exp_pr is None

    def test_load_structure_file(self, tmp_path):
        path = write_pdb_ca(tmp_path / 'blob.pdb', _blob())
        viewer = PrIqViewer()
        assert viewer.load_structure_file(path)
        assert viewer.structure_coords.shape == (120, 3)
        assert viewer.structure_source == str(path)

    def test_default_structure_once(self, tmp_path):
        viewer = PrIqViewer()
        viewer.default_structure = str(tmp_path / 'missing.pdb')
        assert not viewer.load_default_structure()

        path = write_pdb_ca(tmp_path / 'default.pdb', _blob())
        viewer = PrIqViewer()
        viewer.default_structure = str(path)
        assert viewer.load_default_structure()
        assert not viewer.load_default_structure()
        assert viewer.take_default_structure() is None


# ──────────────────────────────────────────────────────────────────────────────
# Export and persistence
# ──────────────────────────────────────────────────────────────────────────────

class TestExportAndSettings:
    def test_export_model_nm(self, tmp_path):
        viewer = PrIqViewer()
        pr_path, iq_path = viewer.export_model(tmp_path / 'model')
        assert pr_path.name == 'model_pr.txt'
        data = np.loadtxt(pr_path)
        assert data.shape == (1000, 2 + 4)
        np.testing.assert_allclose(data[:, 1], viewer.state.p, rtol=1e-7, atol=1e-12)

    def test_export_model_angstrom(self, tmp_path):
        viewer = PrIqViewer()
        viewer.set_unit_mode('A')
        viewer.state.iq_scale_log = 1.0
        pr_path, iq_path = viewer.export_model(tmp_path / 'model')
        st = viewer.state
        pr = read_table(pr_path, 'pr', 'A')
        np.testing.assert_allclose(pr.x, st.grid.r, rtol=1e-7)
        iq = read_table(iq_path, 'iq', 'A')
        np.testing.assert_allclose(iq.x, st.grid.q, rtol=1e-7)
        np.testing.assert_allclose(iq.y, 10.0 * st.iq, rtol=1e-7, atol=1e-12)

    def test_settings_round_trip(self):
        viewer = PrIqViewer()
        viewer.state.gnom_q_min = 0.03
        viewer.set_unit_mode('A')
        d = json.loads(json.dumps(viewer.settings_to_dict()))
        clone = PrIqViewer(settings=d)
        assert clone.state.unit_mode == 'A'
        assert clone.state.gnom_q_min == 0.03
        np.testing.assert_allclose([nd.A for nd in clone.state.nodes],
                                   [nd.A for nd in viewer.state.nodes], rtol=1e-10)
        np.testing.assert_allclose([nd.r0 for nd in clone.state.nodes],
                                   [nd.r0 for nd in viewer.state.nodes])

    def test_bad_settings(self):
        viewer = PrIqViewer()
        with pytest.raises(ValueError):
            viewer.apply_settings({'iq_plot_mode': 'polar'})

    @pytest.mark.parametrize("settings", [
        {'nodes': [{'r0': 1.0, 'A': 1.0, 'D': 2.0, 'alpha': 0.0}]},
        {'nodes': [{'r0': 1.0, 'A': 1.0, 'D': -1.0, 'alpha': 0.7}]},
        {'gui_alpha': 0.0},
        {'gui_d': float('nan')},
    ])
    def test_bad_shape_settings_leave_model_intact(self, settings):
        viewer = PrIqViewer()
        before = [nd.to_dict() for nd in viewer.state.nodes]
        gui = (viewer.state.gui_d, viewer.state.gui_alpha)
        with pytest.raises(ValueError):
            viewer.apply_settings(dict(settings, r_max=80.0))
        assert [nd.to_dict() for nd in viewer.state.nodes] == before
        assert (viewer.state.gui_d, viewer.state.gui_alpha) == gui
        assert viewer.state.r_max != 80.0
        viewer.full_redraw_with_norm()
        assert np.all(np.isfinite(viewer.state.p))

    def test_state_manager_round_trip(self, tmp_path):
        state_file = tmp_path / 'state.json'
        sm = StateManager(state_file)
        assert sm.get('pr_viewer', 'n_r') == 1000
        assert sm.get('pr_viewer', 'nodes') is None

        viewer = PrIqViewer(settings=sm.get('pr_viewer'))
        viewer.state.selected = {0}
        viewer.set_d(3)
        assert viewer.save_settings(sm)

        sm2 = StateManager(state_file)
        nodes = sm2.get('pr_viewer', 'nodes')
        assert len(nodes) == 4
        assert nodes[0]['D'] == 3.0
        assert sm2.get('pr_viewer', 'schema_version') == 1

    def test_state_migration(self, tmp_path):
        state_file = tmp_path / 'state.json'
        state_file.write_text(json.dumps({
            'pr_viewer': {'unit_mode': 'Å', 'iq_plot_mode': 'bogus'},
        }))
        sm = StateManager(state_file)
        assert sm.get('pr_viewer', 'unit_mode') == 'A'
        assert sm.get('pr_viewer', 'iq_plot_mode') == 'log'
        assert sm.get('pr_viewer', 'q_max') == 0.4

    def test_export_import_config(self, tmp_path):
        sm = StateManager(tmp_path / 'state.json')
        sm.set('pr_viewer', 'r_max', 42.0)
        config_path = tmp_path / 'config.json'
        assert sm.export_tool_state('pr_viewer', config_path, version='0.1.0')

        config = load_config(config_path)
        assert CONFIG_HEADER in config
        assert config['pr_viewer']['r_max'] == 42.0

        sm2 = StateManager(tmp_path / 'other.json')
        assert sm2.import_tool_state('pr_viewer', config_path)
        assert sm2.get('pr_viewer', 'r_max') == 42.0
        assert not sm2.import_tool_state('sizes', config_path)

    def test_refuses_foreign_json(self, tmp_path):
        foreign = tmp_path / 'foreign.json'
        foreign.write_text(json.dumps({'foo': 1}))
        sm = StateManager(tmp_path / 'state.json')
        assert not sm.export_tool_state('pr_viewer', foreign)
        assert load_config(foreign) is None
        assert json.loads(foreign.read_text()) == {'foo': 1}


# ──────────────────────────────────────────────────────────────────────────────
# Batch API
# ──────────────────────────────────────────────────────────────────────────────

class TestBatch:
    def test_model_structure(self, tmp_path):
        pdb = write_pdb_ca(tmp_path / 'blob.pdb', _blob())
        result = model_structure(pdb, output_dir=tmp_path / 'out', save_plot=False)
        assert result is not None
        assert result['success']
        assert result['parameters']['n_atoms'] == 120
        assert result['parameters']['iq_scale'] > 0
        assert len(result['output_files']) == 2
        assert all(p.exists() for p in result['output_files'])
        assert (tmp_path / 'out' / 'blob_model_pr.txt').exists()

    def test_model_structure_with_config(self, tmp_path):
        sm = StateManager(tmp_path / 'state.json')
        sm.set('pr_viewer', 'n_r', 400)
        config_path = tmp_path / 'config.json'
        sm.export_tool_state('pr_viewer', config_path)
        pdb = write_pdb_ca(tmp_path / 'blob.pdb', _blob())
        result = model_structure(pdb, config_path, save_tables=False, save_plot=False)
        assert len(result['data']['r']) == 400
        assert result['output_files'] == []

    def test_config_with_zero_alpha_rejected(self, tmp_path):
        sm = StateManager(tmp_path / 'state.json')
        sm.set('pr_viewer', 'nodes', [{'r0': 1.0, 'A': 1.0, 'D': 2.0, 'alpha': 0}])
        config_path = tmp_path / 'config.json'
        assert sm.export_tool_state('pr_viewer', config_path)
        pdb = write_pdb_ca(tmp_path / 'blob.pdb', _blob())
        assert model_structure(pdb, config_path, save_tables=False, save_plot=False) is None

    def test_bad_inputs(self, tmp_path):
        pdb = write_pdb_ca(tmp_path / 'blob.pdb', _blob())
        assert model_structure(pdb, tmp_path / 'missing.json', save_plot=False) is None
        assert model_structure(tmp_path / 'missing.pdb', save_plot=False) is None

    def test_model_batch(self, tmp_path):
        good = write_pdb_ca(tmp_path / 'a.pdb', _blob())
        bad = tmp_path / 'empty.pdb'
        bad.write_text("HEADER    NOTHING\nEND\n")
        results = model_batch([good, bad], save_tables=False, save_plot=False)
        assert len(results) == 2
        assert results[1] is None
        table = summarize(results)
        assert list(table['file']) == ['a.pdb']
        assert table['iq_scale'][0] > 0
