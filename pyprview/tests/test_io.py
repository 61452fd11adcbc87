"""
Unit tests for text tables and structure-derived curves.

Tests cover:
  - Robust table parsing (comments, separators, short and non-numeric rows)
  - Sorting and duplicate collapsing (last row wins)
  - Ångström → nm conversion of the x column
  - Error column handling (absent vs. partially missing)
  - Table writer output is readable by the parser
  - PDB Cα extraction (atom filter, first record per residue, bad rows)
  - Debye intensity for two atoms and the q → 0 limit
  - Pair-distance histograms and r_max expansion
"""

import numpy as np
import pytest

from pyprview.core.structure import (
    parse_pdb_ca,
    read_pdb_ca,
    format_pdb_ca,
    write_pdb_ca,
    pair_distances,
    pr_histogram,
    debye_intensity,
    bounding_diagonal,
    required_r_max,
    pair_distance_histogram,
)
from pyprview.io.text_table import parse_table, read_table, write_table, sort_and_dedup


MESSY_TABLE = """# r  P  err
// exported by hand

5
abc def
0.5, 1.0; 0.1
1.0\t2.0
0.2 0.4 0.05
1.0   3.0
"""


def _pdb_lines(coords):
    return format_pdb_ca(np.asarray(coords, dtype=float)).splitlines()


# ──────────────────────────────────────────────────────────────────────────────
# Text tables
# ──────────────────────────────────────────────────────────────────────────────

class TestParseTable:
    def test_messy_table(self):
        curve = parse_table(MESSY_TABLE, 'pr', 'nm')
        np.testing.assert_allclose(curve.x, [0.2, 0.5, 1.0])
        # duplicate r = 1.0 keeps the later row
        np.testing.assert_allclose(curve.y, [0.4, 1.0, 3.0])
        np.testing.assert_allclose(curve.err, [0.05, 0.1, np.nan])
        assert curve.has_errors

    def test_no_error_column(self):
        curve = parse_table("1 2\n2 3\n3 4\n", 'iq')
        assert curve.err is None
        assert not curve.has_errors
        assert len(curve) == 3

    def test_angstrom_r(self):
        curve = parse_table("10 1\n20 2\n", 'pr', 'A')
        np.testing.assert_allclose(curve.x, [1.0, 2.0])
        np.testing.assert_allclose(curve.y, [1.0, 2.0])

    def test_angstrom_q(self):
        curve = parse_table("0.01 5\n0.02 6\n", 'iq', 'Å')
        np.testing.assert_allclose(curve.x, [0.1, 0.2])

    def test_non_finite_rows_dropped(self):
        curve = parse_table("nan 1\n1 2\n2 inf\n3 4\n", 'pr')
        np.testing.assert_allclose(curve.x, [1.0, 3.0])

    def test_nothing_usable(self):
        assert parse_table("# only a comment\n\n42\n", 'pr') is None
        assert parse_table("", 'iq') is None

    def test_bad_kind(self):
        with pytest.raises(ValueError):
            parse_table("1 2\n", 'sq')

    def test_bad_unit(self):
        with pytest.raises(ValueError):
            parse_table("1 2\n", 'pr', 'furlong')

    def test_sort_and_dedup_without_errors(self):
        x, y, e = sort_and_dedup([3.0, 1.0, 3.0], [30.0, 10.0, 31.0])
        np.testing.assert_allclose(x, [1.0, 3.0])
        np.testing.assert_allclose(y, [10.0, 31.0])
        assert e is None


class TestTableFiles:
    def test_write_then_read(self, tmp_path):
        q = np.array([0.1, 0.2, 0.3])
        i = np.array([5.0, 2.5, 1.25])
        err = np.array([0.5, 0.25, 0.125])
        path = write_table(tmp_path / 'iq.txt', [q, i, err], ['q[1/nm]', 'I', 'dI'],
                           comment='synthetic')
        text = path.read_text()
        assert text.startswith('# synthetic')
        curve = read_table(path, 'iq')
        np.testing.assert_allclose(curve.x, q, rtol=1e-7)
        np.testing.assert_allclose(curve.y, i, rtol=1e-7)
        np.testing.assert_allclose(curve.err, err, rtol=1e-7)

    def test_missing_file(self, tmp_path):
        assert read_table(tmp_path / 'nope.txt', 'pr') is None


# ──────────────────────────────────────────────────────────────────────────────
# PDB parsing
# ──────────────────────────────────────────────────────────────────────────────

class TestPdb:
    def test_format_and_parse(self):
        coords = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, -0.5]])
        parsed = parse_pdb_ca(format_pdb_ca(coords))
        np.testing.assert_allclose(parsed, coords, atol=1e-4)

    def test_record_layout(self):
        line = _pdb_lines([[1.0, 2.0, 3.0]])[0]
        assert line.startswith('ATOM')
        assert line[12:16].strip() == 'CA'
        assert line[21] == 'A'
        assert int(line[22:26]) == 1
        assert float(line[30:38]) == pytest.approx(10.0)
        assert float(line[46:54]) == pytest.approx(30.0)

    def test_filters(self):
        coords = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
        lines = _pdb_lines(coords)
        duplicate = lines[0][:30] + f"{50.0:8.3f}{50.0:8.3f}{50.0:8.3f}" + lines[0][54:]
        side_chain = _pdb_lines([[5.0, 5.0, 5.0]])[0].replace('  CA  ', '  CB  ')
        hetatm = 'HETATM' + lines[1][6:]
        bad_xyz = lines[2][:22] + '  99' + lines[2][26:30] + '   abc.x' + lines[2][38:]
        text = "\n".join([
            'HEADER    TEST STRUCTURE',
            lines[0], duplicate, side_chain, hetatm,
            lines[1], bad_xyz, lines[2], 'END',
        ])
        parsed = parse_pdb_ca(text)
        np.testing.assert_allclose(parsed, coords, atol=1e-4)

    def test_other_atom_name(self):
        text = "\n".join(_pdb_lines([[1.0, 1.0, 1.0]])).replace('  CA  ', '  P   ')
        assert parse_pdb_ca(text).shape == (0, 3)
        assert parse_pdb_ca(text, atom_name='P').shape == (1, 3)

    def test_file_round_trip(self, tmp_path):
        coords = np.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]])
        path = write_pdb_ca(tmp_path / 'two.pdb', coords)
        np.testing.assert_allclose(read_pdb_ca(path), coords, atol=1e-4)
        assert read_pdb_ca(tmp_path / 'missing.pdb') is None


# ──────────────────────────────────────────────────────────────────────────────
# Structure-derived curves
# ──────────────────────────────────────────────────────────────────────────────

class TestStructureCurves:
    def test_debye_two_atoms(self):
        coords = np.array([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]])
        q = np.array([0.1, 1.0, 2.0])
        d = pair_distances(coords)
        np.testing.assert_allclose(d, [3.0])
        expected = 2.0 + 2.0 * np.sin(3.0 * q) / (3.0 * q)
        np.testing.assert_allclose(debye_intensity(d, q, 2), expected, rtol=1e-12)

    def test_debye_forward_limit(self):
        rng = np.random.default_rng(0)
        coords = rng.normal(size=(5, 3))
        i0 = debye_intensity(pair_distances(coords), np.array([1e-8]), 5)
        assert i0[0] == pytest.approx(25.0, rel=1e-6)

    def test_histogram_normalised(self):
        hist = pr_histogram(np.array([1.05, 2.52, 2.55, 500.0]), 10.0, 101)
        dr = 0.1
        assert np.sum(hist) * dr == pytest.approx(1.0)
        assert np.argmax(hist) == 25
        assert hist[10] > 0

    def test_histogram_empty(self):
        hist = pr_histogram(np.zeros(0), 10.0, 11)
        assert np.all(hist == 0.0)

    def test_required_r_max(self):
        coords = np.array([[0.0, 0.0, 0.0], [3.0, 4.0, 0.0]])
        assert bounding_diagonal(coords) == pytest.approx(5.0)
        assert required_r_max(coords, 100.0) is None
        assert required_r_max(coords, 4.0) == pytest.approx(5.3)

    def test_bounding_diagonal_empty(self):
        assert bounding_diagonal(np.zeros((0, 3))) == 0.0

    def test_pair_distance_histogram(self):
        coords = np.array([[0.0, 0.0, 0.0], [1.2, 0.0, 0.0]])
        r, p = pair_distance_histogram(coords, bin_width=0.5, r_max=200.0)
        assert len(r) == 400
        assert p[2] == 1.0
        assert r[2] == pytest.approx(1.25)
        assert p.sum() == pytest.approx(1.0)
