"""
Structure-derived experimental curves.

A coordinate file in PDB format is reduced to one backbone marker atom per
residue (Cα by default).  From those point scatterers the module derives

* the pair-distance distribution P(r): histogram of all pair distances on
  the viewer's radial grid, normalised to unit area;
* the scattering intensity I(q) from the Debye formula for identical point
  scatterers

      I(q) = N + 2 · Σ_{i<j} sin(q r_ij) / (q r_ij)

PDB coordinates are in Å and are converted to nm on read.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from scipy.spatial.distance import pdist

from pyprview.core.grid import sinc

log = logging.getLogger(__name__)

A_TO_NM = 0.1
DEFAULT_ATOM = 'CA'

# Headroom applied to the bounding-box diagonal when checking r_max
R_MAX_HEADROOM = 1.05

# Pairs per block in the Debye sum (bounds temporary memory)
_DEBYE_CHUNK = 20000


# ──────────────────────────────────────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────────────────────────────────────

def parse_pdb_ca(text: str, atom_name: str = DEFAULT_ATOM) -> np.ndarray:
    """
    Extract one marker atom per residue from PDB text.

    Only ``ATOM`` records whose atom name (columns 13–16) equals *atom_name*
    are read; the first record per (chain, residue number) wins.  Records
    with unparsable or non-finite coordinates are skipped.

    Returns:
        Array of shape (N, 3) in nm.
    """
    coords = []
    seen = set()
    for line in text.splitlines():
        if not line.startswith('ATOM'):
            continue
        if line[12:16].strip() != atom_name:
            continue
        chain = line[21] if len(line) > 21 else ''
        try:
            res_seq = int(line[22:26])
        except ValueError:
            log.debug("bad residue number: %r", line)
            continue
        key = (chain, res_seq)
        if key in seen:
            continue
        seen.add(key)
        try:
            xyz = [float(line[30:38]), float(line[38:46]), float(line[46:54])]
        except ValueError:
            log.debug("bad coordinates: %r", line)
            continue
        if not all(math.isfinite(v) for v in xyz):
            log.debug("non-finite coordinates: %r", line)
            continue
        coords.append([v * A_TO_NM for v in xyz])

    if not coords:
        return np.zeros((0, 3))
    return np.array(coords, dtype=float)


def read_pdb_ca(path: Union[str, Path], atom_name: str = DEFAULT_ATOM) -> Optional[np.ndarray]:
    """Read a PDB file; returns ``None`` if the file cannot be read."""
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8', errors='replace')
    except OSError as exc:
        log.warning("Cannot read structure %s: %s", path, exc)
        return None
    return parse_pdb_ca(text, atom_name=atom_name)


# ──────────────────────────────────────────────────────────────────────────────
# Geometry
# ──────────────────────────────────────────────────────────────────────────────

def bounding_diagonal(coords: np.ndarray) -> float:
    """Diagonal of the axis-aligned bounding box [nm]."""
    if len(coords) == 0:
        return 0.0
    span = coords.max(axis=0) - coords.min(axis=0)
    return float(np.sqrt(np.sum(span ** 2)))


def required_r_max(coords: np.ndarray, r_max: float) -> Optional[float]:
    """
    New radial support if the structure does not fit into *r_max*.

    Returns ``ceil(1.05 · diagonal · 10) / 10`` when that exceeds *r_max*,
    else ``None``.
    """
    needed = bounding_diagonal(coords) * R_MAX_HEADROOM
    if needed > r_max:
        return math.ceil(needed * 10.0) / 10.0
    return None


def pair_distances(coords: np.ndarray) -> np.ndarray:
    """All i<j pair distances [nm] (non-finite values removed)."""
    if len(coords) < 2:
        return np.zeros(0)
    d = pdist(coords)
    return d[np.isfinite(d)]


# ──────────────────────────────────────────────────────────────────────────────
# Curves
# ──────────────────────────────────────────────────────────────────────────────

def pr_histogram(distances: np.ndarray, r_max: float, n_r: int) -> np.ndarray:
    """
    Area-normalised distance histogram on the radial grid.

    Bin index is ``floor(d / dr)``; distances beyond *r_max* are ignored.
    """
    dr = r_max / max(1, n_r - 1)
    hist = np.zeros(n_r)
    d = distances[(distances >= 0) & (distances <= r_max)]
    idx = np.floor(d / dr).astype(int)
    idx = idx[(idx >= 0) & (idx < n_r)]
    if idx.size:
        hist += np.bincount(idx, minlength=n_r)[:n_r]
    area = hist.sum() * dr
    if area > 0:
        hist /= area
    return hist


def debye_intensity(distances: np.ndarray, q: np.ndarray, n_atoms: int) -> np.ndarray:
    """Debye I(q) = N + 2 Σ sinc(q r_ij) for identical point scatterers."""
    q = np.asarray(q, dtype=float)
    intensity = np.full(len(q), float(n_atoms))
    for start in range(0, len(distances), _DEBYE_CHUNK):
        block = distances[start:start + _DEBYE_CHUNK]
        intensity += 2.0 * sinc(np.outer(block, q)).sum(axis=0)
    return intensity


def structure_curves(coords: np.ndarray, grid) -> Tuple[np.ndarray, np.ndarray]:
    """P(r) on ``grid.r`` and Debye I(q) on ``grid.q`` for *coords* [nm]."""
    d = pair_distances(coords)
    pr = pr_histogram(d, grid.r_max, grid.n_r)
    iq = debye_intensity(d, grid.q, len(coords))
    return pr, iq


def pair_distance_histogram(coords: np.ndarray, bin_width: float = 0.5,
                            r_max: float = 200.0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Count-normalised pair-distance histogram with bin centres.

    Distances ``d ≤ 0`` or ``d ≥ r_max`` are skipped; the histogram sums to 1.
    This is what a companion structure viewer pushes through
    :meth:`PrIqViewer.update_pr_from_structure`.

    Returns:
        ``(r_centres, p)`` in the units of *coords*.
    """
    n_bins = int(math.floor(r_max / bin_width))
    d = pair_distances(coords)
    d = d[(d > 0) & (d < r_max)]
    idx = np.floor(d / bin_width).astype(int)
    idx = idx[idx < n_bins]
    counts = np.bincount(idx, minlength=n_bins)[:n_bins].astype(float)
    total = counts.sum()
    if total > 0:
        counts /= total
    r = (np.arange(n_bins) + 0.5) * bin_width
    return r, counts


# ──────────────────────────────────────────────────────────────────────────────
# Writing
# ──────────────────────────────────────────────────────────────────────────────

def format_pdb_ca(coords: np.ndarray, chain: str = 'A', res_name: str = 'ALA') -> str:
    """PDB text with one Cα ``ATOM`` record per row of *coords* [nm]."""
    lines = []
    for k, (x, y, z) in enumerate(np.asarray(coords, dtype=float) / A_TO_NM, start=1):
        lines.append(
            f"ATOM  {k:5d}  CA  {res_name:3s} {chain:1s}{k % 10000:4d}    "
            f"{x:8.3f}{y:8.3f}{z:8.3f}  1.00  0.00           C"
        )
    lines.append("END")
    return "\n".join(lines) + "\n"


def write_pdb_ca(path: Union[str, Path], coords: np.ndarray, chain: str = 'A') -> Path:
    path = Path(path)
    path.write_text(format_pdb_ca(coords, chain=chain))
    return path
