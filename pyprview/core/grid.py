"""
Radial and reciprocal-space grids for the P(r) / I(q) basis model.

All computations use internal units only:

    r : nm      (linear grid, 0 … r_max, spacing dr = r_max / (Nr - 1))
    q : nm⁻¹    (log-spaced grid, q_min … q_max, Nq + 1 points)

Ångström exists only as a display unit (see ``ViewerState.unit_factor_r``).

The grid also caches the discretised Fourier–Bessel (sine) transform kernel

    K[i, j] = sinc(q_j · r_i) · dr,    sinc(x) = sin(x)/x,  sinc(0) = 1

so that  I(q_j) = Σ_i P(r_i) · K[i, j]  is a single matrix product.
"""

from __future__ import annotations

import math

import numpy as np


# ──────────────────────────────────────────────────────────────────────────────
# Default grid parameters (nm, nm⁻¹)
# ──────────────────────────────────────────────────────────────────────────────

R_MAX = 100.0      # nm  (= 1000 Å)
N_R = 1000         # Δr ≈ 0.1 nm
Q_MIN = 0.005      # nm⁻¹
Q_MAX = 0.4        # nm⁻¹
N_Q = 300          # q grid has N_Q + 1 points


def sinc(x: np.ndarray) -> np.ndarray:
    """Zeroth-order spherical Bessel function j0(x) = sin(x)/x, j0(0) = 1."""
    # np.sinc is the normalised sinc sin(πx)/(πx)
    return np.sinc(np.asarray(x, dtype=float) / np.pi)


def make_r_grid(r_max: float, n_r: int) -> np.ndarray:
    """Linear radial grid 0 … r_max with n_r points [nm]."""
    return np.arange(n_r, dtype=float) * grid_spacing(r_max, n_r)


def make_q_grid(q_min: float, q_max: float, n_q: int) -> np.ndarray:
    """Log-spaced q grid with n_q + 1 points between q_min and q_max [nm⁻¹]."""
    return np.logspace(math.log10(q_min), math.log10(q_max), n_q + 1)


def grid_spacing(r_max: float, n_r: int) -> float:
    return r_max / max(1, n_r - 1)


class Grid:
    """
    Radial grid, reciprocal grid and cached transform kernel.

    A ``Grid`` is immutable after construction; expanding ``r_max`` produces
    a new instance through :meth:`with_r_max`.

    Attributes
    ----------
    r_max : float
        Upper end of the radial support [nm].
    n_r : int
        Number of radial points (≥ 2).
    q_min, q_max : float
        Reciprocal-space range [nm⁻¹].
    n_q : int
        Number of q intervals; ``q`` holds ``n_q + 1`` points.
    r, q : np.ndarray
        The grids themselves.
    kernel : np.ndarray
        Transform matrix of shape ``(n_r, n_q + 1)``.
    """

    def __init__(
        self,
        r_max: float = R_MAX,
        n_r: int = N_R,
        q_min: float = Q_MIN,
        q_max: float = Q_MAX,
        n_q: int = N_Q,
    ):
        self.r_max = float(r_max)
        self.n_r = int(n_r)
        self.q_min = float(q_min)
        self.q_max = float(q_max)
        self.n_q = int(n_q)

        self.r = make_r_grid(self.r_max, self.n_r)
        self.q = make_q_grid(self.q_min, self.q_max, self.n_q)
        self.kernel = sinc(np.outer(self.r, self.q)) * self.dr

    @property
    def dr(self) -> float:
        """Radial spacing [nm]."""
        return grid_spacing(self.r_max, self.n_r)

    def with_r_max(self, r_max: float) -> 'Grid':
        """Return a rebuilt grid with a new radial support, same point counts."""
        return Grid(r_max, self.n_r, self.q_min, self.q_max, self.n_q)

    def index_of(self, r: float) -> int:
        """Nearest radial index for *r* [nm], clamped to the grid."""
        idx = int(round(r / self.dr))
        return max(0, min(self.n_r - 1, idx))

    def to_dict(self) -> dict:
        return {
            'r_max': self.r_max,
            'n_r':   self.n_r,
            'q_min': self.q_min,
            'q_max': self.q_max,
            'n_q':   self.n_q,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'Grid':
        return cls(
            r_max=float(d.get('r_max', R_MAX)),
            n_r=int(d.get('n_r', N_R)),
            q_min=float(d.get('q_min', Q_MIN)),
            q_max=float(d.get('q_max', Q_MAX)),
            n_q=int(d.get('n_q', N_Q)),
        )

    def __repr__(self) -> str:
        return (f"Grid(r_max={self.r_max:g}, n_r={self.n_r}, "
                f"q_min={self.q_min:g}, q_max={self.q_max:g}, n_q={self.n_q})")
