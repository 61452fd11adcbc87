"""
Parametric basis lobes ("nodes") for the P(r) model.

Each node contributes  A · φ(r)  to the total pair-distance distribution,
where φ is a one-sided, generalized-gamma shaped lobe

    t    = (r - r0)   if dir = +1
         = (r0 - r)   if dir = -1
    φ(r) = t^D · exp(-α t) / (t_peak^D · exp(-α t_peak)),   t > 0
    φ(r) = 0,                                              t ≤ 0

with  t_peak = D / α.  Regardless of D and α the maximum of φ is exactly 1,
reached at the peak radius

    r_peak = r0 + dir · D / α

The peak radius, not r0, is what the user sees and drags; r0 is solved
backward from a desired r_peak whenever a node is moved or mirrored.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict

import numpy as np


# Default shape parameters for newly created nodes
DEFAULT_D = 2.0          # dimensionless shape exponent
DEFAULT_ALPHA = 0.70     # nm⁻¹
DEFAULT_DIR = +1

# Seed layout: 4 nodes, log-spaced peaks between 2 and 40 nm
SEED_PEAK_MIN = 2.0
SEED_PEAK_MAX = 40.0
SEED_AMPLITUDES = (1.0, 0.6, -0.4, 0.3)


def basis_value(r, r0: float, D: float, alpha: float, direction: int):
    """
    Evaluate the peak-normalised basis lobe at *r*.

    Args:
        r:         Radius [nm], scalar or array.
        r0:        Onset position [nm].
        D:         Shape exponent.
        alpha:     Decay rate [nm⁻¹].
        direction: +1 (lobe extends to larger r) or -1 (mirrored).

    Returns:
        φ(r) with the same shape as *r* (float for scalar input).
    """
    r_arr = np.asarray(r, dtype=float)
    t = (r_arr - r0) if direction > 0 else (r0 - r_arr)

    t_peak = D / alpha
    with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
        phi_peak = t_peak ** D * np.exp(-alpha * t_peak)
        norm = phi_peak if (np.isfinite(phi_peak) and phi_peak > 0) else 1.0
        t_pos = np.where(t > 0, t, 0.0)
        phi = np.where(t > 0, t_pos ** D * np.exp(-alpha * t_pos), 0.0) / norm

    if np.ndim(phi) == 0:
        return float(phi)
    return phi


def check_shape(D: float, alpha: float) -> tuple[float, float]:
    """Return ``(D, alpha)`` as floats; raise ``ValueError`` unless both are finite and > 0."""
    D, alpha = float(D), float(alpha)
    for name, value in (('D', D), ('alpha', alpha)):
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"Node {name} must be a positive finite number, got {value!r}.")
    return D, alpha


def peak_radius(r0: float, D: float, alpha: float, direction: int) -> float:
    """r_peak = r0 + dir · D/α  [nm]."""
    return r0 + direction * (D / alpha)


def r0_for_peak(r_peak: float, D: float, alpha: float, direction: int) -> float:
    """Invert :func:`peak_radius`: r0 = r_peak - dir · D/α  [nm]."""
    return r_peak - direction * (D / alpha)


@dataclass
class Node:
    """
    One basis lobe placed in the P(r) model.

    Attributes
    ----------
    r0 : float
        Internal onset position [nm]; not the displayed peak.
    A : float
        Signed amplitude.  Negative nodes subtract from the total.
    D : float
        Shape exponent (slider shows it as an integer).
    alpha : float
        Decay rate [nm⁻¹].
    direction : int
        +1 or -1 (mirrored).
    """

    r0: float = 0.0
    A: float = 1.0
    D: float = DEFAULT_D
    alpha: float = DEFAULT_ALPHA
    direction: int = DEFAULT_DIR

    @property
    def r_peak(self) -> float:
        return peak_radius(self.r0, self.D, self.alpha, self.direction)

    def move_peak_to(self, r_peak: float) -> None:
        """Place the lobe maximum at *r_peak* keeping D, α and direction."""
        self.r0 = r0_for_peak(r_peak, self.D, self.alpha, self.direction)

    def set_direction(self, direction: int) -> None:
        """Mirror the lobe while keeping its peak radius fixed."""
        r_pk = self.r_peak
        self.direction = +1 if direction >= 0 else -1
        self.move_peak_to(r_pk)

    def values(self, r: np.ndarray) -> np.ndarray:
        """A · φ(r) on the radial grid."""
        return self.A * basis_value(r, self.r0, self.D, self.alpha, self.direction)

    @classmethod
    def at_peak(cls, r_peak: float, A: float, D: float = DEFAULT_D,
                alpha: float = DEFAULT_ALPHA, direction: int = DEFAULT_DIR) -> 'Node':
        """Create a node whose maximum sits at *r_peak*."""
        return cls(r0=r0_for_peak(r_peak, D, alpha, direction),
                   A=A, D=D, alpha=alpha, direction=direction)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> 'Node':
        """Build a node from saved settings; raises ``ValueError`` on unusable values."""
        r0 = float(d.get('r0', 0.0))
        A = float(d.get('A', 1.0))
        if not (math.isfinite(r0) and math.isfinite(A)):
            raise ValueError(f"Node r0 and A must be finite, got r0={r0!r}, A={A!r}.")
        D, alpha = check_shape(d.get('D', DEFAULT_D), d.get('alpha', DEFAULT_ALPHA))
        return cls(
            r0=r0,
            A=A,
            D=D,
            alpha=alpha,
            direction=+1 if int(d.get('direction', DEFAULT_DIR)) >= 0 else -1,
        )


def seed_nodes(D: float = DEFAULT_D, alpha: float = DEFAULT_ALPHA) -> list[Node]:
    """The four start-up nodes at log-spaced peak radii (2 … 40 nm)."""
    peaks = np.logspace(np.log10(SEED_PEAK_MIN), np.log10(SEED_PEAK_MAX),
                        len(SEED_AMPLITUDES))
    nodes = []
    for r_pk, A in zip(peaks, SEED_AMPLITUDES):
        r0 = max(0.0, r0_for_peak(float(r_pk), D, alpha, +1))
        nodes.append(Node(r0=r0, A=A, D=D, alpha=alpha, direction=+1))
    return nodes
