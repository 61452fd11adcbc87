#!/usr/bin/env python
"""
Create synthetic test data for pyPrView GUI testing.

This script writes a two-domain Cα-only PDB file together with a P(r) table
and an I(q) table (with uncertainties) computed from it.
"""

import os

import numpy as np

from pyprview.core.grid import Grid
from pyprview.core.structure import structure_curves, write_pdb_ca
from pyprview.io.text_table import write_table


def random_sphere_points(rng, n, radius, centre):
    """*n* points uniformly distributed inside a sphere [nm]."""
    direction = rng.normal(size=(n, 3))
    direction /= np.linalg.norm(direction, axis=1)[:, None]
    r = radius * rng.random(n) ** (1.0 / 3.0)
    return np.asarray(centre, dtype=float) + direction * r[:, None]


def two_domain_coords(n1=150, n2=100, r1=2.0, r2=1.5, separation=5.0, seed=1):
    """Cα markers of two globular domains whose centres are *separation* nm apart."""
    rng = np.random.default_rng(seed)
    a = random_sphere_points(rng, n1, r1, (0.0, 0.0, 0.0))
    b = random_sphere_points(rng, n2, r2, (separation, 0.0, 0.0))
    return np.vstack([a, b])


def main():
    """Generate test data files."""

    os.makedirs('testData', exist_ok=True)

    print("\nGenerating test data files...")
    print("=" * 50)

    rng = np.random.default_rng(7)
    coords = two_domain_coords()
    pdb = write_pdb_ca('testData/two_domain.pdb', coords)
    print(f"Created: {pdb}  ({len(coords)} Cα atoms)")

    # Curves on a grid that holds the whole structure
    grid = Grid(r_max=20.0)
    pr, iq = structure_curves(coords, grid)

    # File 2: P(r) table, r in nm, 5 % + floor uncertainties
    keep = pr > 0
    pr_err = 0.05 * pr + 0.01 * pr.max()
    pr_noisy = pr + rng.normal(scale=pr_err)
    path = write_table('testData/two_domain_pr.txt',
                       [grid.r[keep], pr_noisy[keep], pr_err[keep]],
                       ['r[nm]', 'P', 'dP'],
                       comment='two-domain test structure, P(r)')
    print(f"Created: {path}")

    # File 3: I(q) table, q in nm⁻¹, arbitrary scale, 3 % uncertainties
    i_scaled = 1e-3 * iq
    i_err = 0.03 * i_scaled
    i_noisy = i_scaled + rng.normal(scale=i_err)
    path = write_table('testData/two_domain_iq.txt',
                       [grid.q, i_noisy, i_err],
                       ['q[1/nm]', 'I', 'dI'],
                       comment='two-domain test structure, I(q)')
    print(f"Created: {path}")

    # File 4: same I(q) in Å⁻¹, comma separated, for the unit switch
    lines = ["// q[1/A], I"]
    lines += [f"{q / 10.0:.6e},{i:.6e}" for q, i in zip(grid.q, i_noisy)]
    with open('testData/two_domain_iq_angstrom.csv', 'w') as f:
        f.write("\n".join(lines) + "\n")
    print("Created: testData/two_domain_iq_angstrom.csv")

    print("=" * 50)
    print("\nSuccess! Created 4 test files in testData/")
    print("\nYou can now:")
    print("1. Run the GUI: pyprview-gui")
    print("2. Drop the PDB or the tables onto the plots")
    print("\nOr run headless:")
    print("  python scripts/model_structure.py testData/two_domain.pdb")


if __name__ == "__main__":
    main()
