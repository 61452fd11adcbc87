"""
model_structure.py — Headless P(r) / I(q) modelling of PDB structures.

For every structure file (or every ``*.pdb`` file in a given directory) the
Cα pair-distance histogram and Debye I(q) are computed, the basis-function
model from a pyPrView config file (or the four default nodes) is solved, its
I(q) scale is fitted GNOM-style, and model tables plus a JPEG figure are
written.

Usage
-----
::

    python model_structure.py 3V03.pdb

Optional arguments::

    python model_structure.py structures/ \\
        --config pyprview_config.json \\
        --output-dir results/ \\
        --dpi 200

Arguments
---------
inputs          PDB files and/or directories containing ``*.pdb`` files.
--config        pyPrView JSON config file with a ``pr_viewer`` group
                (nodes, grid, fit window).  Default: built-in defaults.
--output-dir    Where tables and figures are written.  Defaults to the
                folder of each structure.
--iq            Measured I(q) table used instead of the Debye curve
                (single structure only).
--pr            Measured P(r) table used instead of the histogram
                (single structure only).
--no-tables     Do not write ``*_model_pr.txt`` / ``*_model_iq.txt``.
--no-plot       Do not write the JPEG figure.
--dpi           JPEG resolution in dots per inch.  Default: 150.

Examples
--------
Model one structure with the default nodes::

    python model_structure.py 3V03.pdb

Model a folder of structures with nodes exported from the GUI::

    python model_structure.py pdbs/ --config pyprview_config.json --output-dir out/
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _collect_structures(inputs: list[Path]) -> list[Path]:
    """Expand directories to their ``*.pdb`` files; keep files as given."""
    files: list[Path] = []
    for p in inputs:
        if p.is_dir():
            files.extend(sorted(f for f in p.iterdir()
                                if f.is_file() and f.suffix.lower() in ('.pdb', '.ent')))
        elif p.is_file():
            files.append(p)
        else:
            print(f"  [SKIP] not found: {p}", file=sys.stderr)
    return files


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description='Model the P(r) and I(q) of PDB structures with basis functions.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        'inputs',
        nargs='+',
        type=Path,
        help='PDB files and/or directories containing *.pdb files.',
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='pyPrView JSON config file with a pr_viewer group.',
    )
    parser.add_argument(
        '--output-dir',
        type=Path,
        default=None,
        metavar='DIR',
        help='Directory for tables and figures.  Defaults to each structure\'s folder.',
    )
    parser.add_argument(
        '--iq',
        type=Path,
        default=None,
        metavar='FILE',
        help='Measured I(q) table (single structure only).',
    )
    parser.add_argument(
        '--pr',
        type=Path,
        default=None,
        metavar='FILE',
        help='Measured P(r) table (single structure only).',
    )
    parser.add_argument(
        '--no-tables',
        action='store_true',
        help='Do not write model tables.',
    )
    parser.add_argument(
        '--no-plot',
        action='store_true',
        help='Do not write the JPEG figure.',
    )
    parser.add_argument(
        '--dpi',
        type=int,
        default=150,
        help='JPEG resolution in dots-per-inch.  Default: 150.',
    )

    args = parser.parse_args(argv)

    # ── Resolve inputs ───────────────────────────────────────────────────────
    files = _collect_structures(args.inputs)
    if not files:
        print("ERROR: no structure files found.", file=sys.stderr)
        return 1
    if (args.iq is not None or args.pr is not None) and len(files) > 1:
        print("ERROR: --iq / --pr can only be used with a single structure.",
              file=sys.stderr)
        return 1

    # ── Import batch API ─────────────────────────────────────────────────────
    try:
        from pyprview.batch import model_batch, summarize
    except ImportError as exc:
        print(
            f"ERROR: could not import pyprview.  Make sure pyprview is installed:\n"
            f"  pip install pyprview[plotting]\n"
            f"  {exc}",
            file=sys.stderr,
        )
        return 1

    # ── Run ──────────────────────────────────────────────────────────────────
    results = model_batch(
        files, args.config,
        output_dir=args.output_dir,
        iq_file=args.iq,
        pr_file=args.pr,
        save_tables=not args.no_tables,
        save_plot=not args.no_plot,
        dpi=args.dpi,
    )

    # ── Summary ──────────────────────────────────────────────────────────────
    table = summarize(results)
    for name, scale, r_max in zip(table['file'], table['iq_scale'], table['r_max']):
        print(f"  {name:30s}  scale={scale:.4g}  r_max={r_max:.1f} nm")
    n_ok = len(table['file'])
    print(f"\nDone.  {n_ok}/{len(files)} structure(s) modelled.")
    return 0 if n_ok else 1


if __name__ == '__main__':
    sys.exit(main())
