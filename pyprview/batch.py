"""
pyprview.batch — headless (no-GUI) modelling API for scripting and automation.

Typical usage
-------------
Single structure, default settings:
    from pyprview.batch import model_structure
    result = model_structure("3V03.pdb")
    if result and result['success']:
        print(result['parameters']['iq_scale'])

With nodes and settings exported from the GUI ("Export Parameters"):
    result = model_structure("3V03.pdb", "pyprview_config.json",
                             output_dir="out/")

Structure plus a measured I(q) table (the fit uses the measured curve):
    result = model_structure("3V03.pdb", iq_file="3V03_iq.dat")

Batch over many structures:
    results = model_batch(pdb_files, "pyprview_config.json")
    results = [r for r in results if r is not None]  # filter failures
"""

from __future__ import annotations

import traceback
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from pyprview import __version__
from pyprview.core.viewer import PrIqViewer
from pyprview.state.state_manager import load_config

TOOL = 'pr_viewer'


def _viewer_from_config(config_file: Optional[Union[str, Path]]) -> Optional[PrIqViewer]:
    """Headless viewer configured from the ``pr_viewer`` group of a config file."""
    settings = None
    if config_file is not None:
        config = load_config(config_file)
        if config is None:
            return None
        if TOOL not in config:
            print(f"[pyprview.batch] Config file '{config_file}' has no '{TOOL}' group.")
            return None
        settings = config[TOOL]
    return PrIqViewer(settings=settings)


def model_structure(
    structure_file: Union[str, Path],
    config_file: Optional[Union[str, Path]] = None,
    output_dir: Optional[Union[str, Path]] = None,
    iq_file: Optional[Union[str, Path]] = None,
    pr_file: Optional[Union[str, Path]] = None,
    save_tables: bool = True,
    save_plot: bool = True,
    dpi: int = 150,
) -> Optional[Dict]:
    """Compare a basis-function model with the curves of one structure file.

    The structure's Cα pair-distance histogram and Debye I(q) become the
    experimental overlays; the model is solved, its I(q) scale is fitted
    GNOM-style and the results are written next to the structure.

    Parameters
    ----------
    structure_file : str or Path
        PDB coordinate file (Å).
    config_file : str or Path, optional
        pyPrView JSON configuration file with a ``'pr_viewer'`` group
        (grid, node list, fit window, units).  Defaults are used if omitted.
    output_dir : str or Path, optional
        Where tables and the figure are written.  Defaults to the folder of
        *structure_file*.
    iq_file, pr_file : str or Path, optional
        Measured tables that replace the structure-derived overlays.  They
        are read in the configured display unit.
    save_tables : bool
        Write ``<stem>_model_pr.txt`` and ``<stem>_model_iq.txt``.
    save_plot : bool
        Write ``<stem>_model.jpg`` (requires matplotlib).
    dpi : int
        Figure resolution.

    Returns
    -------
    dict or None
        ``'success'``      bool — True if a scale fit was accepted.
        ``'parameters'``   dict — r_max, n_atoms, iq_scale, iq_scale_log,
                           background, n_used, q_lo, q_hi, nodes.
        ``'data'``         dict — r, P, q, I_model (scaled), exp arrays.
        ``'output_files'`` list of Path.
        ``'input_file'``, ``'config_file'``, ``'message'``.

        Returns None if the structure or config cannot be used.
    """
    structure_file = Path(structure_file)

    # --- Viewer from config ---
    try:
        viewer = _viewer_from_config(config_file)
        if viewer is None:
            return None
    except Exception:
        print(f"[pyprview.batch] Error applying config:\n{traceback.format_exc()}")
        return None

    # --- Structure ---
    try:
        if not viewer.load_structure_file(structure_file):
            print(f"[pyprview.batch] No usable atoms in '{structure_file}'")
            return None
    except Exception:
        print(f"[pyprview.batch] Error loading structure:\n{traceback.format_exc()}")
        return None

    # --- Optional measured overlays ---
    if pr_file is not None and not viewer.load_pr_file(pr_file):
        print(f"[pyprview.batch] Warning: no rows read from P(r) file '{pr_file}'")
    if iq_file is not None and not viewer.load_iq_file(iq_file):
        print(f"[pyprview.batch] Warning: no rows read from I(q) file '{iq_file}'")

    # --- Scale fit (always explicit so the result is reported) ---
    fit = viewer.fit_scale()
    st = viewer.state

    parameters = {
        'r_max':        st.r_max,
        'n_atoms':      int(len(viewer.structure_coords)),
        'iq_scale':     float(10.0 ** st.iq_scale_log),
        'iq_scale_log': float(st.iq_scale_log),
        'background':   fit.b if fit else None,
        'n_used':       fit.n_used if fit else 0,
        'q_lo':         fit.q_lo if fit else None,
        'q_hi':         fit.q_hi if fit else None,
        'nodes':        [nd.to_dict() for nd in st.nodes],
    }

    result = {
        'success':      fit is not None,
        'tool':         TOOL,
        'input_file':   structure_file,
        'config_file':  Path(config_file) if config_file is not None else None,
        'output_files': [],
        'parameters':   parameters,
        'data': {
            'r':       st.grid.r.copy(),
            'P':       st.p.copy(),
            'q':       st.grid.q.copy(),
            'I_model': st.iq * 10.0 ** st.iq_scale_log,
            'exp_r':   None if st.exp_pr is None else st.exp_pr.x,
            'exp_P':   None if st.exp_pr is None else st.exp_pr.y,
            'exp_q':   None if st.exp_iq is None else st.exp_iq.x,
            'exp_I':   None if st.exp_iq is None else st.exp_iq.y,
        },
        'message': (
            f"{structure_file.name}: {parameters['n_atoms']} atoms, "
            f"r_max={st.r_max:.1f} nm, scale={parameters['iq_scale']:.4g}, "
            f"success={fit is not None}"
        ),
    }

    # --- Outputs ---
    out_dir = Path(output_dir) if output_dir is not None else structure_file.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    stem = out_dir / f"{structure_file.stem}_model"

    if save_tables:
        try:
            result['output_files'].extend(viewer.export_model(stem))
        except Exception:
            print(f"[pyprview.batch] Warning: could not write tables:\n"
                  f"{traceback.format_exc()}")

    if save_plot:
        try:
            from pyprview.plotting.plot_priq import plot_priq
            result['output_files'].append(
                plot_priq(st, stem.with_suffix('.jpg'), dpi=dpi,
                          title=f"pyPrView {__version__} — {structure_file.name}")
            )
        except ImportError:
            print("[pyprview.batch] matplotlib not installed; figure skipped.")
        except Exception:
            print(f"[pyprview.batch] Warning: could not write figure:\n"
                  f"{traceback.format_exc()}")

    print(f"[pyprview.batch] {result['message']}")
    return result


def model_batch(
    structure_files: Sequence[Union[str, Path]],
    config_file: Optional[Union[str, Path]] = None,
    **kwargs,
) -> List[Optional[Dict]]:
    """Run :func:`model_structure` for every file; failures give ``None``."""
    results = []
    for f in structure_files:
        try:
            results.append(model_structure(f, config_file, **kwargs))
        except Exception:
            print(f"[pyprview.batch] '{f}' failed:\n{traceback.format_exc()}")
            results.append(None)
    n_ok = sum(1 for r in results if r is not None and r['success'])
    print(f"[pyprview.batch] {n_ok}/{len(results)} structures modelled.")
    return results


def summarize(results: Sequence[Optional[Dict]]) -> Dict[str, np.ndarray]:
    """Column arrays (file name, scale, r_max) of successful results."""
    ok = [r for r in results if r is not None and r['success']]
    return {
        'file':     np.array([r['input_file'].name for r in ok]),
        'iq_scale': np.array([r['parameters']['iq_scale'] for r in ok], dtype=float),
        'r_max':    np.array([r['parameters']['r_max'] for r in ok], dtype=float),
    }
