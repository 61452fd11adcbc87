"""
plot_priq — static two-panel figure of a P(r) / I(q) model.

Left panel: the node components, the total model P(r) and the experimental
P(r) overlay.  Right panel: the scaled model I(q) and the experimental I(q)
on log-log axes.  Everything is drawn in the state's current display unit
and saved as a JPEG (or any format matplotlib infers from the suffix).

Usage
-----
::

    from pyprview.core import PrIqViewer
    from pyprview.plotting import plot_priq

    viewer = PrIqViewer()
    viewer.load_structure_file("3V03.pdb")
    plot_priq(viewer.state, "3V03_model.jpg")
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from pyprview.core.projection import node_color, MODEL_IQ_COLOR

# White-on-black colours of the live plots do not print well; use dark
# counterparts on paper.
_TOTAL_PR_PRINT = '#008b8b'
_EXP_PRINT = '#202020'


def plot_priq(
    state,
    output: Union[str, Path],
    dpi: int = 150,
    title: Optional[str] = None,
    show: bool = False,
) -> Path:
    """Render *state* to *output*.

    Parameters
    ----------
    state : ViewerState
        Solved viewer state (curves already recomputed).
    output : str or Path
        Image file to write; the parent folder is created if needed.
    dpi : int
        Resolution in dots per inch.  Default 150.
    title : str, optional
        Figure title.  Defaults to ``'pyPrView model'``.
    show : bool
        If ``True`` call ``plt.show()`` after saving.

    Returns
    -------
    Path
        Absolute path of the written image.

    Raises
    ------
    ImportError
        If matplotlib is not installed.
    """
    try:
        import matplotlib
        matplotlib.use('Agg')   # non-interactive backend for headless use
        import matplotlib.pyplot as plt
    except ImportError as exc:
        raise ImportError(
            "matplotlib is required for plot_priq.  Install it with:\n"
            "  pip install matplotlib"
        ) from exc

    import numpy as np

    out_path = Path(output).resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    uf_r = state.unit_factor_r()
    uf_q = state.unit_factor_q()
    r_disp = state.grid.r * uf_r
    q_disp = state.grid.q * uf_q

    fig, (ax_pr, ax_iq) = plt.subplots(1, 2, figsize=(13, 5.5))
    fig.subplots_adjust(wspace=0.3)

    # ── P(r) ────────────────────────────────────────────────────────────────
    ax_pr.axhline(0.0, color='#999999', linewidth=0.6)
    for k, nd in enumerate(state.nodes):
        if k >= len(state.p_nodes):
            break
        ax_pr.plot(r_disp, state.p_nodes[k], color=node_color(k), linewidth=1.0,
                   linestyle=':' if nd.A < 0 else '-', label=f'node {k + 1}')
    ax_pr.plot(r_disp, state.p, color=_TOTAL_PR_PRINT, linewidth=2.0, label='model')

    exp = state.exp_pr
    if exp is not None and len(exp):
        yerr = None
        if exp.err is not None:
            yerr = np.where(np.isfinite(exp.err), exp.err, 0.0)
        ax_pr.errorbar(exp.x * uf_r, exp.y, yerr=yerr, fmt='o', markersize=2,
                       color=_EXP_PRINT, elinewidth=0.6, capsize=2 if yerr is not None else 0,
                       label='experiment')

    ax_pr.set_xlim(0.0, state.grid.r_max * uf_r)
    ax_pr.set_xlabel(state.r_label(), fontsize=12)
    ax_pr.set_ylabel('P(r)', fontsize=12)
    ax_pr.set_title('Pair-distance distribution', fontsize=13)
    ax_pr.grid(True, alpha=0.3, linewidth=0.5)
    _add_legend(ax_pr)

    # ── I(q) ────────────────────────────────────────────────────────────────
    model_i = np.abs(state.iq) * 10.0 ** state.iq_scale_log
    ax_iq.plot(q_disp, model_i, color=MODEL_IQ_COLOR, linewidth=2.0, label='model')

    exp = state.exp_iq
    if exp is not None and len(exp):
        shift = 10.0 ** state.exp_iq_offset_log
        ok = exp.y > 0
        ax_iq.scatter(exp.x[ok] * uf_q, exp.y[ok] * shift, s=4, color=_EXP_PRINT,
                      linewidths=0, label='experiment')

    ax_iq.set_xscale('log')
    ax_iq.set_yscale('log')
    q_unit = state.q_unit_label()
    ax_iq.set_xlabel(f'q ({q_unit})', fontsize=12)
    ax_iq.set_ylabel('I(q)', fontsize=12)
    ax_iq.set_title('Scattering intensity', fontsize=13)
    ax_iq.grid(True, which='both', alpha=0.3, linewidth=0.5)
    _add_legend(ax_iq)

    fig.suptitle(title or 'pyPrView model', fontsize=11)

    fig.savefig(str(out_path), dpi=dpi, bbox_inches='tight')
    print(f"[plot_priq] Saved: {out_path}")

    if show:
        plt.show()

    plt.close(fig)
    return out_path


def _add_legend(ax) -> None:
    """Add a legend only when there are labelled artists."""
    handles, labels = ax.get_legend_handles_labels()
    if handles:
        ax.legend(handles, labels, fontsize=8, loc='best', framealpha=0.8)
