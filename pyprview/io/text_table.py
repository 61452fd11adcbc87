"""
Plain-text column tables for experimental P(r) and I(q) curves.

Reading
-------
Accepted input is one row per line with columns ``x  y  [err]`` separated by
any run of whitespace, commas or semicolons.  Blank lines and lines starting
with ``#`` or ``//`` are comments.  Tokens that do not parse as floats are
dropped; a row is kept when at least two numbers remain.  Malformed rows are
skipped, never fatal.

The independent variable is interpreted in the *display* unit the user is
looking at: with ``unit_mode='A'`` a P(r) table holds r in Å and an I(q)
table holds q in Å⁻¹.  Values are converted to internal nm / nm⁻¹ at parse
time (r × 0.1, q × 10).  Rows are then sorted by x and rows with (almost)
identical x are collapsed to the last one read.

Writing
-------
:func:`write_table` writes whitespace-separated columns with a ``#`` header,
readable back by :func:`parse_table`.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from pyprview.core.state import ExperimentalCurve, UNIT_ANGSTROM, normalize_unit_mode

log = logging.getLogger(__name__)

_SPLIT_RE = re.compile(r'[\s,;]+')

# x values closer than this are duplicates
DUP_EPS = 1e-12

KIND_PR = 'pr'
KIND_IQ = 'iq'


def _is_comment(line: str) -> bool:
    s = line.strip()
    return not s or s.startswith('#') or s.startswith('//')


def _floats(tokens) -> list[float]:
    out = []
    for tok in tokens:
        if not tok:
            continue
        try:
            out.append(float(tok))
        except ValueError:
            continue
    return out


def parse_rows(text: str) -> list[list[float]]:
    """Return the numeric rows (≥ 2 floats each) of a text table."""
    rows = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if _is_comment(line):
            continue
        nums = _floats(_SPLIT_RE.split(line.strip()))
        if len(nums) < 2:
            log.debug("line %d skipped: %r", lineno, line)
            continue
        rows.append(nums)
    return rows


def sort_and_dedup(x, y, err=None):
    """
    Drop non-finite (x, y) pairs, sort ascending by x and collapse duplicate
    x values to the last occurrence in the input.

    Returns ``(x, y, err)`` arrays; ``err`` stays ``None`` if it was ``None``.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    e = None if err is None else np.asarray(err, dtype=float)

    keep = np.isfinite(x) & np.isfinite(y)
    x, y = x[keep], y[keep]
    if e is not None:
        e = e[keep]

    # stable sort keeps input order among equal x, so "last" is preserved
    order = np.argsort(x, kind='stable')
    x, y = x[order], y[order]
    if e is not None:
        e = e[order]

    out_x, out_y, out_e = [], [], []
    for i in range(len(x)):
        if out_x and abs(x[i] - out_x[-1]) < DUP_EPS:
            out_x[-1] = x[i]
            out_y[-1] = y[i]
            if e is not None:
                out_e[-1] = e[i]
        else:
            out_x.append(x[i])
            out_y.append(y[i])
            if e is not None:
                out_e.append(e[i])

    return (np.array(out_x, dtype=float),
            np.array(out_y, dtype=float),
            None if e is None else np.array(out_e, dtype=float))


def parse_table(text: str, kind: str = KIND_PR,
                unit_mode: str = 'nm') -> Optional[ExperimentalCurve]:
    """
    Parse a dropped P(r) or I(q) table into internal units.

    Args:
        text:      File contents.
        kind:      ``'pr'`` (x is r) or ``'iq'`` (x is q).
        unit_mode: Display unit the x column is expressed in (``'nm'``/``'A'``).

    Returns:
        :class:`ExperimentalCurve`, or ``None`` when no valid row was found.
    """
    if kind not in (KIND_PR, KIND_IQ):
        raise ValueError(f"Unknown table kind '{kind}'. Use 'pr' or 'iq'.")
    angstrom = normalize_unit_mode(unit_mode) == UNIT_ANGSTROM
    if kind == KIND_PR:
        factor = 0.1 if angstrom else 1.0
    else:
        factor = 10.0 if angstrom else 1.0

    rows = parse_rows(text)
    if not rows:
        return None

    xs, ys, errs = [], [], []
    any_err = False
    for row in rows:
        xs.append(row[0] * factor)
        ys.append(row[1])
        if len(row) >= 3 and np.isfinite(row[2]):
            errs.append(row[2])
            any_err = True
        else:
            errs.append(np.nan)

    x, y, e = sort_and_dedup(xs, ys, errs if any_err else None)
    if len(x) == 0:
        return None
    return ExperimentalCurve(x, y, e)


def read_table(path: Union[str, Path], kind: str = KIND_PR,
               unit_mode: str = 'nm') -> Optional[ExperimentalCurve]:
    """Read and parse a table file; unreadable files return ``None``."""
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8', errors='replace')
    except OSError as exc:
        log.warning("Cannot read %s: %s", path, exc)
        return None
    return parse_table(text, kind=kind, unit_mode=unit_mode)


def write_table(
    path: Union[str, Path],
    columns: Sequence[np.ndarray],
    names: Sequence[str],
    comment: str = '',
) -> Path:
    """
    Write equally long *columns* as a whitespace-separated table.

    The header lists *names*; an optional *comment* line precedes it.
    """
    path = Path(path)
    data = np.column_stack([np.asarray(c, dtype=float) for c in columns])
    header_lines = []
    if comment:
        header_lines.append(comment)
    header_lines.append('  '.join(names))
    np.savetxt(path, data, fmt='%.8e', header='\n'.join(header_lines), comments='# ')
    return path
