"""
GUI module for pyPrView.

This module provides the interactive P(r) / I(q) modelling window.

Requires:
    PySide6 or PyQt6 and pyqtgraph (install with: pip install pyprview[gui])
"""

try:
    # Try PySide6 first
    from PySide6 import QtWidgets, QtCore, QtGui
    QT_BACKEND = "PySide6"
except ImportError:
    try:
        # Fall back to PyQt6
        from PyQt6 import QtWidgets, QtCore, QtGui
        QT_BACKEND = "PyQt6"
    except ImportError:
        QT_BACKEND = None
        QtWidgets = None
        QtCore = None
        QtGui = None

__all__ = ["QT_BACKEND", "QtWidgets", "QtCore", "QtGui", "require_qt"]


def require_qt() -> str:
    """Name of the available Qt binding; raises ImportError if there is none."""
    if QT_BACKEND is None:
        raise ImportError("Neither PySide6 nor PyQt6 found. Install with: pip install pyprview[gui]")
    return QT_BACKEND
