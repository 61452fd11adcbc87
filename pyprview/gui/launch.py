#!/usr/bin/env python
"""
Launcher script for the pyPrView GUI.

Usage:
    python -m pyprview.gui.launch
    or
    pyprview-gui (if installed)
"""

import sys


def main():
    """Launch the P(r) / I(q) modelling window."""
    try:
        from pyprview.gui import require_qt
        require_qt()
        from pyprview.gui.priq_panel import main as gui_main
    except ImportError as e:
        print("Error: GUI dependencies not installed.")
        print("Install with: pip install pyprview[gui]")
        print(f"\nDetails: {e}")
        sys.exit(1)
    gui_main()


if __name__ == "__main__":
    main()
