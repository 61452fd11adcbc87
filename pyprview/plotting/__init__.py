"""
Static figure export for pyPrView.

Note: Requires matplotlib to be installed (install with: pip install pyprview[plotting])
"""

try:
    from pyprview.plotting.plot_priq import plot_priq
    __all__ = ["plot_priq"]
except ImportError:
    # matplotlib might not be installed
    __all__ = []
