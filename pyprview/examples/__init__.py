"""
Example scripts and demonstrations for pyPrView.

This package contains examples showing how to use pyPrView headless:
- Building and editing a basis-function model
- Comparing it with a structure-derived P(r) and I(q)
- GNOM-style scale fitting and model export
"""
