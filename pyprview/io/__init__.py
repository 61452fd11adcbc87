"""
Data input/output utilities for pyPrView.

Functions:
    parse_table: Parse a dropped P(r) / I(q) text table into internal units
    read_table:  Read and parse a table file
    write_table: Write columns as a whitespace-separated table
"""

from pyprview.io.text_table import parse_table, read_table, write_table

__all__ = ["parse_table", "read_table", "write_table"]
