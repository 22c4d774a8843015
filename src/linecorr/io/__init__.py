"""
I/O module for loading inputs and persisting pipeline intermediates.

Key Functions:
    - load_expression_csv: Load a samples × features matrix from CSV
    - load_label_table: Load the three-scheme sample label table
    - get_correlation_result: Cached correlation computation
    - save_correlation_result / load_correlation_result: .npz persistence
    - write_concordance_table / read_concordance_table: CSV round-trip

Design Philosophy:
    - Clear validation messages for malformed inputs
    - Atomic writes so an aborted run never leaves a truncated cache entry
    - Resume after the expensive correlation stage without recomputation
"""

from linecorr.io.loaders import load_expression_csv, load_label_table
from linecorr.io.persistence import (
    compute_cache_key,
    get_correlation_result,
    load_correlation_result,
    read_concordance_table,
    save_correlation_result,
    write_boundaries,
    write_concordance_table,
)

__all__ = [
    'load_expression_csv',
    'load_label_table',
    'compute_cache_key',
    'get_correlation_result',
    'save_correlation_result',
    'load_correlation_result',
    'write_concordance_table',
    'read_concordance_table',
    'write_boundaries',
]
