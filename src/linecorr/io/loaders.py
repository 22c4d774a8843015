"""
CSV loaders for expression matrices and sample label tables.

Expected formats:

Expression matrix (default, ``samples_as_rows=True``)::

    "",GENE1,GENE2,GENE3
    CELL_A,5.1,0.0,2.3
    CELL_B,4.8,,2.9

Pass ``samples_as_rows=False`` for the common genes-as-rows layout;
the file is transposed on load. Empty cells become NaN.

Label table::

    cell_line,tissue,subtype,site
    CELL_A,lung,adeno,
    CELL_B,lung,,primary

Blank label cells are treated as missing labels. Only blanks are: text such
as "NA", "None" or "null" is kept as an ordinary label value.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from linecorr.core.expression import ExpressionMatrix
from linecorr.core.labels import N_SCHEMES, LabelTable

__all__ = ['load_expression_csv', 'load_label_table']

logger = logging.getLogger(__name__)


def _check_file(path: Path) -> Path:
    if not isinstance(path, Path):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def load_expression_csv(path: Path, samples_as_rows: bool = True) -> ExpressionMatrix:
    """
    Load an expression CSV into an ExpressionMatrix.

    Args:
        path: Path to CSV file; first column holds row identifiers
        samples_as_rows: True if rows are samples, False if rows are features

    Returns:
        ExpressionMatrix (samples × features)

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the CSV is empty or contains non-numeric values
    """
    path = _check_file(path)

    try:
        # identifiers stay text so "001" matches the label table
        id_column = pd.read_csv(path, nrows=0).columns[0]
        df = pd.read_csv(path, index_col=0, dtype={id_column: str})
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV file is empty: {path}") from e

    if df.empty:
        raise ValueError(f"CSV contains no data: {path}")

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(
            f"Non-numeric columns in {path}: {non_numeric[:5]}"
            f"{' ...' if len(non_numeric) > 5 else ''}"
        )

    if not samples_as_rows:
        df = df.T

    df.index = df.index.astype(str)
    matrix = ExpressionMatrix(
        data=df.to_numpy(dtype=np.float64),
        sample_ids=pd.Index(df.index),
        feature_ids=pd.Index(df.columns),
    )
    logger.info(f"Loaded {path.name}: {matrix!r}")
    return matrix


def load_label_table(
    path: Path,
    columns: Optional[Sequence[str]] = None,
    id_column: Optional[str] = None,
) -> LabelTable:
    """
    Load a sample label table.

    Args:
        path: Path to CSV file
        columns: The three label columns. Defaults to every column other
            than the identifier column (which must then be exactly three).
        id_column: Column holding sample identifiers. Defaults to the first column.

    Returns:
        LabelTable keyed by sample identifier

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the identifier column is missing, identifiers repeat,
            or the number of label columns is not three
    """
    path = _check_file(path)

    df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
    if df.empty:
        raise ValueError(f"Label table contains no rows: {path}")

    if id_column is None:
        id_column = df.columns[0]
    if id_column not in df.columns:
        raise ValueError(f"Identifier column '{id_column}' not found in {path}. Available: {list(df.columns)}")

    df = df.set_index(id_column)

    if columns is None:
        columns = list(df.columns)
        if len(columns) != N_SCHEMES:
            raise ValueError(
                f"{path} has {len(columns)} label columns ({columns}); "
                f"pass exactly {N_SCHEMES} label columns explicitly"
            )

    labels = LabelTable.from_frame(df, columns=columns)
    coverage = labels.coverage()
    logger.info(
        f"Loaded {path.name}: {len(labels)} samples; labelled per scheme: "
        + ", ".join(f"{scheme}={n}" for scheme, n in coverage.items())
    )
    return labels
