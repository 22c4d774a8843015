"""
Core data structure for sample-by-feature expression matrices.

ExpressionMatrix couples the numerical measurements of each cell line with
the identifiers needed to join correlation results back to sample labels.

Biological Context:
    Cell-line similarity is computed between samples, so the matrix is
    stored sample-major:
    - Rows = samples (cell lines)
    - Columns = features (genes, transcripts)
    - Values = expression levels (may contain NaN for unmeasured features)

    Unlike generic dataframes, the matrix here is:
    - Validated once at construction (shape, identifier uniqueness)
    - Immutable by convention, so the correlation engine can share it
      across worker threads without copying

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from linecorr.core.expression import ExpressionMatrix
    >>>
    >>> matrix = ExpressionMatrix(
    ...     data=np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0]]),
    ...     sample_ids=pd.Index(["A", "B"]),
    ...     feature_ids=pd.Index(["GENE1", "GENE2", "GENE3"]),
    ... )
    >>> matrix.n_samples, matrix.n_features
    (2, 3)
"""

from __future__ import annotations

import numpy as np
import pandas as pd

__all__ = ['ExpressionMatrix']


class ExpressionMatrix:
    """
    Immutable container for a samples x features expression matrix.

    Attributes:
        data: Numerical expression matrix (samples x features), float64
        sample_ids: Row identifiers (cell line names)
        feature_ids: Column identifiers (gene IDs)

    Shape Invariants:
        - data.shape[0] == len(sample_ids)
        - data.shape[1] == len(feature_ids)
        - sample_ids are unique
    """

    def __init__(
        self,
        data: np.ndarray,
        sample_ids: pd.Index,
        feature_ids: pd.Index,
    ):
        """
        Initialize ExpressionMatrix with validation.

        Args:
            data: Expression matrix (samples x features). Converted to float64.
            sample_ids: Row identifiers, must be unique
            feature_ids: Column identifiers

        Raises:
            ValueError: If shapes are inconsistent or sample IDs repeat
            TypeError: If data types are incorrect
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")
        if not isinstance(feature_ids, pd.Index):
            raise TypeError(f"feature_ids must be pd.Index, got {type(feature_ids)}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_samples, n_features = data.shape

        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data rows ({n_samples})"
            )
        if len(feature_ids) != n_features:
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match data columns ({n_features})"
            )
        if not sample_ids.is_unique:
            duplicated = sample_ids[sample_ids.duplicated()].unique().tolist()
            raise ValueError(f"sample_ids must be unique, duplicated: {duplicated[:5]}")

        try:
            values = np.array(data, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise TypeError(f"data must be numeric, got dtype {data.dtype}") from e

        values.setflags(write=False)

        self._data = values
        self._sample_ids = sample_ids.astype(str)
        self._feature_ids = feature_ids

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> ExpressionMatrix:
        """Build from a DataFrame indexed by sample with one column per feature."""
        return cls(
            data=frame.to_numpy(dtype=np.float64),
            sample_ids=pd.Index(frame.index),
            feature_ids=pd.Index(frame.columns),
        )

    @property
    def data(self) -> np.ndarray:
        """Expression matrix (samples x features), read-only."""
        return self._data

    @property
    def sample_ids(self) -> pd.Index:
        """Row identifiers (cell lines)."""
        return self._sample_ids

    @property
    def feature_ids(self) -> pd.Index:
        """Column identifiers (genes)."""
        return self._feature_ids

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_samples, n_features)."""
        return self._data.shape

    @property
    def n_samples(self) -> int:
        return self._data.shape[0]

    @property
    def n_features(self) -> int:
        return self._data.shape[1]

    def to_frame(self) -> pd.DataFrame:
        """Return a copy as a DataFrame (samples x features)."""
        return pd.DataFrame(self._data.copy(), index=self._sample_ids, columns=self._feature_ids)

    def __repr__(self) -> str:
        n_missing = int(np.isnan(self._data).sum())
        return (
            f"ExpressionMatrix({self.n_samples} samples x {self.n_features} features, "
            f"{n_missing} missing values)"
        )
