"""
Pytest configuration and shared fixtures.

This module provides synthetic cell-line data generators and small
hand-checked fixtures shared by all test suites.
"""

import numpy as np
import pandas as pd
import pytest

from linecorr.core.expression import ExpressionMatrix
from linecorr.core.labels import LabelTable


TISSUES = ["lung", "breast", "skin"]


def generate_synthetic_cell_lines(
    n_samples: int = 24,
    n_features: int = 200,
    missing_fraction: float = 0.05,
    seed: int = 42,
) -> tuple[ExpressionMatrix, LabelTable]:
    """
    Generate cell lines whose expression clusters by tissue of origin.

    Args:
        n_samples: Number of cell lines
        n_features: Number of genes
        missing_fraction: Fraction of values set to NaN
        seed: Random seed for reproducibility

    Returns:
        (matrix, labels). Labels carry three schemes: ``tissue`` (drives the
        expression signal, ~10% missing), ``subtype`` (random) and ``site``
        (random, ~20% missing).

    Design:
        - Each tissue has a shared log-normal expression profile
        - Cell lines add independent noise on top of their tissue profile
        - Same-tissue pairs are therefore more correlated than cross-tissue
          pairs, so high rank bins are enriched for tissue agreement
    """
    rng = np.random.RandomState(seed)

    profiles = {t: rng.normal(loc=5.0, scale=2.0, size=n_features) for t in TISSUES}
    tissues = [TISSUES[i % len(TISSUES)] for i in range(n_samples)]

    data = np.vstack([
        profiles[t] + rng.normal(scale=1.0, size=n_features) for t in tissues
    ])

    n_missing = int(n_samples * n_features * missing_fraction)
    positions = rng.choice(n_samples * n_features, size=n_missing, replace=False)
    data.flat[positions] = np.nan

    sample_ids = pd.Index([f"CL{i:03d}" for i in range(n_samples)])
    feature_ids = pd.Index([f"GENE_{j:05d}" for j in range(n_features)])
    matrix = ExpressionMatrix(data=data, sample_ids=sample_ids, feature_ids=feature_ids)

    tissue_labels = [None if rng.rand() < 0.1 else t for t in tissues]
    subtype_labels = [rng.choice(["a", "b"]) for _ in range(n_samples)]
    site_labels = [None if rng.rand() < 0.2 else rng.choice(["primary", "metastasis"]) for _ in range(n_samples)]

    label_frame = pd.DataFrame(
        {"tissue": tissue_labels, "subtype": subtype_labels, "site": site_labels},
        index=sample_ids,
    )
    return matrix, LabelTable.from_frame(label_frame)


@pytest.fixture
def abc_matrix():
    """The three-sample example: B = 2A exactly, C unrelated."""
    return ExpressionMatrix(
        data=np.array([
            [1.0, 2.0, 3.0],
            [2.0, 4.0, 6.0],
            [3.0, 1.0, 2.0],
        ]),
        sample_ids=pd.Index(["A", "B", "C"]),
        feature_ids=pd.Index(["f1", "f2", "f3"]),
    )


@pytest.fixture
def abc_labels():
    """Only A carries a scheme1 label; schemes 2 and 3 are complete."""
    frame = pd.DataFrame(
        {
            "scheme1": ["lung", None, None],
            "scheme2": ["x", "x", "y"],
            "scheme3": ["p", "p", "p"],
        },
        index=["A", "B", "C"],
    )
    return LabelTable.from_frame(frame)


@pytest.fixture
def synthetic():
    """Small synthetic panel (24 cell lines × 200 genes) for fast tests."""
    return generate_synthetic_cell_lines(n_samples=24, n_features=200, seed=42)


@pytest.fixture
def synthetic_csv_files(tmp_path, synthetic):
    """Synthetic panel written to expression.csv / labels.csv."""
    matrix, labels = synthetic
    expression_path = tmp_path / "expression.csv"
    labels_path = tmp_path / "labels.csv"

    matrix.to_frame().to_csv(expression_path)
    label_frame = labels.to_frame()
    label_frame.index.name = "cell_line"
    label_frame.to_csv(labels_path)

    return {"expression": expression_path, "labels": labels_path}
