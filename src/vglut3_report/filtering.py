"""Sample quality and gene expression filters."""

import logging
from typing import Dict, Optional

import pandas as pd

from .attributes import QUALITY_COLUMN
from .dataset import ExpressionSet
from .edger import EdgeRWrapper


logger = logging.getLogger(__name__)


class EmptyMatrixError(Exception):
    """Raised when a filter leaves no genes or no samples to model."""
    pass


def filter_samples(
    es: ExpressionSet,
    threshold: float = 0.6,
    column: str = QUALITY_COLUMN,
) -> ExpressionSet:
    """
    Keep samples whose quality score is strictly above ``threshold``.

    Samples with a missing score are dropped. Applying the same threshold
    twice is a no-op.
    """
    if column not in es.samples.columns:
        raise KeyError(f"Sample metadata has no '{column}' column")

    keep = (es.samples[column] > threshold).fillna(False).to_numpy(dtype=bool)
    filtered = es.subset(samples=keep)

    logger.info(
        f"Retained {filtered.n_samples}/{es.n_samples} samples with {column} > {threshold}"
    )
    if filtered.n_samples == 0:
        raise EmptyMatrixError(f"No samples pass {column} > {threshold}")
    return filtered


def filter_genes(
    es: ExpressionSet,
    group_column: Optional[str] = "genotype",
    edger: Optional[EdgeRWrapper] = None,
    **kwargs,
) -> ExpressionSet:
    """
    Drop lowly expressed genes, judged on the samples currently in ``es``.

    Extra keyword arguments go to :meth:`EdgeRWrapper.filter_by_expr`.
    """
    group = None
    if group_column is not None:
        group = es.samples[group_column]
        if isinstance(group.dtype, pd.CategoricalDtype):
            group = group.cat.remove_unused_categories()

    edger = edger or EdgeRWrapper()
    keep = edger.filter_by_expr(es.counts, group=group, **kwargs)
    filtered = es.subset(genes=keep.to_numpy())

    logger.info(f"Retained {filtered.n_genes}/{es.n_genes} genes after expression filter")
    if filtered.n_genes == 0:
        raise EmptyMatrixError("No genes pass the expression filter")
    return filtered


def retention_summary(before: ExpressionSet, after: ExpressionSet) -> Dict[str, float]:
    """Numbers and percentages of genes and samples kept between two stages."""
    def pct(kept, total):
        return 100.0 * kept / total if total else float("nan")

    return {
        "genes_before": before.n_genes,
        "genes_after": after.n_genes,
        "genes_pct": pct(after.n_genes, before.n_genes),
        "samples_before": before.n_samples,
        "samples_after": after.n_samples,
        "samples_pct": pct(after.n_samples, before.n_samples),
    }
