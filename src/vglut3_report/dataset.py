"""Expression set container passed between pipeline stages."""

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .validation import ValidationError


@dataclass(frozen=True)
class ExpressionSet:
    """Count matrix bundled with sample and gene metadata.

    Every stage of the pipeline returns a new ``ExpressionSet``; nothing is
    mutated in place.

    Attributes:
        counts: Read counts (genes x samples)
        samples: Sample metadata indexed by sample id, same order as counts columns
        genes: Gene metadata indexed by gene id, same order as counts rows
        norm_factors: Per-sample scaling factors, set by normalization
    """

    counts: pd.DataFrame
    samples: pd.DataFrame
    genes: pd.DataFrame
    norm_factors: Optional[pd.Series] = None

    def __post_init__(self):
        if not self.counts.columns.equals(self.samples.index):
            raise ValidationError(
                "Count matrix columns do not match sample metadata rows "
                f"({self.counts.shape[1]} columns, {len(self.samples)} samples)"
            )
        if not self.counts.index.equals(self.genes.index):
            raise ValidationError(
                "Count matrix rows do not match gene metadata rows "
                f"({self.counts.shape[0]} rows, {len(self.genes)} genes)"
            )
        if self.norm_factors is not None and not self.norm_factors.index.equals(self.counts.columns):
            raise ValidationError("Normalization factors are not aligned with samples")

    @classmethod
    def from_frames(
        cls,
        counts: pd.DataFrame,
        samples: Optional[pd.DataFrame] = None,
        genes: Optional[pd.DataFrame] = None,
    ) -> "ExpressionSet":
        """Build a set, realigning metadata to the count matrix order."""
        if samples is None:
            samples = pd.DataFrame(index=counts.columns)
        if genes is None:
            genes = pd.DataFrame(index=counts.index)

        missing = counts.columns.difference(samples.index)
        if len(missing) > 0:
            raise ValidationError(
                f"Samples in count matrix but not in metadata: {', '.join(sorted(map(str, missing)))}"
            )
        missing = counts.index.difference(genes.index)
        if len(missing) > 0:
            raise ValidationError(f"{len(missing)} genes in count matrix have no gene metadata")

        return cls(
            counts=counts,
            samples=samples.loc[counts.columns],
            genes=genes.loc[counts.index],
        )

    @property
    def shape(self):
        return self.counts.shape

    @property
    def n_genes(self) -> int:
        return self.counts.shape[0]

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]

    @property
    def lib_sizes(self) -> pd.Series:
        """Total counts per sample."""
        return self.counts.sum(axis=0).astype(float)

    @property
    def effective_lib_sizes(self) -> pd.Series:
        """Library sizes scaled by the normalization factors."""
        if self.norm_factors is None:
            return self.lib_sizes
        return self.lib_sizes * self.norm_factors

    def subset(
        self,
        genes: Optional[Sequence] = None,
        samples: Optional[Sequence] = None,
    ) -> "ExpressionSet":
        """Return a new set restricted to the given genes and/or samples.

        Accepts labels or boolean masks. Original order is preserved.
        """
        gene_index = self._select(self.counts.index, genes)
        sample_index = self._select(self.counts.columns, samples)

        norm_factors = None
        if self.norm_factors is not None:
            norm_factors = self.norm_factors.loc[sample_index]

        return ExpressionSet(
            counts=self.counts.loc[gene_index, sample_index],
            samples=self.samples.loc[sample_index],
            genes=self.genes.loc[gene_index],
            norm_factors=norm_factors,
        )

    def with_samples(self, samples: pd.DataFrame) -> "ExpressionSet":
        return replace(self, samples=samples)

    def with_norm_factors(self, norm_factors: pd.Series) -> "ExpressionSet":
        return replace(self, norm_factors=norm_factors)

    @staticmethod
    def _select(index: pd.Index, selection) -> pd.Index:
        if selection is None:
            return index
        selection = np.asarray(selection) if not isinstance(selection, pd.Series) else selection
        if getattr(selection, "dtype", None) == bool:
            if len(selection) != len(index):
                raise ValidationError(
                    f"Boolean mask of length {len(selection)} does not match axis of length {len(index)}"
                )
            return index[np.asarray(selection)]
        # Keep original order regardless of the order labels were given in
        return index[index.isin(selection)]
