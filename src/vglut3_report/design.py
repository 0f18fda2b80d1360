"""Design matrix construction with named coefficient lookup."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


class DesignMatrixError(Exception):
    """Raised when a design matrix cannot support a model fit."""
    pass


@dataclass(frozen=True)
class DesignMatrix:
    """Treatment-coded design matrix.

    Attributes:
        matrix: Samples x terms, intercept first
        factors: Levels used for each categorical covariate, reference first
        terms: Design columns contributed by each covariate
    """

    matrix: pd.DataFrame
    factors: Dict[str, List[str]] = field(default_factory=dict)
    terms: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def columns(self) -> List[str]:
        return list(self.matrix.columns)

    @property
    def rank(self) -> int:
        return int(np.linalg.matrix_rank(self.matrix.to_numpy(dtype=float)))

    @property
    def df_residual(self) -> int:
        return self.matrix.shape[0] - self.rank

    def coefficient(self, covariate: str, level: Optional[str] = None) -> str:
        """
        Name of the design column for ``covariate``.

        For a two-level factor this is its single non-reference level; for
        factors with more levels ``level`` must be given.

        Raises:
            DesignMatrixError: if the covariate is not in the design or the
                column is ambiguous
        """
        if covariate not in self.terms:
            raise DesignMatrixError(
                f"Covariate '{covariate}' is not in the design (have {list(self.terms)})"
            )
        columns = self.terms[covariate]
        if level is not None:
            name = f"{covariate}{level}"
            if name not in columns:
                raise DesignMatrixError(
                    f"Level '{level}' of '{covariate}' has no design column "
                    f"(reference level is '{self.factors[covariate][0]}')"
                )
            return name
        if len(columns) != 1:
            raise DesignMatrixError(
                f"Covariate '{covariate}' has {len(columns)} design columns; specify a level"
            )
        return columns[0]


def build_design(
    samples: pd.DataFrame,
    covariates: Sequence[str],
    intercept: bool = True,
) -> DesignMatrix:
    """
    Build ``~ covariate1 + covariate2 + ...`` with treatment contrasts.

    Categorical covariates contribute one column per non-reference level,
    named ``<covariate><level>``; the first category is the reference. Levels
    with no samples are dropped first. Numeric covariates enter as-is.

    Args:
        samples: Sample metadata
        covariates: Covariate columns, in model order
        intercept: Include an intercept column

    Returns:
        DesignMatrix

    Raises:
        DesignMatrixError: on unknown covariates, missing values, or a
            rank-deficient design
    """
    missing = [c for c in covariates if c not in samples.columns]
    if missing:
        raise DesignMatrixError(f"Covariates not found in sample metadata: {', '.join(missing)}")

    blocks = []
    factors: Dict[str, List[str]] = {}
    terms: Dict[str, List[str]] = {}

    drop_reference = intercept
    if intercept:
        blocks.append(pd.DataFrame({INTERCEPT: 1.0}, index=samples.index))

    for name in covariates:
        values = samples[name]
        if values.isna().any():
            raise DesignMatrixError(f"Covariate '{name}' has missing values")

        if pd.api.types.is_numeric_dtype(values) and not isinstance(values.dtype, pd.CategoricalDtype):
            block = pd.DataFrame({name: values.astype(float)}, index=samples.index)
        else:
            if not isinstance(values.dtype, pd.CategoricalDtype):
                values = values.astype("category")
            values = values.cat.remove_unused_categories()
            levels = [str(level) for level in values.cat.categories]
            if len(levels) < 2:
                raise DesignMatrixError(
                    f"Factor '{name}' has a single level ({levels[0] if levels else 'none'}) among the samples"
                )
            factors[name] = levels
            dummies = pd.get_dummies(values, prefix=name, prefix_sep="", dtype=float)
            dummies.columns = [f"{name}{level}" for level in levels]
            block = dummies.iloc[:, 1:] if drop_reference else dummies
            drop_reference = True
        terms[name] = list(block.columns)
        blocks.append(block)

    matrix = pd.concat(blocks, axis=1)
    design = DesignMatrix(matrix=matrix, factors=factors, terms=terms)

    if design.rank < matrix.shape[1]:
        raise DesignMatrixError(
            f"Design matrix is rank deficient (rank {design.rank} < {matrix.shape[1]} columns). "
            "Some covariates are confounded or constant after filtering."
        )
    if design.df_residual < 1:
        raise DesignMatrixError(
            f"Design has no residual degrees of freedom ({matrix.shape[0]} samples, "
            f"{matrix.shape[1]} coefficients)"
        )

    logger.info(f"Design matrix: {matrix.shape[0]} samples x {matrix.shape[1]} terms ({', '.join(matrix.columns)})")
    return design
