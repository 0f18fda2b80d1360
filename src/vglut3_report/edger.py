"""edgeR wrapper using rpy2 for expression filtering and TMM normalization."""

import logging
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from .rbridge import RPackageError, RPackageWrapper


logger = logging.getLogger(__name__)


class EdgeRError(RPackageError):
    """Exception for edgeR-related errors."""
    pass


class EdgeRWrapper(RPackageWrapper):
    """Wrapper for the edgeR functions the analysis relies on."""

    required_packages = ['edgeR']
    error = EdgeRError

    def _load_r_packages(self):
        super()._load_r_packages()
        self.edger = self.packages['edgeR']

    def filter_by_expr(
        self,
        counts: pd.DataFrame,
        group: Optional[Union[pd.Series, Sequence]] = None,
        design: Optional[Union[pd.DataFrame, np.ndarray]] = None,
        lib_size: Optional[pd.Series] = None,
        min_count: float = 10,
        min_total_count: float = 15,
        large_n: int = 10,
        min_prop: float = 0.7,
    ) -> pd.Series:
        """
        Decide which genes have enough reads to be worth testing.

        Calls ``edgeR::filterByExpr``. The minimum sample size is the
        smallest group, or the inverse of the largest leverage of ``design``
        when only a design is given.

        Args:
            counts: Count matrix (genes x samples)
            group: Group membership per sample
            design: Design matrix used instead of ``group``
            lib_size: Library sizes, column sums by default
            min_count: Minimum count in the smallest group
            min_total_count: Minimum total count across all samples
            large_n: Group size beyond which only a proportion is required
            min_prop: Proportion of the excess samples required for large groups

        Returns:
            Boolean Series indexed like ``counts``
        """
        kwargs = {
            'min.count': float(min_count),
            'min.total.count': float(min_total_count),
            'large.n': float(large_n),
            'min.prop': float(min_prop),
        }
        if group is not None:
            group = pd.Series(group)
            if isinstance(group.dtype, pd.CategoricalDtype):
                levels = [str(level) for level in group.cat.categories]
            else:
                levels = None
            kwargs['group'] = self._to_r_factor(group.tolist(), levels)
        if design is not None:
            if not isinstance(design, pd.DataFrame):
                design = pd.DataFrame(
                    np.asarray(design, dtype=float),
                    index=counts.columns,
                    columns=[f"x{i}" for i in range(np.shape(design)[1])]
                )
            kwargs['design'] = self._to_r_matrix(design)
        if lib_size is not None:
            kwargs['lib.size'] = self.ro.FloatVector(np.asarray(lib_size, dtype=float))

        try:
            keep = self.edger.filterByExpr(self._to_r_matrix(counts), **kwargs)
        except Exception as e:
            raise EdgeRError(f"filterByExpr failed: {str(e)}")

        return pd.Series(self._to_numpy(keep, dtype=bool), index=counts.index, name="keep")

    def calc_norm_factors(
        self,
        counts: pd.DataFrame,
        lib_size: Optional[pd.Series] = None,
        method: str = "TMM",
    ) -> pd.Series:
        """
        Scaling factors that correct for library composition.

        Calls ``edgeR::calcNormFactors`` on the count matrix. Factors multiply
        to one across samples.

        Args:
            counts: Count matrix (genes x samples)
            lib_size: Library sizes, column sums by default
            method: edgeR normalization method ("TMM", "upperquartile", "none", ...)

        Returns:
            Series of factors indexed by sample
        """
        kwargs = {'method': method}
        if lib_size is not None:
            kwargs['lib.size'] = self.ro.FloatVector(np.asarray(lib_size, dtype=float))

        try:
            factors = self.edger.calcNormFactors(self._to_r_matrix(counts), **kwargs)
        except Exception as e:
            raise EdgeRError(f"calcNormFactors({method}) failed: {str(e)}")

        return pd.Series(self._to_numpy(factors), index=counts.columns, name="norm_factors")
