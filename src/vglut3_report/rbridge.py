"""Shared rpy2 plumbing for the Bioconductor package wrappers."""

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)


class RPackageError(Exception):
    """Exception for R environment problems and failed R calls."""
    pass


class RPackageWrapper:
    """Base class for wrappers around R packages.

    Subclasses list the packages they need in ``required_packages`` and set
    ``error`` to the exception raised for R-side failures.
    """

    required_packages: List[str] = []
    error = RPackageError

    def __init__(self):
        """Load rpy2 and check the R environment."""
        self._load_rpy2()
        self._check_r_packages()
        self._load_r_packages()

    def _load_rpy2(self):
        try:
            import rpy2.robjects as ro
            from rpy2.robjects import pandas2ri
            from rpy2.robjects.conversion import localconverter
            from rpy2.robjects.packages import importr
        except Exception as e:
            raise self.error(
                f"rpy2 with a working R installation is required for "
                f"{', '.join(self.required_packages)}: {e}"
            ) from e
        self.ro = ro
        self.pandas2ri = pandas2ri
        self.localconverter = localconverter
        self.importr = importr

    def _check_r_packages(self):
        """Check if required R packages are installed."""
        utils = self.importr('utils')
        base = self.importr('base')

        installed = set(base.rownames(utils.installed_packages()))
        missing = [pkg for pkg in self.required_packages if pkg not in installed]

        if missing:
            packages = ', '.join(f"'{p}'" for p in missing)
            raise self.error(
                f"Required R packages not found: {', '.join(missing)}\n"
                "Please install them in R using:\n"
                "  if (!require('BiocManager', quietly = TRUE))\n"
                "      install.packages('BiocManager')\n"
                f"  BiocManager::install(c({packages}))"
            )

    def _load_r_packages(self):
        """Load required R packages."""
        try:
            self.base = self.importr('base')
            self.packages = {pkg: self.importr(pkg) for pkg in self.required_packages}
            # [[ works on plain lists and on S4 list classes (EList, MArrayLM, MDS)
            self._extract = self.ro.r('function(x, name) x[[name]]')
            logger.info(f"Loaded R packages: {', '.join(self.required_packages)}")
        except Exception as e:
            raise self.error(f"Failed to load R packages: {str(e)}")

    def _to_pandas(self, r_df) -> pd.DataFrame:
        with self.localconverter(self.ro.default_converter + self.pandas2ri.converter):
            return self.ro.conversion.rpy2py(r_df)

    def _as_frame(self, r_obj) -> pd.DataFrame:
        """R matrix or data.frame as a DataFrame indexed by its row names."""
        frame = self._to_pandas(self.base.as_data_frame(r_obj))
        frame.index = [str(name) for name in self.base.rownames(r_obj)]
        return frame

    def _matrix_to_frame(self, r_matrix, index=None, columns=None) -> pd.DataFrame:
        """Numeric R matrix as a DataFrame; dimnames are used unless labels are given."""
        frame = self._to_pandas(self.base.as_data_frame(r_matrix))
        if index is None:
            index = [str(name) for name in self.base.rownames(r_matrix)]
        if columns is None:
            columns = [str(name) for name in self.base.colnames(r_matrix)]
        frame.index = index
        frame.columns = columns
        return frame.astype(float)

    def _to_r_matrix(self, df: pd.DataFrame):
        """Convert pandas DataFrame to a numeric R matrix with dimnames."""
        with self.localconverter(self.ro.default_converter + self.pandas2ri.converter):
            r_df = self.ro.conversion.py2rpy(df.astype(float))

        r_matrix = self.base.as_matrix(r_df)
        r_matrix.rownames = self.ro.StrVector([str(i) for i in df.index])
        r_matrix.colnames = self.ro.StrVector([str(c) for c in df.columns])
        return r_matrix

    def _to_r_factor(self, values: Sequence, levels: Optional[Sequence] = None):
        values = [str(v) for v in values]
        if levels is None:
            levels = sorted(set(values))
        return self.ro.FactorVector(
            self.ro.StrVector(values), levels=self.ro.StrVector([str(level) for level in levels])
        )

    def _field(self, r_obj, name: str):
        return self._extract(r_obj, name)

    def _has_field(self, r_obj, name: str) -> bool:
        return not self.base.is_null(self._field(r_obj, name))[0]

    @staticmethod
    def _to_numpy(r_vector, dtype=float) -> np.ndarray:
        return np.array(list(r_vector), dtype=dtype)
