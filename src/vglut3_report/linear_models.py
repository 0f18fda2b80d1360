"""limma wrapper using rpy2: voom, lmFit, eBayes, topTable and plotMDS.

The R objects (EList, MArrayLM) stay on the R side between calls; the
``get_*`` methods convert them into the frozen dataclasses below.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import pandas as pd

from .design import DesignMatrix
from .rbridge import RPackageError, RPackageWrapper


logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["logFC", "AveExpr", "t", "P.Value", "adj.P.Val", "B"]


class LimmaError(RPackageError):
    """Exception for limma-related errors."""
    pass


@dataclass(frozen=True)
class VoomResult:
    """log2-CPM expression values with observation-level precision weights."""

    E: pd.DataFrame
    weights: pd.DataFrame
    lib_sizes: pd.Series
    design: DesignMatrix


@dataclass(frozen=True)
class LinearModelFit:
    """Per-gene linear model fit moderated by empirical Bayes."""

    coefficients: pd.DataFrame
    stdev_unscaled: pd.DataFrame
    sigma: pd.Series
    df_residual: pd.Series
    amean: pd.Series
    design: DesignMatrix
    s2_prior: float
    df_prior: float
    var_prior: pd.Series
    s2_post: pd.Series
    df_total: pd.Series
    t: pd.DataFrame
    p_value: pd.DataFrame
    lods: pd.DataFrame


class LimmaWrapper(RPackageWrapper):
    """Wrapper for limma linear modelling of voom-transformed counts."""

    required_packages = ['limma']
    error = LimmaError

    def _load_r_packages(self):
        super()._load_r_packages()
        self.limma = self.packages['limma']

    def voom(
        self,
        counts: pd.DataFrame,
        design: DesignMatrix,
        lib_sizes: Optional[pd.Series] = None,
        span: float = 0.5,
    ):
        """
        Transform counts to log2-CPM and estimate precision weights.

        Args:
            counts: Read counts (genes x samples)
            design: Design matrix whose rows match the count columns
            lib_sizes: Effective library sizes (column sums times
                normalization factors); column sums by default
            span: LOWESS span for the mean-variance trend

        Returns:
            limma EList R object
        """
        if not design.matrix.index.equals(counts.columns):
            raise LimmaError("Design matrix rows do not match count columns")

        kwargs = {'span': float(span)}
        if lib_sizes is not None:
            kwargs['lib.size'] = self.ro.FloatVector(
                pd.Series(lib_sizes).reindex(counts.columns).astype(float).tolist()
            )

        logger.info(f"Running voom on {counts.shape[0]} genes x {counts.shape[1]} samples")
        try:
            return self.limma.voom(
                self._to_r_matrix(counts), self._to_r_matrix(design.matrix), **kwargs
            )
        except Exception as e:
            raise LimmaError(f"voom failed: {str(e)}")

    def lm_fit(self, expression: Union[pd.DataFrame, object], design: DesignMatrix):
        """
        Fit the design gene by gene.

        Args:
            expression: EList from :meth:`voom` (weights are used), or a
                DataFrame of log-expression values
            design: Design matrix

        Returns:
            limma MArrayLM R object
        """
        if isinstance(expression, pd.DataFrame):
            if not design.matrix.index.equals(expression.columns):
                raise LimmaError("Design matrix rows do not match expression columns")
            expression = self._to_r_matrix(expression)

        try:
            return self.limma.lmFit(expression, self._to_r_matrix(design.matrix))
        except Exception as e:
            raise LimmaError(f"lmFit failed: {str(e)}")

    def e_bayes(
        self,
        fit,
        proportion: float = 0.01,
        stdev_coef_lim: Tuple[float, float] = (0.1, 4.0),
    ):
        """
        Empirical Bayes moderation of the per-gene variances.

        Args:
            fit: MArrayLM from :meth:`lm_fit`
            proportion: Assumed proportion of differentially expressed genes,
                used for the B-statistic
            stdev_coef_lim: Limits on the prior standard deviation of non-null
                log fold changes

        Returns:
            Moderated MArrayLM R object
        """
        try:
            fit = self.limma.eBayes(
                fit,
                proportion=float(proportion),
                **{'stdev.coef.lim': self.ro.FloatVector([float(x) for x in stdev_coef_lim])}
            )
        except Exception as e:
            raise LimmaError(f"eBayes failed: {str(e)}")

        s2_prior = self._to_numpy(self._field(fit, 's2.prior'))
        df_prior = self._to_numpy(self._field(fit, 'df.prior'))
        logger.info(f"eBayes: prior variance {s2_prior[0]:.4g}, prior df {df_prior[0]:.3g}")
        return fit

    def top_table(
        self,
        fit,
        coef: str,
        genes: Optional[pd.DataFrame] = None,
        adjust_method: str = "BH",
    ) -> pd.DataFrame:
        """
        Results table for one coefficient, in the gene order of the fit.

        Calls ``topTable(sort.by = "none", number = Inf)``.

        Args:
            fit: Moderated MArrayLM from :meth:`e_bayes`
            coef: Design column name
            genes: Gene annotation prepended to the table
            adjust_method: ``p.adjust`` method

        Returns:
            DataFrame with logFC, AveExpr, t, P.Value, adj.P.Val and B columns
        """
        columns = [str(c) for c in self.base.colnames(self._field(fit, 'coefficients'))]
        if coef not in columns:
            raise KeyError(f"Coefficient '{coef}' not in fit (have {columns})")
        if not self._has_field(fit, 'lods'):
            raise LimmaError("Fit has no moderated statistics; run e_bayes first")

        try:
            r_table = self.limma.topTable(
                fit,
                coef=coef,
                number=float('inf'),
                **{'sort.by': 'none', 'adjust.method': adjust_method}
            )
        except Exception as e:
            raise LimmaError(f"topTable failed: {str(e)}")

        table = self._as_frame(r_table)[RESULT_COLUMNS].astype(float)
        if genes is not None:
            table = genes.loc[table.index].join(table)
        return table

    def plot_mds(self, expression: pd.DataFrame, top: int = 500) -> pd.DataFrame:
        """
        Leading log-fold-change MDS coordinates of the samples.

        Calls ``plotMDS(gene.selection = "pairwise", plot = FALSE)``: the
        distance between two samples is the root mean square of their ``top``
        largest log-fold-changes.

        Args:
            expression: log-expression values (genes x samples)
            top: Number of genes used for each pairwise distance

        Returns:
            DataFrame indexed by sample with columns dim1 and dim2; the
            ``variance_explained`` attribute holds the share of each dimension
        """
        try:
            mds = self.limma.plotMDS(
                self._to_r_matrix(expression),
                top=int(top),
                plot=False,
                **{'gene.selection': 'pairwise'}
            )
        except Exception as e:
            raise LimmaError(f"plotMDS failed: {str(e)}")

        coords = pd.DataFrame({
            'dim1': self._to_numpy(self._field(mds, 'x')),
            'dim2': self._to_numpy(self._field(mds, 'y')),
        }, index=expression.columns)
        coords.attrs['variance_explained'] = self._to_numpy(
            self._field(mds, 'var.explained')
        )[:2].tolist()
        return coords

    def get_voom(self, v, design: DesignMatrix) -> VoomResult:
        """Convert an EList into a :class:`VoomResult`."""
        targets = self._to_pandas(self._field(v, 'targets'))
        E = self._matrix_to_frame(self._field(v, 'E'))
        return VoomResult(
            E=E,
            # voom drops the dimnames of the weight matrix
            weights=self._matrix_to_frame(self._field(v, 'weights'), E.index, E.columns),
            lib_sizes=pd.Series(
                targets['lib.size'].to_numpy(dtype=float), index=E.columns, name="lib_size"
            ),
            design=design,
        )

    def get_fit(self, fit, design: DesignMatrix) -> LinearModelFit:
        """Convert a moderated MArrayLM into a :class:`LinearModelFit`."""
        coefficients = self._matrix_to_frame(self._field(fit, 'coefficients'))
        genes = coefficients.index

        def matrix(name):
            return self._matrix_to_frame(self._field(fit, name), genes, coefficients.columns)

        def vector(name):
            return pd.Series(self._to_numpy(self._field(fit, name)), index=genes, name=name)

        return LinearModelFit(
            coefficients=coefficients,
            stdev_unscaled=matrix('stdev.unscaled'),
            sigma=vector('sigma'),
            df_residual=vector('df.residual'),
            amean=vector('Amean'),
            design=design,
            s2_prior=float(self._to_numpy(self._field(fit, 's2.prior'))[0]),
            df_prior=float(self._to_numpy(self._field(fit, 'df.prior'))[0]),
            var_prior=pd.Series(
                self._to_numpy(self._field(fit, 'var.prior')), index=coefficients.columns, name='var.prior'
            ),
            s2_post=vector('s2.post'),
            df_total=vector('df.total'),
            t=matrix('t'),
            p_value=matrix('p.value'),
            lods=matrix('lods'),
        )


def select_top_genes(results: pd.DataFrame, n: int = 50, by: str = "adj.P.Val") -> pd.Index:
    """
    The ``n`` genes with the smallest ``by`` values.

    Ties keep their original order, so the selection is reproducible. Fewer
    than ``n`` genes are returned when the table is shorter.
    """
    ordered = results.sort_values(by, kind="mergesort", na_position="last")
    return ordered.index[:n]
