"""The analysis as a sequence of stages, each returning a new value."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import pandas as pd

from .attributes import normalize_attributes
from .config import Config
from .dataset import ExpressionSet
from .design import DesignMatrix, build_design
from .edger import EdgeRWrapper
from .filtering import filter_genes, filter_samples, retention_summary
from .linear_models import LimmaWrapper, LinearModelFit, VoomResult
from .normalization import normalize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Every intermediate of one analysis run."""

    raw: ExpressionSet
    annotated: ExpressionSet
    sample_filtered: ExpressionSet
    gene_filtered: ExpressionSet
    normalized: ExpressionSet
    design: DesignMatrix
    coefficient: str
    voom: VoomResult
    fit: LinearModelFit
    results: pd.DataFrame
    mds: pd.DataFrame
    retention: Dict[str, float]


def fit_model(
    es: ExpressionSet,
    design: DesignMatrix,
    coefficient: str,
    span: float = 0.5,
    proportion: float = 0.01,
    stdev_coef_lim: Tuple[float, float] = (0.1, 4.0),
    adjust_method: str = "BH",
    limma: Optional[LimmaWrapper] = None,
) -> Tuple[VoomResult, LinearModelFit, pd.DataFrame]:
    """voom, weighted per-gene fit, eBayes and an unsorted results table."""
    limma = limma or LimmaWrapper()
    v = limma.voom(es.counts, design, lib_sizes=es.effective_lib_sizes, span=span)
    fit = limma.e_bayes(limma.lm_fit(v, design), proportion=proportion, stdev_coef_lim=stdev_coef_lim)
    results = limma.top_table(fit, coefficient, genes=es.genes, adjust_method=adjust_method)
    return limma.get_voom(v, design), limma.get_fit(fit, design), results


def run_pipeline(es: ExpressionSet, config: Optional[Config] = None) -> PipelineResult:
    """
    Run attribute typing, filtering, normalization and model fitting.

    The design is built as soon as the retained samples are known, so an
    unusable model fails before any R package is loaded.

    Args:
        es: Expression set as retrieved from recount3 (or loaded locally)
        config: Analysis configuration, defaults if omitted

    Returns:
        PipelineResult
    """
    config = config or Config()
    filtering = config.filtering
    model = config.model

    annotated = normalize_attributes(es, config.attributes)

    sample_filtered = filter_samples(annotated, threshold=filtering.min_assigned_gene_prop)

    design = build_design(sample_filtered.samples, model.covariates)
    coefficient = design.coefficient(model.coefficient_of_interest)
    logger.info(f"Testing coefficient '{coefficient}'")

    edger = EdgeRWrapper()
    gene_filtered = filter_genes(
        sample_filtered,
        group_column=filtering.group_by,
        edger=edger,
        min_count=filtering.min_count,
        min_total_count=filtering.min_total_count,
        large_n=filtering.large_n,
        min_prop=filtering.min_prop,
    )
    retention = retention_summary(annotated, gene_filtered)
    logger.info(
        f"Kept {retention['genes_pct']:.1f}% of genes and {retention['samples_pct']:.1f}% of samples"
    )

    normalized = normalize(gene_filtered, method=model.normalization_method, edger=edger)

    limma = LimmaWrapper()
    v, fit, results = fit_model(
        normalized,
        design,
        coefficient,
        span=model.voom_span,
        proportion=model.proportion,
        stdev_coef_lim=model.stdev_coef_lim,
        adjust_method=model.adjust_method,
        limma=limma,
    )

    n_sig = int((results["adj.P.Val"] < config.report.fdr_threshold).sum())
    logger.info(f"{n_sig} genes with adj.P.Val < {config.report.fdr_threshold}")

    mds = limma.plot_mds(v.E, top=config.report.mds_top)

    return PipelineResult(
        raw=es,
        annotated=annotated,
        sample_filtered=sample_filtered,
        gene_filtered=gene_filtered,
        normalized=normalized,
        design=design,
        coefficient=coefficient,
        voom=v,
        fit=fit,
        results=results,
        mds=mds,
        retention=retention,
    )
