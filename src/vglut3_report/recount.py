"""recount3 data acquisition through rpy2, and local file loading."""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from .config import StudyQuery
from .dataset import ExpressionSet
from .rbridge import RPackageWrapper
from .validation import (
    ValidationError,
    read_count_matrix,
    read_metadata,
    validate_count_matrix,
)


logger = logging.getLogger(__name__)


class AcquisitionError(Exception):
    """Exception for data retrieval failures (R setup, network, unknown study)."""
    pass


def compute_read_counts(
    raw_counts: pd.DataFrame,
    avg_mapped_read_length: pd.Series,
    round_counts: bool = True,
) -> pd.DataFrame:
    """
    Convert recount3 base-pair coverage sums into read counts.

    Each sample's coverage is divided by its average mapped read length.

    Args:
        raw_counts: Coverage sums (genes x samples)
        avg_mapped_read_length: Average mapped read length per sample
        round_counts: Round to integer counts

    Returns:
        DataFrame of counts, same shape as ``raw_counts``
    """
    lengths = pd.Series(avg_mapped_read_length, dtype=float).reindex(raw_counts.columns)
    bad = lengths.isna() | (lengths <= 0)
    if bad.any():
        raise ValidationError(
            "Missing or non-positive average mapped read length for samples: "
            + ", ".join(map(str, lengths.index[bad]))
        )

    counts = raw_counts.astype(float).div(lengths, axis=1)
    if round_counts:
        counts = np.round(counts).astype(np.int64)
    return counts


class Recount3Client(RPackageWrapper):
    """Fetch gene-level RangedSummarizedExperiments from recount3."""

    required_packages = ['recount3', 'SummarizedExperiment']
    error = AcquisitionError

    def _load_r_packages(self):
        super()._load_r_packages()
        self.recount3 = self.packages['recount3']
        self.se = self.packages['SummarizedExperiment']

    def available_projects(self, organism: str = "mouse"):
        """Return (R data.frame, pandas DataFrame) of the projects recount3 indexes."""
        try:
            r_projects = self.recount3.available_projects(organism=organism)
        except Exception as e:
            raise AcquisitionError(f"Could not list recount3 projects for {organism}: {e}")
        return r_projects, self._to_pandas(r_projects)

    def fetch(self, query: StudyQuery) -> ExpressionSet:
        """
        Retrieve a project and convert coverage sums into read counts.

        Args:
            query: Study, data source, organism, annotation and feature type

        Returns:
            ExpressionSet of integer read counts with recount3 sample and
            gene metadata
        """
        if not query.project:
            raise AcquisitionError("No recount3 project identifier configured")

        r_projects, projects = self.available_projects(query.organism)
        match = np.flatnonzero(
            (projects['project'].astype(str) == query.project).to_numpy()
            & (projects['project_home'].astype(str) == query.project_home).to_numpy()
        )
        if match.size == 0:
            raise AcquisitionError(
                f"Unknown study '{query.project}' in {query.project_home} for {query.organism}"
            )

        project_info = r_projects.rx(self.ro.IntVector([int(match[0]) + 1]), True)
        logger.info(
            f"Fetching {query.project} ({query.feature_type}, {query.annotation}) from recount3"
        )
        try:
            rse = self.recount3.create_rse(
                project_info,
                type=query.feature_type,
                annotation=query.annotation
            )
            raw_counts = self._as_frame(self.se.assay(rse, "raw_counts"))
            samples = self._as_frame(self.se.colData(rse))
            genes = self._as_frame(self.se.rowData(rse))
        except Exception as e:
            raise AcquisitionError(f"recount3 retrieval of {query.project} failed: {str(e)}")

        if query.avg_mapped_read_length_field not in samples.columns:
            raise AcquisitionError(
                f"recount3 sample metadata lacks '{query.avg_mapped_read_length_field}'"
            )

        counts = compute_read_counts(raw_counts, samples[query.avg_mapped_read_length_field])
        logger.info(f"Retrieved {counts.shape[0]} genes x {counts.shape[1]} samples")
        return ExpressionSet.from_frames(counts, samples, genes)


def load_study(query: StudyQuery) -> ExpressionSet:
    """Fetch the configured study from recount3."""
    return Recount3Client().fetch(query)


def load_local(
    counts_path: Union[str, Path],
    samples_path: Union[str, Path],
    genes_path: Optional[Union[str, Path]] = None,
    avg_mapped_read_length_field: Optional[str] = None,
) -> ExpressionSet:
    """
    Load an expression set from delimited files.

    Args:
        counts_path: Gene x sample matrix (counts, or coverage sums when
            ``avg_mapped_read_length_field`` is given)
        samples_path: Sample metadata, first column holding sample IDs
        genes_path: Optional gene metadata, first column holding gene IDs
        avg_mapped_read_length_field: Sample column used to convert
            coverage sums into counts

    Returns:
        ExpressionSet
    """
    counts = read_count_matrix(counts_path)
    samples = read_metadata(samples_path)
    genes = read_metadata(genes_path) if genes_path is not None else None

    if avg_mapped_read_length_field is not None:
        counts = compute_read_counts(counts, samples[avg_mapped_read_length_field])

    validate_count_matrix(counts).raise_for_errors()

    logger.info(f"Loaded {counts.shape[0]} genes x {counts.shape[1]} samples from {counts_path}")
    return ExpressionSet.from_frames(counts, samples, genes)
