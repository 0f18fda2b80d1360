"""Validation and local readers for count matrices and sample tables."""

import gzip
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


class ValidationError(Exception):
    """Raised when input data is malformed or misaligned."""
    pass


class ValidationWarning(BaseModel):
    """Warning message from validation."""
    message: str
    severity: str = Field(default="warning")  # warning, info


class ValidationResult(BaseModel):
    """Result of data validation."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)

    def raise_for_errors(self):
        """Raise ValidationError listing every error, if any."""
        if not self.valid:
            raise ValidationError("; ".join(self.errors))


def _sniff_delimiter(filepath: Path) -> Optional[str]:
    opener = open
    if filepath.suffix == ".gz":
        opener = gzip.open
    with opener(filepath, 'rt') as f:
        first_line = f.readline()
    if '\t' in first_line:
        return '\t'
    if ',' in first_line:
        return ','
    return None


def read_count_matrix(
    filepath: Union[str, Path],
    delimiter: Optional[str] = None,
    gene_col: int = 0,
    comment: Optional[str] = "#",
) -> pd.DataFrame:
    """
    Read a genes x samples count matrix from a delimited file.

    recount3 gene sum files start with ``##`` header lines, which are skipped.

    Args:
        filepath: Path to count matrix file (optionally gzipped)
        delimiter: Column delimiter (auto-detected if None)
        gene_col: Column index for gene IDs
        comment: Comment prefix for header lines to skip

    Returns:
        DataFrame with genes as rows, samples as columns
    """
    filepath = Path(filepath)
    if delimiter is None:
        delimiter = _sniff_delimiter(filepath)

    df = pd.read_csv(filepath, sep=delimiter, index_col=gene_col, comment=comment)

    df.index = df.index.astype(str).str.strip()
    df.columns = df.columns.astype(str).str.strip()

    return df


def read_metadata(
    filepath: Union[str, Path],
    delimiter: Optional[str] = None,
    index_col: int = 0,
) -> pd.DataFrame:
    """
    Read a sample or gene metadata table.

    Args:
        filepath: Path to metadata file (optionally gzipped)
        delimiter: Column delimiter (auto-detected if None)
        index_col: Column index holding the row identifiers

    Returns:
        DataFrame indexed by the identifier column
    """
    filepath = Path(filepath)
    if delimiter is None:
        delimiter = _sniff_delimiter(filepath)

    df = pd.read_csv(filepath, sep=delimiter, index_col=index_col)

    df.index = df.index.astype(str).str.strip()
    df.columns = df.columns.astype(str).str.strip()

    return df


def validate_count_matrix(counts: pd.DataFrame) -> ValidationResult:
    """
    Validate a count matrix.

    Negative values, missing values and duplicated identifiers are errors.
    Non-integer values only warn, since coverage-derived counts are rounded
    upstream.

    Args:
        counts: Count matrix DataFrame (genes x samples)

    Returns:
        ValidationResult
    """
    errors = []
    warnings = []

    if counts.empty:
        return ValidationResult(valid=False, errors=["Count matrix is empty"])

    n_genes, n_samples = counts.shape

    non_numeric = [c for c in counts.columns if not pd.api.types.is_numeric_dtype(counts[c])]
    if non_numeric:
        errors.append(f"Count matrix has non-numeric columns: {', '.join(map(str, non_numeric))}")
        return ValidationResult(valid=False, errors=errors)

    values = counts.to_numpy(dtype=float)

    if np.isnan(values).any():
        errors.append(f"Count matrix contains {int(np.isnan(values).sum())} missing values")

    if (values < 0).any():
        errors.append("Count matrix contains negative values")

    finite = values[np.isfinite(values)]
    if not np.allclose(finite, np.round(finite)):
        warnings.append(ValidationWarning(
            message="Count matrix contains non-integer values.",
            severity="warning"
        ))

    if counts.index.duplicated().any():
        errors.append(f"Count matrix contains {counts.index.duplicated().sum()} duplicate gene IDs")

    if counts.columns.duplicated().any():
        errors.append(f"Count matrix contains {counts.columns.duplicated().sum()} duplicate sample IDs")

    library_sizes = counts.sum(axis=0)
    for sample, size in library_sizes.items():
        if size == 0:
            warnings.append(ValidationWarning(
                message=f"Sample '{sample}' has no reads",
                severity="warning"
            ))

    summary = {
        "n_genes": n_genes,
        "n_samples": n_samples,
        "total_counts": float(np.nansum(values)),
        "median_library_size": float(library_sizes.median()),
    }

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        summary=summary
    )
