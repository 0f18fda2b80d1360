"""Expansion and typing of free-text SRA sample attributes."""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import AttributeSchema
from .dataset import ExpressionSet
from .validation import ValidationError


logger = logging.getLogger(__name__)

SRA_ATTRIBUTE_COLUMN = "sra.sample_attributes"
ASSIGNED_COLUMN = "recount_qc.gene_fc_count_all.assigned"
TOTAL_COLUMN = "recount_qc.gene_fc_count_all.total"
QUALITY_COLUMN = "assigned_gene_prop"


class MetadataSchemaError(ValidationError):
    """Raised when expected sample attributes are missing or carry unexpected levels."""
    pass


def parse_sample_attributes(value) -> Dict[str, str]:
    """
    Parse one SRA attribute string.

    Attributes are ``key;;value`` pairs separated by ``|``, e.g.
    ``"age;;P8|genotype;;wildtype"``. Spaces in keys become underscores.
    """
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return {}

    parsed = {}
    for item in str(value).split("|"):
        if not item.strip():
            continue
        key, sep, val = item.partition(";;")
        if not sep:
            raise MetadataSchemaError(f"Malformed sample attribute '{item}' (expected 'key;;value')")
        parsed[key.strip().replace(" ", "_")] = val.strip()
    return parsed


def expand_sra_attributes(
    samples: pd.DataFrame,
    column: str = SRA_ATTRIBUTE_COLUMN,
    prefix: str = "sra_attribute.",
) -> pd.DataFrame:
    """
    Expand the free-text attribute column into one column per attribute.

    Args:
        samples: Sample metadata with a raw attribute column
        column: Name of the raw attribute column
        prefix: Prefix of the generated columns

    Returns:
        Copy of ``samples`` with ``<prefix><key>`` columns appended. Samples
        lacking an attribute get a missing value.
    """
    if column not in samples.columns:
        raise MetadataSchemaError(f"Sample metadata has no '{column}' column to expand")

    parsed = samples[column].map(parse_sample_attributes)
    expanded = pd.DataFrame(parsed.tolist(), index=samples.index)
    expanded.columns = [f"{prefix}{key}" for key in expanded.columns]

    overlap = expanded.columns.intersection(samples.columns)
    result = samples.drop(columns=overlap).join(expanded)

    logger.debug(f"Expanded {len(expanded.columns)} sample attributes: {', '.join(expanded.columns)}")
    return result


def validate_attributes(samples: pd.DataFrame, schema: AttributeSchema) -> None:
    """
    Check that every expected attribute exists and has only expected levels.

    Raises:
        MetadataSchemaError: listing every missing attribute, missing value
            and unexpected level found
    """
    problems: List[str] = []

    for name, spec in schema.specs().items():
        column = f"{schema.prefix}{spec.source}"
        if column not in samples.columns:
            problems.append(f"attribute '{spec.source}' ({name}) is missing")
            continue

        values = samples[column]
        n_missing = int(values.isna().sum())
        if n_missing:
            problems.append(f"attribute '{spec.source}' ({name}) is missing for {n_missing} sample(s)")

        if spec.levels is not None:
            unexpected = sorted(set(values.dropna().astype(str)) - set(spec.levels))
            if unexpected:
                problems.append(
                    f"attribute '{spec.source}' ({name}) has unexpected levels {unexpected}; "
                    f"expected {spec.levels}"
                )

    if problems:
        raise MetadataSchemaError("Sample metadata does not match schema: " + "; ".join(problems))


def coerce_categoricals(samples: pd.DataFrame, schema: AttributeSchema) -> pd.DataFrame:
    """
    Add ``genotype``, ``age`` and ``location`` categorical columns.

    Levels follow the schema order where given, otherwise the sorted observed
    values. The first level is the reference level of the model.
    """
    result = samples.copy()
    for name, spec in schema.specs().items():
        values = samples[f"{schema.prefix}{spec.source}"].astype(str)
        levels = spec.levels if spec.levels is not None else sorted(values.unique())
        result[name] = pd.Categorical(values, categories=levels)
    return result


def assigned_gene_proportion(
    samples: pd.DataFrame,
    assigned_column: str = ASSIGNED_COLUMN,
    total_column: str = TOTAL_COLUMN,
) -> pd.Series:
    """
    Fraction of reads assigned to annotated genes, per sample.

    A sample with zero total reads yields NaN.
    """
    for column in (assigned_column, total_column):
        if column not in samples.columns:
            raise MetadataSchemaError(f"Sample metadata has no '{column}' column")

    assigned = samples[assigned_column].astype(float)
    total = samples[total_column].astype(float)
    prop = assigned / total.where(total != 0)
    return prop.rename(QUALITY_COLUMN)


def normalize_attributes(
    es: ExpressionSet,
    schema: Optional[AttributeSchema] = None,
    attribute_column: str = SRA_ATTRIBUTE_COLUMN,
) -> ExpressionSet:
    """
    Expand, validate and type sample attributes and add the quality score.

    Args:
        es: Expression set with raw recount3 sample metadata
        schema: Expected attributes (defaults to the genotype/age/location schema)
        attribute_column: Raw attribute column to expand

    Returns:
        New ExpressionSet with typed sample metadata
    """
    schema = schema or AttributeSchema()

    samples = es.samples
    if attribute_column in samples.columns:
        samples = expand_sra_attributes(samples, attribute_column, schema.prefix)

    validate_attributes(samples, schema)
    samples = coerce_categoricals(samples, schema)
    samples[QUALITY_COLUMN] = assigned_gene_proportion(samples)

    n_nan = int(samples[QUALITY_COLUMN].isna().sum())
    if n_nan:
        logger.warning(f"{n_nan} sample(s) have no reads; assigned_gene_prop is NaN")

    for name in schema.specs():
        counts = samples[name].value_counts(sort=False)
        logger.info(f"{name}: " + ", ".join(f"{level}={n}" for level, n in counts.items()))

    return es.with_samples(samples)
