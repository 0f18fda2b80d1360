"""Shared fixtures: synthetic recount3-like expression sets."""

import numpy as np
import pandas as pd
import pytest

from vglut3_report.attributes import normalize_attributes
from vglut3_report.config import Config
from vglut3_report.dataset import ExpressionSet
from vglut3_report.edger import EdgeRWrapper
from vglut3_report.linear_models import LimmaWrapper


def bioconductor_available():
    """True when rpy2 loads and R has edgeR and limma installed."""
    try:
        from rpy2.robjects.packages import isinstalled
        return all(isinstalled(pkg) for pkg in ('edgeR', 'limma'))
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    if bioconductor_available():
        return
    skip = pytest.mark.skip(reason="R with edgeR and limma is not available")
    for item in items:
        if 'bioconductor' in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def edger():
    return EdgeRWrapper()


@pytest.fixture(scope="session")
def limma():
    return LimmaWrapper()


def make_raw_set(n_genes=400, n_per_group=6, n_de=40, seed=1, low_quality=(0, 6)):
    """Counts and recount3-style metadata for wildtype vs Vglut3-/- samples.

    The first ``n_de`` genes are 4-fold up in Vglut3-/-. Samples listed in
    ``low_quality`` get an assigned gene proportion below 0.6.
    """
    rng = np.random.default_rng(seed)
    n_samples = 2 * n_per_group
    sample_ids = [f"SRR{100 + i}" for i in range(n_samples)]
    gene_ids = [f"ENSMUSG{i:05d}" for i in range(n_genes)]
    genotype = ["wildtype"] * n_per_group + ["Vglut3-/-"] * n_per_group
    age = ["P8", "P30"] * n_per_group
    location = (["apex", "apex", "base", "base"] * n_samples)[:n_samples]

    base = rng.lognormal(mean=5, sigma=1.5, size=n_genes)
    fold = np.ones(n_genes)
    fold[:n_de] = 4.0
    counts = np.zeros((n_genes, n_samples), dtype=np.int64)
    for j in range(n_samples):
        mu = base * rng.uniform(0.8, 1.2)
        if genotype[j] == "Vglut3-/-":
            mu = mu * fold
        counts[:, j] = rng.negative_binomial(n=10, p=10 / (10 + mu))

    total = np.full(n_samples, 1_000_000)
    prop = rng.uniform(0.65, 0.9, n_samples)
    for j in low_quality:
        prop[j] = 0.4
    assigned = np.round(total * prop).astype(np.int64)

    samples = pd.DataFrame({
        "sra.sample_attributes": [
            f"age;;{a}|genotype;;{g}|location;;{loc}|source name;;spiral ganglion"
            for a, g, loc in zip(age, genotype, location)
        ],
        "recount_qc.gene_fc_count_all.total": total,
        "recount_qc.gene_fc_count_all.assigned": assigned,
        "recount_qc.star.average_mapped_length": 100.0,
    }, index=sample_ids)
    genes = pd.DataFrame({
        "gene_name": [f"Gene{i}" for i in range(n_genes)],
        "gene_type": "protein_coding",
    }, index=gene_ids)
    counts = pd.DataFrame(counts, index=gene_ids, columns=sample_ids)
    return ExpressionSet.from_frames(counts, samples, genes)


@pytest.fixture
def raw_set():
    """Synthetic expression set with raw recount3 sample metadata."""
    return make_raw_set()


@pytest.fixture
def annotated_set(raw_set):
    """Expression set with typed genotype/age/location and quality score."""
    return normalize_attributes(raw_set)


@pytest.fixture
def config(tmp_path):
    """Default configuration writing into a temporary directory."""
    cfg = Config()
    cfg.report.output_path = tmp_path / "report.html"
    return cfg


@pytest.fixture
def small_set():
    """10 genes x 6 samples: 3 wildtype, 3 Vglut3-/-, one low-quality sample.

    ``G_wt2`` is expressed only in the first two wildtype samples, and
    ``G_low`` is barely expressed anywhere.
    """
    sample_ids = [f"S{i}" for i in range(1, 7)]
    background = {f"G{i}": [1000] * 6 for i in range(1, 9)}
    rows = dict(background)
    rows["G_wt2"] = [50, 50, 0, 0, 0, 0]
    rows["G_low"] = [1, 0, 1, 0, 1, 0]
    counts = pd.DataFrame(rows, index=sample_ids).T

    samples = pd.DataFrame({
        "genotype": pd.Categorical(
            ["wildtype"] * 3 + ["Vglut3-/-"] * 3, categories=["wildtype", "Vglut3-/-"]
        ),
        "assigned_gene_prop": [0.9, 0.8, 0.95, 0.5, 0.7, 0.9],
    }, index=sample_ids)
    return ExpressionSet.from_frames(counts, samples)


@pytest.fixture
def raw_set_factory():
    """Builder for variants of the synthetic data set."""
    return make_raw_set


def write_tables(es, directory):
    """Write an expression set as counts/samples/genes TSV files."""
    paths = {
        "counts": directory / "counts.tsv",
        "samples": directory / "samples.tsv",
        "genes": directory / "genes.tsv",
    }
    es.counts.to_csv(paths["counts"], sep="\t")
    es.samples.to_csv(paths["samples"], sep="\t")
    es.genes.to_csv(paths["genes"], sep="\t")
    return paths


@pytest.fixture
def local_tables(raw_set, tmp_path):
    """Paths of the synthetic data set written to disk."""
    return write_tables(raw_set, tmp_path)


@pytest.fixture
def table_writer():
    return write_tables
