"""Generate a synthetic recount3-like dataset for running the report offline.

Usage:
    python examples/generate_example_data.py
    vglut3-report --counts examples/counts.tsv --samples examples/samples.tsv \
        --genes examples/genes.tsv --output examples/report.html
"""

import numpy as np
import pandas as pd
from pathlib import Path


def generate_example_data(
    n_genes: int = 2000,
    n_per_group: int = 6,
    n_de_genes: int = 100,
    fold_change_range: tuple = (2, 5),
    output_dir: str = "examples",
    seed: int = 42
):
    """
    Generate counts, sample and gene tables shaped like recount3 output.

    Samples are split evenly between wildtype and Vglut3-/-, and across two
    ages and two tonotopic locations. One sample per genotype gets a low
    assigned gene proportion so the quality filter has something to remove.

    Args:
        n_genes: Total number of genes
        n_per_group: Samples per genotype
        n_de_genes: Number of genes changed in Vglut3-/-
        fold_change_range: (min, max) fold change for changed genes
        output_dir: Directory to save files
        seed: Random seed for reproducibility
    """
    rng = np.random.default_rng(seed)

    n_samples = 2 * n_per_group
    gene_ids = [f"ENSMUSG{i:011d}.1" for i in range(n_genes)]
    sample_ids = [f"SRR{7000000 + i}" for i in range(n_samples)]
    genotype = ["wildtype"] * n_per_group + ["Vglut3-/-"] * n_per_group
    age = ["P8", "P30"] * n_per_group
    location = (["apex", "apex", "base", "base"] * n_samples)[:n_samples]

    # Base expression levels (log-normal distribution)
    base_expression = rng.lognormal(mean=4, sigma=2, size=n_genes)
    fold_changes = np.ones(n_genes)
    de_indices = rng.choice(n_genes, n_de_genes, replace=False)
    fc = rng.uniform(*fold_change_range, size=n_de_genes)
    direction = rng.choice([-1, 1], size=n_de_genes)
    fold_changes[de_indices] = np.where(direction > 0, fc, 1 / fc)

    dispersion = rng.uniform(0.05, 0.2, n_genes)
    lib_scale = rng.uniform(0.7, 1.3, n_samples)
    counts = np.zeros((n_genes, n_samples), dtype=np.int64)
    for j in range(n_samples):
        mu = base_expression * lib_scale[j]
        if genotype[j] == "Vglut3-/-":
            mu = mu * fold_changes
        counts[:, j] = rng.negative_binomial(n=1 / dispersion, p=1 / (1 + mu * dispersion))

    total = rng.integers(2_000_000, 4_000_000, n_samples)
    prop = rng.uniform(0.65, 0.9, n_samples)
    prop[0] = 0.45
    prop[n_per_group] = 0.5

    samples = pd.DataFrame({
        "external_id": sample_ids,
        "sra.sample_attributes": [
            f"age;;{a}|genotype;;{g}|location;;{loc}|source_name;;spiral ganglion"
            for a, g, loc in zip(age, genotype, location)
        ],
        "recount_qc.gene_fc_count_all.total": total,
        "recount_qc.gene_fc_count_all.assigned": np.round(total * prop).astype(int),
        "recount_qc.star.average_mapped_length": 100.0,
    }, index=pd.Index(sample_ids, name="sample_id"))

    genes = pd.DataFrame({
        "gene_name": [f"Gene{i}" for i in range(n_genes)],
        "gene_type": "protein_coding",
    }, index=pd.Index(gene_ids, name="gene_id"))

    counts_df = pd.DataFrame(counts, index=pd.Index(gene_ids, name="gene_id"), columns=sample_ids)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    counts_df.to_csv(output_dir / "counts.tsv", sep="\t")
    samples.to_csv(output_dir / "samples.tsv", sep="\t")
    genes.to_csv(output_dir / "genes.tsv", sep="\t")

    print(f"Wrote {n_genes} genes x {n_samples} samples to {output_dir}/")
    return counts_df, samples, genes


if __name__ == "__main__":
    generate_example_data()
