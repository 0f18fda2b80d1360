"""Render the analysis as a self-contained HTML document."""

import html
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
import yaml

from .config import Config
from .linear_models import RESULT_COLUMNS
from .pipeline import PipelineResult
from .visualizations import (
    expression_heatmap,
    mds_plot,
    quality_violin,
    volcano_plot,
)


logger = logging.getLogger(__name__)


class Bibliography:
    """Numbered citations resolved from a YAML citation file."""

    def __init__(self, entries: List[Dict]):
        self.entries = {str(entry['id']): entry for entry in entries}
        self.cited: List[str] = []

    @classmethod
    def from_yaml(cls, path: Path) -> "Bibliography":
        with open(path, 'r') as f:
            entries = yaml.safe_load(f) or []
        return cls(entries)

    def cite(self, *keys: str) -> str:
        """Inline citation marker, e.g. ``[1, 2]``."""
        numbers = []
        for key in keys:
            if key not in self.entries:
                raise KeyError(f"Reference '{key}' not found in bibliography")
            if key not in self.cited:
                self.cited.append(key)
            numbers.append(str(self.cited.index(key) + 1))
        return f"[{', '.join(numbers)}]"

    def to_html(self) -> str:
        items = []
        for key in self.cited:
            e = self.entries[key]
            text = (
                f"{html.escape(str(e.get('author', '')))} ({e.get('year', '')}). "
                f"{html.escape(str(e.get('title', '')))}. "
                f"<em>{html.escape(str(e.get('container', '')))}</em>"
            )
            if e.get('volume'):
                text += f" {html.escape(str(e['volume']))}"
            if e.get('page'):
                text += f": {html.escape(str(e['page']))}"
            if e.get('doi'):
                doi = html.escape(str(e['doi']))
                text += f'. <a href="https://doi.org/{doi}">doi:{doi}</a>'
            items.append(f"<li>{text}</li>")
        return "<ol>\n" + "\n".join(items) + "\n</ol>"


class HTMLReport:
    """Accumulates sections, figures and tables of a report."""

    def __init__(self, title: str, author: str = ""):
        self.title = title
        self.author = author
        self.parts: List[str] = []
        self._n_figures = 0
        self._n_tables = 0

    def heading(self, text: str, level: int = 2):
        self.parts.append(f"<h{level}>{html.escape(text)}</h{level}>")

    def paragraph(self, text: str):
        """Add a paragraph; ``text`` may contain inline markup."""
        self.parts.append(f"<p>{text}</p>")

    def figure(self, fig: go.Figure, caption: str):
        self._n_figures += 1
        include_js = "cdn" if self._n_figures == 1 else False
        self.parts.append(
            '<div class="figure">'
            + fig.to_html(full_html=False, include_plotlyjs=include_js)
            + f'<div class="caption"><strong>Figure {self._n_figures}.</strong> {caption}</div></div>'
        )

    def table(self, df: pd.DataFrame, caption: str, float_format: str = "{:.3g}"):
        self._n_tables += 1
        formatted = df.copy()
        for column in formatted.columns:
            if pd.api.types.is_float_dtype(formatted[column]):
                formatted[column] = formatted[column].map(
                    lambda v: "" if pd.isna(v) else float_format.format(v)
                )
        self.parts.append(
            f'<div class="caption"><strong>Table {self._n_tables}.</strong> {caption}</div>'
            + formatted.to_html(classes="results", border=0, escape=True)
        )

    def raw(self, markup: str):
        self.parts.append(markup)

    def render(self) -> str:
        byline = f"<p class=\"byline\">{html.escape(self.author)} &middot; {date.today().isoformat()}</p>"
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{html.escape(self.title)}</title>
<style>
  body {{ font-family: -apple-system, "Segoe UI", Helvetica, Arial, sans-serif; max-width: 1000px; margin: 2em auto; line-height: 1.5; color: #222; }}
  h1 {{ color: #2C3E50; }}
  .byline {{ color: #7F8C8D; }}
  .caption {{ font-size: 0.9em; color: #555; margin: 0.5em 0 1.5em 0; }}
  table.results {{ border-collapse: collapse; font-size: 0.85em; margin-bottom: 1.5em; }}
  table.results th, table.results td {{ padding: 3px 8px; border-bottom: 1px solid #ddd; text-align: right; }}
</style>
</head>
<body>
<h1>{html.escape(self.title)}</h1>
{byline}
{chr(10).join(self.parts)}
</body>
</html>
"""


def _gene_label(row: pd.Series, gene_id: str) -> str:
    name = row.get('gene_name')
    return str(name) if name is not None and not pd.isna(name) else str(gene_id)


def _adjustment_sentence(method: str, bib: Bibliography) -> str:
    if method in ("BH", "fdr"):
        return f"P-values were adjusted with the Benjamini-Hochberg procedure {bib.cite('benjamini1995')}."
    return f"P-values were adjusted with the <code>{html.escape(method)}</code> method."


def interpret_top_genes(
    results: pd.DataFrame,
    coefficient: str,
    gene_notes: Dict[str, str],
    n: int = 3,
) -> List[str]:
    """
    One narrative sentence per top gene by p-value.

    Curated notes from the configuration are appended where available.
    """
    top = results.sort_values('P.Value', kind='mergesort').head(n)
    sentences = []
    for gene_id, row in top.iterrows():
        label = _gene_label(row, gene_id)
        direction = "higher" if row['logFC'] > 0 else "lower"
        fold = 2 ** abs(row['logFC'])
        sentence = (
            f"<strong>{html.escape(label)}</strong> is {fold:.1f}-fold {direction} "
            f"in the {html.escape(coefficient)} term (logFC = {row['logFC']:.2f}, "
            f"adjusted p = {row['adj.P.Val']:.2g})."
        )
        note = gene_notes.get(label)
        if note:
            sentence += " " + html.escape(note)
        sentences.append(sentence)
    return sentences


def build_report(
    result: PipelineResult,
    config: Optional[Config] = None,
    bibliography: Optional[Bibliography] = None,
) -> HTMLReport:
    """
    Assemble narrative, figures and tables for one pipeline run.

    Args:
        result: Output of :func:`vglut3_report.pipeline.run_pipeline`
        config: Configuration used for the run
        bibliography: Citations; loaded from ``config.report.bibliography``
            when omitted

    Returns:
        HTMLReport ready to render
    """
    config = config or Config()
    settings = config.report
    bib = bibliography or Bibliography.from_yaml(settings.bibliography)
    report = HTMLReport(settings.title, settings.author)

    study = config.study
    reference = result.design.factors.get(config.model.coefficient_of_interest, ["?"])[0]

    report.heading("Data")
    report.paragraph(
        f"Gene-level read counts for project <code>{html.escape(study.project or 'local data')}</code> "
        f"({html.escape(study.organism)}, {html.escape(study.annotation)}) were obtained from "
        f"recount3 {bib.cite('wilks2021')}. Coverage sums were converted to read counts by "
        f"dividing by each sample's average mapped read length. The data comprise "
        f"{result.raw.n_genes:,} genes and {result.raw.n_samples} samples."
    )

    report.heading("Sample quality")
    threshold = config.filtering.min_assigned_gene_prop
    report.paragraph(
        "The proportion of reads assigned to annotated genes is used as a sample quality score. "
        f"Samples with a proportion above {threshold} were kept: "
        f"{result.sample_filtered.n_samples} of {result.annotated.n_samples}."
    )
    samples = result.annotated.samples
    report.figure(
        quality_violin(samples, 'genotype', threshold=threshold),
        "Assigned gene proportion by genotype; dashed line marks the filter cutoff."
    )
    report.figure(
        quality_violin(samples, 'age', threshold=threshold),
        "Assigned gene proportion by age."
    )

    report.heading("Filtering and normalization")
    retention = result.retention
    report.paragraph(
        f"Genes were filtered with edgeR <code>filterByExpr</code> {bib.cite('robinson2010edger')} "
        f"using the smallest genotype group on the retained samples: "
        f"{retention['genes_after']:,} of {retention['genes_before']:,} genes remain "
        f"({retention['genes_pct']:.1f}%), with {retention['samples_pct']:.1f}% of samples. "
        f"Library sizes were scaled with {html.escape(config.model.normalization_method)} "
        f"factors from edgeR <code>calcNormFactors</code> {bib.cite('robinson2010tmm')}."
    )
    norm = pd.DataFrame({
        'genotype': result.normalized.samples['genotype'].astype(str),
        'lib_size': result.normalized.lib_sizes,
        'norm_factor': result.normalized.norm_factors,
        'assigned_gene_prop': result.normalized.samples['assigned_gene_prop'],
    })
    report.table(norm, "Retained samples with library sizes and normalization factors.")

    report.heading("Differential expression")
    covariates = " + ".join(config.model.covariates)
    report.paragraph(
        f"Counts were transformed with limma <code>voom</code> {bib.cite('law2014')} and fitted "
        f"with the model <code>~ {html.escape(covariates)}</code> using <code>lmFit</code> {bib.cite('ritchie2015')}. "
        f"Residual variances were moderated with <code>eBayes</code> {bib.cite('smyth2004')}. "
        f"The coefficient <code>{html.escape(result.coefficient)}</code> compares "
        f"{html.escape(result.coefficient[len(config.model.coefficient_of_interest):])} "
        f"with {html.escape(reference)}. {_adjustment_sentence(config.model.adjust_method, bib)}"
    )

    results = result.results
    fdr = settings.fdr_threshold
    up = int(((results['adj.P.Val'] < fdr) & (results['logFC'] > 0)).sum())
    down = int(((results['adj.P.Val'] < fdr) & (results['logFC'] < 0)).sum())
    report.paragraph(
        f"At an adjusted p-value below {fdr}, {up} genes are higher and {down} genes lower "
        f"in {html.escape(result.coefficient[len(config.model.coefficient_of_interest):])} "
        f"samples, out of {len(results):,} tested."
    )

    report.figure(
        volcano_plot(results, top_n=settings.volcano_top_n, fdr_threshold=fdr),
        f"Volcano plot; the {settings.volcano_top_n} most significant genes are labelled."
    )

    shown = [c for c in ('gene_name', 'gene_type') if c in results.columns] + RESULT_COLUMNS
    top_genes = results.sort_values('P.Value', kind='mergesort').head(settings.table_top_n)[shown]
    report.table(top_genes, f"The {len(top_genes)} genes with the smallest p-values.")

    expression = result.voom.E
    report.figure(
        expression_heatmap(expression, results, result.normalized.samples, top_n=settings.heatmap_top_n),
        f"log2-CPM z-scores of the top {min(settings.heatmap_top_n, len(results))} genes by "
        "adjusted p-value, clustered by gene and sample."
    )

    report.heading("Sample similarity")
    mds = result.mds
    report.figure(
        mds_plot(mds, result.normalized.samples, 'genotype'),
        "Multidimensional scaling of samples (limma <code>plotMDS</code>, leading log-fold-change "
        "distances) colored by genotype."
    )
    report.figure(
        mds_plot(mds, result.normalized.samples, 'age'),
        "Multidimensional scaling of samples colored by age."
    )

    report.heading("Interpretation")
    sentences = interpret_top_genes(
        results, result.coefficient, settings.gene_notes, n=settings.volcano_top_n
    )
    if sentences:
        report.raw("<ul>\n" + "\n".join(f"<li>{s}</li>" for s in sentences) + "\n</ul>")

    report.heading("References")
    report.raw(bib.to_html())
    return report


def write_report(
    result: PipelineResult,
    config: Optional[Config] = None,
    path: Optional[Path] = None,
) -> Path:
    """Render the report and write it to ``path`` (or the configured output path)."""
    config = config or Config()
    path = Path(path or config.report.output_path)
    document = build_report(result, config).render()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document, encoding="utf-8")
    logger.info(f"Wrote report to {path}")
    return path
