"""Plotly figures for the report."""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from scipy.cluster.hierarchy import dendrogram, linkage

from .linear_models import select_top_genes


GENOTYPE_COLORS = {
    'wildtype': '#3498DB',   # Blue
    'Vglut3-/-': '#E74C3C',  # Red
}


def _label_column(results: pd.DataFrame, label_col: Optional[str]) -> pd.Series:
    if label_col and label_col in results.columns:
        labels = results[label_col].astype(str)
        return labels.where(results[label_col].notna(), results.index.to_series().astype(str))
    return results.index.to_series().astype(str)


def quality_violin(
    samples: pd.DataFrame,
    by: str,
    value: str = "assigned_gene_prop",
    threshold: Optional[float] = None,
    title: Optional[str] = None
) -> go.Figure:
    """
    Violin plot with embedded box plot of a per-sample quality score.

    Args:
        samples: Sample metadata
        by: Grouping column for the x axis
        value: Quality score column
        threshold: Draws the sample filter cutoff when given
        title: Plot title

    Returns:
        Plotly Figure object
    """
    data = samples[[by, value]].copy()
    data[by] = data[by].astype(str)
    data["sample"] = samples.index

    fig = px.violin(
        data,
        x=by,
        y=value,
        color=by,
        box=True,
        points="all",
        hover_name="sample",
        title=title or f"{value} by {by}",
    )

    if threshold is not None:
        fig.add_hline(
            y=threshold,
            line_dash="dash",
            line_color="gray",
            annotation_text=f"cutoff = {threshold}",
            annotation_position="right"
        )

    fig.update_layout(
        template='plotly_white',
        width=700,
        height=450,
        showlegend=False
    )
    return fig


def volcano_plot(
    results: pd.DataFrame,
    top_n: int = 3,
    fdr_threshold: float = 0.05,
    label_col: Optional[str] = "gene_name",
    title: str = "Volcano Plot"
) -> go.Figure:
    """
    Volcano plot of log fold change against -log10 p-value.

    The ``top_n`` genes with the smallest p-values are labelled.

    Args:
        results: Differential expression table
        top_n: Number of genes to label
        fdr_threshold: Adjusted p-value below which points are highlighted
        label_col: Annotation column used for labels
        title: Plot title

    Returns:
        Plotly Figure object
    """
    plot_data = results.dropna(subset=['P.Value', 'logFC']).copy()
    # p-values that underflow to zero would plot at infinity
    plot_data['-log10p'] = -np.log10(np.clip(plot_data['P.Value'], np.finfo(float).tiny, None))
    plot_data['label'] = _label_column(plot_data, label_col)
    plot_data['significant'] = plot_data['adj.P.Val'] < fdr_threshold

    fig = go.Figure()

    for significant, color, name in [
        (False, '#95A5A6', 'Not significant'),
        (True, '#E74C3C', f'adj.P.Val < {fdr_threshold}'),
    ]:
        subset = plot_data[plot_data['significant'] == significant]
        fig.add_trace(go.Scatter(
            x=subset['logFC'],
            y=subset['-log10p'],
            mode='markers',
            name=name,
            marker=dict(color=color, size=5, opacity=0.6 if not significant else 0.8, line=dict(width=0)),
            text=subset['label'],
            customdata=subset[['AveExpr', 'adj.P.Val']],
            hovertemplate=(
                '<b>%{text}</b><br>' +
                'logFC: %{x:.2f}<br>' +
                '-log10(p): %{y:.2f}<br>' +
                'adj.P.Val: %{customdata[1]:.2e}<br>' +
                'AveExpr: %{customdata[0]:.2f}<br>' +
                '<extra></extra>'
            )
        ))

    if top_n > 0:
        top = plot_data.sort_values('P.Value', kind='mergesort').head(top_n)
        for _, gene in top.iterrows():
            fig.add_annotation(
                x=gene['logFC'],
                y=gene['-log10p'],
                text=gene['label'],
                showarrow=True,
                arrowhead=2,
                arrowwidth=1,
                arrowcolor='black',
                ax=20 if gene['logFC'] > 0 else -20,
                ay=-20,
                font=dict(size=10),
                bgcolor='rgba(255, 255, 255, 0.8)',
                borderpad=2
            )

    fig.update_layout(
        title=title,
        xaxis_title="log<sub>2</sub> Fold Change",
        yaxis_title="-log<sub>10</sub> (p-value)",
        hovermode='closest',
        template='plotly_white',
        width=900,
        height=600,
        legend=dict(x=0.02, y=0.98, bgcolor='rgba(255, 255, 255, 0.8)')
    )
    return fig


def _cluster_order(values: np.ndarray) -> List[int]:
    if values.shape[0] < 2:
        return list(range(values.shape[0]))
    # Correlation distance is undefined for constant rows
    if np.any(np.nanstd(values, axis=1) == 0):
        tree = linkage(values, method='average', metric='euclidean')
    else:
        tree = linkage(values, method='average', metric='correlation')
    return dendrogram(tree, no_plot=True)['leaves']


def expression_heatmap(
    expression: pd.DataFrame,
    results: pd.DataFrame,
    samples: pd.DataFrame,
    top_n: int = 50,
    annotate: Sequence[str] = ("genotype", "age", "location"),
    label_col: Optional[str] = "gene_name",
    title: str = "Top differentially expressed genes"
) -> go.Figure:
    """
    Clustered heatmap of the top genes by adjusted p-value.

    Rows are z-scored, then genes and samples are both ordered by
    average-linkage hierarchical clustering. Annotation tracks above the
    heatmap show sample metadata.

    Args:
        expression: log-expression values (genes x samples)
        results: Differential expression table indexed like ``expression``
        samples: Sample metadata
        top_n: Number of genes shown (fewer if the table is shorter)
        annotate: Sample metadata columns shown as tracks
        label_col: Annotation column used for gene labels
        title: Plot title

    Returns:
        Plotly Figure object
    """
    top_genes = select_top_genes(results, top_n, by='adj.P.Val')
    data = expression.loc[top_genes]

    std = data.std(axis=1).replace(0, np.nan)
    zscores = data.sub(data.mean(axis=1), axis=0).div(std, axis=0).fillna(0.0)

    gene_order = _cluster_order(zscores.to_numpy())
    sample_order = _cluster_order(zscores.to_numpy().T)
    zscores = zscores.iloc[gene_order, sample_order]

    labels = _label_column(results.loc[zscores.index], label_col)
    if labels.duplicated().any():
        labels = labels + " (" + zscores.index.to_series().astype(str) + ")"
    sample_ids = list(zscores.columns)

    tracks = [c for c in annotate if c in samples.columns]
    n_tracks = len(tracks)
    fig = make_subplots(
        rows=n_tracks + 1,
        cols=1,
        shared_xaxes=True,
        vertical_spacing=0.005,
        row_heights=[0.03] * n_tracks + [1.0 - 0.03 * n_tracks],
    )

    for row, column in enumerate(tracks, start=1):
        values = samples.loc[sample_ids, column].astype(str)
        levels = sorted(values.unique())
        codes = values.map({level: i for i, level in enumerate(levels)})
        palette = px.colors.qualitative.Set2
        colorscale = [
            [i / max(len(levels) - 1, 1), palette[i % len(palette)]] for i in range(len(levels))
        ] if len(levels) > 1 else [[0, palette[0]], [1, palette[0]]]
        fig.add_trace(go.Heatmap(
            z=[codes.tolist()],
            x=sample_ids,
            y=[column],
            text=[values.tolist()],
            colorscale=colorscale,
            showscale=False,
            hovertemplate=f'{column}: %{{text}}<br>Sample: %{{x}}<extra></extra>'
        ), row=row, col=1)

    fig.add_trace(go.Heatmap(
        z=zscores.to_numpy(),
        x=sample_ids,
        y=labels.tolist(),
        colorscale='RdBu_r',
        zmid=0,
        colorbar=dict(title="Z-score"),
        hovertemplate='Gene: %{y}<br>Sample: %{x}<br>Z-score: %{z:.2f}<extra></extra>'
    ), row=n_tracks + 1, col=1)

    fig.update_layout(
        title=title,
        template='plotly_white',
        width=900,
        height=max(450, len(top_genes) * 14 + 40 * n_tracks),
        yaxis=dict(tickfont=dict(size=9)),
    )
    fig.update_xaxes(tickangle=-45)
    return fig


def mds_plot(
    mds: pd.DataFrame,
    samples: pd.DataFrame,
    color_by: str,
    title: Optional[str] = None
) -> go.Figure:
    """
    Scatter plot of the first two MDS dimensions colored by sample metadata.

    Args:
        mds: Output of :meth:`LimmaWrapper.plot_mds`
        samples: Sample metadata
        color_by: Metadata column used for colors
        title: Plot title

    Returns:
        Plotly Figure object
    """
    plot_df = mds.join(samples[[color_by]].astype(str))
    var_exp = mds.attrs.get("variance_explained", [np.nan, np.nan])

    fig = px.scatter(
        plot_df,
        x='dim1',
        y='dim2',
        color=color_by,
        text=plot_df.index,
        title=title or f"MDS colored by {color_by}",
        color_discrete_map=GENOTYPE_COLORS if color_by == "genotype" else None,
        labels={
            'dim1': f'Leading logFC dim 1 ({100 * var_exp[0]:.0f}%)',
            'dim2': f'Leading logFC dim 2 ({100 * var_exp[1]:.0f}%)'
        }
    )

    fig.update_traces(
        marker=dict(size=12, line=dict(width=1, color='white')),
        textposition='top center'
    )

    fig.update_layout(
        template='plotly_white',
        width=800,
        height=600,
        showlegend=True
    )
    return fig
