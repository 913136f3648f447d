#!/usr/bin/env python3
"""
Cluster annotation utilities for single-nucleus RNA-seq analysis
Handles the canonical marker panel, dot plots and highlight labels
"""

import numpy as np
import pandas as pd
import scanpy as sc
import matplotlib.pyplot as plt
from scipy import sparse
from snrna_markers.qc_filters import CANONICAL_MARKERS, HIGHLIGHT_CLUSTERS, DE_PARAMS
from snrna_markers.processing import _cluster_order


def available_markers(adata, panel=CANONICAL_MARKERS):
    """Restrict a marker panel to genes present in the data

    Args:
        adata: AnnData object
        panel: Dictionary of cell type -> marker genes

    Returns:
        Dictionary with the same cell type order, empty groups dropped
    """
    var_names = adata.raw.var_names if adata.raw is not None else adata.var_names

    available = {}
    seen = set()
    for cell_type, genes in panel.items():
        # Dedupe while preserving order
        genes = [g for g in genes if g in var_names and not (g in seen or seen.add(g))]
        if genes:
            available[cell_type] = genes

    missing = list(
        dict.fromkeys(g for genes in panel.values() for g in genes if g not in var_names)
    )
    if missing:
        print(f"  Markers not in data: {', '.join(missing)}")

    return available


def marker_expression_table(adata, genes, groupby="leiden"):
    """Mean expression and percent of expressing cells per cluster and gene

    Args:
        adata: AnnData object with clusters
        genes: Marker genes (all must be present)
        groupby: obs column with cluster labels

    Returns:
        Long DataFrame with cluster, gene, mean_expression, pct_expressing
    """
    use_raw = adata.raw is not None
    source = adata.raw if use_raw else adata

    X = source[:, list(genes)].X
    if sparse.issparse(X):
        X = X.toarray()
    expr = pd.DataFrame(np.asarray(X, dtype=float), columns=list(genes))
    expr["cluster"] = adata.obs[groupby].astype(str).values

    order = _cluster_order(expr["cluster"].unique())
    grouped = expr.groupby("cluster", sort=False)
    mean = grouped.mean().reindex(order).stack().rename("mean_expression")
    pct = grouped.agg(lambda x: (x > 0).mean()) * 100
    pct = pct.reindex(order).stack().rename("pct_expressing")

    table = pd.concat([mean, pct], axis=1).reset_index()
    table.columns = ["cluster", "gene", "mean_expression", "pct_expressing"]

    return table


def plot_marker_dotplot(adata, panel=CANONICAL_MARKERS, groupby="leiden", save_dir=None):
    """Dot plot of the canonical marker panel across clusters

    Args:
        adata: AnnData object with clustering results
        panel: Dictionary of cell type -> marker genes
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    markers = available_markers(adata, panel)
    if not markers:
        print("No canonical markers found in the data")
        return

    sc.pl.dotplot(
        adata,
        markers,
        groupby=groupby,
        standard_scale="var",
        use_raw=adata.raw is not None,
        show=False,
    )
    plt.tight_layout()

    if save_dir:
        plt.savefig(save_dir / "marker_genes_dotplot.png", dpi=300, bbox_inches="tight")
        print(f"  Saved: {save_dir}/marker_genes_dotplot.png")
        plt.close()
    else:
        plt.show()


def label_highlight_clusters(
    adata, highlight=HIGHLIGHT_CLUSTERS, groupby="leiden", key_added="highlight"
):
    """Label cells of the highlighted clusters

    Cells in a highlighted cluster get that highlight's name, all others "other".

    Args:
        adata: AnnData object with clusters
        highlight: Dictionary of highlight name -> cluster id
        groupby: obs column with cluster labels
        key_added: obs column to write

    Returns:
        AnnData object with the categorical highlight column
    """
    clusters = {}
    for name, cluster in highlight.items():
        cluster = str(cluster)
        if cluster in clusters:
            raise ValueError(
                f"Cluster {cluster} assigned to both '{clusters[cluster]}' and '{name}'"
            )
        clusters[cluster] = name

    labels = adata.obs[groupby].astype(str)
    for cluster, name in clusters.items():
        if not (labels == cluster).any():
            print(f"  ⚠️  Highlight cluster {cluster} ({name}) not found in '{groupby}'")

    adata.obs[key_added] = pd.Categorical(
        labels.map(clusters).fillna("other"),
        categories=list(clusters.values()) + ["other"],
    )

    return adata


def suggest_highlight_clusters(results, fdr_threshold=DE_PARAMS["fdr_threshold"]):
    """Pick the best-ranked cluster per marker that passes the FDR threshold

    Markers are handled in order; a cluster already taken by an earlier
    marker is passed over for the next one in the ranking.

    Args:
        results: Dictionary of marker name -> ranked result DataFrame

    Returns:
        Dictionary of marker name -> cluster id
    """
    suggestions = {}
    for name, result in results.items():
        passing = result[result["pval_adj"] < fdr_threshold]
        for cluster in passing["cluster"].astype(str):
            if cluster not in suggestions.values():
                suggestions[name] = cluster
                break
    return suggestions


def plot_highlight_umap(adata, key="highlight", save_dir=None):
    """UMAP colored by highlight label

    Args:
        adata: AnnData object with UMAP coordinates
        key: obs column with highlight labels
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    fig, ax = plt.subplots(figsize=(6, 5))
    sc.pl.umap(adata, color=key, title="Highlighted clusters", ax=ax, show=False)
    plt.tight_layout()

    if save_dir:
        fig.savefig(save_dir / "umap_highlight.png", dpi=300, bbox_inches="tight")
        print(f"  Saved: {save_dir}/umap_highlight.png")
        plt.close(fig)
    else:
        plt.show()
