#!/usr/bin/env python3
"""
Processing utilities for single-nucleus RNA-seq analysis
Handles normalization, scaling, PCA, UMAP, and clustering
"""

import os
import numpy as np
import pandas as pd
import scanpy as sc
import matplotlib.pyplot as plt
from sklearn.metrics import silhouette_score
from snrna_markers.qc_filters import PROCESSING_PARAMS


def normalize_and_scale(
    adata,
    target_sum=PROCESSING_PARAMS["target_sum"],
    n_top_genes=PROCESSING_PARAMS["n_top_genes"],
    max_value=PROCESSING_PARAMS["max_value"],
):
    """Normalize and scale data

    Raw counts are kept in layers["counts"] and the log-normalized values for
    all genes in adata.raw, which is what the marker comparisons read.

    Args:
        adata: AnnData object with raw counts in X
        target_sum: Counts per cell after library size normalization
        n_top_genes: Number of highly variable genes to keep
        max_value: Clip value after scaling

    Returns:
        Processed AnnData object restricted to the highly variable genes
    """
    print("Normalizing and scaling data...")

    adata.layers["counts"] = adata.X.copy()

    sc.pp.normalize_total(adata, target_sum=target_sum)
    sc.pp.log1p(adata)

    # Save full log-normalized data
    adata.raw = adata

    n_top_genes = min(int(n_top_genes), adata.n_vars)
    sc.pp.highly_variable_genes(adata, n_top_genes=n_top_genes)

    # Keep only highly variable genes for downstream analysis
    adata = adata[:, adata.var.highly_variable].copy()
    print(f"  Highly variable genes: {adata.n_vars}")

    sc.pp.scale(adata, max_value=max_value)

    return adata


def run_pca_umap_clustering(
    adata,
    n_pcs=PROCESSING_PARAMS["n_pcs"],
    n_neighbors=PROCESSING_PARAMS["n_neighbors"],
    resolution=PROCESSING_PARAMS["resolution"],
    random_state=PROCESSING_PARAMS["random_state"],
):
    """Run PCA, neighbors, Leiden clustering and UMAP

    UMAP is computed last and only for display; clusters come from the
    neighbor graph built on the principal components.

    Args:
        adata: Scaled AnnData object
        n_pcs: Number of principal components
        n_neighbors: Neighbors per cell in the kNN graph
        resolution: Leiden resolution
        random_state: Seed for PCA, Leiden and UMAP

    Returns:
        AnnData object with embeddings and clusters in obs["leiden"]
    """
    n_pcs = min(int(n_pcs), min(adata.n_obs, adata.n_vars) - 1)

    print(f"Running PCA ({n_pcs} components)...")
    sc.tl.pca(adata, n_comps=n_pcs, svd_solver="arpack", random_state=random_state)

    print("Computing neighborhood graph...")
    sc.pp.neighbors(
        adata, n_neighbors=n_neighbors, n_pcs=n_pcs, random_state=random_state
    )

    print(f"Clustering (resolution {resolution})...")
    sc.tl.leiden(
        adata,
        resolution=resolution,
        random_state=random_state,
        key_added="leiden",
        flavor="leidenalg",
    )

    print("Running UMAP...")
    sc.tl.umap(adata, random_state=random_state)

    print(f"  Found {adata.obs['leiden'].nunique()} clusters")

    return adata


def _cluster_order(labels):
    """Sort cluster labels numerically when they are all integers"""
    labels = [str(x) for x in labels]
    if all(x.isdigit() for x in labels):
        return sorted(labels, key=int)
    return sorted(labels)


def cluster_sizes(adata, groupby="leiden"):
    """Number of cells per cluster, ordered by cluster label"""
    counts = adata.obs[groupby].astype(str).value_counts()
    return counts.reindex(_cluster_order(counts.index)).rename("n_cells")


def cluster_sample_table(adata, groupby="leiden", sample_col="sample"):
    """Cells per cluster and sample"""
    table = pd.crosstab(
        adata.obs[groupby].astype(str), adata.obs[sample_col].astype(str)
    )
    return table.reindex(_cluster_order(table.index))


def plot_embeddings(adata, color=("sample", "leiden"), save_dir=None):
    """Plot UMAP embeddings

    Args:
        adata: AnnData object with UMAP coordinates
        color: obs columns, one panel each
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
    """
    print("Plotting embeddings...")

    color = list(color)
    fig, axes = plt.subplots(1, len(color), figsize=(6 * len(color), 5))
    axes = np.atleast_1d(axes)

    for key, ax in zip(color, axes):
        sc.pl.umap(
            adata,
            color=key,
            legend_loc="on data" if key == "leiden" else "right margin",
            title=key,
            ax=ax,
            show=False,
        )

    plt.tight_layout()

    if save_dir:
        fig.savefig(save_dir / "umap_embeddings.png", dpi=300, bbox_inches="tight")
        print(f"  Saved: {save_dir}/umap_embeddings.png")
        plt.close(fig)
    else:
        plt.show()


def sweep_leiden_resolution(
    adata,
    resolutions=None,
    random_state=PROCESSING_PARAMS["random_state"],
    save_dir=None,
):
    """Run Leiden over a grid of resolutions on the existing kNN graph

    Diagnostics only: adds `leiden_{res}` columns but leaves obs["leiden"] alone.

    Returns:
        DataFrame with resolution, n_clusters and silhouette on the PCA space
    """
    if resolutions is None:
        resolutions = np.round(np.arange(0.2, 1.55, 0.1), 2)

    X = adata.obsm["X_pca"]

    metrics = []
    for res in resolutions:
        key = f"leiden_{res:.2f}"
        sc.tl.leiden(
            adata,
            resolution=float(res),
            random_state=random_state,
            key_added=key,
            flavor="leidenalg",
        )
        labels = adata.obs[key].astype(str)
        n_clusters = labels.nunique()

        sil = np.nan
        if 1 < n_clusters < len(labels):
            sil = float(silhouette_score(X, labels))

        metrics.append(
            {"resolution": float(res), "n_clusters": int(n_clusters), "silhouette": sil}
        )

    metrics_df = pd.DataFrame(metrics)
    print(metrics_df.to_string(index=False))

    if save_dir:
        os.makedirs(save_dir, exist_ok=True)
        metrics_df.to_csv(save_dir / "leiden_resolution_sweep.csv", index=False)

        fig, ax1 = plt.subplots(figsize=(7, 4))
        ax2 = ax1.twinx()
        ax1.plot(
            metrics_df["resolution"],
            metrics_df["silhouette"],
            "-o",
            color="#1f77b4",
        )
        ax2.plot(
            metrics_df["resolution"],
            metrics_df["n_clusters"],
            "-s",
            color="#ff7f0e",
        )
        ax1.set_xlabel("Leiden resolution")
        ax1.set_ylabel("Silhouette (PCA)", color="#1f77b4")
        ax2.set_ylabel("# clusters", color="#ff7f0e")
        fig.tight_layout()
        fig.savefig(
            save_dir / "leiden_sweep_diagnostics.png", dpi=300, bbox_inches="tight"
        )
        plt.close(fig)
        print(f"  Saved: {save_dir}/leiden_resolution_sweep.csv")
        print(f"  Saved: {save_dir}/leiden_sweep_diagnostics.png")

    return metrics_df
