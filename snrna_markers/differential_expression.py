#!/usr/bin/env python3
"""
Differential marker analysis for single-nucleus RNA-seq
Compares marker gene expression between two samples within each cluster
"""

import os
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import sparse, stats
from statsmodels.stats.multitest import multipletests
from snrna_markers.qc_filters import SAMPLES, MARKER_GENES

RESULT_COLUMNS = [
    "marker",
    "cluster",
    "n_a",
    "n_b",
    "mean_a",
    "mean_b",
    "mean_diff",
    "pval",
    "pval_adj",
]


def get_expression(adata, gene, use_raw=None):
    """Return the expression vector of one gene, or None if the gene is absent

    Args:
        adata: AnnData object
        gene: Gene name
        use_raw: Read from adata.raw. Defaults to True when adata.raw is set.

    Returns:
        1D numpy array with one value per cell, or None
    """
    if use_raw is None:
        use_raw = adata.raw is not None
    source = adata.raw if use_raw else adata

    if gene not in source.var_names:
        return None

    col = source[:, gene].X
    if sparse.issparse(col):
        col = col.toarray()
    return np.asarray(col, dtype=float).ravel()


def _rank_test(values_a, values_b):
    """Two-sided Wilcoxon rank-sum p-value of b against a"""
    pooled = np.concatenate([values_a, values_b])
    # All values tied: nothing to rank
    if np.all(pooled == pooled[0]):
        return 1.0
    # Normal approximation without continuity correction, as in scanpy's wilcoxon
    _, pval = stats.mannwhitneyu(
        values_b,
        values_a,
        alternative="two-sided",
        method="asymptotic",
        use_continuity=False,
    )
    return float(pval)


def compare_marker_across_samples(
    adata,
    marker,
    sample_a=SAMPLES["a"],
    sample_b=SAMPLES["b"],
    groupby="leiden",
    sample_col="sample",
    use_raw=None,
):
    """Compare one marker between two samples inside every cluster

    Clusters where the marker is missing or either sample has no cells are
    skipped and produce no row. P-values are BH-adjusted across the
    remaining clusters and rows are ranked by raw p-value (stable, so ties
    keep cluster order).

    Args:
        adata: AnnData object with clusters in obs[groupby]
        marker: Gene name to test
        sample_a: Reference sample
        sample_b: Sample compared against the reference
        groupby: obs column with cluster labels
        sample_col: obs column with sample labels
        use_raw: Read expression from adata.raw (default: when available)

    Returns:
        DataFrame with RESULT_COLUMNS, one row per tested cluster
    """
    for col in (groupby, sample_col):
        if col not in adata.obs:
            raise KeyError(f"Column '{col}' not found in adata.obs")

    values = get_expression(adata, marker, use_raw=use_raw)
    if values is None:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    clusters = adata.obs[groupby]
    if hasattr(clusters, "cat"):
        cluster_ids = [c for c in clusters.cat.categories if (clusters == c).any()]
    else:
        cluster_ids = list(pd.unique(clusters))
    samples = adata.obs[sample_col].astype(str).values
    clusters = clusters.values

    rows = []
    for cluster in cluster_ids:
        in_cluster = clusters == cluster
        values_a = values[in_cluster & (samples == str(sample_a))]
        values_b = values[in_cluster & (samples == str(sample_b))]

        if len(values_a) == 0 or len(values_b) == 0:
            continue

        mean_a = float(values_a.mean())
        mean_b = float(values_b.mean())
        rows.append(
            {
                "marker": marker,
                "cluster": str(cluster),
                "n_a": len(values_a),
                "n_b": len(values_b),
                "mean_a": mean_a,
                "mean_b": mean_b,
                "mean_diff": mean_b - mean_a,
                "pval": _rank_test(values_a, values_b),
            }
        )

    if not rows:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    result = pd.DataFrame(rows)
    # Multiple testing correction (FDR) across clusters
    result["pval_adj"] = multipletests(result["pval"], method="fdr_bh")[1]

    result = result.sort_values("pval", kind="mergesort").reset_index(drop=True)

    return result[RESULT_COLUMNS]


def run_marker_comparisons(
    adata,
    markers=MARKER_GENES,
    sample_a=SAMPLES["a"],
    sample_b=SAMPLES["b"],
    groupby="leiden",
    sample_col="sample",
    use_raw=None,
):
    """Run compare_marker_across_samples for every marker

    FDR correction is applied per marker independently.

    Args:
        adata: AnnData object with clusters
        markers: Dictionary of marker name -> gene

    Returns:
        Dictionary of marker name -> ranked result DataFrame
    """
    print(f"Comparing markers between {sample_b} and {sample_a} per cluster...")

    results = {}
    for name, gene in markers.items():
        result = compare_marker_across_samples(
            adata,
            gene,
            sample_a=sample_a,
            sample_b=sample_b,
            groupby=groupby,
            sample_col=sample_col,
            use_raw=use_raw,
        )
        if result.empty:
            print(f"  ⚠️  {name} ({gene}): no testable clusters")
        else:
            print(f"  {name} ({gene}): tested {len(result)} clusters")
        results[name] = result

    return results


def best_clusters(results):
    """Top-ranked cluster for every marker with at least one test

    Args:
        results: Dictionary returned by run_marker_comparisons

    Returns:
        DataFrame indexed by marker name
    """
    best = {name: df.iloc[0] for name, df in results.items() if not df.empty}
    if not best:
        return pd.DataFrame(columns=RESULT_COLUMNS)
    return pd.DataFrame.from_dict(best, orient="index")[RESULT_COLUMNS]


def print_ranked_table(result, name=None, top_n=None):
    """Print a ranked per-cluster table for one marker"""
    title = name or (result["marker"].iloc[0] if not result.empty else "marker")
    print(f"\n{'='*60}")
    print(f"RANKED CLUSTERS: {title}")
    print(f"{'='*60}")

    if result.empty:
        print("No testable clusters")
        return

    table = result if top_n is None else result.head(top_n)
    print(
        table[["cluster", "n_a", "n_b", "mean_diff", "pval", "pval_adj"]].to_string(
            index=False
        )
    )


def save_results(results, save_dir):
    """Write one CSV per marker

    Returns:
        List of written paths
    """
    os.makedirs(save_dir, exist_ok=True)
    paths = []
    for name, result in results.items():
        path = save_dir / f"{name}_marker_by_cluster.csv"
        result.to_csv(path, index=False)
        print(f"  Saved: {path}")
        paths.append(path)
    return paths


def plot_marker_violin(
    adata,
    marker,
    cluster,
    groupby="leiden",
    sample_col="sample",
    use_raw=None,
    save_dir=None,
):
    """Violin plot of a marker's expression by sample within one cluster

    Args:
        adata: AnnData object with clusters
        marker: Gene name
        cluster: Cluster label to plot
        save_dir: Directory to save the plot (optional). If provided, the plot is saved without display.

    Returns:
        The matplotlib figure, or None if the marker is absent
    """
    values = get_expression(adata, marker, use_raw=use_raw)
    if values is None:
        print(f"No expression for {marker}")
        return None

    mask = (adata.obs[groupby].astype(str) == str(cluster)).values
    plot_data = pd.DataFrame(
        {
            sample_col: adata.obs[sample_col].astype(str).values[mask],
            marker: values[mask],
        }
    )

    fig, ax = plt.subplots(figsize=(5, 5))
    sns.violinplot(data=plot_data, x=sample_col, y=marker, ax=ax, inner=None)
    sns.stripplot(
        data=plot_data, x=sample_col, y=marker, ax=ax, color="black", alpha=0.3, size=2
    )
    ax.set_title(f"{marker} in cluster {cluster}")
    ax.set_xlabel("")
    ax.set_ylabel("Log-normalized expression")

    plt.tight_layout()

    if save_dir:
        path = save_dir / f"{marker}_cluster{cluster}_violin.png"
        fig.savefig(path, dpi=300, bbox_inches="tight")
        print(f"  Saved: {path}")
        plt.close(fig)
    else:
        plt.show()

    return fig
