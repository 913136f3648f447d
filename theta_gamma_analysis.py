#!/usr/bin/env python3
"""
Theta/gamma marker analysis of single-nucleus RNA-seq data

This script performs:
1. DGE matrix loading
2. Sample, count and mitochondrial QC filtering
3. Normalization, PCA, Leiden clustering and UMAP
4. Per-cluster comparison of the theta and gamma markers between samples
5. Canonical marker dot plot and highlight labelling

python theta_gamma_analysis.py data/ --plots-dir plots
"""

import warnings
import argparse
import matplotlib
import scanpy as sc
from pathlib import Path

from snrna_markers.data_loader import load_dge_dir
from snrna_markers.qc_utils import (
    run_qc_filters,
    filter_by_sample,
    calculate_qc_metrics,
    plot_count_violin,
)
from snrna_markers.processing import (
    normalize_and_scale,
    run_pca_umap_clustering,
    cluster_sizes,
    cluster_sample_table,
    plot_embeddings,
)
from snrna_markers.differential_expression import (
    run_marker_comparisons,
    best_clusters,
    print_ranked_table,
    save_results,
)
from snrna_markers.annotation import (
    available_markers,
    marker_expression_table,
    plot_marker_dotplot,
    label_highlight_clusters,
    suggest_highlight_clusters,
    plot_highlight_umap,
)
from snrna_markers.qc_filters import (
    SAMPLES,
    CELL_FILTERS,
    PROCESSING_PARAMS,
    MARKER_GENES,
    HIGHLIGHT_CLUSTERS,
    CANONICAL_MARKERS,
    get_filter_summary,
)

# Configure scanpy
sc.settings.verbosity = 1
sc.settings.set_figure_params(dpi=80, facecolor="white")

# Suppress warnings
warnings.filterwarnings("ignore")


def run_pipeline(
    adata,
    resolution=PROCESSING_PARAMS["resolution"],
    random_state=PROCESSING_PARAMS["random_state"],
    n_pcs=PROCESSING_PARAMS["n_pcs"],
    n_top_genes=PROCESSING_PARAMS["n_top_genes"],
    n_neighbors=PROCESSING_PARAMS["n_neighbors"],
    max_counts=CELL_FILTERS["max_counts"],
    max_mt_pct=CELL_FILTERS["max_mt_pct"],
    markers=MARKER_GENES,
    highlight=HIGHLIGHT_CLUSTERS,
    suggest_highlights=False,
):
    """Run QC, clustering and the marker comparison on a loaded AnnData

    Args:
        adata: AnnData object from the loader
        suggest_highlights: Choose highlight clusters from the marker ranking
            instead of the configured cluster ids

    Returns:
        Tuple of (processed AnnData, QC summary DataFrame, dict of marker results)
    """
    adata, qc_summary = run_qc_filters(
        adata,
        samples=(SAMPLES["a"], SAMPLES["b"]),
        max_counts=max_counts,
        max_mt_pct=max_mt_pct,
    )

    adata = normalize_and_scale(adata, n_top_genes=n_top_genes)
    adata = run_pca_umap_clustering(
        adata,
        n_pcs=n_pcs,
        n_neighbors=n_neighbors,
        resolution=resolution,
        random_state=random_state,
    )

    results = run_marker_comparisons(
        adata, markers=markers, sample_a=SAMPLES["a"], sample_b=SAMPLES["b"]
    )

    if suggest_highlights:
        highlight = suggest_highlight_clusters(results)
        print(f"Suggested highlight clusters: {highlight}")
    adata = label_highlight_clusters(adata, highlight=highlight)

    return adata, qc_summary, results


def main(data_dir, plots_dir_path="plots", resolution=None, seed=None, suggest_highlights=False):
    """Main analysis pipeline

    Args:
        data_dir: Directory with matrix.mtx, genes.csv and cells.csv
        plots_dir_path: Directory where plots and tables will be saved
        resolution: Leiden resolution (default from PROCESSING_PARAMS)
        seed: Random state (default from PROCESSING_PARAMS)
        suggest_highlights: Use the marker ranking to pick highlight clusters
    """
    print("Starting theta/gamma marker analysis...")

    plots_dir = Path(plots_dir_path)
    plots_dir.mkdir(exist_ok=True)
    print(f"Plots will be saved to: {plots_dir.absolute()}")

    # Set matplotlib backend to non-interactive for save-only mode
    matplotlib.use("Agg")

    print("\n" + get_filter_summary() + "\n")

    if resolution is None:
        resolution = PROCESSING_PARAMS["resolution"]
    if seed is None:
        seed = PROCESSING_PARAMS["random_state"]

    # Step 1: Load data
    adata = load_dge_dir(data_dir)

    # Count distribution before the multiplet filter
    qc_view = calculate_qc_metrics(
        filter_by_sample(adata, samples=(SAMPLES["a"], SAMPLES["b"]))
    )
    plot_count_violin(qc_view, max_counts=CELL_FILTERS["max_counts"], save_dir=plots_dir)
    del qc_view

    # Step 2-4: QC, clustering, marker comparison
    adata, qc_summary, results = run_pipeline(
        adata,
        resolution=resolution,
        random_state=seed,
        n_pcs=PROCESSING_PARAMS["n_pcs"],
        n_neighbors=PROCESSING_PARAMS["n_neighbors"],
        n_top_genes=PROCESSING_PARAMS["n_top_genes"],
        suggest_highlights=suggest_highlights,
    )

    print("\nQC summary:")
    print(qc_summary.to_string(index=False))

    print("\nCells per cluster and sample:")
    print(cluster_sample_table(adata))
    print(f"\n{len(cluster_sizes(adata))} clusters")
    plot_embeddings(adata, color=("sample", "leiden"), save_dir=plots_dir)

    # Step 5: Ranked tables
    for name, result in results.items():
        print_ranked_table(result, name=f"{name} ({MARKER_GENES[name]})")
    print("\nBest cluster per marker:")
    print(best_clusters(results).to_string())
    save_results(results, plots_dir)

    # Step 6: Canonical markers
    markers = available_markers(adata, CANONICAL_MARKERS)
    genes = [g for group in markers.values() for g in group]
    if genes:
        table = marker_expression_table(adata, genes)
        table.to_csv(plots_dir / "canonical_marker_expression.csv", index=False)
        print(f"  Saved: {plots_dir}/canonical_marker_expression.csv")
    plot_marker_dotplot(adata, CANONICAL_MARKERS, save_dir=plots_dir)
    plot_highlight_umap(adata, save_dir=plots_dir)

    print("Analysis complete!")
    return adata


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="snRNA-seq theta/gamma marker comparison across clusters"
    )
    parser.add_argument(
        "data_dir",
        help="Directory with matrix.mtx, genes.csv and cells.csv",
    )
    parser.add_argument(
        "--plots-dir",
        default="plots",
        help="Directory to write plots to (default: 'plots')",
    )
    parser.add_argument(
        "--resolution",
        type=float,
        default=None,
        help=f"Leiden resolution (default: {PROCESSING_PARAMS['resolution']})",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help=f"Random state (default: {PROCESSING_PARAMS['random_state']})",
    )
    parser.add_argument(
        "--suggest-highlights",
        action="store_true",
        help="Pick highlight clusters from the marker ranking instead of HIGHLIGHT_CLUSTERS",
    )
    args = parser.parse_args()

    adata = main(
        args.data_dir,
        plots_dir_path=args.plots_dir,
        resolution=args.resolution,
        seed=args.seed,
        suggest_highlights=args.suggest_highlights,
    )
