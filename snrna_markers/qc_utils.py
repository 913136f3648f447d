#!/usr/bin/env python3
"""
Quality control utilities for single-nucleus RNA-seq analysis
Handles QC metrics calculation and the sequential cell filters
"""

import pandas as pd
import scanpy as sc
import matplotlib.pyplot as plt
import seaborn as sns
from snrna_markers.qc_filters import SAMPLES, CELL_FILTERS, GENE_PATTERNS


def calculate_qc_metrics(adata, mt_pattern=GENE_PATTERNS["mt_pattern"]):
    """Calculate QC metrics

    Args:
        adata: AnnData object with raw counts in X
        mt_pattern: Regex matched against gene names to flag mitochondrial genes

    Returns:
        AnnData object with total_counts, n_genes_by_counts and percent_mt in obs
    """
    print("Calculating QC metrics...")

    # Mitochondrial genes
    adata.var["mt"] = adata.var_names.str.match(mt_pattern)

    sc.pp.calculate_qc_metrics(
        adata, qc_vars=["mt"], percent_top=None, log1p=False, inplace=True
    )

    # Cells without any counts have an undefined fraction, report them as 0
    adata.obs["percent_mt"] = adata.obs["pct_counts_mt"].fillna(0.0)

    print(f"  Mitochondrial genes: {int(adata.var['mt'].sum())}")

    return adata


def filter_by_sample(adata, samples=tuple(SAMPLES.values()), sample_col="sample"):
    """Keep cells whose sample label is in the allowed set

    Args:
        adata: AnnData object
        samples: Allowed sample labels
        sample_col: Column in adata.obs holding the sample label

    Returns:
        Filtered AnnData object
    """
    if sample_col not in adata.obs:
        raise KeyError(f"Sample column '{sample_col}' not found in adata.obs")

    keep = adata.obs[sample_col].astype(str).isin([str(s) for s in samples])
    adata = adata[keep.values].copy()
    print(f"After sample filter ({', '.join(map(str, samples))}): {adata.n_obs} cells")

    return adata


def filter_by_counts(adata, max_counts=CELL_FILTERS["max_counts"]):
    """Remove suspected multiplets with a total count at or above max_counts"""
    adata = adata[(adata.obs["total_counts"] < max_counts).values].copy()
    print(f"After count filter (< {max_counts}): {adata.n_obs} cells")

    return adata


def filter_by_mt(adata, max_mt_pct=CELL_FILTERS["max_mt_pct"]):
    """Remove cells with a mitochondrial percentage at or above max_mt_pct"""
    adata = adata[(adata.obs["percent_mt"] < max_mt_pct).values].copy()
    print(f"After mitochondrial filter (< {max_mt_pct}%): {adata.n_obs} cells")

    return adata


def run_qc_filters(
    adata,
    samples=tuple(SAMPLES.values()),
    max_counts=CELL_FILTERS["max_counts"],
    max_mt_pct=CELL_FILTERS["max_mt_pct"],
    mt_pattern=GENE_PATTERNS["mt_pattern"],
    sample_col="sample",
):
    """Apply the QC filters in order

    Each filter only sees the cells that survived the previous one:
    sample selection, then total count, then mitochondrial percentage.

    Args:
        adata: AnnData object straight from the loader
        samples: Allowed sample labels
        max_counts: Exclusive upper bound on total counts per cell
        max_mt_pct: Exclusive upper bound on mitochondrial percentage
        mt_pattern: Regex flagging mitochondrial genes
        sample_col: Column in adata.obs holding the sample label

    Returns:
        Tuple of (filtered AnnData, DataFrame with the cell count after each step)
    """
    print("Applying QC filters...")
    print(f"Starting with {adata.n_obs} cells and {adata.n_vars} genes")

    steps = [("loaded", adata.n_obs)]

    adata = filter_by_sample(adata, samples=samples, sample_col=sample_col)
    steps.append(("sample", adata.n_obs))

    adata = calculate_qc_metrics(adata, mt_pattern=mt_pattern)

    adata = filter_by_counts(adata, max_counts=max_counts)
    steps.append(("total_counts", adata.n_obs))

    adata = filter_by_mt(adata, max_mt_pct=max_mt_pct)
    steps.append(("percent_mt", adata.n_obs))

    summary = pd.DataFrame(steps, columns=["step", "n_cells"])
    summary["n_removed"] = (-summary["n_cells"].diff()).fillna(0).astype(int)

    print(f"After filtering: {adata.n_obs} cells and {adata.n_vars} genes")

    return adata, summary


def plot_count_violin(
    adata, max_counts=CELL_FILTERS["max_counts"], groupby="sample", save_dir=None
):
    """Violin plot of total counts per sample with the multiplet threshold

    Args:
        adata: AnnData object with QC metrics
        max_counts: Threshold drawn as a horizontal line
        groupby: Column in adata.obs to split the violins by
        save_dir: Directory to save the plot (optional). If provided, the plot is saved without display.

    Returns:
        The matplotlib figure
    """
    plot_data = adata.obs[[groupby, "total_counts"]].copy()
    plot_data[groupby] = plot_data[groupby].astype(str)

    fig, ax = plt.subplots(figsize=(6, 5))
    sns.violinplot(
        data=plot_data, x=groupby, y="total_counts", ax=ax, color="skyblue", inner="box"
    )
    ax.axhline(
        y=max_counts,
        color="red",
        linestyle="--",
        alpha=0.5,
        label=f"{max_counts} threshold",
    )
    ax.set_xlabel("")
    ax.set_ylabel("Total counts per cell")
    ax.set_title("Total counts per cell")
    ax.legend(loc="upper right")

    plt.tight_layout()

    if save_dir:
        fig.savefig(save_dir / "total_counts_violin.png", dpi=300, bbox_inches="tight")
        print(f"  Saved: {save_dir}/total_counts_violin.png")
        plt.close(fig)
    else:
        plt.show()

    return fig
