#!/usr/bin/env python3
"""
Analysis parameters for the theta/gamma marker snRNA-seq analysis

This file centralizes all thresholds and gene lists used in the pipeline.
Modify these values to adjust filtering stringency or the markers compared.
"""

# Samples compared in the differential marker analysis (b is compared against a)
SAMPLES = {
    "a": "HC1",  # Home cage
    "b": "SOR1",  # Sorted condition
}

# Cell-level filters
CELL_FILTERS = {
    "max_counts": 35000,  # Cells at or above this total count are treated as multiplets
    "max_mt_pct": 10,  # Maximum mitochondrial gene percentage
}

# Mitochondrial gene pattern (mouse "mt-" and human "MT-")
GENE_PATTERNS = {
    "mt_pattern": r"^[Mm][Tt]-",
}

# Normalization, embedding and clustering
PROCESSING_PARAMS = {
    "target_sum": 1e4,  # Library size after normalization
    "n_top_genes": 2000,  # Highly variable genes kept for PCA
    "max_value": 10,  # Clip scaled values
    "n_pcs": 20,  # Principal components used for neighbors and UMAP
    "n_neighbors": 15,
    "resolution": 0.5,  # Leiden resolution
    "random_state": 0,
}

# Marker genes compared between samples within each cluster
MARKER_GENES = {
    "theta": "Hcn1",  # HCN1 channels shape theta-band resonance
    "gamma": "Pvalb",  # PV interneurons pace gamma oscillations
}

# Clusters highlighted on the UMAP, chosen by inspecting the marker dot plot.
# Cluster ids change with the seed and resolution, recheck after changing either.
HIGHLIGHT_CLUSTERS = {
    "theta": "4",
    "gamma": "7",
}

# Canonical cell type panel used for cluster annotation
CANONICAL_MARKERS = {
    "Neuron": ["Snap25", "Rbfox3", "Syt1"],
    "Glutamatergic": ["Slc17a7", "Slc17a6", "Camk2a"],
    "GABAergic": ["Gad1", "Gad2", "Slc32a1"],
    "Astrocyte": ["Aqp4", "Gfap", "Slc1a3", "Aldh1l1"],
}

DE_PARAMS = {
    "fdr_threshold": 0.05,  # Adjusted p-value needed to suggest a highlight cluster
}


def get_filter_summary():
    """Return a formatted summary of current analysis settings"""
    summary = [
        "=== Analysis Settings ===",
        "\nSamples:",
        f"  - Compared: {SAMPLES['b']} vs {SAMPLES['a']}",
        "\nCell-level filters:",
        f"  - Max total counts: < {CELL_FILTERS['max_counts']}",
        f"  - Max mitochondrial %: < {CELL_FILTERS['max_mt_pct']}%",
        "\nProcessing:",
        f"  - Highly variable genes: {PROCESSING_PARAMS['n_top_genes']}",
        f"  - PCs: {PROCESSING_PARAMS['n_pcs']}",
        f"  - Leiden resolution: {PROCESSING_PARAMS['resolution']}",
        f"  - Random state: {PROCESSING_PARAMS['random_state']}",
        "\nMarkers:",
    ]
    for name, gene in MARKER_GENES.items():
        cluster = HIGHLIGHT_CLUSTERS.get(name, "-")
        summary.append(f"  - {name}: {gene} (highlight cluster {cluster})")

    return "\n".join(summary)


# Validation function
def validate_filters():
    """Validate that analysis parameters make sense"""
    errors = []

    if CELL_FILTERS["max_counts"] <= 0:
        errors.append("max_counts must be positive")

    if not 0 < CELL_FILTERS["max_mt_pct"] <= 100:
        errors.append("max_mt_pct must be between 0 and 100")

    if SAMPLES["a"] == SAMPLES["b"]:
        errors.append("the two compared samples must differ")

    for key in ("n_top_genes", "n_pcs", "n_neighbors"):
        if PROCESSING_PARAMS[key] <= 0:
            errors.append(f"{key} must be positive")

    if PROCESSING_PARAMS["resolution"] <= 0:
        errors.append("resolution must be positive")

    if set(HIGHLIGHT_CLUSTERS) - set(MARKER_GENES):
        errors.append("every highlight cluster must belong to a marker in MARKER_GENES")

    if not 0 < DE_PARAMS["fdr_threshold"] < 1:
        errors.append("fdr_threshold must be between 0 and 1")

    if errors:
        raise ValueError("Filter validation failed:\n" + "\n".join(errors))

    return True


# Run validation on import
validate_filters()
