# %% [markdown]
# # Theta/Gamma Marker Analysis
#
# Exploratory snRNA-seq analysis comparing a theta-associated and a
# gamma-associated marker gene between the **HC1** and **SOR1** samples in
# every cluster, followed by cluster annotation with canonical markers.
#
# **📥 Input:** `data/matrix.mtx`, `data/genes.csv`, `data/cells.csv`
# **📤 Output:** plots and ranked tables in this notebook
#
# ---

# %% [markdown]
# ## 1. Setup

# %%
# !pip install -q -e ..

import warnings
import matplotlib
import scanpy as sc
from pathlib import Path

from snrna_markers.data_loader import load_dge_dir
from snrna_markers.qc_utils import (
    filter_by_sample,
    calculate_qc_metrics,
    filter_by_counts,
    filter_by_mt,
    plot_count_violin,
)
from snrna_markers.processing import (
    normalize_and_scale,
    run_pca_umap_clustering,
    cluster_sizes,
    cluster_sample_table,
    plot_embeddings,
    sweep_leiden_resolution,
)
from snrna_markers.differential_expression import (
    run_marker_comparisons,
    best_clusters,
    print_ranked_table,
    plot_marker_violin,
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

warnings.filterwarnings('ignore')
sc.settings.verbosity = 3
sc.settings.set_figure_params(dpi=80, facecolor='white')
matplotlib.rcParams['figure.figsize'] = (8, 6)

print("✓ Setup complete!")
print(f"Scanpy version: {sc.__version__}")

# %%
DATA_DIR = Path("../data")  # 🔧 UPDATE THIS PATH

print(get_filter_summary())

# %% [markdown]
# ## 2. Load the DGE matrix

# %%
adata = load_dge_dir(DATA_DIR)
print(adata)
print(adata.obs['sample'].value_counts())

# %% [markdown]
# ## 3. Quality filtering
#
# Filters run in order and each only sees the survivors of the previous one.

# %%
adata = filter_by_sample(adata, samples=(SAMPLES['a'], SAMPLES['b']))
adata = calculate_qc_metrics(adata)

# %%
plot_count_violin(adata, max_counts=CELL_FILTERS['max_counts'])

# %%
adata = filter_by_counts(adata, max_counts=CELL_FILTERS['max_counts'])
adata = filter_by_mt(adata, max_mt_pct=CELL_FILTERS['max_mt_pct'])

print(adata.obs.groupby('sample').size())

# %% [markdown]
# ## 4. Normalization, PCA, clustering & UMAP

# %%
adata = normalize_and_scale(adata, n_top_genes=PROCESSING_PARAMS['n_top_genes'])
adata = run_pca_umap_clustering(
    adata,
    n_pcs=PROCESSING_PARAMS['n_pcs'],
    resolution=PROCESSING_PARAMS['resolution'],
    random_state=PROCESSING_PARAMS['random_state'],
)

# %%
sc.pl.pca_variance_ratio(adata, n_pcs=PROCESSING_PARAMS['n_pcs'])

# %%
plot_embeddings(adata, color=('sample', 'leiden'))

print(cluster_sample_table(adata))

# %% [markdown]
# ### Optional: resolution sweep
#
# Cluster ids below depend on the resolution. Run the sweep only to check how
# stable the clustering is; it does not change `leiden`.

# %%
# sweep = sweep_leiden_resolution(adata)

# %% [markdown]
# ## 5. Theta and gamma markers per cluster
#
# Wilcoxon rank-sum test of SOR1 against HC1 inside each cluster,
# BH-corrected per marker. `mean_diff` is SOR1 minus HC1.

# %%
results = run_marker_comparisons(adata, markers=MARKER_GENES)

for name, result in results.items():
    print_ranked_table(result, name=f"{name} ({MARKER_GENES[name]})", top_n=10)

# %%
best = best_clusters(results)
best

# %%
for name, row in best.iterrows():
    plot_marker_violin(adata, MARKER_GENES[name], row['cluster'])

# %% [markdown]
# ## 6. Cluster annotation with canonical markers

# %%
markers = available_markers(adata, CANONICAL_MARKERS)
plot_marker_dotplot(adata, CANONICAL_MARKERS)

# %%
genes = [g for group in markers.values() for g in group]
table = marker_expression_table(adata, genes)
table.pivot(index='cluster', columns='gene', values='mean_expression').round(2)

# %% [markdown]
# ## 7. Highlight the theta and gamma clusters
#
# `HIGHLIGHT_CLUSTERS` holds the cluster ids chosen from the dot plot above.
# The ranking based suggestion is shown for comparison.

# %%
print(f"Configured: {HIGHLIGHT_CLUSTERS}")
print(f"Suggested from ranking: {suggest_highlight_clusters(results)}")

adata = label_highlight_clusters(adata, highlight=HIGHLIGHT_CLUSTERS)
print(adata.obs['highlight'].value_counts())

# %%
plot_highlight_umap(adata)

# %%
print(cluster_sizes(adata))
