"""
Shared fixtures for the snrna_markers test suite.

All data is synthetic: small count matrices with three well separated cell
populations, a few multiplets, a few mitochondria-heavy cells and cells from
a sample outside the compared pair.
"""

import logging

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import anndata as ad
import pytest
from scipy import io, sparse

logging.getLogger("scanpy").setLevel(logging.ERROR)
logging.getLogger("anndata").setLevel(logging.ERROR)
logging.getLogger("matplotlib").setLevel(logging.ERROR)

MT_GENES = ["mt-Co1", "mt-Nd1", "mt-Atp6"]
MARKER_PANEL_GENES = ["Snap25", "Slc17a7", "Gad1", "Aqp4", "Hcn1", "Pvalb"]
N_PER_GROUP = 40


def _gene_names(n_filler=40):
    return MARKER_PANEL_GENES + MT_GENES + [f"Gene{i}" for i in range(n_filler)]


@pytest.fixture
def raw_adata():
    """Raw-count AnnData: 3 populations x 2 samples, plus QC failures

    Layout of obs (in order):
      - 3 populations x 40 cells, alternating HC1 / SOR1
      - 4 multiplets (total counts well above 35000)
      - 4 mitochondria-heavy cells
      - 6 cells from sample "OTHER"
    """
    rng = np.random.default_rng(0)
    genes = _gene_names()
    n_genes = len(genes)

    base = np.full(n_genes, 2.0)
    base[[genes.index(g) for g in MT_GENES]] = 0.5

    blocks = []
    samples = []
    for group in range(3):
        means = base.copy()
        # Each population gets its own block of filler genes and one panel gene
        start = len(MARKER_PANEL_GENES) + len(MT_GENES) + group * 10
        means[start : start + 10] = 25.0
        means[group] = 20.0
        counts = rng.poisson(means, size=(N_PER_GROUP, n_genes))
        # SOR1 cells carry more Pvalb
        sor1 = np.arange(N_PER_GROUP) % 2 == 1
        counts[sor1, genes.index("Pvalb")] += 8
        blocks.append(counts)
        samples.extend(np.where(sor1, "SOR1", "HC1"))

    multiplets = rng.poisson(base * 600, size=(4, n_genes))
    blocks.append(multiplets)
    samples.extend(["HC1", "SOR1", "HC1", "SOR1"])

    mt_heavy = rng.poisson(base, size=(4, n_genes))
    mt_heavy[:, [genes.index(g) for g in MT_GENES]] = 200
    blocks.append(mt_heavy)
    samples.extend(["HC1", "SOR1", "HC1", "SOR1"])

    other = rng.poisson(base, size=(6, n_genes))
    blocks.append(other)
    samples.extend(["OTHER"] * 6)

    X = np.vstack(blocks).astype(np.float32)
    obs = pd.DataFrame(
        {"sample": samples},
        index=[f"cell{i}" for i in range(X.shape[0])],
    )
    var = pd.DataFrame(index=genes)

    return ad.AnnData(X=sparse.csr_matrix(X), obs=obs, var=var)


@pytest.fixture
def dge_dir(tmp_path, raw_adata):
    """Directory with matrix.mtx, genes.csv and cells.csv for raw_adata"""
    io.mmwrite(str(tmp_path / "matrix.mtx"), raw_adata.X)
    pd.DataFrame({"gene_name": raw_adata.var_names}).to_csv(
        tmp_path / "genes.csv", index=False
    )
    pd.DataFrame(
        {
            "barcode": raw_adata.obs_names,
            "sample": raw_adata.obs["sample"].values,
            "batch": "b1",
        }
    ).to_csv(tmp_path / "cells.csv", index=False)
    return tmp_path


@pytest.fixture
def clustered_adata():
    """Expression AnnData with fixed clusters and no raw slot

    Clusters "0"-"3" contain both samples; cluster "4" holds only HC1 cells.
    Hcn1 is shifted up in SOR1 cells of cluster "2".
    """
    rng = np.random.default_rng(1)
    clusters, samples = [], []
    for cluster in ["0", "1", "2", "3"]:
        clusters.extend([cluster] * 20)
        samples.extend(["HC1", "SOR1"] * 10)
    clusters.extend(["4"] * 5)
    samples.extend(["HC1"] * 5)

    n_cells = len(clusters)
    genes = ["Hcn1", "Pvalb", "Snap25", "Gad1"]
    X = rng.normal(loc=1.0, scale=0.3, size=(n_cells, len(genes)))

    clusters = np.array(clusters)
    samples = np.array(samples)
    shifted = (clusters == "2") & (samples == "SOR1")
    X[shifted, 0] += 3.0
    # Gad1 only expressed in cluster "1"
    X[:, 3] = np.where(clusters == "1", 2.0, 0.0)

    obs = pd.DataFrame(
        {
            "sample": samples,
            "leiden": pd.Categorical(clusters, categories=["0", "1", "2", "3", "4"]),
        },
        index=[f"cell{i}" for i in range(n_cells)],
    )
    return ad.AnnData(X=X, obs=obs, var=pd.DataFrame(index=genes))


@pytest.fixture
def toy_adata():
    """3 genes x 6 cells: Hcn1 is exactly 5 higher in SOR1 than in HC1"""
    X = np.array(
        [
            [1.0, 0.0, 0.0],
            [2.0, 0.0, 1.0],
            [3.0, 1.0, 0.0],
            [6.0, 0.0, 0.0],
            [7.0, 1.0, 1.0],
            [8.0, 0.0, 0.0],
        ]
    )
    obs = pd.DataFrame(
        {
            "sample": ["HC1", "HC1", "HC1", "SOR1", "SOR1", "SOR1"],
            "leiden": pd.Categorical(["0"] * 6),
        },
        index=[f"cell{i}" for i in range(6)],
    )
    return ad.AnnData(X=X, obs=obs, var=pd.DataFrame(index=["Hcn1", "Gad1", "mt-Co1"]))
