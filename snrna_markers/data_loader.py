#!/usr/bin/env python3
"""
Data loading utilities for single-nucleus RNA-seq analysis
Handles digital gene expression (DGE) matrices stored as Matrix Market files
with separate gene and cell metadata tables
"""

import numpy as np
import pandas as pd
import anndata
from scipy import io, sparse
from pathlib import Path


def _check_exists(path, what):
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    return path


def load_dge(
    matrix_path,
    genes_path,
    cells_path,
    gene_col="gene_name",
    barcode_col="barcode",
    sample_col="sample",
):
    """Load a DGE matrix with its gene and cell tables

    The matrix file stores cells as rows and genes as columns. The returned
    AnnData follows the scanpy convention (cells x genes); use ``adata.T``
    for a genes x cells view.

    Args:
        matrix_path: Path to the Matrix Market file (may be gzipped)
        genes_path: CSV with one row per matrix column
        cells_path: CSV with one row per matrix row
        gene_col: Column of the gene table holding gene names
        barcode_col: Column of the cell table holding barcodes
        sample_col: Column of the cell table holding the sample label

    Returns:
        AnnData object with barcodes as obs_names and unique gene names as var_names
    """
    matrix_path = _check_exists(matrix_path, "Matrix file")
    genes_path = _check_exists(genes_path, "Gene table")
    cells_path = _check_exists(cells_path, "Cell metadata table")

    print(f"Loading {matrix_path}")
    X = sparse.csr_matrix(io.mmread(str(matrix_path)), dtype=np.float32)

    genes = pd.read_csv(genes_path)
    cells = pd.read_csv(cells_path)

    if gene_col not in genes.columns:
        raise KeyError(f"Gene column '{gene_col}' not found in {genes_path}")
    for col in (barcode_col, sample_col):
        if col not in cells.columns:
            raise KeyError(f"Cell column '{col}' not found in {cells_path}")

    # Matrix rows are cells, columns are genes
    if X.shape != (len(cells), len(genes)):
        raise ValueError(
            f"Matrix shape {X.shape} does not match "
            f"{len(cells)} cells x {len(genes)} genes from the metadata tables"
        )

    barcodes = cells[barcode_col].astype(str)
    if barcodes.duplicated().any():
        dupes = barcodes[barcodes.duplicated()].unique()[:5].tolist()
        raise ValueError(f"Duplicated cell barcodes in {cells_path}: {dupes}")

    obs = cells.drop(columns=[barcode_col]).copy()
    obs.index = pd.Index(barcodes.values, name=None)
    if sample_col != "sample" and "sample" in obs.columns:
        print(f"  Replacing existing 'sample' column with '{sample_col}'")
        obs = obs.drop(columns=["sample"])
    obs = obs.rename(columns={sample_col: "sample"})
    obs["sample"] = obs["sample"].astype(str)

    gene_names = genes[gene_col].astype(str)
    var = pd.DataFrame({"gene_name_original": gene_names.values})
    var.index = pd.Index(gene_names.values, name=None)

    adata = anndata.AnnData(X=X, obs=obs, var=var)

    # Make gene names unique
    adata.var_names_make_unique()

    print(
        f"Loaded {adata.n_obs} cells x {adata.n_vars} genes "
        f"from {adata.obs['sample'].nunique()} samples"
    )

    return adata


def load_dge_dir(
    data_dir,
    matrix_name="matrix.mtx",
    genes_name="genes.csv",
    cells_name="cells.csv",
    **kwargs,
):
    """Load a DGE matrix from a directory holding the three standard files

    Args:
        data_dir: Directory containing the matrix, gene and cell files
        matrix_name: Matrix Market file name
        genes_name: Gene table file name
        cells_name: Cell metadata file name
        **kwargs: Passed on to load_dge

    Returns:
        AnnData object
    """
    data_dir = _check_exists(data_dir, "Data directory")
    return load_dge(
        data_dir / matrix_name,
        data_dir / genes_name,
        data_dir / cells_name,
        **kwargs,
    )
