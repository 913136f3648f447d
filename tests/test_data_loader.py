"""Tests for DGE matrix loading."""

import numpy as np
import pandas as pd
import pytest
from scipy import io, sparse

from snrna_markers.data_loader import load_dge, load_dge_dir


class TestLoadDge:
    """Loading a matrix with its gene and cell tables."""

    def test_load_dir_matches_source(self, dge_dir, raw_adata):
        adata = load_dge_dir(dge_dir)

        assert adata.shape == raw_adata.shape
        assert list(adata.obs_names) == list(raw_adata.obs_names)
        assert list(adata.var_names) == list(raw_adata.var_names)
        assert list(adata.obs["sample"]) == list(raw_adata.obs["sample"])
        np.testing.assert_allclose(adata.X.toarray(), raw_adata.X.toarray())

    def test_extra_cell_columns_are_kept(self, dge_dir):
        adata = load_dge_dir(dge_dir)

        assert "batch" in adata.obs
        assert "barcode" not in adata.obs
        assert (adata.obs["batch"] == "b1").all()

    def test_matrix_is_sparse_float(self, dge_dir):
        adata = load_dge_dir(dge_dir)

        assert sparse.issparse(adata.X)
        assert adata.X.dtype == np.float32

    def test_duplicate_gene_names_made_unique(self, tmp_path):
        io.mmwrite(str(tmp_path / "m.mtx"), sparse.csr_matrix(np.ones((2, 3))))
        pd.DataFrame({"gene_name": ["Gad1", "Gad1", "Snap25"]}).to_csv(
            tmp_path / "g.csv", index=False
        )
        pd.DataFrame({"barcode": ["a", "b"], "sample": ["HC1", "SOR1"]}).to_csv(
            tmp_path / "c.csv", index=False
        )

        adata = load_dge(tmp_path / "m.mtx", tmp_path / "g.csv", tmp_path / "c.csv")

        assert adata.var_names.is_unique
        assert list(adata.var["gene_name_original"]) == ["Gad1", "Gad1", "Snap25"]

    def test_custom_column_names(self, tmp_path):
        io.mmwrite(str(tmp_path / "m.mtx"), sparse.csr_matrix(np.ones((2, 2))))
        pd.DataFrame({"symbol": ["Gad1", "Snap25"]}).to_csv(tmp_path / "g.csv", index=False)
        pd.DataFrame({"cell": ["a", "b"], "orig.ident": ["HC1", "SOR1"]}).to_csv(
            tmp_path / "c.csv", index=False
        )

        adata = load_dge(
            tmp_path / "m.mtx",
            tmp_path / "g.csv",
            tmp_path / "c.csv",
            gene_col="symbol",
            barcode_col="cell",
            sample_col="orig.ident",
        )

        assert list(adata.obs["sample"]) == ["HC1", "SOR1"]
        assert list(adata.var_names) == ["Gad1", "Snap25"]


    def test_sample_col_replaces_existing_sample_column(self, tmp_path):
        io.mmwrite(str(tmp_path / "m.mtx"), sparse.csr_matrix(np.ones((2, 2))))
        pd.DataFrame({"gene_name": ["Gad1", "Snap25"]}).to_csv(tmp_path / "g.csv", index=False)
        pd.DataFrame(
            {"barcode": ["a", "b"], "sample": ["lib1", "lib2"], "condition": ["HC1", "SOR1"]}
        ).to_csv(tmp_path / "c.csv", index=False)

        adata = load_dge(
            tmp_path / "m.mtx", tmp_path / "g.csv", tmp_path / "c.csv", sample_col="condition"
        )

        assert list(adata.obs.columns) == ["sample"]
        assert list(adata.obs["sample"]) == ["HC1", "SOR1"]


class TestLoadErrors:
    """Invalid inputs fail at load time."""

    def test_missing_file(self, dge_dir):
        with pytest.raises(FileNotFoundError):
            load_dge(dge_dir / "missing.mtx", dge_dir / "genes.csv", dge_dir / "cells.csv")

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_dge_dir(tmp_path / "nope")

    def test_gene_count_mismatch(self, dge_dir):
        genes = pd.read_csv(dge_dir / "genes.csv")
        genes.iloc[:-1].to_csv(dge_dir / "genes.csv", index=False)

        with pytest.raises(ValueError, match="does not match"):
            load_dge_dir(dge_dir)

    def test_cell_count_mismatch(self, dge_dir):
        cells = pd.read_csv(dge_dir / "cells.csv")
        cells.iloc[:-2].to_csv(dge_dir / "cells.csv", index=False)

        with pytest.raises(ValueError, match="does not match"):
            load_dge_dir(dge_dir)

    def test_missing_sample_column(self, dge_dir):
        cells = pd.read_csv(dge_dir / "cells.csv")
        cells.drop(columns=["sample"]).to_csv(dge_dir / "cells.csv", index=False)

        with pytest.raises(KeyError):
            load_dge_dir(dge_dir)

    def test_duplicate_barcodes(self, dge_dir):
        cells = pd.read_csv(dge_dir / "cells.csv")
        cells.loc[1, "barcode"] = cells.loc[0, "barcode"]
        cells.to_csv(dge_dir / "cells.csv", index=False)

        with pytest.raises(ValueError, match="Duplicated"):
            load_dge_dir(dge_dir)
