"""
Pytest configuration and shared fixtures.

Synthetic cohorts mimic a small 1000 Genomes RNA-seq study: a handful of
populations from three continental groups, a sex covariate and
negative-binomial-ish pseudocounts.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


GROUP_MAP = {
    "EUR": ["CEU", "GBR"],
    "AFR": ["YRI"],
    "EAS": ["CHB", "JPT"],
}

# Unequal population sizes so weighted and unweighted averages differ.
POPULATION_SIZES = {"CEU": 6, "GBR": 4, "YRI": 8, "CHB": 5, "JPT": 5}


def make_metadata(sizes=None, seed=0):
    """Sample metadata with population and sex, indexed by sample id."""
    sizes = sizes or POPULATION_SIZES
    rng = np.random.RandomState(seed)
    rows = []
    for pop, n in sizes.items():
        for i in range(n):
            rows.append({
                "sample": f"{pop}{i:02d}",
                "population": pop,
                # alternate so every population has both sexes
                "sex": "male" if i % 2 == 0 else "female",
                "age": float(rng.randint(20, 60)),
            })
    return pd.DataFrame(rows).set_index("sample")


def make_counts(metadata, n_genes=40, seed=1):
    """Integer count matrix (genes x samples) aligned to ``metadata``."""
    rng = np.random.RandomState(seed)
    base = rng.lognormal(mean=5, sigma=1, size=(n_genes, 1))
    counts = rng.poisson(base, size=(n_genes, len(metadata)))
    # A few genes shifted up in Africans, a few nearly unexpressed
    afr = (metadata["population"] == "YRI").to_numpy()
    counts[:5, afr] = counts[:5, afr] * 4
    counts[-3:, :] = 0
    return pd.DataFrame(
        counts,
        index=[f"ENSG{i:011d}" for i in range(n_genes)],
        columns=metadata.index,
    )


@pytest.fixture
def group_map():
    return {k: list(v) for k, v in GROUP_MAP.items()}


@pytest.fixture
def metadata():
    return make_metadata()


@pytest.fixture
def counts(metadata):
    return make_counts(metadata)


@pytest.fixture
def count_file(tmp_path, counts):
    """Pseudocount table on disk with a gene_name annotation column."""
    df = counts.astype(float) + 0.3
    df.insert(0, "gene_name", [f"GENE{i}" for i in range(len(df))])
    df.index.name = "gene_id"
    path = tmp_path / "counts.tsv"
    df.to_csv(path, sep="\t")
    return path


@pytest.fixture
def metadata_file(tmp_path, metadata):
    path = tmp_path / "samples.tsv"
    metadata.to_csv(path, sep="\t")
    return path


@pytest.fixture
def results_table():
    """A results table shaped like the engine's output."""
    rng = np.random.RandomState(3)
    n = 30
    lfc = rng.normal(0, 1.5, size=n)
    pvalue = rng.uniform(0, 1, size=n)
    pvalue[:6] = 1e-8
    padj = np.minimum(pvalue * 3, 1.0)
    padj[-2:] = np.nan
    return pd.DataFrame(
        {
            "baseMean": rng.lognormal(5, 1, size=n),
            "log2FoldChange": lfc,
            "lfcSE": np.full(n, 0.3),
            "stat": lfc / 0.3,
            "pvalue": pvalue,
            "padj": padj,
        },
        index=pd.Index([f"GENE{i}" for i in range(n)], name="gene_id"),
    )
