"""
Ohana selection scan over 1000 Genomes genotypes.

Chains plink and the Ohana binaries for one VCF (typically one chromosome):

    1. plink --vcf VCF --recode 12 --geno 0.0 --tab   -> vcfs/IDENT.ped
    2. convert ped2dgm                                 -> vcfs/IDENT.dgm
    3. qpas with a precomputed admixture matrix Q held fixed (-fq), so only
       ancestral allele frequencies F are optimized    -> f_matrices/IDENT_F.matrix
    4. selscan once per ancestry component i = 1..k, testing the component's
       covariance matrix C_p{i} against the genome-wide C
                                                       -> selscan/IDENT_ohanascan_k{k}_p{i}.out

Q and C come from a downsampled, LD-pruned run (chr21, k=8, 50 iterations)
and live in ``downsample_dir``. The binaries are treated as opaque; a failing
step raises ExternalToolError carrying the tool's stderr.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "ExternalToolError",
    "OhanaConfig",
    "SelscanRun",
    "resolve_executable",
    "vcf_to_ped",
    "ped_to_dgm",
    "infer_allele_frequencies",
    "run_selscan",
    "run_ohana_scan",
    "load_selscan_output",
]

SELSCAN_COLUMNS = ["step", "global_lle", "local_lle", "lle_ratio"]


class ExternalToolError(RuntimeError):
    """Raised when an external binary is missing or exits non-zero."""
    pass


@dataclass
class OhanaConfig:
    """Parameters for one selection-scan run.

    Attributes:
        downsample_dir: Directory holding the precomputed Q matrix and the
            ``c_matrices/`` folder.
        ohana_bin: Directory with ``convert``, ``qpas`` and ``selscan``.
            Falls back to PATH when None.
        plink: plink executable name or path.
        workdir: Root for ``vcfs/``, ``f_matrices/`` and ``selscan/``.
        k: Number of ancestry components.
        max_iter: qpas maximum iterations (-mi).
        epsilon: qpas convergence threshold (-e).
        q_matrix: Q matrix file name inside ``downsample_dir``.
        c_matrix: Genome-wide C matrix, relative to ``downsample_dir``.
        c_component_template: Per-component C matrix, relative to
            ``downsample_dir``; ``{i}`` is replaced by the component number.
    """
    downsample_dir: Path
    ohana_bin: Path | None = None
    plink: str = "plink"
    workdir: Path = field(default_factory=lambda: Path("."))
    k: int = 8
    max_iter: int = 50
    epsilon: float = 0.0001
    q_matrix: str = "chr21_pruned_50_Q.matrix"
    c_matrix: str = "c_matrices/chr21_pruned_50_C.matrix"
    c_component_template: str = "c_matrices/chr21_pruned_50_C_p{i}.matrix"

    def __post_init__(self):
        self.downsample_dir = Path(self.downsample_dir)
        self.workdir = Path(self.workdir)
        if self.ohana_bin is not None:
            self.ohana_bin = Path(self.ohana_bin)
        if self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")

    @property
    def q_matrix_path(self) -> Path:
        return self.downsample_dir / self.q_matrix

    @property
    def c_matrix_path(self) -> Path:
        return self.downsample_dir / self.c_matrix

    def component_matrix_path(self, i: int) -> Path:
        return self.downsample_dir / self.c_component_template.format(i=i)


@dataclass(frozen=True)
class SelscanRun:
    """Files produced for one identifier."""
    ident: str
    dgm: Path
    f_matrix: Path
    outputs: tuple[Path, ...]


def resolve_executable(name: str, bin_dir: Path | None = None) -> str:
    """
    Locate an executable in ``bin_dir`` or on PATH.

    Raises:
        ExternalToolError: If it cannot be found.
    """
    if bin_dir is not None:
        candidate = Path(bin_dir) / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
        raise ExternalToolError(f"'{name}' not found or not executable in {bin_dir}")

    found = shutil.which(name)
    if found is None:
        raise ExternalToolError(f"'{name}' not found on PATH")
    return found


def _run(cmd: list[str], step: str, stdout_path: Path | None = None) -> None:
    logger.info("Running %s: %s", step, " ".join(cmd))
    if stdout_path is None:
        result = subprocess.run(cmd, capture_output=True, text=True)
    else:
        with open(stdout_path, "w") as out:
            result = subprocess.run(cmd, stdout=out, stderr=subprocess.PIPE, text=True)

    if result.returncode != 0:
        if stdout_path is not None:
            Path(stdout_path).unlink(missing_ok=True)
        raise ExternalToolError(
            f"{step} failed (exit {result.returncode}):\n{result.stderr}"
        )


def vcf_to_ped(vcf: Path, ident: str, config: OhanaConfig) -> Path:
    """Recode a VCF to a 1/2-coded, tab-separated .ped with no missing genotypes."""
    vcf = Path(vcf)
    if not vcf.exists():
        raise FileNotFoundError(f"VCF not found: {vcf}")

    out_prefix = config.workdir / "vcfs" / ident
    out_prefix.parent.mkdir(parents=True, exist_ok=True)

    plink = config.plink if os.sep in config.plink else resolve_executable(config.plink)
    _run(
        [
            plink,
            "--vcf", str(vcf),
            "--out", str(out_prefix),
            "--recode", "12",
            "--geno", "0.0",
            "--tab",
        ],
        "plink recode",
    )
    return Path(f"{out_prefix}.ped")


def ped_to_dgm(ped: Path, config: OhanaConfig) -> Path:
    """Convert a .ped file to Ohana's genotype (G) matrix."""
    ped = Path(ped)
    dgm = ped.with_suffix(".dgm")
    convert = resolve_executable("convert", config.ohana_bin)
    _run([convert, "ped2dgm", str(ped), str(dgm)], "convert ped2dgm")
    logger.info("Converted %s to %s", ped.name, dgm.name)
    return dgm


def infer_allele_frequencies(dgm: Path, ident: str, config: OhanaConfig) -> Path:
    """
    Admixture-corrected ancestral allele frequencies with Q held fixed.

    Raises:
        FileNotFoundError: If the precomputed Q matrix is missing.
    """
    if not config.q_matrix_path.exists():
        raise FileNotFoundError(f"Q matrix not found: {config.q_matrix_path}")

    f_matrix = config.workdir / "f_matrices" / f"{ident}_F.matrix"
    f_matrix.parent.mkdir(parents=True, exist_ok=True)

    qpas = resolve_executable("qpas", config.ohana_bin)
    _run(
        [
            qpas, str(dgm),
            "-k", str(config.k),
            "-qi", str(config.q_matrix_path),
            "-fo", str(f_matrix),
            "-e", str(config.epsilon),
            "-fq",
            "-mi", str(config.max_iter),
        ],
        "qpas",
    )
    logger.info("Finished inferring ancestral allele frequencies for %s", ident)
    return f_matrix


def run_selscan(
    dgm: Path,
    f_matrix: Path,
    ident: str,
    config: OhanaConfig,
    components: list[int] | None = None,
) -> list[Path]:
    """
    Run selscan for each ancestry component; stdout goes to one file each.

    Args:
        components: 1-based component numbers; defaults to 1..k.
    """
    if components is None:
        components = list(range(1, config.k + 1))
    bad = [i for i in components if not 1 <= i <= config.k]
    if bad:
        raise ValueError(f"Components {bad} outside 1..{config.k}")

    if not config.c_matrix_path.exists():
        raise FileNotFoundError(f"C matrix not found: {config.c_matrix_path}")

    out_dir = config.workdir / "selscan"
    out_dir.mkdir(parents=True, exist_ok=True)
    selscan = resolve_executable("selscan", config.ohana_bin)

    outputs = []
    for i in components:
        component_c = config.component_matrix_path(i)
        if not component_c.exists():
            raise FileNotFoundError(f"Component C matrix not found: {component_c}")

        out_path = out_dir / f"{ident}_ohanascan_k{config.k}_p{i}.out"
        _run(
            [
                selscan, str(dgm), str(f_matrix), str(config.c_matrix_path),
                "-cs", str(component_c),
            ],
            f"selscan component {i}",
            stdout_path=out_path,
        )
        logger.info("Finished selscan on ancestry component %d", i)
        outputs.append(out_path)
    return outputs


def run_ohana_scan(vcf: Path, ident: str, config: OhanaConfig) -> SelscanRun:
    """Full pipeline: VCF -> .ped -> .dgm -> F matrix -> per-component scans."""
    ped = vcf_to_ped(vcf, ident, config)
    dgm = ped_to_dgm(ped, config)
    f_matrix = infer_allele_frequencies(dgm, ident, config)
    outputs = run_selscan(dgm, f_matrix, ident, config)
    return SelscanRun(ident=ident, dgm=dgm, f_matrix=f_matrix, outputs=tuple(outputs))


def load_selscan_output(path: Path) -> pd.DataFrame:
    """
    Parse a selscan output table.

    selscan writes a whitespace-separated table with a header line
    (``step global-lle local-lle lle-ratio``), one row per SNP in .dgm order.
    Column names are normalized to snake_case.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"selscan output not found: {path}")

    df = pd.read_csv(path, sep=r"\s+")
    df.columns = [c.strip().replace("-", "_").lower() for c in df.columns]
    missing = [c for c in SELSCAN_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing selscan columns {missing}")
    return df
