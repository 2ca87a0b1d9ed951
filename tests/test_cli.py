"""Tests for the popexpr command line interface."""

import json

import numpy as np
import pandas as pd
import pytest
import yaml

from popexpr.cli import main
from popexpr.popgen import ohana
from popexpr.popgen.ohana import ExternalToolError, SelscanRun


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "differential" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "0.1.0" in capsys.readouterr().out

    def test_invalid_alpha_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            main(["differential", "--alpha", "1.5"])


class TestDifferentialContrastsOnly:
    """The contrasts-only path runs end to end without fitting a model."""

    def test_default_group_map(self, count_file, metadata_file, tmp_path, capsys):
        out = tmp_path / "results"
        code = main([
            "differential",
            "--counts", str(count_file),
            "--metadata", str(metadata_file),
            "--output", str(out),
            "--covariates", "sex",
            "--contrasts-only",
        ])

        assert code == 0
        contrasts = pd.read_csv(out / "contrasts.csv", index_col="contrast")
        # AMR and SAS have no samples and are pruned from the default map
        assert list(contrasts.index) == ["AFR_vs_rest", "EAS_vs_rest", "EUR_vs_rest"]
        np.testing.assert_allclose(contrasts["Intercept"], 0.0, atol=1e-12)
        assert "sex[T.male]" in contrasts.columns

        coefficients = pd.read_csv(out / "group_coefficients.csv", index_col="population")
        assert (coefficients["Intercept"] == 1.0).all()

        manifest = json.loads((out / "manifest.json").read_text())
        assert manifest["design"] == "~ sex + population"
        assert manifest["contrasts_only"] is True
        assert manifest["filtering"]["n_removed"] >= 3
        assert manifest["results"] == []

        assert "EUR_vs_rest" in capsys.readouterr().out

    def test_config_file(self, count_file, metadata_file, tmp_path):
        config = tmp_path / "analysis.yaml"
        config.write_text(yaml.safe_dump({
            "counts": str(count_file),
            "metadata": str(metadata_file),
            "output": str(tmp_path / "from_config"),
            "groups": {"EUR": ["CEU", "GBR"], "AFR": ["YRI"]},
            "filtering": {"min_count": 1},
        }))
        out = tmp_path / "from_cli"

        code = main([
            "differential", "--config", str(config),
            "--output", str(out), "--focal", "AFR", "--contrasts-only",
        ])

        assert code == 0
        assert not (tmp_path / "from_config").exists()
        manifest = json.loads((out / "manifest.json").read_text())
        assert manifest["groups"] == {"EUR": ["CEU", "GBR"], "AFR": ["YRI"]}
        assert manifest["filtering"]["min_count"] == 1
        assert list(manifest["contrasts"]) == ["AFR_vs_rest"]
        # CHB/JPT samples are outside the configured groups
        vector = manifest["contrasts"]["AFR_vs_rest"]
        assert "population[T.CHB]" not in vector
        assert vector["population[T.YRI]"] == pytest.approx(1.0)

    def test_reference_only(self, count_file, metadata_file, tmp_path):
        out = tmp_path / "out"
        code = main([
            "differential",
            "--counts", str(count_file),
            "--metadata", str(metadata_file),
            "--output", str(out),
            "--reference", "AFR",
            "--contrasts-only",
        ])

        assert code == 0
        contrasts = pd.read_csv(out / "contrasts.csv", index_col="contrast")
        assert list(contrasts.index) == ["EAS_vs_AFR", "EUR_vs_AFR"]

    def test_missing_inputs(self, capsys):
        assert main(["differential", "--contrasts-only"]) == 1
        assert "--counts" in capsys.readouterr().out

    def test_collinear_covariate_fails(self, count_file, metadata, tmp_path, capsys):
        meta = metadata.copy()
        meta["lab"] = np.where(meta["population"] == "YRI", "lab2", "lab1")
        meta_path = tmp_path / "samples_lab.tsv"
        meta.to_csv(meta_path, sep="\t")

        code = main([
            "differential",
            "--counts", str(count_file),
            "--metadata", str(meta_path),
            "--output", str(tmp_path / "out"),
            "--covariates", "lab",
            "--contrasts-only",
        ])

        assert code == 1
        assert "rank-deficient" in capsys.readouterr().out

    def test_unknown_focal_fails(self, count_file, metadata_file, tmp_path, capsys):
        code = main([
            "differential",
            "--counts", str(count_file),
            "--metadata", str(metadata_file),
            "--output", str(tmp_path / "out"),
            "--focal", "SAS",
            "--contrasts-only",
        ])
        assert code == 1
        assert "SAS" in capsys.readouterr().out


class TestSelscanCommand:

    def test_missing_inputs(self, capsys):
        assert main(["selscan", "--ident", "chr22"]) == 1
        out = capsys.readouterr().out
        assert "--vcf" in out
        assert "--downsample-dir" in out

    def test_runs_pipeline(self, tmp_path, monkeypatch, capsys):
        seen = {}

        def fake_scan(vcf, ident, config):
            seen.update(vcf=vcf, ident=ident, config=config)
            return SelscanRun(
                ident=ident,
                dgm=tmp_path / "vcfs" / f"{ident}.dgm",
                f_matrix=tmp_path / "f_matrices" / f"{ident}_F.matrix",
                outputs=(tmp_path / "selscan" / f"{ident}_ohanascan_k4_p1.out",),
            )

        monkeypatch.setattr(ohana, "run_ohana_scan", fake_scan)
        config = tmp_path / "ohana.yaml"
        config.write_text(yaml.safe_dump({"ohana": {"k": 4, "max_iter": 20}}))

        code = main([
            "selscan",
            "--vcf", str(tmp_path / "chr22.vcf.gz"),
            "--ident", "chr22",
            "--downsample-dir", str(tmp_path / "downsampled"),
            "--config", str(config),
            "--max-iter", "30",
        ])

        assert code == 0
        assert seen["ident"] == "chr22"
        assert seen["config"].k == 4
        assert seen["config"].max_iter == 30
        assert "chr22_ohanascan_k4_p1.out" in capsys.readouterr().out

    def test_explicit_k_beats_config(self, tmp_path, monkeypatch):
        seen = {}

        def fake_scan(vcf, ident, config):
            seen["config"] = config
            return SelscanRun(ident=ident, dgm=tmp_path / "x.dgm",
                              f_matrix=tmp_path / "x_F.matrix", outputs=())

        monkeypatch.setattr(ohana, "run_ohana_scan", fake_scan)
        config = tmp_path / "ohana.yaml"
        config.write_text(yaml.safe_dump({"ohana": {"k": 4}}))

        code = main([
            "selscan",
            "--vcf", str(tmp_path / "chr22.vcf.gz"),
            "--ident", "chr22",
            "--downsample-dir", str(tmp_path),
            "--config", str(config),
            "-k", "6",
        ])

        assert code == 0
        assert seen["config"].k == 6

    def test_tool_error_returns_one(self, tmp_path, monkeypatch, capsys):
        def failing(vcf, ident, config):
            raise ExternalToolError("qpas failed (exit 1):\nno convergence")

        monkeypatch.setattr(ohana, "run_ohana_scan", failing)
        code = main([
            "selscan",
            "--vcf", str(tmp_path / "chr22.vcf.gz"),
            "--ident", "chr22",
            "--downsample-dir", str(tmp_path),
        ])
        assert code == 1
        assert "no convergence" in capsys.readouterr().out


class TestArgumentValidation:
    """Bad arguments fail at parse time."""

    def test_missing_counts_file(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["differential", "--counts", str(tmp_path / "missing.tsv")])

    @pytest.mark.parametrize("ident", ["../chr22", "chr 22", ""])
    def test_bad_identifier(self, ident):
        with pytest.raises(SystemExit):
            main(["selscan", "--ident", ident])

    def test_zero_components(self):
        with pytest.raises(SystemExit):
            main(["selscan", "-k", "0"])
