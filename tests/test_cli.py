"""CLI tests consolidated by command."""

from __future__ import annotations

import csv
from pathlib import Path

import pytest
from click.testing import CliRunner

from tests.helpers.config_factories import SMOKE_CONFIG, make_smoke_cfg, write_samples_csv
from tweetvae import __version__
from tweetvae.cli import cli
from tweetvae.config import Config
from tweetvae.train import run


@pytest.fixture(scope="module")
def trained(tmp_path_factory: pytest.TempPathFactory) -> tuple[Config, Path]:
    """A tiny encoder/decoder pair trained for two steps, shared by the module."""
    cfg, data_path = make_smoke_cfg(tmp_path_factory.mktemp("trained"))
    run(cfg)
    return cfg, data_path


def test_version_option() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    for name in ("train", "encode", "reconstruct", "stats"):
        assert name in result.output


def test_train_requires_data() -> None:
    result = CliRunner().invoke(cli, ["train"])
    assert result.exit_code == 1
    assert "Missing --data" in result.output


def test_train_reports_bad_override() -> None:
    result = CliRunner().invoke(cli, ["train", "--data", "x.csv", "-o", "train.nope=1"])
    assert result.exit_code == 1
    assert "Unknown config key" in result.output


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("model: [unclosed\n", "cannot parse"),
        ("model:\n  latent_size: abc\n", "model.latent_size must be int"),
    ],
)
def test_train_reports_bad_config_file(tmp_path: Path, body: str, expected: str) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(body)
    result = CliRunner().invoke(cli, ["train", "--config", str(path), "--data", "x.csv"])
    assert result.exit_code == 1
    assert "Config validation failed" in result.output
    assert expected in result.output


def test_train_reports_unreadable_data(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli,
        [
            "train",
            "--config",
            str(SMOKE_CONFIG),
            "--data",
            str(tmp_path / "missing.csv"),
            "--encoder",
            str(tmp_path / "enc"),
            "--decoder",
            str(tmp_path / "dec"),
        ],
    )
    assert result.exit_code == 1
    assert "read samples" in result.output


def test_train_runs_and_saves(tmp_path: Path) -> None:
    data = write_samples_csv(tmp_path / "data.csv", ["hi", "yo", "abc"])
    result = CliRunner().invoke(
        cli,
        [
            "train",
            "--config",
            str(SMOKE_CONFIG),
            "--data",
            str(data),
            "--encoder",
            str(tmp_path / "enc"),
            "--decoder",
            str(tmp_path / "dec"),
            "--steps",
            "2",
            "--kl",
            "0.5",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "after 2 iterations" in result.output
    assert (tmp_path / "enc" / "meta.json").exists()
    assert (tmp_path / "dec" / "meta.json").exists()


def test_encode_appends_columns(trained: tuple[Config, Path], tmp_path: Path) -> None:
    cfg, data_path = trained
    out = tmp_path / "out.csv"
    result = CliRunner().invoke(
        cli,
        ["encode", "--data", str(data_path), "--out", str(out),
         "--encoder", cfg.checkpoint.encoder_path, "--batch", "3"],
    )
    assert result.exit_code == 0, result.output

    with data_path.open(newline="", encoding="utf-8") as f:
        records = list(csv.reader(f))
    with out.open(newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert [r[:2] for r in rows] == records
    assert all(len(r) == 2 + cfg.model.latent_size for r in rows)


def test_encode_requires_data() -> None:
    result = CliRunner().invoke(cli, ["encode"])
    assert result.exit_code == 2
    assert "--data" in result.output


def test_reconstruct_prints_decoded_text(trained: tuple[Config, Path]) -> None:
    cfg, _ = trained
    result = CliRunner().invoke(
        cli,
        ["reconstruct", "--tweet", "hi", "--encoder", cfg.checkpoint.encoder_path,
         "--decoder", cfg.checkpoint.decoder_path, "--max-len", "8"],
    )
    assert result.exit_code == 0, result.output
    assert "Decoded to: " in result.output


def test_reconstruct_interpolates(trained: tuple[Config, Path]) -> None:
    cfg, _ = trained
    result = CliRunner().invoke(
        cli,
        ["reconstruct", "--tweet", "hi", "--end", "yo", "--stops", "3",
         "--encoder", cfg.checkpoint.encoder_path, "--decoder", cfg.checkpoint.decoder_path,
         "--max-len", "8"],
    )
    assert result.exit_code == 0, result.output
    for prefix in ("0.000: ", "0.500: ", "1.000: "):
        assert prefix in result.output


def test_reconstruct_interpolation_needs_end() -> None:
    result = CliRunner().invoke(cli, ["reconstruct", "--tweet", "hi", "--stops", "3"])
    assert result.exit_code == 2
    assert "--end" in result.output


def test_reconstruct_rejects_zero_stops() -> None:
    result = CliRunner().invoke(cli, ["reconstruct", "--tweet", "hi", "--stops", "0"])
    assert result.exit_code == 2


def test_reconstruct_reports_missing_encoder(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        cli, ["reconstruct", "--tweet", "hi", "--encoder", str(tmp_path / "nope")]
    )
    assert result.exit_code == 1
    assert "load encoder" in result.output


def test_stats_prints_one_line_per_dimension(trained: tuple[Config, Path]) -> None:
    cfg, data_path = trained
    result = CliRunner().invoke(
        cli,
        ["stats", "--data", str(data_path), "--encoder", cfg.checkpoint.encoder_path,
         "--num", "3", "--batch", "2", "--seed", "0"],
    )
    assert result.exit_code == 0, result.output
    lines = [line for line in result.output.splitlines() if "\tE[μ]=" in line]
    assert len(lines) == cfg.model.latent_size
    assert lines[0].startswith("0\t")
