"""Main CLI entry point.

Defines the Click group and shared utilities.
"""

from __future__ import annotations

from typing import Any

import click

from tweetvae import __version__

ENCODER_HELP = "Encoder checkpoint directory."
DECODER_HELP = "Decoder checkpoint directory."


def load_checkpoint(kind: str, path: str) -> Any:
    """Load an encoder or decoder, turning failures into a ClickException.

    :param str kind: "encoder" or "decoder".
    :param str path: Checkpoint directory.
    :raises click.ClickException: If the checkpoint is missing or broken.
    :return Any: The loaded module.
    """
    from tweetvae.ckpt import CheckpointError, load_decoder, load_encoder

    loader = load_encoder if kind == "encoder" else load_decoder
    try:
        return loader(path)
    except (FileNotFoundError, CheckpointError) as e:
        raise click.ClickException(f"load {kind}: {e}") from e


@click.group()
@click.version_option(version=__version__, prog_name="tweetvae")
def cli() -> None:
    """tweetvae: a byte-level LSTM variational autoencoder for short texts."""


# Import and register subcommands
from tweetvae.cli.train import train  # noqa: E402

cli.add_command(train)

from tweetvae.cli.encode import encode  # noqa: E402

cli.add_command(encode)

from tweetvae.cli.reconstruct import reconstruct  # noqa: E402

cli.add_command(reconstruct)

from tweetvae.cli.stats import stats  # noqa: E402

cli.add_command(stats)
