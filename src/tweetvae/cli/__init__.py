"""CLI entrypoints for tweetvae.

Invoked via ``pyproject.toml`` entrypoints::

    tweetvae train --data tweets.csv
    tweetvae encode --data tweets.csv --out encoded.csv
    tweetvae reconstruct --tweet "hello world"
    tweetvae stats --data tweets.csv

Keep these modules thin: argument parsing + calling into library code.
"""

from __future__ import annotations

__all__ = ["cli"]

from tweetvae.cli.main import cli
