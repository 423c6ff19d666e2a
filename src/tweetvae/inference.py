"""Inference helpers: reconstruction, latent interpolation, CSV encoding.

All of these use the encoder's posterior *mean* as the latent code; sampling is
a training-time concern.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

import numpy as np

from tweetvae.data import EmptySampleError
from tweetvae.decoder import DEFAULT_MAX_DECODE_LEN, Decoder
from tweetvae.encoder import Encoder

logger = logging.getLogger(__name__)


def _as_bytes(text: str | bytes) -> bytes:
    return text.encode("utf-8") if isinstance(text, str) else bytes(text)


def reconstruct(
    encoder: Encoder,
    decoder: Decoder,
    text: str | bytes,
    *,
    max_len: int = DEFAULT_MAX_DECODE_LEN,
) -> bytes:
    """Encode one string and decode its posterior mean.

    :raises EmptySampleError: If `text` is empty.
    """
    mean, _ = encoder.encode([_as_bytes(text)])
    return decoder.unguided(mean[0], max_len=max_len)


def interpolate(
    encoder: Encoder,
    decoder: Decoder,
    start: str | bytes,
    end: str | bytes,
    stops: int,
    *,
    max_len: int = DEFAULT_MAX_DECODE_LEN,
) -> list[tuple[float, bytes]]:
    """Decode evenly spaced points on the segment between two latent means.

    Stop i sits at fraction i / (stops - 1) from `start` towards `end`. With a
    single stop there is no segment: the result is the direct reconstruction of
    `start` at fraction 0 and `end` is not encoded.

    :param Encoder encoder: Trained encoder.
    :param Decoder decoder: Trained decoder.
    :param start: Start text.
    :param end: End text (ignored when stops == 1).
    :param int stops: Number of points, >= 1.
    :param int max_len: Per-point decode bound.
    :raises ValueError: If stops < 1.
    :return list[tuple[float, bytes]]: (fraction, decoded bytes) per stop.
    """
    if stops < 1:
        raise ValueError(f"stops must be at least 1, got {stops}")
    if stops == 1:
        return [(0.0, reconstruct(encoder, decoder, start, max_len=max_len))]

    means, _ = encoder.encode([_as_bytes(start), _as_bytes(end)])
    start_vec, end_vec = means[0], means[1]

    results = []
    for i in range(stops):
        frac = i / (stops - 1)
        latent = (1 - frac) * start_vec + frac * end_vec
        results.append((frac, decoder.unguided(latent, max_len=max_len)))
    return results


def encode_records(
    encoder: Encoder,
    records: Sequence[list[str]],
    *,
    batch_size: int = 8,
) -> Iterator[list[str]]:
    """Append `%f`-formatted latent means to CSV records, in input order.

    The last field of each record is the text to encode. Records are processed
    in batches of `batch_size` and yielded as soon as their batch is done.

    :param Encoder encoder: Trained encoder.
    :param records: CSV records (each with at least one field).
    :param int batch_size: Records encoded per forward pass.
    :raises ValueError: If batch_size < 1.
    :raises EmptySampleError: If a record's body is empty.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    for start in range(0, len(records), batch_size):
        chunk = records[start : start + batch_size]
        bodies = []
        for offset, record in enumerate(chunk):
            body = record[-1].encode("utf-8")
            if not body:
                raise EmptySampleError(f"record {start + offset} has an empty body")
            bodies.append(body)

        means, _ = encoder.encode(bodies)
        means = np.asarray(means)
        for record, mean in zip(chunk, means, strict=True):
            yield [*record, *(f"{x:f}" for x in mean)]
        logger.info("Encoded %d samples", start + len(chunk))


def write_records(path: str | Path, rows: Iterable[list[str]]) -> int:
    """Write CSV rows to `path`, flushing after each row. Returns the row count."""
    count = 0
    with Path(path).open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        for row in rows:
            writer.writerow(row)
            f.flush()
            count += 1
    return count
