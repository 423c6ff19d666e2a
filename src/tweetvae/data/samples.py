"""Sample lists: CSV reading and epoch batching.

Data files are CSV. The last field of every record is the text body; the other
fields are carried along untouched (the `encode` command writes them back out).
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

SampleList = list[bytes]


class SampleReadError(ValueError):
    """Raised when a data file cannot be read or is malformed."""


def read_records(path: str | Path) -> list[list[str]]:
    """Read every CSV record of a data file.

    :param path: CSV file path.
    :raises SampleReadError: If the file is unreadable, malformed, or has an empty row.
    :return list[list[str]]: Records in file order.
    """
    path = Path(path)
    try:
        with path.open(newline="", encoding="utf-8") as f:
            records = list(csv.reader(f))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise SampleReadError(f"read samples: {e}") from e

    for i, record in enumerate(records):
        if len(record) == 0:
            raise SampleReadError(f"read samples: empty row at line {i + 1} of {path}")
    return records


def read_sample_list(path: str | Path) -> SampleList:
    """Read the text bodies of a CSV data file as UTF-8 bytes.

    Records whose body is blank are skipped.

    :param path: CSV file path.
    :raises SampleReadError: See `read_records`.
    :return SampleList: Non-empty byte strings.
    """
    samples: SampleList = []
    skipped = 0
    for record in read_records(path):
        body = record[-1]
        if not body.strip():
            skipped += 1
            continue
        samples.append(body.encode("utf-8"))
    if skipped:
        logger.debug("Skipped %d records with an empty body", skipped)
    return samples


def iterate_batches(
    samples: SampleList,
    batch_size: int,
    *,
    rng: np.random.Generator,
    shuffle: bool = True,
) -> Iterator[SampleList]:
    """Yield fixed-size batches forever, reshuffling at every epoch.

    The trailing partial batch of an epoch is dropped. If there are fewer
    samples than `batch_size`, every batch holds all samples.

    :param SampleList samples: Samples to draw from.
    :param int batch_size: Desired samples per batch.
    :param np.random.Generator rng: Generator used for shuffling.
    :param bool shuffle: If False, keep file order.
    :raises ValueError: If there are no samples or batch_size < 1.
    """
    if not samples:
        raise ValueError("cannot batch an empty sample list")
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    size = min(batch_size, len(samples))
    while True:
        order = rng.permutation(len(samples)) if shuffle else np.arange(len(samples))
        for start in range(0, len(order) - size + 1, size):
            yield [samples[i] for i in order[start : start + size]]
