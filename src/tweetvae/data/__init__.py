"""Data loading for tweetvae.

Two halves:
- samples: CSV records -> list of byte strings, epoch batching
- batch: byte strings -> padded, masked `Batch` objects
"""

from __future__ import annotations

from .batch import EmptySampleError, build_batch, build_reversed_input
from .samples import SampleList, SampleReadError, iterate_batches, read_records, read_sample_list

__all__ = [
    "EmptySampleError",
    "SampleList",
    "SampleReadError",
    "build_batch",
    "build_reversed_input",
    "iterate_batches",
    "read_records",
    "read_sample_list",
]
