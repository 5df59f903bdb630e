"""Batched loading of IDX-format image and label files."""

from __future__ import annotations

import os
import struct

import numpy as np

from .tensor import IntTensor, Tensor

_HEADER_WORD = struct.Struct(">I")


def _read_words(data: bytes, count: int) -> tuple[int, ...]:
    size = _HEADER_WORD.size * count
    if len(data) < size:
        raise ValueError("file too short for its header")
    return struct.unpack(f">{count}I", data[:size])


def _chunk(payload: bytes, start: int, length: int) -> np.ndarray:
    """Bytes at ``start``, zero-padded to ``length`` past the end of the file."""
    values = np.zeros(length, dtype=np.uint8)
    piece = np.frombuffer(payload[start : start + length], dtype=np.uint8)
    values[: piece.size] = piece
    return values


class Dataset:
    """Features and targets split into fixed-size batches."""

    def __init__(
        self, batch_size: int, shuffle: bool = False, reserve_size: int = 60000
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch size must be positive")
        self.batch_size = batch_size
        self.shuffle = shuffle
        self.reserve_size = reserve_size
        self.features_size = 0
        self._features: list[Tensor] = []
        self._targets: list[IntTensor] = []

    def read_targets(self, filepath: str | os.PathLike[str]) -> None:
        """Append label batches read from an IDX label file."""
        with open(filepath, "rb") as file:
            data = file.read()
        _magic, count = _read_words(data, 2)
        payload = data[8:]
        batches = []
        for start in range(0, count, self.batch_size):
            batch = IntTensor((self.batch_size,))
            batch.fill(_chunk(payload, start, self.batch_size).tolist())
            batches.append(batch)
        # the last batch is incomplete in general, so it is dropped
        self._targets.extend(batches[:-1])

    def read_features(self, filepath: str | os.PathLike[str]) -> None:
        """Append image batches, scaled to [0, 1], read from an IDX image file."""
        with open(filepath, "rb") as file:
            data = file.read()
        _magic, count, rows, cols = _read_words(data, 4)
        self.features_size = rows * cols
        payload = data[16:]
        batch_bytes = self.batch_size * self.features_size
        batches = []
        for index, start in enumerate(range(0, count, self.batch_size)):
            batch = Tensor((self.batch_size, self.features_size), False, True)
            pixels = _chunk(payload, index * batch_bytes, batch_bytes)
            batch.fill(pixels.astype(np.float32) / np.float32(255.0))
            batches.append(batch)
        self._features.extend(batches[:-1])

    def clear(self) -> None:
        """Drop all loaded batches."""
        self._features.clear()
        self._targets.clear()

    def __len__(self) -> int:
        return len(self._features)

    def features(self) -> list[Tensor]:
        return self._features

    def targets(self) -> list[IntTensor]:
        return self._targets