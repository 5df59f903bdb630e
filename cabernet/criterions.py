"""Loss criteria for classification."""

from __future__ import annotations

import numpy as np

from .tensor import IntTensor, Tensor


class NLLLoss:
    """Mean negative log likelihood of log-probabilities at the target classes."""

    def __init__(self, output: Tensor, targets: IntTensor) -> None:
        if output.rank() != 2:
            raise ValueError("output must be 2D: [batch, classes]")
        batch, classes = output.shape()
        if len(targets) != batch:
            raise ValueError("number of targets does not match the batch size")
        labels = np.asarray(list(targets), dtype=np.int64)
        if labels.size and (labels.min() < 0 or labels.max() >= classes):
            raise ValueError("target class out of range")
        self._output = output
        self._labels = labels

    def loss(self) -> float:
        """Evaluate the output and return the mean loss."""
        self._output.perform()
        picked = self._output.data()[np.arange(self._labels.size), self._labels]
        return float(-picked.mean())

    def backward(self) -> None:
        """Propagate the loss gradient into the output's graph."""
        self._output.perform()
        batch = self._labels.size
        gradient = np.zeros(self._output.shape(), dtype=np.float32)
        gradient[np.arange(batch), self._labels] = -1.0 / batch
        self._output.backward(gradient)