"""Optimizers that update parameter tensors from their gradients."""

from __future__ import annotations

import abc
from collections.abc import Iterable

import numpy as np

from .tensor import Tensor


class Optimizer(abc.ABC):
    """Holds parameters and updates each of them on every step."""

    def __init__(self) -> None:
        self._parameters: list[Tensor] = []

    def add_parameter(self, parameters: Tensor | Iterable[Tensor]) -> None:
        """Register one parameter or several."""
        if isinstance(parameters, Tensor):
            self._parameters.append(parameters)
        else:
            self._parameters.extend(parameters)

    def step(self) -> None:
        """Update every registered parameter."""
        for parameter in self._parameters:
            self.update(parameter)

    @abc.abstractmethod
    def update(self, parameter: Tensor) -> None:
        """Update one parameter."""


class NoOptimization(Optimizer):
    """Leaves parameters unchanged."""

    def update(self, parameter: Tensor) -> None:
        return None


class SGD(Optimizer):
    """Plain stochastic gradient descent."""

    def __init__(self, learning_rate: float) -> None:
        super().__init__()
        self.learning_rate = float(learning_rate)

    def update(self, parameter: Tensor) -> None:
        """Step against the gradient, then reset the accumulated gradient."""
        gradient = parameter.gradient().data()
        parameter.data()[...] -= np.float32(self.learning_rate) * gradient
        # gradients accumulate across backward passes, so clear after use
        parameter._gradient[...] = 0