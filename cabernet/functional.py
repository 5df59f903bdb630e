"""Differentiable functions on float tensors."""

from __future__ import annotations

import math

import numpy as np

from .tensor import Tensor, _Function


def _matrix(values: np.ndarray) -> np.ndarray:
    """View values as rows by the first dimension and the rest as columns."""
    return values.reshape(values.shape[0], -1)


def _check_axis(input: Tensor, axis: int) -> None:
    if axis not in (0, 1):
        raise ValueError("axis should be 0 or 1")
    if input.rank() == 0:
        raise ValueError("input must have at least one dimension")


class _Linear(_Function):
    def __init__(self, input: Tensor, weight: Tensor, bias: Tensor) -> None:
        if input.rank() != 2 or weight.rank() != 2:
            raise ValueError("rank mismatch")
        if input.shape()[-1] != weight.shape()[-1]:
            raise ValueError("shape mismatch between input and weight")
        if bias.shape()[-1:] != weight.shape()[:1]:
            raise ValueError("shape mismatch between bias and weight")
        super().__init__(input, weight, bias)
        self.shape = (input.shape()[0], weight.shape()[0])

    def forward(self, input, weight, bias):
        return input @ weight.T + bias.reshape(-1)

    def backward(self, output, gradient):
        input, weight, bias = self.inputs
        return (
            gradient @ weight.data() if input.requires_gradient() else None,
            gradient.T @ input.data() if weight.requires_gradient() else None,
            gradient.sum(axis=0).reshape(bias.shape())
            if bias.requires_gradient()
            else None,
        )


class _ReLU(_Function):
    def __init__(self, input: Tensor) -> None:
        super().__init__(input)
        self.shape = input.shape()

    def forward(self, input):
        return np.maximum(input, 0)

    def backward(self, output, gradient):
        return (gradient * (output > 0),)


class _Softmax(_Function):
    def __init__(self, input: Tensor, axis: int) -> None:
        _check_axis(input, axis)
        super().__init__(input)
        self.shape = input.shape()
        self.axis = axis

    def forward(self, input):
        values = _matrix(input)
        exponent = np.exp(values - values.max(axis=self.axis, keepdims=True))
        return exponent / exponent.sum(axis=self.axis, keepdims=True)

    def backward(self, output, gradient):
        probabilities = _matrix(output)
        upstream = _matrix(gradient)
        weighted = (upstream * probabilities).sum(axis=self.axis, keepdims=True)
        return ((probabilities * (upstream - weighted)).reshape(output.shape),)


class _LogSoftmax(_Function):
    def __init__(self, input: Tensor, axis: int) -> None:
        _check_axis(input, axis)
        super().__init__(input)
        self.shape = input.shape()
        self.axis = axis

    def forward(self, input):
        values = _matrix(input)
        shifted = values - values.max(axis=self.axis, keepdims=True)
        return shifted - np.log(np.exp(shifted).sum(axis=self.axis, keepdims=True))

    def backward(self, output, gradient):
        upstream = _matrix(gradient)
        total = upstream.sum(axis=self.axis, keepdims=True)
        result = upstream - np.exp(_matrix(output)) * total
        return (result.reshape(output.shape),)


class _Flatten(_Function):
    def __init__(self, input: Tensor, start_dim: int) -> None:
        rank = input.rank()
        start = rank + start_dim if start_dim < 0 else start_dim
        if not 0 <= start < rank:
            raise ValueError("Invalid start_dim for Flatten")
        super().__init__(input)
        dims = input.shape()
        self.shape = dims[:start] + (math.prod(dims[start:]),)
        self.start_dim = start

    def forward(self, input):
        return input.reshape(self.shape)

    def backward(self, output, gradient):
        return (gradient.reshape(self.inputs[0].shape()),)


def linear(input: Tensor, weight: Tensor, bias: Tensor) -> Tensor:
    """Affine map ``input @ weight.T + bias``."""
    return Tensor._from_function(_Linear(input, weight, bias))


def relu(input: Tensor) -> Tensor:
    """Element-wise ``max(x, 0)``."""
    return Tensor._from_function(_ReLU(input))


def softmax(input: Tensor, axis: int) -> Tensor:
    """Softmax over axis 0 or 1 of the tensor viewed as a matrix."""
    return Tensor._from_function(_Softmax(input, axis))


def log_softmax(input: Tensor, axis: int) -> Tensor:
    """Logarithm of the softmax over axis 0 or 1."""
    return Tensor._from_function(_LogSoftmax(input, axis))


def flatten(input: Tensor, start_dim: int = 1) -> Tensor:
    """Merge all dimensions from ``start_dim`` onwards into one."""
    return Tensor._from_function(_Flatten(input, start_dim))