"""Dense float and integer tensors with reverse-mode gradients."""

from __future__ import annotations

import abc
import enum
import math
import random
from collections.abc import Iterable, Iterator, Sequence

import numpy as np

_FLOAT = np.float32
_INT = np.int32


class RequiresGradient(enum.Enum):
    """Whether a tensor takes part in gradient computation."""

    TRUE = True
    FALSE = False

    def __bool__(self) -> bool:
        return bool(self.value)


class Initializer(enum.Enum):
    """Random initialization schemes for tensor values."""

    HE = "he"


class Normal:
    """Normal distribution producing one sample per call."""

    def __init__(self, mean: float, standard_deviation: float) -> None:
        if standard_deviation < 0:
            raise ValueError("standard deviation must not be negative")
        self.mean = float(mean)
        self.standard_deviation = float(standard_deviation)
        self._generator = random.Random()

    def generate(self) -> float:
        """Draw one sample."""
        return self._generator.gauss(self.mean, self.standard_deviation)


def _as_shape(shape: Iterable[int]) -> tuple[int, ...]:
    dims = tuple(int(dim) for dim in shape)
    if any(dim < 0 for dim in dims):
        raise ValueError(f"invalid shape {dims}")
    return dims


def _format_floats(values: Iterable[float]) -> str:
    return "[" + "".join(f"{value:g}, " for value in values) + "]"


def _reduce_to_shape(gradient: np.ndarray, shape: tuple[int, ...]) -> np.ndarray:
    """Sum a broadcast gradient back down to ``shape``."""
    while gradient.ndim > len(shape):
        gradient = gradient.sum(axis=0)
    for axis, size in enumerate(shape):
        if size == 1 and gradient.shape[axis] != 1:
            gradient = gradient.sum(axis=axis, keepdims=True)
    return gradient


class _Function(abc.ABC):
    """A graph node computing one tensor from input tensors."""

    shape: tuple[int, ...]

    def __init__(self, *inputs: Tensor) -> None:
        self.inputs = inputs

    @abc.abstractmethod
    def forward(self, *values: np.ndarray) -> np.ndarray:
        """Compute the output from the inputs' values."""

    @abc.abstractmethod
    def backward(
        self, output: np.ndarray, gradient: np.ndarray
    ) -> Sequence[np.ndarray | None]:
        """Return the gradient for each input, or None where not needed."""


class Tensor:
    """A float tensor that is either a leaf or the result of a function."""

    def __init__(
        self,
        shape: Iterable[int],
        requires_gradient: bool | RequiresGradient = False,
        detached: bool = False,
    ) -> None:
        dims = _as_shape(shape)
        self._data = np.zeros(dims, dtype=_FLOAT)
        self._requires_gradient = bool(requires_gradient)
        self._detached = bool(detached)
        self._function: _Function | None = None
        self._gradient: np.ndarray | None = (
            np.zeros(dims, dtype=_FLOAT)
            if self._requires_gradient and not self._detached
            else None
        )

    @classmethod
    def _from_function(cls, function: _Function) -> Tensor:
        tensor = cls(function.shape, detached=True)
        tensor._function = function
        tensor._requires_gradient = any(
            item._requires_gradient for item in function.inputs
        )
        return tensor

    def reshape(self, shape: Iterable[int]) -> None:
        """Change the shape; values are kept when the size is unchanged."""
        dims = _as_shape(shape)
        if math.prod(dims) == self._data.size:
            self._data = self._data.reshape(dims)
        else:
            self._data = np.zeros(dims, dtype=_FLOAT)
        if self._gradient is not None:
            if self._gradient.size == self._data.size:
                self._gradient = self._gradient.reshape(dims)
            else:
                self._gradient = np.zeros(dims, dtype=_FLOAT)

    def perform(self) -> None:
        """Evaluate the graph that produces this tensor."""
        self._evaluate()

    def _evaluate(self) -> np.ndarray:
        if self._function is not None:
            values = [item._evaluate() for item in self._function.inputs]
            result = self._function.forward(*values)
            self._data = np.asarray(result, dtype=_FLOAT).reshape(self._data.shape)
        return self._data

    def backward(self, gradient: Tensor | np.ndarray) -> None:
        """Propagate ``gradient`` back to the leaves that require it."""
        values = np.asarray(
            gradient.data() if isinstance(gradient, Tensor) else gradient,
            dtype=_FLOAT,
        )
        if values.size != self._data.size:
            raise ValueError("gradient size does not match tensor size")
        self._propagate(values.reshape(self._data.shape).copy())

    def _propagate(self, gradient: np.ndarray) -> None:
        if not self._requires_gradient:
            return
        if self._function is None:
            if self._gradient is not None:
                self._gradient += gradient.reshape(self._gradient.shape)
            return
        gradients = self._function.backward(
            self._data, gradient.reshape(self._data.shape)
        )
        for item, item_gradient in zip(self._function.inputs, gradients):
            if item_gradient is not None and item._requires_gradient:
                item._propagate(np.asarray(item_gradient, dtype=_FLOAT))

    def fill(self, value: Initializer | float | Iterable[float]) -> None:
        """Fill with an initializer, a single value or a flat list of values."""
        if isinstance(value, Initializer):
            self._fill_he()
        elif isinstance(value, (int, float, np.number)):
            self._data.fill(value)
        else:
            values = np.asarray(list(value), dtype=_FLOAT)
            if values.size != self._data.size:
                raise ValueError(
                    f"expected {self._data.size} values, got {values.size}"
                )
            self._data[...] = values.reshape(self._data.shape)

    def _fill_he(self) -> None:
        size = self._data.size
        if self._data.ndim >= 2 and self._data.shape[0]:
            fan_in = size // self._data.shape[0]
        else:
            fan_in = size
        if fan_in == 0:
            return
        distribution = Normal(0.0, math.sqrt(2.0 / fan_in))
        samples = [distribution.generate() for _ in range(size)]
        self._data[...] = np.asarray(samples, dtype=_FLOAT).reshape(self._data.shape)

    def copy(self, other: Tensor) -> None:
        """Take over the values and shape of ``other``."""
        self._data = np.array(other.data(), dtype=_FLOAT, copy=True)
        if self._gradient is not None and self._gradient.shape != self._data.shape:
            self._gradient = np.zeros(self._data.shape, dtype=_FLOAT)

    def gradient(self) -> Tensor:
        """Return the accumulated gradient as a new tensor."""
        if self._gradient is None:
            raise ValueError("tensor holds no gradient")
        result = Tensor(self._gradient.shape)
        result._data = self._gradient.copy()
        return result

    def data(self) -> np.ndarray:
        return self._data

    def shape(self) -> tuple[int, ...]:
        return tuple(self._data.shape)

    def rank(self) -> int:
        return self._data.ndim

    def requires_gradient(self) -> bool:
        return self._requires_gradient

    def __iter__(self) -> Iterator[float]:
        return iter(self._data.ravel().tolist())

    def __len__(self) -> int:
        return int(self._data.size)

    def __add__(self, other: Tensor) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return Tensor._from_function(_Addition(self, other))

    def __mul__(self, other: Tensor) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return Tensor._from_function(_Multiplication(self, other))

    def __matmul__(self, other: Tensor) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return matmul(self, other)

    def __repr__(self) -> str:
        return f"Tensor(shape={self.shape()}, data={self})"

    def __str__(self) -> str:
        return _format_floats(self)


def _broadcast(first: Tensor, second: Tensor) -> tuple[int, ...]:
    try:
        return tuple(np.broadcast_shapes(first.shape(), second.shape()))
    except ValueError as error:
        raise ValueError(
            f"shape mismatch between {first.shape()} and {second.shape()}"
        ) from error


class _Addition(_Function):
    def __init__(self, first: Tensor, second: Tensor) -> None:
        super().__init__(first, second)
        self.shape = _broadcast(first, second)

    def forward(self, first: np.ndarray, second: np.ndarray) -> np.ndarray:
        return first + second

    def backward(self, output, gradient):
        first, second = self.inputs
        return (
            _reduce_to_shape(gradient, first.shape()),
            _reduce_to_shape(gradient, second.shape()),
        )


class _Multiplication(_Function):
    def __init__(self, first: Tensor, second: Tensor) -> None:
        super().__init__(first, second)
        self.shape = _broadcast(first, second)

    def forward(self, first: np.ndarray, second: np.ndarray) -> np.ndarray:
        return first * second

    def backward(self, output, gradient):
        first, second = self.inputs
        return (
            _reduce_to_shape(gradient * second.data(), first.shape()),
            _reduce_to_shape(gradient * first.data(), second.shape()),
        )


class _Matmul(_Function):
    def __init__(self, first: Tensor, second: Tensor) -> None:
        if first.rank() != 2 or second.rank() != 2:
            raise ValueError("rank mismatch")
        if first.shape()[1] != second.shape()[0]:
            raise ValueError("shape mismatch between inner dimensions")
        super().__init__(first, second)
        self.shape = (first.shape()[0], second.shape()[1])

    def forward(self, first: np.ndarray, second: np.ndarray) -> np.ndarray:
        return first @ second

    def backward(self, output, gradient):
        first, second = self.inputs
        return (gradient @ second.data().T, first.data().T @ gradient)


def matmul(first: Tensor, second: Tensor) -> Tensor:
    """Matrix product of two rank-2 tensors."""
    return Tensor._from_function(_Matmul(first, second))


class IntTensor:
    """An integer tensor, used for class targets."""

    def __init__(self, shape: Iterable[int]) -> None:
        self._data = np.zeros(_as_shape(shape), dtype=_INT)

    def reshape(self, shape: Iterable[int]) -> None:
        """Change the shape; values are kept when the size is unchanged."""
        dims = _as_shape(shape)
        if math.prod(dims) == self._data.size:
            self._data = self._data.reshape(dims)
        else:
            self._data = np.zeros(dims, dtype=_INT)

    def fill(self, value: int | Iterable[int]) -> None:
        """Fill with a single value or a flat list of values."""
        if isinstance(value, (int, np.integer)):
            self._data.fill(value)
            return
        values = np.asarray(list(value), dtype=_INT)
        if values.size != self._data.size:
            raise ValueError(f"expected {self._data.size} values, got {values.size}")
        self._data[...] = values.reshape(self._data.shape)

    def copy(self, other: IntTensor) -> None:
        """Take over the values and shape of ``other``."""
        self._data = np.array(other.data(), dtype=_INT, copy=True)

    def data(self) -> np.ndarray:
        return self._data

    def shape(self) -> tuple[int, ...]:
        return tuple(self._data.shape)

    def rank(self) -> int:
        return self._data.ndim

    def __iter__(self) -> Iterator[int]:
        return iter(self._data.ravel().tolist())

    def __len__(self) -> int:
        return int(self._data.size)

    def __str__(self) -> str:
        return "[" + "".join(f"{value}, " for value in self) + "]"