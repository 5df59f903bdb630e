"""Layers and models built from the differentiable functions."""

from __future__ import annotations

import abc
from collections.abc import Iterable

from .convolution import conv2d, maxpool2d
from .functional import flatten, linear, log_softmax, relu, softmax
from .optimizers import NoOptimization, Optimizer
from .tensor import Initializer, Tensor


class Model(abc.ABC):
    """A callable computation with optional trainable parameters."""

    def __init__(self) -> None:
        self.optimizer: Optimizer = NoOptimization()

    def __call__(self, input: Tensor) -> Tensor:
        return self.forward(input)

    @abc.abstractmethod
    def forward(self, input: Tensor) -> Tensor:
        """Build the output tensor from ``input``."""

    def parameters(self) -> list[Tensor]:
        """Trainable tensors of this model; none by default."""
        return []

    def set_optimizer(self, optimizer: Optimizer) -> None:
        """Register this model's parameters with ``optimizer``."""
        optimizer.add_parameter(self.parameters())

    def configure_optimizer(self, optimizer: Optimizer) -> None:
        """Hand the parameters to ``optimizer`` and keep it as this model's."""
        self.set_optimizer(optimizer)
        self.optimizer = optimizer


class Linear(Model):
    """Fully connected layer computing ``x @ W.T + b``."""

    def __init__(
        self,
        input_features: int,
        output_features: int,
        distribution: Initializer = Initializer.HE,
    ) -> None:
        super().__init__()
        self.weight = Tensor((output_features, input_features), True)
        self.bias = Tensor((1, output_features), True)
        self.weight.fill(distribution)
        self.bias.fill(0.0)

    def forward(self, input: Tensor) -> Tensor:
        return linear(input, self.weight, self.bias)

    def parameters(self) -> list[Tensor]:
        return [self.weight, self.bias]

    def set_optimizer(self, optimizer: Optimizer) -> None:
        optimizer.add_parameter(self.parameters())


class Conv2d(Model):
    """Two-dimensional convolution with square kernels."""

    def __init__(
        self,
        in_channels: int,
        out_channels: int,
        kernel_size: int,
        stride: int = 1,
        padding: int = 0,
        distribution: Initializer = Initializer.HE,
    ) -> None:
        super().__init__()
        self.weight = Tensor((out_channels, in_channels, kernel_size, kernel_size), True)
        self.bias = Tensor((1, out_channels), True)
        self.weight.fill(distribution)
        self.bias.fill(0.0)
        self.kernel_size = kernel_size
        self.stride = stride
        self.padding = padding

    def forward(self, input: Tensor) -> Tensor:
        return conv2d(input, self.weight, self.bias, self.stride, self.padding)

    def parameters(self) -> list[Tensor]:
        return [self.weight, self.bias]

    def set_optimizer(self, optimizer: Optimizer) -> None:
        optimizer.add_parameter(self.parameters())


class MaxPool2d(Model):
    """Max pooling; a stride of 0 means a stride equal to the kernel size."""

    def __init__(self, kernel_size: int, stride: int = 0) -> None:
        super().__init__()
        self.kernel_size = kernel_size
        self.stride = stride if stride else kernel_size

    def forward(self, input: Tensor) -> Tensor:
        return maxpool2d(input, self.kernel_size, self.stride)


class Flatten(Model):
    """Merge the dimensions from ``start_dim`` onwards."""

    def __init__(self, start_dim: int = 1) -> None:
        super().__init__()
        self.start_dim = start_dim

    def forward(self, input: Tensor) -> Tensor:
        return flatten(input, self.start_dim)


class ReLU(Model):
    """Rectified linear activation."""

    def forward(self, input: Tensor) -> Tensor:
        return relu(input)


class Softmax(Model):
    """Softmax over axis 0 or 1."""

    def __init__(self, axis: int) -> None:
        super().__init__()
        self.axis = axis

    def forward(self, input: Tensor) -> Tensor:
        return softmax(input, self.axis)


class LogSoftmax(Model):
    """Log-softmax over axis 0 or 1."""

    def __init__(self, axis: int) -> None:
        super().__init__()
        self.axis = axis

    def forward(self, input: Tensor) -> Tensor:
        return log_softmax(input, self.axis)


class Sequence(Model):
    """Layers applied one after another."""

    def __init__(self, *args: Model) -> None:
        super().__init__()
        for layer in args:
            if not isinstance(layer, Model):
                raise TypeError(f"not a layer: {layer!r}")
        self.layers: tuple[Model, ...] = args

    def forward(self, input: Tensor) -> Tensor:
        for layer in self.layers:
            input = layer.forward(input)
        return input

    def parameters(self) -> list[Tensor]:
        return [parameter for layer in self.layers for parameter in layer.parameters()]

    def set_optimizer(self, optimizer: Optimizer) -> None:
        for layer in self.layers:
            layer.set_optimizer(optimizer)

    def __iter__(self) -> Iterable[Model]:
        return iter(self.layers)