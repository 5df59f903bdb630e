"""Two-dimensional convolution and max pooling on NCHW tensors."""

from __future__ import annotations

import numpy as np

from .tensor import Tensor, _Function


def _output_size(size: int, kernel: int, stride: int, padding: int) -> int:
    span = size + 2 * padding - kernel
    if span < 0:
        raise ValueError("kernel does not fit into the padded input")
    return span // stride + 1


class _Conv2d(_Function):
    def __init__(
        self,
        input: Tensor,
        weight: Tensor,
        bias: Tensor | None,
        stride: int,
        padding: int,
    ) -> None:
        if input.rank() != 4:
            raise ValueError("Input must be 4D: [N,C,H,W]")
        if weight.rank() != 4:
            raise ValueError("Weight must be 4D: [out_ch,in_ch,kH,kW]")
        if bias is not None and bias.rank() != 2:
            raise ValueError("Bias must be 2D: [1,out_ch]")
        if stride < 1:
            raise ValueError("stride must be positive")
        if padding < 0:
            raise ValueError("padding must not be negative")

        batch, channels, height, width = input.shape()
        out_channels, weight_channels, kernel_height, kernel_width = weight.shape()
        if weight_channels != channels:
            raise ValueError("shape mismatch between input and weight channels")
        if bias is not None and bias.shape()[1] != out_channels:
            raise ValueError("shape mismatch between bias and weight")

        inputs = (input, weight) if bias is None else (input, weight, bias)
        super().__init__(*inputs)
        self.stride = stride
        self.padding = padding
        self.kernel = (kernel_height, kernel_width)
        self.input_size = (height, width)
        self.output_size = (
            _output_size(height, kernel_height, stride, padding),
            _output_size(width, kernel_width, stride, padding),
        )
        self.shape = (batch, out_channels, *self.output_size)

    def _windows(self, offset_h: int, offset_w: int) -> tuple[slice, slice]:
        out_h, out_w = self.output_size
        step = self.stride
        return (
            slice(offset_h, offset_h + step * (out_h - 1) + 1, step),
            slice(offset_w, offset_w + step * (out_w - 1) + 1, step),
        )

    def _im2col(self, values: np.ndarray) -> np.ndarray:
        """Unfold patches into columns of shape (N, C*kH*kW, oH*oW)."""
        batch, channels = values.shape[:2]
        kernel_h, kernel_w = self.kernel
        out_h, out_w = self.output_size
        pad = self.padding
        padded = np.pad(values, ((0, 0), (0, 0), (pad, pad), (pad, pad)))
        columns = np.empty(
            (batch, channels, kernel_h, kernel_w, out_h, out_w), dtype=values.dtype
        )
        for offset_h in range(kernel_h):
            for offset_w in range(kernel_w):
                rows, cols = self._windows(offset_h, offset_w)
                columns[:, :, offset_h, offset_w] = padded[:, :, rows, cols]
        return columns.reshape(batch, channels * kernel_h * kernel_w, out_h * out_w)

    def _col2im(self, columns: np.ndarray, channels: int) -> np.ndarray:
        """Fold columns back into image space, summing overlapping patches."""
        batch = columns.shape[0]
        kernel_h, kernel_w = self.kernel
        out_h, out_w = self.output_size
        height, width = self.input_size
        pad = self.padding
        columns = columns.reshape(batch, channels, kernel_h, kernel_w, out_h, out_w)
        padded = np.zeros(
            (batch, channels, height + 2 * pad, width + 2 * pad), dtype=columns.dtype
        )
        for offset_h in range(kernel_h):
            for offset_w in range(kernel_w):
                rows, cols = self._windows(offset_h, offset_w)
                padded[:, :, rows, cols] += columns[:, :, offset_h, offset_w]
        return padded[:, :, pad : pad + height, pad : pad + width]

    def forward(self, input, weight, *bias):
        out_channels = weight.shape[0]
        result = weight.reshape(out_channels, -1) @ self._im2col(input)
        if bias:
            result = result + bias[0].reshape(1, out_channels, 1)
        return result.reshape(self.shape)

    def backward(self, output, gradient):
        input, weight = self.inputs[:2]
        batch, out_channels = self.shape[:2]
        upstream = gradient.reshape(batch, out_channels, -1)
        kernel = weight.data().reshape(out_channels, -1)

        input_gradient = None
        if input.requires_gradient():
            input_gradient = self._col2im(kernel.T @ upstream, input.shape()[1])

        weight_gradient = None
        if weight.requires_gradient():
            columns = self._im2col(input.data())
            weight_gradient = np.einsum("nol,nkl->ok", upstream, columns).reshape(
                weight.shape()
            )

        gradients = [input_gradient, weight_gradient]
        if len(self.inputs) == 3:
            bias = self.inputs[2]
            gradients.append(
                upstream.sum(axis=(0, 2)).reshape(bias.shape())
                if bias.requires_gradient()
                else None
            )
        return gradients


class _MaxPool2d(_Function):
    def __init__(self, input: Tensor, kernel_size: int, stride: int) -> None:
        if input.rank() != 4:
            raise ValueError("Input must be 4D: [N,C,H,W]")
        if kernel_size < 1:
            raise ValueError("kernel size must be positive")
        stride = kernel_size if stride == -1 else stride
        if stride < 1:
            raise ValueError("stride must be positive")
        batch, channels, height, width = input.shape()
        if height < kernel_size or width < kernel_size:
            raise ValueError(
                "Invalid pooling parameters: output size would be non-positive"
            )
        super().__init__(input)
        self.kernel_size = kernel_size
        self.stride = stride
        self.output_size = (
            (height - kernel_size) // stride + 1,
            (width - kernel_size) // stride + 1,
        )
        self.shape = (batch, channels, *self.output_size)
        self._indices: np.ndarray | None = None

    def forward(self, input):
        batch, channels, height, width = input.shape
        out_h, out_w = self.output_size
        step = self.stride
        flat_positions = np.arange(input.size).reshape(input.shape)
        values, positions = [], []
        for offset_h in range(self.kernel_size):
            for offset_w in range(self.kernel_size):
                rows = slice(offset_h, offset_h + step * (out_h - 1) + 1, step)
                cols = slice(offset_w, offset_w + step * (out_w - 1) + 1, step)
                values.append(input[:, :, rows, cols])
                positions.append(flat_positions[:, :, rows, cols])
        windows = np.stack(values, axis=-1)
        window_positions = np.stack(positions, axis=-1)
        # argmax keeps the first maximum, scanning rows then columns
        choice = windows.argmax(axis=-1)[..., np.newaxis]
        self._indices = np.take_along_axis(window_positions, choice, axis=-1)[..., 0]
        return np.take_along_axis(windows, choice, axis=-1)[..., 0]

    def backward(self, output, gradient):
        input = self.inputs[0]
        if self._indices is None:
            raise RuntimeError("forward must run before backward")
        result = np.zeros(len(input), dtype=gradient.dtype)
        np.add.at(result, self._indices.ravel(), gradient.ravel())
        return (result.reshape(input.shape()),)


def conv2d(
    input: Tensor,
    weight: Tensor,
    bias: Tensor | None,
    stride: int = 1,
    padding: int = 0,
) -> Tensor:
    """Convolve an NCHW input with an [out, in, kH, kW] kernel and optional bias."""
    return Tensor._from_function(_Conv2d(input, weight, bias, stride, padding))


def maxpool2d(input: Tensor, kernel_size: int, stride: int = -1) -> Tensor:
    """Max pooling over square windows; a stride of -1 means the kernel size."""
    return Tensor._from_function(_MaxPool2d(input, kernel_size, stride))