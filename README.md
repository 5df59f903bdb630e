# cabernet

A compact deep learning library on top of numpy. Tensors produced by
operations remember how they were computed; `perform()` evaluates that graph
and `backward()` sends a gradient back through it to the leaf tensors that
require one. The library provides fully connected and convolutional layers,
max pooling, activations, a negative log-likelihood loss, an SGD optimizer
and a reader for IDX-format (MNIST-style) image and label files.

## Installation

```
pip install .
```

## Tensors

`cabernet.tensor` holds `Tensor` (float32 values) and `IntTensor` (int32
values, used for class labels).

```python
from cabernet.tensor import Tensor, matmul

x = Tensor([2, 3])
x.fill([1, 2, 3, 4, 5, 6])

w = Tensor([3, 2], requires_gradient=True)
w.fill([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])

y = x @ w          # same as matmul(x, w)
y.perform()
print(y)           # [2.2, 2.8, 4.9, 6.4, ]
```

- `fill` takes a single number, a flat list with one value per element, or
  `Initializer.HE` (normal samples with standard deviation `sqrt(2 / fan_in)`).
  A list of the wrong length raises `ValueError`.
- `x + y` and `x * y` are element-wise and follow numpy broadcasting rules;
  `matmul` needs two rank-2 tensors with matching inner dimensions.
- `shape()`, `rank()`, `data()` (the underlying numpy array), `len()` and
  iteration over the flat values are available on both tensor types.
- `requires_gradient` accepts a bool or `RequiresGradient.TRUE` /
  `RequiresGradient.FALSE`.
- `gradient()` returns the accumulated gradient of a leaf as a new `Tensor`;
  gradients add up across `backward` calls.

## Functions and gradients

`cabernet.functional` provides `linear`, `relu`, `softmax`, `log_softmax` and
`flatten`; `cabernet.convolution` provides `conv2d` (NCHW input,
`[out, in, kH, kW]` kernel, optional `[1, out]` bias, stride and padding) and
`maxpool2d` (square windows; a stride of `-1` means the kernel size).
`softmax` and `log_softmax` work over axis 0 or 1 of the input viewed as a
matrix; any other axis raises `ValueError`.

Call `perform()` on a result before calling `backward()` on it.

```python
from cabernet.tensor import Tensor
from cabernet.functional import linear, relu

x = Tensor([2, 3]); x.fill([1, 2, 3, 4, 5, 6])
w = Tensor([4, 3], requires_gradient=True)
w.fill([1, 2, -3, 4, 5, 6, 7, 8, -9, 10, 11, -12])
b = Tensor([1, 4], requires_gradient=True); b.fill([1, 2, 3, 4])

out = relu(linear(x, w, b))
out.perform()

seed = Tensor([2, 4]); seed.fill(1)
out.backward(seed)
print(w.gradient())   # [0, 0, 0, 5, 7, 9, 4, 5, 6, 4, 5, 6, ]
print(b.gradient())   # [0, 2, 1, 1, ]
```

## Models and training

`cabernet.layers` has `Linear`, `Conv2d`, `MaxPool2d`, `Flatten`, `ReLU`,
`Softmax`, `LogSoftmax` and `Sequence`, which applies layers in order.
`Linear` and `Conv2d` start with He-initialized weights and zero biases.

```python
from cabernet.layers import Sequence, Linear, ReLU, LogSoftmax
from cabernet.criterions import NLLLoss
from cabernet.optimizers import SGD

model = Sequence(
    Linear(784, 128),
    ReLU(),
    Linear(128, 10),
    LogSoftmax(axis=1),
)
optimizer = SGD(0.01)
model.configure_optimizer(optimizer)

# for one batch of features (Tensor [batch, 784]) and labels (IntTensor [batch])
output = model(features)
criterion = NLLLoss(output, labels)
print(criterion.loss())
criterion.backward()
optimizer.step()
```

`NLLLoss` takes log-probabilities of shape `[batch, classes]` and one target
per row, and reports the mean negative log-likelihood. `SGD.step()` moves
every registered parameter against its gradient and then resets that
gradient to zero. `NoOptimization` leaves parameters untouched.

## Datasets

```python
from cabernet.dataset import Dataset

data = Dataset(batch_size=64)
data.read_features("train-images-idx3-ubyte")
data.read_targets("train-labels-idx1-ubyte")
print(len(data))
```

`features()` returns a list of `Tensor` batches of shape
`[batch_size, rows * cols]` with pixels scaled to `[0, 1]`; `targets()`
returns a list of `IntTensor` batches of shape `[batch_size]`. The last batch
of each file is dropped. A file that cannot be opened raises the usual
`OSError`; one too short for its header raises `ValueError`. `clear()`
empties both lists.

## What it does not do

- There is no command-line program; the package is used as a library.
- Models cannot be saved to or loaded from disk.
- `Dataset` stores its `shuffle` flag but never reorders batches.
- SGD is the only optimizer that changes parameters.
- Everything runs on the CPU through numpy.

## Tests

```
pip install .[test]
pytest
```