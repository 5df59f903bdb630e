import numpy as np
import pytest

from cabernet.functional import linear
from cabernet.layers import (
    Conv2d,
    Flatten,
    Linear,
    LogSoftmax,
    MaxPool2d,
    ReLU,
    Sequence,
    Softmax,
)
from cabernet.optimizers import SGD, NoOptimization
from cabernet.tensor import Tensor


def _tensor(shape, values, requires_gradient=False):
    tensor = Tensor(shape, requires_gradient)
    tensor.fill(values)
    return tensor


def test_linear_parameters_shapes_and_gradient_flag():
    layer = Linear(3, 4)
    weight, bias = layer.parameters()
    assert weight.shape() == (4, 3)
    assert bias.shape() == (1, 4)
    assert weight.requires_gradient() and bias.requires_gradient()
    assert list(bias) == [0.0, 0.0, 0.0, 0.0]


def test_linear_forward_matches_functional():
    layer = Linear(3, 2)
    x = _tensor((2, 3), [1, 2, 3, 4, 5, 6])
    out = layer(x)
    out.perform()
    expected = linear(x, layer.weight, layer.bias)
    expected.perform()
    assert np.allclose(out.data(), expected.data())
    assert out.shape() == (2, 2)


def test_linear_identity_weight_returns_input():
    layer = Linear(2, 2)
    layer.weight.fill([1, 0, 0, 1])
    x = _tensor((1, 2), [3.5, -2.0])
    out = layer.forward(x)
    out.perform()
    assert list(out) == [3.5, -2.0]


def test_default_optimizer_leaves_parameters_unchanged():
    layer = Linear(2, 2)
    assert isinstance(layer.optimizer, NoOptimization)
    layer.weight.fill([1, 2, 3, 4])
    x = _tensor((1, 2), [1, 2])
    out = layer(x)
    out.perform()
    out.backward(_tensor((1, 2), [1, 1]))
    weight_before = layer.weight.data().copy()
    bias_before = layer.bias.data().copy()
    layer.optimizer.step()
    assert np.array_equal(layer.weight.data(), weight_before)
    assert np.array_equal(layer.bias.data(), bias_before)
    assert list(layer.weight) == [1.0, 2.0, 3.0, 4.0]


def test_configure_optimizer_with_sgd_updates_weights():
    layer = Linear(2, 1)
    layer.weight.fill([1, 1])
    optimizer = SGD(0.1)
    layer.configure_optimizer(optimizer)
    assert layer.optimizer is optimizer

    x = _tensor((1, 2), [1, 2])
    out = layer(x)
    out.perform()
    out.backward(_tensor((1, 1), [1]))
    before = layer.weight.data().copy()
    optimizer.step()
    assert np.allclose(layer.weight.data(), before - 0.1 * x.data())
    assert np.allclose(layer.bias.data(), -0.1)


def test_conv2d_with_padding_keeps_spatial_size():
    layer = Conv2d(2, 3, 3, padding=1)
    assert layer.weight.shape() == (3, 2, 3, 3)
    x = Tensor((1, 2, 5, 5))
    x.fill(1.0)
    out = layer(x)
    out.perform()
    assert out.shape() == (1, 3, 5, 5)
    assert len(layer.parameters()) == 2


def test_maxpool_zero_stride_means_kernel_size():
    layer = MaxPool2d(2)
    assert layer.stride == 2
    x = _tensor((1, 1, 4, 4), list(range(16)))
    out = layer(x)
    out.perform()
    assert out.shape() == (1, 1, 2, 2)
    assert layer.parameters() == []


def test_flatten_layer_shape():
    x = Tensor((2, 3, 4, 5))
    out = Flatten()(x)
    assert out.shape() == (2, 60)


def test_relu_layer_clamps_negatives():
    x = _tensor((1, 4), [-1, 2, -3, 4])
    out = ReLU()(x)
    out.perform()
    assert list(out) == [0.0, 2.0, 0.0, 4.0]


def test_softmax_rows_sum_to_one_and_log_softmax_agrees():
    x = _tensor((2, 3), [1, 2, 3, -1, 0, 1])
    probabilities = Softmax(1)(x)
    probabilities.perform()
    assert np.allclose(probabilities.data().sum(axis=1), 1.0)
    logs = LogSoftmax(1)(x)
    logs.perform()
    assert np.allclose(np.exp(logs.data()), probabilities.data(), atol=1e-6)


def test_softmax_rejects_bad_axis():
    with pytest.raises(ValueError):
        Softmax(2)(Tensor((2, 2)))


def test_sequence_chains_layers_and_collects_parameters():
    model = Sequence(Linear(4, 3), ReLU(), Linear(3, 2), LogSoftmax(1))
    assert len(model.parameters()) == 4
    x = Tensor((5, 4))
    x.fill(0.5)
    out = model(x)
    out.perform()
    assert out.shape() == (5, 2)
    assert np.allclose(np.exp(out.data()).sum(axis=1), 1.0)


def test_sequence_set_optimizer_registers_all_parameters():
    first, second = Linear(2, 2), Linear(2, 1)
    model = Sequence(first, ReLU(), second)
    optimizer = SGD(0.5)
    model.configure_optimizer(optimizer)
    x = _tensor((1, 2), [1, 1])
    out = model(x)
    out.perform()
    out.backward(_tensor((1, 1), [1]))
    grads = [p.gradient().data().copy() for p in model.parameters()]
    before = [p.data().copy() for p in model.parameters()]
    optimizer.step()
    for parameter, old, grad in zip(model.parameters(), before, grads):
        assert np.allclose(parameter.data(), old - 0.5 * grad)


def test_sequence_rejects_non_layers():
    with pytest.raises(TypeError):
        Sequence(Linear(2, 2), "relu")