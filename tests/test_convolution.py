import numpy as np
import pytest

from cabernet.convolution import conv2d, maxpool2d
from cabernet.functional import flatten, linear
from cabernet.tensor import Tensor


def make(shape, values, requires_gradient=False):
    tensor = Tensor(shape, requires_gradient)
    tensor.fill(np.asarray(values, dtype=np.float32).ravel().tolist())
    return tensor


def random_tensor(shape, seed, requires_gradient=False):
    rng = np.random.default_rng(seed)
    return make(shape, rng.standard_normal(shape), requires_gradient)


def test_identity_kernel_reproduces_input():
    x = random_tensor((2, 1, 4, 5), 0)
    weight = make((1, 1, 1, 1), [1.0])
    result = conv2d(x, weight, None)
    result.perform()
    assert result.shape() == (2, 1, 4, 5)
    np.testing.assert_allclose(result.data(), x.data())


def test_output_shape_with_stride_and_padding():
    x = Tensor((1, 2, 7, 6))
    weight = Tensor((3, 2, 3, 3))
    bias = Tensor((1, 3))
    result = conv2d(x, weight, bias, stride=2, padding=1)
    assert result.shape() == (1, 3, 4, 3)


def test_full_kernel_matches_linear_on_flattened_input():
    x = random_tensor((2, 3, 4, 4), 1)
    weight = random_tensor((5, 3, 4, 4), 2)
    bias = random_tensor((1, 5), 3)
    conv = conv2d(x, weight, bias)
    conv.perform()

    flat_weight = make((5, 48), weight.data())
    dense = linear(flatten(x, 1), flat_weight, bias)
    dense.perform()

    assert conv.shape() == (2, 5, 1, 1)
    np.testing.assert_allclose(
        conv.data().reshape(2, 5), dense.data(), rtol=1e-5, atol=1e-5
    )


def test_bias_is_added_per_channel():
    x = random_tensor((1, 2, 5, 5), 4)
    weight = random_tensor((3, 2, 3, 3), 5)
    bias = make((1, 3), [1.0, -2.0, 0.5])
    with_bias = conv2d(x, weight, bias, padding=1)
    without_bias = conv2d(x, weight, None, padding=1)
    with_bias.perform()
    without_bias.perform()
    difference = with_bias.data() - without_bias.data()
    np.testing.assert_allclose(
        difference, np.broadcast_to(bias.data().reshape(1, 3, 1, 1), difference.shape),
        atol=1e-5,
    )


def test_input_gradient_matches_finite_difference():
    x = random_tensor((1, 2, 5, 5), 6, requires_gradient=True)
    weight = random_tensor((3, 2, 3, 3), 7)
    result = conv2d(x, weight, None, stride=2, padding=1)
    result.perform()
    base = float(result.data().sum())
    result.backward(np.ones(result.shape(), dtype=np.float32))
    gradient = x.gradient().data()

    for index in [(0, 0, 0, 0), (0, 1, 2, 3), (0, 0, 4, 4), (0, 1, 1, 2)]:
        x.data()[index] += 1.0
        result.perform()
        numeric = float(result.data().sum()) - base
        x.data()[index] -= 1.0
        assert gradient[index] == pytest.approx(numeric, abs=1e-3)


def test_weight_and_bias_gradients_match_finite_difference():
    x = random_tensor((2, 2, 4, 4), 8)
    weight = random_tensor((2, 2, 2, 2), 9, requires_gradient=True)
    bias = random_tensor((1, 2), 10, requires_gradient=True)
    result = conv2d(x, weight, bias)
    result.perform()
    base = float(result.data().sum())
    result.backward(np.ones(result.shape(), dtype=np.float32))

    weight_gradient = weight.gradient().data()
    for index in [(0, 0, 0, 0), (1, 1, 1, 1), (0, 1, 1, 0)]:
        weight.data()[index] += 1.0
        result.perform()
        numeric = float(result.data().sum()) - base
        weight.data()[index] -= 1.0
        assert weight_gradient[index] == pytest.approx(numeric, abs=1e-3)

    positions_per_channel = 2 * 3 * 3
    np.testing.assert_allclose(
        bias.gradient().data(), np.full((1, 2), positions_per_channel)
    )


def test_conv2d_rejects_bad_shapes():
    with pytest.raises(ValueError):
        conv2d(Tensor((2, 4, 4)), Tensor((1, 1, 3, 3)), None)
    with pytest.raises(ValueError):
        conv2d(Tensor((1, 1, 4, 4)), Tensor((1, 3, 3)), None)
    with pytest.raises(ValueError):
        conv2d(Tensor((1, 2, 4, 4)), Tensor((1, 3, 3, 3)), None)
    with pytest.raises(ValueError):
        conv2d(Tensor((1, 1, 4, 4)), Tensor((2, 1, 3, 3)), Tensor((1, 3)))
    with pytest.raises(ValueError):
        conv2d(Tensor((1, 1, 4, 4)), Tensor((2, 1, 3, 3)), Tensor((2,)))
    with pytest.raises(ValueError):
        conv2d(Tensor((1, 1, 2, 2)), Tensor((1, 1, 3, 3)), None)


def test_maxpool_picks_window_maxima():
    x = make((1, 1, 4, 4), np.arange(16))
    result = maxpool2d(x, 2)
    result.perform()
    assert result.shape() == (1, 1, 2, 2)
    np.testing.assert_array_equal(result.data(), x.data()[:, :, 1::2, 1::2])


def test_maxpool_with_overlapping_stride():
    x = random_tensor((2, 3, 5, 5), 11)
    result = maxpool2d(x, 3, 1)
    result.perform()
    assert result.shape() == (2, 3, 3, 3)
    assert result.data()[1, 2, 0, 0] == x.data()[1, 2, :3, :3].max()
    assert result.data()[0, 1, 2, 1] == x.data()[0, 1, 2:5, 1:4].max()


def test_maxpool_backward_routes_gradient_to_maxima():
    x = make((1, 1, 4, 4), np.arange(16), requires_gradient=True)
    result = maxpool2d(x, 2)
    result.perform()
    result.backward(np.ones(result.shape(), dtype=np.float32))
    gradient = x.gradient().data()
    expected = np.zeros((1, 1, 4, 4), dtype=np.float32)
    expected[:, :, 1::2, 1::2] = 1.0
    np.testing.assert_array_equal(gradient, expected)


def test_maxpool_backward_accumulates_on_shared_maximum():
    x = random_tensor((1, 1, 4, 4), 12, requires_gradient=True)
    result = maxpool2d(x, 2, 1)
    result.perform()
    result.backward(np.ones(result.shape(), dtype=np.float32))
    assert float(x.gradient().data().sum()) == pytest.approx(len(result))


def test_maxpool_rejects_bad_input():
    with pytest.raises(ValueError):
        maxpool2d(Tensor((4, 4)), 2)
    with pytest.raises(ValueError):
        maxpool2d(Tensor((1, 1, 2, 2)), 3)