import unittest

import numpy as np

import laminet as ln


def make_layernorm(in_shape):
    ln_layer = ln.LayerNorm(input_shape=in_shape, dtype=np.float64)
    ln_layer.build(0)
    return ln_layer


def finite_difference(fn, arr, eps=1e-6):
    grad = np.zeros_like(arr)
    for idx in np.ndindex(*arr.shape):
        orig = arr[idx]
        arr[idx] = orig + eps
        lp = fn()
        arr[idx] = orig - eps
        lm = fn()
        arr[idx] = orig
        grad[idx] = (lp - lm) / (2 * eps)
    return grad


class TestLayerNorm(unittest.TestCase):
    def setUp(self) -> None:
        np.random.seed(0)

    def test_sequence_input_normalizes_embedding_axis(self):
        layer = make_layernorm((4, 6, 1))
        self.assertEqual(layer.gamma.size, 6)
        x = 3.0 + 2.0 * np.random.randn(2, 4, 6, 1)
        y = layer.forward(ln.Tensor.from_numpy(x)).to_numpy()
        self.assertEqual(y.shape, x.shape)
        np.testing.assert_allclose(y.mean(axis=2), 0.0, atol=1e-10)
        np.testing.assert_allclose(y.var(axis=2), 1.0, rtol=1e-4)

    def test_flat_input_uses_features(self):
        layer = make_layernorm((5,))
        self.assertEqual(layer.num_features, 5)
        x = np.random.randn(3, 5, 1, 1)
        y = layer.forward(ln.Tensor.from_numpy(x)).to_numpy()
        np.testing.assert_allclose(y.reshape(3, 5).mean(axis=1), 0.0, atol=1e-10)

    def test_training_and_inference_agree(self):
        layer = make_layernorm((3, 4, 1))
        x = ln.Tensor.from_numpy(np.random.randn(2, 3, 4, 1))
        np.testing.assert_array_equal(
            layer.forward(x, training=True).to_numpy(), layer.forward(x).to_numpy()
        )

    def test_many_rows_span_several_chunks(self):
        layer = make_layernorm((300, 4, 1))
        x = np.random.randn(2, 300, 4, 1)
        y = layer.forward(ln.Tensor.from_numpy(x)).to_numpy()
        np.testing.assert_allclose(y.mean(axis=2), 0.0, atol=1e-10)

    def test_finite_difference(self):
        for in_shape, batch_shape in (((3, 4, 1), (2, 3, 4, 1)), ((5,), (3, 5, 1, 1))):
            with self.subTest(in_shape=in_shape):
                layer = make_layernorm(in_shape)
                features = layer.num_features
                layer.gamma.copy_from_numpy(np.random.randn(features))
                layer.beta.copy_from_numpy(np.random.randn(features))
                x = np.random.randn(*batch_shape)
                r = np.random.randn(*batch_shape)

                def loss():
                    out = layer.forward(ln.Tensor.from_numpy(x)).to_numpy()
                    return float(np.sum(out * r))

                layer.forward(ln.Tensor.from_numpy(x), training=True)
                dx = layer.backward(ln.Tensor.from_numpy(r)).to_numpy().copy()
                d_gamma, d_beta = [
                    g.data.copy() for g in layer.get_parameter_gradients()
                ]

                np.testing.assert_allclose(dx, finite_difference(loss, x), rtol=1e-5, atol=1e-7)
                np.testing.assert_allclose(
                    d_gamma, finite_difference(loss, layer.gamma.data), rtol=1e-5, atol=1e-7
                )
                np.testing.assert_allclose(
                    d_beta, finite_difference(loss, layer.beta.data), rtol=1e-5, atol=1e-7
                )

    def test_backward_overwrites(self):
        layer = make_layernorm((2, 3, 1))
        x = ln.Tensor.from_numpy(np.random.randn(2, 2, 3, 1))
        g = ln.Tensor.from_numpy(np.random.randn(2, 2, 3, 1))
        layer.forward(x, training=True)
        layer.backward(g)
        first = layer.get_parameter_gradients()[0].data.copy()
        layer.backward(g)
        np.testing.assert_array_equal(layer.get_parameter_gradients()[0].data, first)

    def test_wrong_embedding_length_raises(self):
        layer = make_layernorm((2, 3, 1))
        with self.assertRaises(ValueError):
            layer.forward(ln.Tensor((1, 2, 4, 1), dtype=np.float64))

    def test_affine_initial_values(self):
        layer = ln.LayerNorm(gamma_init=2.0, beta_init=1.0, input_shape=(6,), dtype=np.float64)
        layer.build(0)
        x = np.random.randn(3, 6)
        y = layer.forward(ln.Tensor.from_numpy(x)).to_numpy().reshape(3, 6)
        np.testing.assert_allclose(y.mean(axis=1), 1.0, atol=1e-10)
        np.testing.assert_allclose(y.std(axis=1), 2.0, rtol=1e-4)
        self.assertEqual(layer.get_config()["gamma_init"], 2.0)
        self.assertEqual(layer.get_config()["beta_init"], 1.0)


if __name__ == "__main__":
    unittest.main()
