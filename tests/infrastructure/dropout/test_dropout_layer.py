import unittest

import numpy as np

import laminet as ln


class TestDropout(unittest.TestCase):
    def setUp(self) -> None:
        ln.set_seed(0)

    def test_rate_validation(self):
        with self.assertRaises(ValueError):
            ln.Dropout(1.0)
        with self.assertRaises(ValueError):
            ln.Dropout(-0.1)
        with self.assertWarns(UserWarning):
            ln.Dropout(0.0)

    def test_training_drops_and_rescales(self):
        layer = ln.Dropout(0.5, input_shape=(2000,))
        layer.build(0)
        y = layer.forward(ln.Tensor.ones((8, 2000)), training=True).to_numpy()
        zero_fraction = float(np.mean(y == 0.0))
        self.assertAlmostEqual(zero_fraction, 0.5, delta=0.02)
        self.assertTrue(np.all((y == 0.0) | np.isclose(y, 2.0)))
        self.assertAlmostEqual(float(y.mean()), 1.0, delta=0.05)

    def test_backward_uses_same_mask(self):
        layer = ln.Dropout(0.3, input_shape=(50,))
        layer.build(0)
        y = layer.forward(ln.Tensor.ones((4, 50)), training=True)
        g = layer.backward(ln.Tensor.ones((4, 50)))
        np.testing.assert_array_equal(g.to_numpy(), y.to_numpy())

    def test_inference_returns_copy(self):
        layer = ln.Dropout(0.5, input_shape=(10,))
        layer.build(0)
        x = ln.Tensor.from_numpy(np.arange(20, dtype=np.float32).reshape(2, 10))
        y = layer.forward(x)
        np.testing.assert_array_equal(y.to_numpy(), x.to_numpy())
        self.assertFalse(y.shares_buffer_with(x))

    def test_spatial_mask_after_convolution(self):
        conv = ln.Conv2D(6, 1, input_shape=(1, 4, 4))
        drop = ln.Dropout(0.5)
        ln.build_chain([conv, drop])
        self.assertTrue(drop.input_format.spatial)

        y = drop.forward(ln.Tensor.ones((10, 6, 4, 4)), training=True).to_numpy()
        per_map = y.reshape(10, 6, 16)
        self.assertTrue(np.all(per_map.min(axis=2) == per_map.max(axis=2)))
        dropped = per_map[:, :, 0] == 0.0
        self.assertTrue(dropped.any())
        self.assertFalse(dropped.all())

    def test_elementwise_mask_after_dense(self):
        dense = ln.Dense(64, input_shape=(3,))
        drop = ln.Dropout(0.5)
        ln.build_chain([dense, drop])
        self.assertFalse(drop.input_format.spatial)
        self.assertEqual(drop.output_shape(), (-1, 64, 1, 1))

        y = drop.forward(ln.Tensor.ones((64, 5)), training=True).to_numpy()
        self.assertEqual(y.shape, (64, 5, 1, 1))
        zero_fraction = float(np.mean(y == 0.0))
        self.assertGreater(zero_fraction, 0.3)
        self.assertLess(zero_fraction, 0.7)

    def test_masks_reproducible_under_seed(self):
        layer = ln.Dropout(0.4, input_shape=(300,))
        layer.build(0)
        x = ln.Tensor.ones((3, 300))
        ln.set_seed(77)
        a = layer.forward(x, training=True).to_numpy().copy()
        b = layer.forward(x, training=True).to_numpy().copy()
        ln.set_seed(77)
        a2 = layer.forward(x, training=True).to_numpy().copy()
        np.testing.assert_array_equal(a, a2)
        self.assertFalse(np.array_equal(a, b))


if __name__ == "__main__":
    unittest.main()
