import unittest

import numpy as np

import laminet as ln
from laminet.domain import CHANNEL_MAJOR, ShapeMismatchError


class TestFlatten(unittest.TestCase):
    def test_flatten_is_a_view_and_round_trips(self):
        layer = ln.Flatten(input_shape=(2, 3, 4))
        layer.build(0)
        self.assertEqual(layer.output_shape(), (-1, 24, 1, 1))
        x = ln.Tensor.from_numpy(np.arange(48, dtype=np.float32).reshape(2, 2, 3, 4))
        y = layer.forward(x, training=True)
        self.assertEqual(y.shape, (2, 24, 1, 1))
        self.assertTrue(y.shares_buffer_with(x))
        g = layer.backward(y)
        self.assertEqual(g.shape, x.shape)
        np.testing.assert_array_equal(g.to_numpy(), x.to_numpy())

    def test_flatten_after_dense_transposes_back(self):
        dense = ln.Dense(6, input_shape=(4,))
        flat = ln.Flatten()
        ln.build_chain([dense, flat])
        self.assertEqual(flat.output_format(), CHANNEL_MAJOR)

        h = dense.forward(ln.Tensor.from_numpy(np.random.RandomState(0).randn(3, 4)), training=True)
        y = flat.forward(h, training=True)
        self.assertEqual(y.shape, (3, 6, 1, 1))
        np.testing.assert_array_equal(y.to_numpy()[:, :, 0, 0], h.to_numpy()[:, :, 0, 0].T)

        g = flat.backward(y)
        self.assertEqual(g.shape, h.shape)
        np.testing.assert_array_equal(g.to_numpy(), h.to_numpy())


class TestReshape(unittest.TestCase):
    def test_per_sample_target_shape(self):
        layer = ln.Reshape((3, 2, 2), input_shape=(12,))
        layer.build(0)
        self.assertEqual(layer.output_shape(), (-1, 3, 2, 2))
        x = ln.Tensor.from_numpy(np.arange(24, dtype=np.float32).reshape(2, 12))
        y = layer.forward(x, training=True)
        self.assertEqual(y.shape, (2, 3, 2, 2))
        g = layer.backward(y)
        self.assertEqual(g.shape, x.shape)

    def test_flatten_then_reshape_restores_shape(self):
        flat = ln.Flatten(input_shape=(3, 4, 5))
        back = ln.Reshape((3, 4, 5))
        ln.build_chain([flat, back])
        self.assertEqual(back.output_shape(), (-1, 3, 4, 5))
        arr = np.random.RandomState(1).randn(2, 3, 4, 5).astype(np.float32)
        x = ln.Tensor.from_numpy(arr)
        y = back.forward(flat.forward(x, training=True), training=True)
        self.assertEqual(y.shape, x.shape)
        np.testing.assert_array_equal(y.to_numpy(), arr)
        g = flat.backward(back.backward(y))
        self.assertEqual(g.shape, x.shape)

    def test_full_target_shape_keeps_batch(self):
        layer = ln.Reshape((-1, 4, 3, 1), input_shape=(2, 6))
        layer.build(0)
        y = layer.forward(ln.Tensor((5, 2, 6)))
        self.assertEqual(y.shape, (5, 4, 3, 1))

    def test_invalid_configuration(self):
        with self.assertRaises(ValueError):
            ln.Reshape()
        with self.assertRaises(ValueError):
            ln.Reshape((2, 2), mode="merge_batch_seq")
        with self.assertRaises(ValueError):
            ln.Reshape(mode="sideways")
        with self.assertRaises(ValueError):
            ln.Reshape((4, 4))
        layer = ln.Reshape((5, 5, 1), input_shape=(12,))
        with self.assertRaises(ShapeMismatchError):
            layer.build(0)

    def test_merge_and_split_batch_sequence(self):
        ln.set_seed(0)
        emb = ln.Embedding(10, 4, input_shape=(3,))
        merge = ln.Reshape(mode="merge_batch_seq")
        dense = ln.Dense(5)
        split = ln.Reshape(mode="split_batch_seq")
        layers = ln.build_chain([emb, merge, dense, split])

        self.assertEqual(merge.output_shape(), (-1, 4, 1, 1))
        self.assertEqual(split.output_shape(), (-1, 3, 5, 1))

        ids = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.float32).reshape(2, 3, 1, 1)
        x = ln.Tensor.from_numpy(ids)
        shapes = []
        for layer in layers:
            x = layer.forward(x, training=True)
            shapes.append(x.shape)
        self.assertEqual(shapes, [(2, 3, 4, 1), (6, 4, 1, 1), (5, 6, 1, 1), (2, 3, 5, 1)])

        grad = ln.Tensor.ones(x.shape)
        grad_shapes = []
        for layer in reversed(layers):
            grad = layer.backward(grad)
            grad_shapes.append(None if grad is None else grad.shape)
        self.assertEqual(grad_shapes, [(5, 6, 1, 1), (6, 4, 1, 1), (2, 3, 4, 1), None])
        self.assertGreater(emb.get_parameter_gradients()[0].l1_norm(), 0.0)

    def test_split_with_explicit_seq_len(self):
        layer = ln.Reshape(mode="split_batch_seq", seq_len=4, input_shape=(3,))
        layer.build(0)
        self.assertEqual(layer.output_shape(), (-1, 4, 3, 1))
        y = layer.forward(ln.Tensor((8, 3)))
        self.assertEqual(y.shape, (2, 4, 3, 1))
        with self.assertRaises(ShapeMismatchError):
            layer.forward(ln.Tensor((6, 3)))

    def test_split_without_seq_len_fails_to_build(self):
        layer = ln.Reshape(mode="split_batch_seq", input_shape=(3,))
        with self.assertRaises(ValueError):
            layer.build(0)


class TestUpsampling2D(unittest.TestCase):
    def test_forward_repeats_blocks(self):
        layer = ln.Upsampling2D(2, input_shape=(1, 2, 2))
        layer.build(0)
        self.assertEqual(layer.output_shape(), (-1, 1, 4, 4))
        x = ln.Tensor.from_numpy(np.array([[1, 2], [3, 4]], dtype=np.float32).reshape(1, 1, 2, 2))
        y = layer.forward(x, training=True).to_numpy()[0, 0]
        np.testing.assert_array_equal(
            y,
            [[1, 1, 2, 2], [1, 1, 2, 2], [3, 3, 4, 4], [3, 3, 4, 4]],
        )

    def test_backward_sums_blocks(self):
        layer = ln.Upsampling2D(3, input_shape=(2, 2, 1))
        layer.build(0)
        x = ln.Tensor((2, 2, 2, 1))
        y = layer.forward(x, training=True)
        self.assertEqual(y.shape, (2, 2, 6, 3))
        grad = np.arange(np.prod(y.shape), dtype=np.float32).reshape(y.shape)
        dx = layer.backward(ln.Tensor.from_numpy(grad)).to_numpy()
        self.assertEqual(dx.shape, (2, 2, 2, 1))
        np.testing.assert_allclose(dx[1, 0, 1, 0], grad[1, 0, 3:6, 0:3].sum())
        self.assertAlmostEqual(float(dx.sum()), float(grad.sum()), places=2)

    def test_invalid_size(self):
        with self.assertRaises(ValueError):
            ln.Upsampling2D(0)


if __name__ == "__main__":
    unittest.main()
