import unittest

import numpy as np

import laminet as ln


def ids_tensor(ids) -> ln.Tensor:
    arr = np.asarray(ids, dtype=np.float32)
    return ln.Tensor.from_numpy(arr.reshape(arr.shape[0], arr.shape[1], 1, 1))


class TestEmbedding(unittest.TestCase):
    def setUp(self) -> None:
        ln.set_seed(0)

    def test_default_initialization(self):
        emb = ln.Embedding(500, 40, input_shape=(3,))
        emb.build(0)
        self.assertEqual(emb.weights.shape, (500, 40, 1, 1))
        self.assertAlmostEqual(float(emb.weights.data.std()), 0.02, delta=0.002)
        self.assertEqual(emb.num_trainable_parameters(), 500 * 40)

    def test_lookup(self):
        emb = ln.Embedding(6, 3, input_shape=(4,))
        emb.build(0)
        self.assertEqual(emb.output_shape(), (-1, 4, 3, 1))
        ids = [[0, 5, 2, 2], [1, 1, 3, 4]]
        y = emb.forward(ids_tensor(ids)).to_numpy()
        self.assertEqual(y.shape, (2, 4, 3, 1))
        table = emb.weights.to_numpy().reshape(6, 3)
        np.testing.assert_array_equal(y[..., 0], table[np.asarray(ids)])

    def test_out_of_range_ids_raise(self):
        emb = ln.Embedding(6, 3, input_shape=(2,))
        emb.build(0)
        with self.assertRaises(IndexError):
            emb.forward(ids_tensor([[0, 6]]))
        with self.assertRaises(IndexError):
            emb.forward(ids_tensor([[-1, 0]]))

    def test_backward_scatter_adds_duplicates(self):
        emb = ln.Embedding(5, 2, input_shape=(3,))
        emb.build(0)
        emb.forward(ids_tensor([[1, 3, 1], [1, 0, 3]]), training=True)
        grad = np.arange(12, dtype=np.float32).reshape(2, 3, 2, 1)
        result = emb.backward(ln.Tensor.from_numpy(grad))
        self.assertIsNone(result)

        d_table = emb.get_parameter_gradients()[0].to_numpy().reshape(5, 2)
        rows = grad.reshape(6, 2)
        np.testing.assert_allclose(d_table[0], rows[4])
        np.testing.assert_allclose(d_table[1], rows[0] + rows[2] + rows[3])
        np.testing.assert_allclose(d_table[2], [0.0, 0.0])
        np.testing.assert_allclose(d_table[3], rows[1] + rows[5])
        np.testing.assert_allclose(d_table[4], [0.0, 0.0])

        emb.backward(ln.Tensor.from_numpy(grad))
        np.testing.assert_allclose(
            emb.get_parameter_gradients()[0].to_numpy().reshape(5, 2)[1],
            2.0 * (rows[0] + rows[2] + rows[3]),
        )

    def test_custom_init(self):
        emb = ln.Embedding(4, 4, input_shape=(1,)).init_uniform(0.5, 0.6)
        emb.build(0)
        self.assertGreaterEqual(float(emb.weights.data.min()), 0.5)
        self.assertLess(float(emb.weights.data.max()), 0.6)

    def test_tie_to_external_buffer(self):
        shared = np.zeros(12, dtype=np.float32)
        emb = ln.Embedding(4, 3, input_shape=(2,)).tie_weights(shared, count_parameters=False)
        emb.build(0)
        self.assertEqual(emb.num_trainable_parameters(), 0)
        shared[3:6] = 1.0
        y = emb.forward(ids_tensor([[1, 0]])).to_numpy()
        np.testing.assert_array_equal(y[0, 0, :, 0], [1.0, 1.0, 1.0])
        np.testing.assert_array_equal(y[0, 1, :, 0], [0.0, 0.0, 0.0])

        emb.update_parameters([np.full(12, 0.5, dtype=np.float32)])
        self.assertEqual(float(shared[0]), -0.5)

    def test_invalid_configuration(self):
        with self.assertRaises(ValueError):
            ln.Embedding(0, 4)
        with self.assertRaises(ValueError):
            ln.Embedding(4, 4, input_shape=(2, 3))
        emb = ln.Embedding(4, 4, input_shape=(2,))
        emb.build(0)
        with self.assertRaises(ValueError):
            emb.tie_weights(np.zeros(16, dtype=np.float32))


if __name__ == "__main__":
    unittest.main()
