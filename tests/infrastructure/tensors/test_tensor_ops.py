import math
import unittest

import numpy as np

from laminet import ShapeMismatchError, Tensor


class TestTensorConstruction(unittest.TestCase):
    def test_short_shapes_are_padded_with_ones(self):
        t = Tensor((3, 2))
        self.assertEqual(t.shape, (3, 2, 1, 1))
        self.assertEqual(t.size, 6)
        self.assertTrue(np.all(t.to_numpy() == 0.0))

    def test_data_is_copied(self):
        src = np.arange(6, dtype=np.float32)
        t = Tensor((2, 3), data=src)
        src[0] = 100.0
        self.assertEqual(float(t.to_numpy()[0, 0, 0, 0]), 0.0)

    def test_data_with_wrong_size_raises(self):
        with self.assertRaises(ShapeMismatchError):
            Tensor((2, 3), data=np.zeros(5))

    def test_invalid_shapes_raise(self):
        with self.assertRaises(ValueError):
            Tensor((1, 2, 3, 4, 5))
        with self.assertRaises(ValueError):
            Tensor((2, -1))
        with self.assertRaises(ValueError):
            Tensor()

    def test_from_numpy_keeps_float_dtype(self):
        t = Tensor.from_numpy(np.ones((2, 2), dtype=np.float64))
        self.assertEqual(t.dtype, np.float64)
        self.assertEqual(t.shape, (2, 2, 1, 1))

    def test_wrap_shares_buffer(self):
        buf = np.zeros(8, dtype=np.float32)
        t = Tensor.wrap(buf, (2, 4))
        buf[3] = 7.0
        self.assertEqual(float(t.to_numpy()[0, 3, 0, 0]), 7.0)


class TestTensorMemory(unittest.TestCase):
    def test_reshape_is_a_view(self):
        t = Tensor.from_numpy(np.arange(24, dtype=np.float32).reshape(2, 3, 2, 2))
        r = t.reshape(2, 12)
        self.assertEqual(r.shape, (2, 12, 1, 1))
        self.assertTrue(r.shares_buffer_with(t))
        r.data[0] = -1.0
        self.assertEqual(float(t.to_numpy()[0, 0, 0, 0]), -1.0)

    def test_reshape_accepts_tuple(self):
        t = Tensor((4, 6))
        self.assertEqual(t.reshape((2, 3, 4)).shape, (2, 3, 4, 1))

    def test_reshape_element_count_mismatch_raises(self):
        t = Tensor((4, 6))
        with self.assertRaises(ShapeMismatchError):
            t.reshape(5, 5)

    def test_transpose2d(self):
        arr = np.arange(12, dtype=np.float32).reshape(2, 3, 2, 1)
        t = Tensor.from_numpy(arr)
        tt = t.transpose2d()
        self.assertEqual(tt.shape, (6, 2, 1, 1))
        np.testing.assert_array_equal(tt.to_numpy()[:, :, 0, 0], arr.reshape(2, 6).T)
        self.assertFalse(tt.shares_buffer_with(t))
        np.testing.assert_array_equal(tt.transpose2d().to_numpy().reshape(2, 6), arr.reshape(2, 6))

    def test_transpose_permutes_axes(self):
        arr = np.random.RandomState(0).randn(2, 3, 4, 5).astype(np.float32)
        t = Tensor.from_numpy(arr).transpose((0, 2, 3, 1))
        np.testing.assert_array_equal(t.to_numpy(), arr.transpose(0, 2, 3, 1))
        with self.assertRaises(ValueError):
            Tensor.from_numpy(arr).transpose((0, 0, 1, 2))

    def test_copy_is_independent(self):
        t = Tensor.ones((2, 2))
        c = t.copy()
        c.fill(3.0)
        self.assertEqual(t.sum(), 4.0)
        self.assertEqual(c.sum(), 12.0)

    def test_copy_from_shape_mismatch_raises(self):
        with self.assertRaises(ShapeMismatchError):
            Tensor((2, 2)).copy_from(Tensor((4,)))


class TestTensorArithmetic(unittest.TestCase):
    def setUp(self) -> None:
        rng = np.random.RandomState(0)
        self.a_np = rng.randn(2, 3, 1, 1).astype(np.float32)
        self.b_np = rng.randn(2, 3, 1, 1).astype(np.float32)
        self.a = Tensor.from_numpy(self.a_np)
        self.b = Tensor.from_numpy(self.b_np)

    def test_copying_ops(self):
        np.testing.assert_allclose((self.a + self.b).to_numpy(), self.a_np + self.b_np)
        np.testing.assert_allclose((self.a - self.b).to_numpy(), self.a_np - self.b_np)
        np.testing.assert_allclose((self.a * 2.0).to_numpy(), self.a_np * 2.0)
        np.testing.assert_allclose((1.0 - self.a).to_numpy(), 1.0 - self.a_np)
        np.testing.assert_allclose((-self.a).to_numpy(), -self.a_np)

    def test_in_place_ops_write_into_buffer(self):
        buf = self.a.data
        self.a += self.b
        self.assertIs(self.a.data, buf)
        np.testing.assert_allclose(self.a.to_numpy(), self.a_np + self.b_np, rtol=1e-6)
        self.a.scale_(0.0)
        self.assertEqual(self.a.l2_norm(), 0.0)

    def test_shape_mismatch_raises(self):
        with self.assertRaises(ShapeMismatchError):
            _ = self.a + Tensor((3, 2))
        with self.assertRaises(ShapeMismatchError):
            self.a.add_(Tensor((6,)))

    def test_clip(self):
        t = Tensor.from_numpy(np.array([-3.0, -0.5, 0.5, 3.0], dtype=np.float32))
        t.clip_(-1.0, 1.0)
        np.testing.assert_array_equal(t.data, [-1.0, -0.5, 0.5, 1.0])

    def test_matmul(self):
        rng = np.random.RandomState(1)
        a = rng.randn(4, 3).astype(np.float64)
        b = rng.randn(3, 5).astype(np.float64)
        out = Tensor.from_numpy(a).matmul(Tensor.from_numpy(b))
        self.assertEqual(out.shape, (4, 5, 1, 1))
        np.testing.assert_allclose(out.to_numpy()[:, :, 0, 0], a @ b, rtol=1e-12)

    def test_matmul_scale(self):
        a = np.ones((2, 16), dtype=np.float64)
        b = np.ones((16, 1), dtype=np.float64)
        out = Tensor.from_numpy(a).matmul(Tensor.from_numpy(b), scale=True)
        np.testing.assert_allclose(out.data, [16.0 / math.sqrt(16.0)] * 2)

    def test_matmul_inner_dimension_mismatch(self):
        with self.assertRaises(ShapeMismatchError) as cm:
            Tensor((2, 3)).matmul(Tensor((4, 2)))
        self.assertEqual(cm.exception.op, "matmul")
        self.assertIsInstance(cm.exception, ValueError)


class TestTensorReduction(unittest.TestCase):
    def test_axis_reductions_keep_rank(self):
        arr = np.arange(24, dtype=np.float64).reshape(2, 3, 2, 2)
        t = Tensor.from_numpy(arr)
        s = t.sum(axis=1)
        self.assertEqual(s.shape, (2, 1, 2, 2))
        np.testing.assert_allclose(s.to_numpy(), arr.sum(axis=1, keepdims=True))
        np.testing.assert_allclose(t.mean(axis=0).to_numpy(), arr.mean(axis=0, keepdims=True))

    def test_scalar_reductions_and_norms(self):
        arr = np.array([3.0, -4.0], dtype=np.float32)
        t = Tensor.from_numpy(arr)
        self.assertAlmostEqual(t.sum(), -1.0)
        self.assertAlmostEqual(t.mean(), -0.5)
        self.assertAlmostEqual(t.l2_norm(), 5.0, places=6)
        self.assertAlmostEqual(t.l1_norm(), 7.0, places=6)
        self.assertAlmostEqual(t.abs_max(), 4.0)
        self.assertAlmostEqual(t.abs_mean(), 3.5)


if __name__ == "__main__":
    unittest.main()
