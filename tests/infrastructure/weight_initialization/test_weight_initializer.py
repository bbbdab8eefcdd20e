import math
import unittest

import numpy as np

import laminet as ln
from laminet import Tensor, WeightInitializer


class TestWeightInitializer(unittest.TestCase):
    def setUp(self) -> None:
        ln.set_seed(0)

    def test_builtin_strategies_are_registered(self):
        names = WeightInitializer.available()
        for expected in ("kaiming", "kaiming_uniform", "xavier", "xavier_uniform", "zeros", "ones"):
            self.assertIn(expected, names)

    def test_unknown_name_raises(self):
        with self.assertRaises(ValueError):
            WeightInitializer("does_not_exist")

    def test_duplicate_registration_raises(self):
        with self.assertRaises(ValueError):
            WeightInitializer.register_initializer("kaiming")(lambda t: t)

    def test_kaiming_normal_std(self):
        t = WeightInitializer("kaiming")(Tensor((64, 32, 3, 3)))
        expected = math.sqrt(2.0 / (32 * 9))
        self.assertAlmostEqual(float(t.data.std()), expected, delta=0.05 * expected)
        self.assertAlmostEqual(float(t.data.mean()), 0.0, delta=0.05 * expected)

    def test_kaiming_uniform_is_centred(self):
        t = WeightInitializer("kaiming_uniform")(Tensor((128, 50, 1, 1)))
        half = 0.5 * math.sqrt(2.0 / 50)
        self.assertLessEqual(float(np.abs(t.data).max()), half)
        self.assertAlmostEqual(float(t.data.mean()), 0.0, delta=0.05 * half)

    def test_xavier_uniform_limit(self):
        t = WeightInitializer("xavier_uniform")(Tensor((20, 30, 1, 1)))
        limit = math.sqrt(6.0 / 50)
        self.assertLessEqual(float(np.abs(t.data).max()), limit)

    def test_constant_strategies(self):
        self.assertEqual(WeightInitializer("zeros")(Tensor.ones((3, 3))).l1_norm(), 0.0)
        self.assertEqual(WeightInitializer("ones")(Tensor((3, 3))).sum(), 9.0)

    def test_layer_custom_init_range(self):
        dense = ln.Dense(8, input_shape=(4,)).init_uniform(-0.1, 0.1)
        dense.build(0)
        self.assertLessEqual(dense.weights.abs_max(), 0.1)

        with self.assertRaises(ValueError):
            dense.init_normal(0.0, 1.0)
        with self.assertRaises(ValueError):
            ln.Dense(8).init_uniform(1.0, -1.0)


if __name__ == "__main__":
    unittest.main()
