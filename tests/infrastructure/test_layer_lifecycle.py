import json
import unittest
import warnings

import numpy as np

import laminet as ln
from laminet import (
    HasParameters,
    ILayer,
    LayerBuildError,
    MissingTrainingContextError,
)
from laminet.domain import physical_shape


def mixed_chain():
    return [
        ln.Conv2D(4, 3, stride=2, padding="same", input_shape=(1, 9, 9)),
        ln.BatchNorm(),
        ln.ReLU(),
        ln.MaxPool2D(2),
        ln.Dropout(0.2),
        ln.Flatten(),
        ln.Dense(7),
        ln.BatchNorm(),
        ln.LeakyReLU(0.2),
        ln.Dropout(0.1),
        ln.Dense(3),
        ln.Softmax(),
    ]


class TestLayerBuild(unittest.TestCase):
    def test_first_layer_without_input_shape(self):
        with self.assertRaises(LayerBuildError) as cm:
            ln.Dense(3).build(0)
        self.assertIn("Cannot build the first layer without an input shape", str(cm.exception))

    def test_build_twice_raises(self):
        layer = ln.ReLU(input_shape=(3,))
        layer.build(0)
        with self.assertRaises(LayerBuildError):
            layer.build(0)

    def test_forward_before_build_raises(self):
        with self.assertRaises(LayerBuildError):
            ln.ReLU(input_shape=(3,)).forward(ln.Tensor((1, 3)))

    def test_default_name_uses_position(self):
        layers = ln.build_chain([ln.Dense(4, input_shape=(2,)), ln.ReLU(name="act")])
        self.assertEqual(layers[0].name, "dense_0")
        self.assertEqual(layers[1].name, "act")

    def test_explicit_input_shape_on_later_layer_warns(self):
        first = ln.Dense(4, input_shape=(2,))
        second = ln.Dense(3, input_shape=(9,))
        second.connect(first)
        first.build(0)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            second.build(1)
        self.assertTrue(any("ignored" in str(w.message) for w in caught))
        self.assertEqual(second.in_features, 4)

    def test_invalid_input_shape(self):
        with self.assertRaises(ValueError):
            ln.ReLU(input_shape=(1, 2, 3, 4))
        with self.assertRaises(ValueError):
            ln.ReLU(input_shape=(0,))

    def test_layers_satisfy_protocols(self):
        for layer in mixed_chain():
            self.assertIsInstance(layer, ILayer)
            self.assertIsInstance(layer, HasParameters)


class TestShapeLaw(unittest.TestCase):
    def setUp(self) -> None:
        ln.set_seed(0)

    def test_static_shapes_match_runtime_shapes(self):
        layers = mixed_chain()
        for i, layer in enumerate(layers):
            if i > 0:
                layer.connect(layers[i - 1])
        predicted = [layer.output_shape() for layer in layers]
        ln.build_chain(layers)
        self.assertEqual([layer.output_shape() for layer in layers], predicted)

        batch = 5
        x = ln.Tensor.from_numpy(np.random.RandomState(0).randn(batch, 1, 9, 9).astype(np.float32))
        for layer in layers:
            x = layer.forward(x, training=True)
            logical = (batch,) + tuple(layer.output_shape()[1:])
            with self.subTest(layer=layer.name):
                self.assertEqual(x.shape, physical_shape(logical, layer.output_format().layout))

        grad = ln.Tensor.from_numpy(np.eye(3, dtype=np.float32)[[0, 1, 2, 0, 1]].reshape(batch, 3, 1, 1))
        for layer in reversed(layers):
            grad = layer.backward(grad)
        self.assertEqual(grad.shape, (batch, 1, 9, 9))
        self.assertTrue(np.all(np.isfinite(grad.to_numpy())))

    def test_unresolved_shape_before_build(self):
        self.assertEqual(ln.Flatten().output_shape(), (-1, -1, 1, 1))
        self.assertEqual(ln.Dense(4).output_shape(), (-1, 4, 1, 1))


class TestTrainingContext(unittest.TestCase):
    def test_backward_requires_training_forward(self):
        layer = ln.ReLU(input_shape=(3,))
        layer.build(0)
        with self.assertRaises(MissingTrainingContextError):
            layer.backward(ln.Tensor((1, 3)))
        layer.forward(ln.Tensor((1, 3)), training=False)
        with self.assertRaises(MissingTrainingContextError):
            layer.backward(ln.Tensor((1, 3)))
        layer.forward(ln.Tensor((1, 3)), training=True)
        self.assertEqual(layer.backward(ln.Tensor((1, 3))).shape, (1, 3, 1, 1))

    def test_inference_does_not_touch_running_statistics(self):
        bn = ln.BatchNorm(input_shape=(2,))
        bn.build(0)
        bn.forward(ln.Tensor.from_numpy(np.random.RandomState(0).randn(4, 2).astype(np.float32)))
        np.testing.assert_array_equal(bn.running_mean.data, [0.0, 0.0])


class TestConfigRoundTrip(unittest.TestCase):
    def test_chain_config_round_trip(self):
        layers = mixed_chain()
        layers[6].init_normal(0.0, 0.1)
        layers.append(ln.Reshape((3, 1, 1)))
        nodes = ln.chain_to_config(layers)
        restored = ln.chain_from_config(json.loads(json.dumps(nodes)))

        self.assertEqual([type(l) for l in restored], [type(l) for l in layers])
        for a, b in zip(layers, restored):
            self.assertEqual(a.get_config(), b.get_config())
            self.assertFalse(b.built)

        ln.set_seed(3)
        ln.build_chain(layers)
        ln.set_seed(3)
        ln.build_chain(restored)
        for a, b in zip(layers, restored):
            self.assertEqual(a.output_shape(), b.output_shape())
            for pa, pb in zip(a.get_parameters(), b.get_parameters()):
                np.testing.assert_array_equal(pa.to_numpy(), pb.to_numpy())

    def test_sequence_layers_round_trip(self):
        layers = [
            ln.Embedding(20, 8, input_shape=(5,)),
            ln.LayerNorm(epsilon=1e-6),
            ln.Reshape(mode="merge_batch_seq"),
            ln.Dense(8, scale=True, use_bias=False),
            ln.GELU(),
            ln.Reshape(mode="split_batch_seq", seq_len=5),
            ln.Upsampling2D(2),
            ln.GlobalAveragePooling2D(),
            ln.Sigmoid(output_layer=True),
        ]
        restored = ln.chain_from_config(ln.chain_to_config(layers))
        for a, b in zip(layers, restored):
            self.assertEqual(a.get_config(), b.get_config())
        self.assertEqual(restored[3].scale, True)
        self.assertEqual(restored[5].seq_len, 5)

    def test_unknown_type_raises(self):
        with self.assertRaises(ValueError):
            ln.layer_from_config({"type": "NotALayer", "config": {}})

    def test_custom_layer_registration(self):
        @ln.register_layer()
        class Doubler(ln.Layer):
            def _forward(self, x, ctx):
                return x * 2.0

            def _backward(self, ctx, grad):
                return grad * 2.0

        node = ln.layer_to_config(Doubler(input_shape=(2,)))
        layer = ln.layer_from_config(node)
        self.assertIsInstance(layer, Doubler)
        layer.build(0)
        y = layer.forward(ln.Tensor.ones((1, 2)), training=True)
        self.assertEqual(y.sum(), 4.0)
        self.assertEqual(layer.backward(ln.Tensor.ones((1, 2))).sum(), 4.0)


if __name__ == "__main__":
    unittest.main()
