import threading

import numpy as np
import pytest

from gamemood.analytics.network import FeedForwardNetwork, NetworkConfig


def _separable(n=40, seed=3):
    rng = np.random.default_rng(seed)
    x = rng.uniform(0.0, 1.0, size=(n, 20))
    labels = (x[:, 0] > 0.5).astype(int)
    y = np.zeros((n, 2))
    y[np.arange(n), labels] = 1.0
    return x, y


def test_prediction_is_a_probability_distribution():
    net = FeedForwardNetwork(output_size=5, config=NetworkConfig(hidden_layers=(8, 4), seed=1))
    probs = net.predict([0.1] * 20)
    assert probs.shape == (5,)
    assert probs.sum() == pytest.approx(1.0)
    assert (probs >= 0).all()


def test_batch_prediction_shape():
    net = FeedForwardNetwork(output_size=3, config=NetworkConfig(hidden_layers=(4,), seed=1))
    assert net.predict(np.zeros((7, 20))).shape == (7, 3)


def test_same_seed_gives_same_network():
    config = NetworkConfig(hidden_layers=(8,), seed=42)
    a = FeedForwardNetwork(output_size=4, config=config)
    b = FeedForwardNetwork(output_size=4, config=config)
    sample = np.linspace(0.0, 1.0, 20)
    assert np.allclose(a.predict(sample), b.predict(sample))


@pytest.mark.parametrize("activation", ["relu", "sigmoid", "tanh"])
def test_training_reduces_loss(activation):
    x, y = _separable()
    config = NetworkConfig(hidden_layers=(16,), activation=activation, learning_rate=0.02, batch_size=8, seed=0)
    net = FeedForwardNetwork(output_size=2, config=config)
    initial = net.loss(x, y)

    history = net.train(x, y, epochs=60)

    assert len(history) == 60
    assert history[-1] < initial
    assert net.trained_epochs == 60


def test_cancelled_training_stops_before_first_batch():
    x, y = _separable()
    cancel = threading.Event()
    cancel.set()
    net = FeedForwardNetwork(output_size=2, config=NetworkConfig(hidden_layers=(4,), seed=0))

    assert net.train(x, y, epochs=10, cancel=cancel) == []
    assert net.trained_epochs == 0


def test_empty_training_set_is_a_noop():
    net = FeedForwardNetwork(output_size=2, config=NetworkConfig(hidden_layers=(4,), seed=0))
    assert net.train(np.zeros((0, 20)), np.zeros((0, 2))) == []


def test_invalid_configuration_is_rejected():
    with pytest.raises(ValueError):
        NetworkConfig(activation="softplus")
    with pytest.raises(ValueError):
        NetworkConfig(hidden_layers=(8, 0))
    with pytest.raises(ValueError):
        FeedForwardNetwork(output_size=0)


def test_wrong_feature_count_is_rejected():
    net = FeedForwardNetwork(output_size=2, config=NetworkConfig(hidden_layers=(4,), seed=0))
    with pytest.raises(ValueError):
        net.predict([0.0] * 19)


def test_state_dict_describes_layers():
    net = FeedForwardNetwork(output_size=9, config=NetworkConfig(hidden_layers=(6, 3), seed=0))
    state = net.state_dict()
    assert state["layer_sizes"] == [20, 6, 3, 9]
    assert len(state["weights"]) == 3
