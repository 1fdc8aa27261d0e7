"""Small fully-connected classifier trained with mini-batch SGD + momentum.

The network maps the 20-dimensional session encoding to a softmax over the
mood catalog. Hidden layers use the configured activation; the output layer
is linear followed by softmax, trained with cross-entropy.

Usage::

    net = FeedForwardNetwork(output_size=9, config=NetworkConfig(seed=7))
    losses = net.train(x, y, epochs=50)
    probs = net.predict(x[0])
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from gamemood.defaults import (
    NEURAL_ACTIVATION,
    NEURAL_BATCH_SIZE,
    NEURAL_EPOCHS,
    NEURAL_HIDDEN_LAYERS,
    NEURAL_INPUT_SIZE,
    NEURAL_LEARNING_RATE,
    NEURAL_MOMENTUM,
)

logger = logging.getLogger(__name__)

__all__ = ["ACTIVATIONS", "FeedForwardNetwork", "NetworkConfig"]

ACTIVATIONS = ("relu", "sigmoid", "tanh")


@dataclass(slots=True)
class NetworkConfig:
    input_size: int = NEURAL_INPUT_SIZE
    hidden_layers: tuple[int, ...] = NEURAL_HIDDEN_LAYERS
    activation: str = NEURAL_ACTIVATION
    learning_rate: float = NEURAL_LEARNING_RATE
    momentum: float = NEURAL_MOMENTUM
    batch_size: int = NEURAL_BATCH_SIZE
    epochs: int = NEURAL_EPOCHS
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.activation not in ACTIVATIONS:
            raise ValueError(f"Unsupported activation {self.activation!r}, expected one of {ACTIVATIONS}")
        if self.batch_size <= 0 or self.epochs <= 0:
            raise ValueError("batch_size and epochs must be positive")
        if any(size <= 0 for size in self.hidden_layers):
            raise ValueError("hidden layer sizes must be positive")


def _activate(name: str, z: np.ndarray) -> np.ndarray:
    if name == "relu":
        return np.maximum(z, 0.0)
    if name == "sigmoid":
        return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))
    return np.tanh(z)


def _activation_grad(name: str, z: np.ndarray, a: np.ndarray) -> np.ndarray:
    if name == "relu":
        return (z > 0).astype(z.dtype)
    if name == "sigmoid":
        return a * (1.0 - a)
    return 1.0 - a * a


def _softmax(z: np.ndarray) -> np.ndarray:
    shifted = z - z.max(axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return exp / exp.sum(axis=-1, keepdims=True)


class FeedForwardNetwork:
    """Multi-layer perceptron with softmax output.

    Parameters
    ----------
    output_size:
        Number of classes (mood catalog size).
    config:
        Architecture and optimiser settings; ``seed`` makes initialisation
        and batch shuffling reproducible.
    """

    def __init__(self, output_size: int, config: NetworkConfig | None = None) -> None:
        if output_size <= 0:
            raise ValueError("output_size must be positive")
        self.config = config or NetworkConfig()
        self.output_size = output_size
        self._rng = np.random.default_rng(self.config.seed)

        sizes = [self.config.input_size, *self.config.hidden_layers, output_size]
        self.weights: list[np.ndarray] = []
        self.biases: list[np.ndarray] = []
        for fan_in, fan_out in zip(sizes, sizes[1:]):
            # He init for relu, Xavier otherwise
            gain = 2.0 if self.config.activation == "relu" else 1.0
            scale = np.sqrt(gain / fan_in)
            self.weights.append(self._rng.normal(0.0, scale, size=(fan_in, fan_out)))
            self.biases.append(np.zeros(fan_out))
        self._velocity_w = [np.zeros_like(w) for w in self.weights]
        self._velocity_b = [np.zeros_like(b) for b in self.biases]
        self.trained_epochs = 0

    @property
    def layer_sizes(self) -> list[int]:
        return [self.config.input_size, *(w.shape[1] for w in self.weights)]

    def _forward(self, x: np.ndarray) -> tuple[list[np.ndarray], list[np.ndarray]]:
        """Return pre-activations and activations for every layer."""
        activations = [x]
        pre_activations: list[np.ndarray] = []
        last = len(self.weights) - 1
        for idx, (w, b) in enumerate(zip(self.weights, self.biases)):
            z = activations[-1] @ w + b
            pre_activations.append(z)
            if idx == last:
                activations.append(_softmax(z))
            else:
                activations.append(_activate(self.config.activation, z))
        return pre_activations, activations

    def predict(self, features: Sequence[float] | np.ndarray) -> np.ndarray:
        """Class probabilities for one sample (1-d) or a batch (2-d)."""
        x = np.asarray(features, dtype=float)
        single = x.ndim == 1
        if single:
            x = x[np.newaxis, :]
        if x.shape[1] != self.config.input_size:
            raise ValueError(f"expected {self.config.input_size} features, got {x.shape[1]}")
        _, activations = self._forward(x)
        return activations[-1][0] if single else activations[-1]

    def loss(self, x: np.ndarray, y: np.ndarray) -> float:
        probs = self.predict(np.asarray(x, dtype=float))
        return float(-np.mean(np.sum(y * np.log(np.clip(probs, 1e-12, 1.0)), axis=1)))

    def _backward(self, x: np.ndarray, y: np.ndarray) -> None:
        pre, acts = self._forward(x)
        batch = x.shape[0]
        # softmax + cross-entropy gradient
        delta = (acts[-1] - y) / batch
        for layer in range(len(self.weights) - 1, -1, -1):
            grad_w = acts[layer].T @ delta
            grad_b = delta.sum(axis=0)
            if layer > 0:
                delta = (delta @ self.weights[layer].T) * _activation_grad(
                    self.config.activation, pre[layer - 1], acts[layer]
                )
            self._velocity_w[layer] = (
                self.config.momentum * self._velocity_w[layer] - self.config.learning_rate * grad_w
            )
            self._velocity_b[layer] = (
                self.config.momentum * self._velocity_b[layer] - self.config.learning_rate * grad_b
            )
            self.weights[layer] += self._velocity_w[layer]
            self.biases[layer] += self._velocity_b[layer]

    def train(
        self,
        inputs: Sequence[Sequence[float]] | np.ndarray,
        targets: Sequence[Sequence[float]] | np.ndarray,
        epochs: int | None = None,
        cancel: threading.Event | None = None,
    ) -> list[float]:
        """Run mini-batch gradient descent and return the loss after each epoch.

        Training stops early, between mini-batches, once *cancel* is set.
        """
        x = np.asarray(inputs, dtype=float)
        y = np.asarray(targets, dtype=float)
        if x.ndim != 2 or y.ndim != 2 or x.shape[0] != y.shape[0]:
            raise ValueError("inputs and targets must be 2-d arrays with matching rows")
        if x.shape[0] == 0:
            return []
        if y.shape[1] != self.output_size:
            raise ValueError(f"expected {self.output_size} target columns, got {y.shape[1]}")

        history: list[float] = []
        batch_size = self.config.batch_size
        for epoch in range(epochs or self.config.epochs):
            order = self._rng.permutation(x.shape[0])
            for start in range(0, x.shape[0], batch_size):
                if cancel is not None and cancel.is_set():
                    logger.info("Training cancelled at epoch %d", epoch)
                    return history
                idx = order[start:start + batch_size]
                self._backward(x[idx], y[idx])
            history.append(self.loss(x, y))
            self.trained_epochs += 1
        if history:
            logger.debug("Training finished: epochs=%d loss=%.4f", len(history), history[-1])
        return history

    def state_dict(self) -> dict:
        return {
            "layer_sizes": self.layer_sizes,
            "activation": self.config.activation,
            "weights": [w.tolist() for w in self.weights],
            "biases": [b.tolist() for b in self.biases],
            "trained_epochs": self.trained_epochs,
        }
