"""
Feed-Forward Network Engine
===========================

Layered perceptron evolved by the genetic loop and optionally trained by
error propagation. Neurons are explicit objects: each holds its activated
value, the pending contributions pushed by the previous layer and one
outgoing weight per non-bias neuron of the next layer.

The network also carries a small trading side-channel (budget, open position,
realised difference) so a candidate can be scored on the trades its
decisions would have made.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from core.exceptions import EvaluationError, PersistenceError, SampleError
from core.numeric import round_unit, sigmoid, sigmoid_derivative, to_fixed
from core.rng import get_random_source, rand_float, rand_int
from samples.provider import Sample

logger = logging.getLogger(__name__)

HOLD, BUY, SELL = 0, 1, 2
NAN_PENALTY = 1.0


@dataclass
class Neuron:
    """A single perceptron unit."""
    value: float = 0.0
    pending_sums: List[float] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)
    error: float = 0.0
    is_input: bool = False
    is_output: bool = False
    is_bias: bool = False

    @classmethod
    def bias(cls) -> Neuron:
        return cls(value=1.0, is_bias=True)

    def push(self, contribution: float) -> None:
        self.pending_sums.append(contribution)

    def activate(self) -> None:
        """Squash the pending sum through the sigmoid; no-op without input."""
        if self.pending_sums:
            self.value = sigmoid(sum(self.pending_sums))
            self.pending_sums = []

    def pass_through(self) -> None:
        """Take the pending sum as the value unchanged (regression output)."""
        if self.pending_sums:
            self.value = sum(self.pending_sums)
            self.pending_sums = []

    def derivative(self) -> float:
        return sigmoid_derivative(self.value)

    def copy(self) -> Neuron:
        return Neuron(
            value=self.value,
            pending_sums=list(self.pending_sums),
            weights=list(self.weights),
            error=self.error,
            is_input=self.is_input,
            is_output=self.is_output,
            is_bias=self.is_bias,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value,
            'weights': list(self.weights),
            'error': self.error,
            'is_input': self.is_input,
            'is_output': self.is_output,
            'is_bias': self.is_bias,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Neuron:
        return cls(
            value=float(data.get('value', 0.0)),
            weights=[float(w) for w in data.get('weights', [])],
            error=float(data.get('error', 0.0)),
            is_input=bool(data.get('is_input', False)),
            is_output=bool(data.get('is_output', False)),
            is_bias=bool(data.get('is_bias', False)),
        )


@dataclass
class AccuracyResult:
    """Exact-match statistics of a prediction run."""
    percent: float = 0.0
    true_count: int = 0
    false_count: int = 0

    def record(self, matched: bool) -> bool:
        if matched:
            self.true_count += 1
        else:
            self.false_count += 1
        return matched

    def finalize(self) -> float:
        """
        Derive the accuracy percentage.

        ``((true - false) / ((false + true) / 2) * 100) / 2``: 100 when every
        prediction matched, -100 when none did.
        """
        total = self.true_count + self.false_count
        if total == 0:
            self.percent = 0.0
        else:
            self.percent = ((self.true_count - self.false_count) / (total / 2) * 100) / 2
        return self.percent

    def to_dict(self) -> Dict[str, Any]:
        return {
            'percent': self.percent,
            'true_count': self.true_count,
            'false_count': self.false_count,
        }


def one_hot_decode(values: Sequence[float]) -> List[float]:
    """
    One-hot vector at the maximum of ``values``.

    Scans right-to-left with a strict comparison starting from 0, so the
    right-most maximum wins a tie and all non-positive outputs select index 0.
    """
    best = 0.0
    best_index = 0
    for i in range(len(values) - 1, -1, -1):
        if values[i] > best:
            best = values[i]
            best_index = i
    decoded = [0.0] * len(values)
    if decoded:
        decoded[best_index] = 1.0
    return decoded


def is_valid_decision(decision: Sequence[float]) -> bool:
    """A hold/buy/sell decision is valid when exactly one signal is set."""
    if len(decision) != 3:
        return False
    if any(v not in (0, 1) for v in decision):
        return False
    return sum(1 for v in decision if v == 1) == 1


class FeedForwardNetwork:
    """
    Layered perceptron with optional bias neurons.

    Layout is ``[input] + [hidden] * hidden_layers + [output]``. Bias neurons,
    when enabled, are appended to every layer except the output layer.
    """

    def __init__(
        self,
        hidden_layers: int = 1,
        hidden_neurons: int = 8,
        learn_rate: float = 0.1,
        bias: bool = False,
        regression: bool = False,
        final_activation: bool = True,
        weight_range: Tuple[float, float] = (-10.0, 10.0),
        rng: Optional[np.random.Generator] = None,
    ):
        self.hidden_layers = hidden_layers
        self.hidden_neurons = hidden_neurons
        self.learn_rate = learn_rate
        self.bias = bias
        self.regression = regression
        self.final_activation = final_activation
        self.weight_range = (float(weight_range[0]), float(weight_range[1]))

        self.layers: List[List[Neuron]] = []
        self.samples: List[Sample] = []
        self.inputs = 0
        self.outputs = 0
        self.current_index = 0

        self.error = 1.0
        self.error_history: List[float] = []
        self.result = AccuracyResult()

        # Fitness and trading side-channel
        self.score = 0.0
        self.budget = 0.0
        self.trade_count = 0
        self.cumulative_diff = 0.0
        self.position_open = False
        self.last_trade_price = 0.0

        self._rng = rng or get_random_source().generator()

    @classmethod
    def from_settings(cls, settings: Any, rng: Optional[np.random.Generator] = None) -> FeedForwardNetwork:
        """Create an unbuilt network from ``NetworkSettings``."""
        return cls(
            hidden_layers=settings.layers,
            hidden_neurons=settings.neurons,
            learn_rate=settings.learn_rate,
            bias=settings.bias,
            regression=settings.regression,
            final_activation=settings.final_activation,
            weight_range=(settings.weight_min, settings.weight_max),
            rng=rng,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def build(self, samples: Sequence[Sample], outputs: Optional[int] = None) -> FeedForwardNetwork:
        """
        Lay out the neurons for ``samples`` and draw the initial weights.

        Args:
            samples: Training samples; the first one fixes the input width
            outputs: Output width; defaults to the first sample's target width
        """
        if not samples:
            raise SampleError("Cannot build a network without samples")
        first = samples[0]
        if outputs is None:
            if first.targets is None:
                raise SampleError("Output width unknown: samples carry no targets")
            outputs = len(first.targets)

        self.samples = list(samples)
        self.inputs = len(first.features)
        self.outputs = outputs
        self.current_index = 0

        input_layer = [Neuron(is_input=True) for _ in range(self.inputs)]
        if self.bias:
            input_layer.append(Neuron.bias())
        self.layers = [input_layer]

        for _ in range(self.hidden_layers):
            hidden = [Neuron() for _ in range(self.hidden_neurons)]
            if self.bias:
                hidden.append(Neuron.bias())
            self.layers.append(hidden)

        self.layers.append([Neuron(is_output=True) for _ in range(self.outputs)])
        return self.init_weights()

    def init_weights(self) -> FeedForwardNetwork:
        """Draw every outgoing weight uniformly, rounded to 3 decimals."""
        low, high = self.weight_range
        for il in range(len(self.layers) - 1):
            targets = sum(1 for n in self.layers[il + 1] if not n.is_bias)
            for neuron in self.layers[il]:
                neuron.weights = [
                    to_fixed(rand_float(self._rng, low, high), 3) for _ in range(targets)
                ]
        return self

    def set_weights(self, value: float) -> FeedForwardNetwork:
        """Set every weight to ``value``."""
        for layer in self.layers:
            for neuron in layer:
                neuron.weights = [value] * len(neuron.weights)
        return self

    def set_samples(self, samples: Sequence[Sample]) -> FeedForwardNetwork:
        self.samples = list(samples)
        self.current_index = 0
        return self

    @property
    def output_layer(self) -> List[Neuron]:
        return self.layers[-1]

    def weight_count(self) -> int:
        return sum(len(n.weights) for layer in self.layers for n in layer)

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def _set_inputs(self, features: Sequence[float]) -> None:
        inputs = [n for n in self.layers[0] if not n.is_bias]
        if len(features) < len(inputs):
            raise SampleError(
                "Feature vector narrower than the input layer",
                context={"expected": len(inputs), "got": len(features)},
            )
        for neuron, value in zip(inputs, features):
            neuron.value = float(value)

    def forward(self) -> None:
        """Propagate the current input values to the output layer."""
        last = len(self.layers) - 1
        for il, layer in enumerate(self.layers):
            for neuron in layer:
                if il == last and not self.final_activation:
                    neuron.pass_through()
                else:
                    neuron.activate()
                if neuron.weights:
                    nxt = self.layers[il + 1]
                    for iw, weight in enumerate(neuron.weights):
                        nxt[iw].push(neuron.value * weight)

    def feed(self, features: Sequence[float]) -> List[float]:
        """Forward ``features`` and return the raw output values."""
        self._set_inputs(features)
        self.forward()
        return [n.value for n in self.output_layer]

    # ------------------------------------------------------------------
    # Error and weight updates
    # ------------------------------------------------------------------

    def output_loss(self, targets: Optional[Sequence[float]]) -> float:
        """Set output errors to ``target - value`` and return the squared sum."""
        if targets is None:
            raise EvaluationError("Sample has no targets to measure loss against")
        loss = 0.0
        for neuron, target in zip(self.output_layer, targets):
            neuron.error = target - neuron.value
            loss += neuron.error ** 2
        return loss

    def propagate_errors(self) -> None:
        """Carry output errors back through the hidden layers."""
        for il in range(len(self.layers) - 2, 0, -1):
            nxt = self.layers[il + 1]
            for neuron in self.layers[il]:
                total = 0.0
                for iw, weight in enumerate(neuron.weights):
                    total += weight * nxt[iw].error
                neuron.error = total * neuron.derivative()

    def calc_error(self, targets: Optional[Sequence[float]]) -> float:
        """Loss for the training path: recorded, then propagated backwards."""
        loss = self.output_loss(targets)
        self.error = to_fixed(loss, 10)
        self.error_history.append(loss)
        self.propagate_errors()
        return loss

    def backpropagate(self) -> None:
        """Apply ``weight += learn_rate * next_error * value`` to every weight."""
        for il, layer in enumerate(self.layers[:-1]):
            nxt = self.layers[il + 1]
            for neuron in layer:
                for iw, weight in enumerate(neuron.weights):
                    neuron.weights[iw] = weight + self.learn_rate * nxt[iw].error * neuron.value

    def mean_epoch_error(self) -> float:
        """Mean recorded loss over the dataset, NaN losses counting as 1.0."""
        total = 0.0
        for loss in self.error_history:
            total += NAN_PENALTY if math.isnan(loss) else loss
        self.error_history = []
        self.error = total / len(self.samples) if self.samples else 0.0
        return self.error

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _advance(self) -> None:
        if self.current_index + 1 >= len(self.samples):
            self.current_index = 0
        else:
            self.current_index += 1

    def train_step(self, rng: Optional[np.random.Generator] = None) -> float:
        """
        Forward one random sample and measure its loss without learning.

        Used as the (noisy) fitness inside the evolutionary loop.
        """
        if not self.samples:
            raise EvaluationError("Network has no samples to evaluate")
        rng = rng or self._rng
        self.current_index = rand_int(rng, len(self.samples))
        sample = self.samples[self.current_index]
        self.feed(sample.features)
        self.error = self.output_loss(sample.targets)
        return self.error

    def train_epoch(self) -> float:
        """One sweep over every sample with weight updates; returns the mean error."""
        for _ in range(len(self.samples)):
            sample = self.samples[self.current_index]
            self.feed(sample.features)
            self.calc_error(sample.targets)
            self.backpropagate()
            self._advance()
        return self.mean_epoch_error()

    def train(self, iterations: int = 100, log_every: int = 50) -> float:
        """Repeated full-dataset sweeps with throttled progress logging."""
        start = time.perf_counter()
        self.current_index = 0
        for i in range(iterations):
            self.train_epoch()
            if i % log_every == 0:
                logger.info(f"iteration: {i}; error: {self.error}")
            self.current_index = 0
        self.error_history = []
        logger.info(f"teach time: {time.perf_counter() - start:.3f}s")
        return self.error

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, features: Sequence[float]) -> List[float]:
        """Regression: outputs rounded to 3 decimals. Classification: 0/1 per output."""
        raw = self.feed(features)
        if self.regression:
            return [to_fixed(v, 3) for v in raw]
        return [round_unit(v) for v in raw]

    def predict_raw(self, features: Sequence[float], precision: int = 3) -> List[float]:
        return [to_fixed(v, precision) for v in self.feed(features)]

    def predict_one_hot(self, features: Sequence[float]) -> List[float]:
        raw = self.feed(features)
        if self.regression:
            raw = [to_fixed(v, 3) for v in raw]
        return one_hot_decode(raw)

    # ------------------------------------------------------------------
    # Accuracy statistics
    # ------------------------------------------------------------------

    @staticmethod
    def _matches(predicted: Sequence[float], expected: Optional[Sequence[float]]) -> bool:
        if expected is None:
            return False
        return np.array_equal(np.asarray(predicted, dtype=float), np.asarray(expected, dtype=float))

    def calc_stat(self, count: int, rng: Optional[np.random.Generator] = None) -> AccuracyResult:
        """One-hot predictions on ``count`` random own samples."""
        rng = rng or self._rng
        self.result = AccuracyResult()
        for _ in range(count):
            sample = self.samples[rand_int(rng, len(self.samples))]
            self.result.record(self._matches(self.predict_one_hot(sample.features), sample.targets))
        self.result.finalize()
        return self.result

    def calc_stat_all(self, samples: Sequence[Sample]) -> AccuracyResult:
        """``predict`` on every sample."""
        self.result = AccuracyResult()
        for sample in samples:
            self.result.record(self._matches(self.predict(sample.features), sample.targets))
        self.result.finalize()
        return self.result

    def calc_stat_regress(
        self,
        samples: Sequence[Sample],
        count: int,
        rng: Optional[np.random.Generator] = None,
    ) -> AccuracyResult:
        """Random regression predictions, both sides rounded to 3 decimals."""
        rng = rng or self._rng
        self.result = AccuracyResult()
        for _ in range(count):
            sample = samples[rand_int(rng, len(samples))]
            predicted = [to_fixed(v, 3) for v in self.predict(sample.features)]
            expected = None if sample.targets is None else [to_fixed(v, 3) for v in sample.targets]
            self.result.record(self._matches(predicted, expected))
        self.result.finalize()
        return self.result

    def accuracy(self, min_percent: float) -> bool:
        return self.result.percent >= min_percent

    def stat_line(self) -> str:
        return f"accuracy: {to_fixed(self.result.percent, 1):.2f}%"

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def mutate_weight(
        self,
        low: float,
        high: float,
        rng: Optional[np.random.Generator] = None,
    ) -> bool:
        """
        Replace one random weight with a uniform draw from ``[low, high)``.

        Picks a random non-output layer, a random neuron of it with outgoing
        weights and a random weight index. Returns False when the network
        has no weights.
        """
        rng = rng or self._rng
        layers = [layer for layer in self.layers[:-1] if any(n.weights for n in layer)]
        if not layers:
            return False
        layer = layers[rand_int(rng, len(layers))]
        neurons = [n for n in layer if n.weights]
        neuron = neurons[rand_int(rng, len(neurons))]
        neuron.weights[rand_int(rng, len(neuron.weights))] = rand_float(rng, low, high)
        return True

    # ------------------------------------------------------------------
    # Trading side-channel
    # ------------------------------------------------------------------

    def reset_trading(self, budget: float) -> None:
        self.score = 0.0
        self.budget = budget
        self.trade_count = 0
        self.cumulative_diff = 0.0
        self.position_open = False
        self.last_trade_price = 0.0

    def operate(self, decision: Sequence[float], price: float) -> None:
        """Apply a hold/buy/sell decision at ``price``."""
        if decision[HOLD] == 1:
            return
        if decision[BUY] == 1 and not self.position_open:
            self.budget -= price
            self.position_open = True
            self.last_trade_price = price
        if decision[SELL] == 1 and self.position_open:
            self.cumulative_diff += price - self.last_trade_price
            self.budget += price
            self.trade_count += 1
            self.position_open = False

    # ------------------------------------------------------------------
    # Copy and serialization
    # ------------------------------------------------------------------

    def clone(self, rng: Optional[np.random.Generator] = None) -> FeedForwardNetwork:
        """
        Independent structural copy.

        Samples are shared (read-only); error, error history and accuracy are
        reset.
        """
        twin = FeedForwardNetwork(
            hidden_layers=self.hidden_layers,
            hidden_neurons=self.hidden_neurons,
            learn_rate=self.learn_rate,
            bias=self.bias,
            regression=self.regression,
            final_activation=self.final_activation,
            weight_range=self.weight_range,
            rng=rng,
        )
        twin.layers = [[n.copy() for n in layer] for layer in self.layers]
        twin.samples = self.samples
        twin.inputs = self.inputs
        twin.outputs = self.outputs
        twin.score = self.score
        twin.budget = self.budget
        twin.trade_count = self.trade_count
        twin.cumulative_diff = self.cumulative_diff
        twin.position_open = self.position_open
        twin.last_trade_price = self.last_trade_price
        return twin

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hidden_layers': self.hidden_layers,
            'hidden_neurons': self.hidden_neurons,
            'learn_rate': self.learn_rate,
            'bias': self.bias,
            'regression': self.regression,
            'final_activation': self.final_activation,
            'weight_range': list(self.weight_range),
            'inputs': self.inputs,
            'outputs': self.outputs,
            'error': self.error,
            'score': self.score,
            'budget': self.budget,
            'trade_count': self.trade_count,
            'cumulative_diff': self.cumulative_diff,
            'position_open': self.position_open,
            'last_trade_price': self.last_trade_price,
            'result': self.result.to_dict(),
            'layers': [[n.to_dict() for n in layer] for layer in self.layers],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], samples: Optional[Sequence[Sample]] = None) -> FeedForwardNetwork:
        net = cls(
            hidden_layers=int(data['hidden_layers']),
            hidden_neurons=int(data['hidden_neurons']),
            learn_rate=float(data['learn_rate']),
            bias=bool(data['bias']),
            regression=bool(data['regression']),
            final_activation=bool(data['final_activation']),
            weight_range=tuple(data['weight_range']),
        )
        net.layers = [[Neuron.from_dict(n) for n in layer] for layer in data['layers']]
        net.inputs = int(data.get('inputs', 0))
        net.outputs = int(data.get('outputs', 0))
        net.error = float(data.get('error', 1.0))
        net.score = float(data.get('score', 0.0))
        net.budget = float(data.get('budget', 0.0))
        net.trade_count = int(data.get('trade_count', 0))
        net.cumulative_diff = float(data.get('cumulative_diff', 0.0))
        net.position_open = bool(data.get('position_open', False))
        net.last_trade_price = float(data.get('last_trade_price', 0.0))
        net.result = AccuracyResult(**data.get('result', {}))
        if samples is not None:
            net.set_samples(samples)
        return net

    def save(self, path: str | Path) -> None:
        """
        Write the network as JSON.

        Raises:
            PersistenceError: empty path or unwritable file
        """
        if not path or not str(path):
            raise PersistenceError("empty filename")
        try:
            Path(path).write_text(json.dumps(self.to_dict()), encoding="utf-8")
        except OSError as e:
            raise PersistenceError("Failed to save network", context={"path": str(path)}, cause=e) from e


def load_network(path: str | Path, samples: Optional[Sequence[Sample]] = None) -> FeedForwardNetwork:
    """
    Read a network written by ``FeedForwardNetwork.save``.

    Raises:
        PersistenceError: empty path, unreadable file or malformed content
    """
    if not path or not str(path):
        raise PersistenceError("empty filename")
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return FeedForwardNetwork.from_dict(data, samples)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise PersistenceError("Failed to load network", context={"path": str(path)}, cause=e) from e
