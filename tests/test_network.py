"""
Tests for the feed-forward network engine.
"""
import math

import numpy as np
import pytest

from core.exceptions import EvaluationError, PersistenceError, SampleError
from core.numeric import sigmoid
from neural import (
    AccuracyResult,
    FeedForwardNetwork,
    is_valid_decision,
    load_network,
    one_hot_decode,
)
from samples.provider import Sample


def _weights(net):
    return [w for layer in net.layers for n in layer for w in n.weights]


@pytest.fixture
def tiny_net(rng):
    """2-2-1 network, every weight 1, no bias."""
    samples = [Sample.of([0, 0], [0])]
    net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=2, rng=rng)
    return net.build(samples).set_weights(1.0)


class TestBuild:
    """Tests for network layout."""

    def test_layout_without_bias(self, xor_samples, rng):
        """Should create input, hidden and output layers sized from samples."""
        net = FeedForwardNetwork(hidden_layers=2, hidden_neurons=3, rng=rng).build(xor_samples)

        assert [len(layer) for layer in net.layers] == [2, 3, 3, 1]
        assert net.inputs == 2
        assert net.outputs == 1
        assert all(n.is_input for n in net.layers[0])
        assert all(n.is_output for n in net.output_layer)
        assert all(not n.weights for n in net.output_layer)

    def test_bias_neurons_skip_output_layer(self, xor_samples, rng):
        """Should append a bias neuron to every layer except the output."""
        net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=3, bias=True, rng=rng).build(xor_samples)

        assert [len(layer) for layer in net.layers] == [3, 4, 1]
        assert net.layers[0][-1].is_bias
        assert net.layers[0][-1].value == 1.0
        assert net.layers[1][-1].is_bias
        assert not any(n.is_bias for n in net.output_layer)

    def test_weights_target_non_bias_neurons(self, xor_samples, rng):
        """Should give each neuron one weight per non-bias neuron of the next layer."""
        net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=3, bias=True, rng=rng).build(xor_samples)

        assert all(len(n.weights) == 3 for n in net.layers[0])
        assert all(len(n.weights) == 1 for n in net.layers[1])
        assert net.weight_count() == 3 * 3 + 4 * 1

    def test_weights_in_range_and_rounded(self, xor_samples, rng):
        """Should draw weights from the configured range with 3 decimals."""
        net = FeedForwardNetwork(weight_range=(-2.0, 2.0), rng=rng).build(xor_samples)

        for w in _weights(net):
            assert -2.0 <= w <= 2.0
            assert round(w, 3) == w

    def test_explicit_output_width(self, price_samples, rng):
        """Should accept an explicit output width for samples without targets."""
        net = FeedForwardNetwork(rng=rng).build(price_samples, outputs=3)
        assert len(net.output_layer) == 3

    def test_unknown_output_width_raises(self, price_samples, rng):
        """Should refuse to guess the output width."""
        with pytest.raises(SampleError):
            FeedForwardNetwork(rng=rng).build(price_samples)

    def test_no_samples_raises(self, rng):
        with pytest.raises(SampleError):
            FeedForwardNetwork(rng=rng).build([])


class TestForward:
    """Tests for the forward pass."""

    def test_unit_weights_zero_input(self, tiny_net):
        """Should give 0.5 on every hidden neuron and sigmoid(1) at the output."""
        out = tiny_net.feed([0, 0])

        assert [n.value for n in tiny_net.layers[1]] == [0.5, 0.5]
        assert out[0] == pytest.approx(sigmoid(1.0))

    def test_deterministic(self, xor_samples, rng):
        """Should produce identical outputs for identical inputs."""
        net = FeedForwardNetwork(hidden_layers=2, hidden_neurons=4, rng=rng).build(xor_samples)

        assert net.feed([0.3, 0.7]) == net.feed([0.3, 0.7])

    def test_pending_sums_cleared(self, tiny_net):
        """Should consume accumulators after activation."""
        tiny_net.feed([1, 1])
        assert all(not n.pending_sums for layer in tiny_net.layers for n in layer)

    def test_regression_output_passes_through(self, rng):
        """Should leave the output un-squashed without final activation."""
        samples = [Sample.of([0, 0], [0])]
        net = FeedForwardNetwork(
            hidden_layers=1, hidden_neurons=2, final_activation=False, regression=True, rng=rng
        ).build(samples).set_weights(1.0)

        assert net.feed([0, 0]) == [1.0]

    def test_narrow_features_raise(self, tiny_net):
        with pytest.raises(SampleError):
            tiny_net.feed([1])


class TestErrorAndTraining:
    """Tests for loss, error propagation and training."""

    def test_output_loss(self, tiny_net):
        """Should set target minus value and return the squared sum."""
        tiny_net.feed([0, 0])
        value = sigmoid(1.0)
        loss = tiny_net.output_loss([1.0])

        assert tiny_net.output_layer[0].error == pytest.approx(1.0 - value)
        assert loss == pytest.approx((1.0 - value) ** 2)

    def test_output_loss_without_targets(self, tiny_net):
        tiny_net.feed([0, 0])
        with pytest.raises(EvaluationError):
            tiny_net.output_loss(None)

    def test_hidden_error_uses_sigmoid_derivative(self, tiny_net):
        """Should carry the weighted output error times value*(1-value)."""
        tiny_net.feed([0, 0])
        tiny_net.calc_error([1.0])

        out_err = tiny_net.output_layer[0].error
        for neuron in tiny_net.layers[1]:
            assert neuron.error == pytest.approx(out_err * 0.25)
        assert len(tiny_net.error_history) == 1

    def test_backpropagate_rule(self, tiny_net):
        """Should add learn_rate * next error * value to each weight."""
        tiny_net.feed([0, 0])
        tiny_net.calc_error([1.0])
        out_err = tiny_net.output_layer[0].error
        tiny_net.backpropagate()

        for neuron in tiny_net.layers[1]:
            assert neuron.weights[0] == pytest.approx(1.0 + 0.1 * out_err * 0.5)
        # Inputs were zero, so their weights stay put
        assert all(w == 1.0 for n in tiny_net.layers[0] for w in n.weights)

    def test_nan_loss_counts_as_penalty(self, xor_samples, rng):
        """Should count a NaN loss as 1.0 in the epoch mean."""
        net = FeedForwardNetwork(rng=rng).build(xor_samples[:2])
        net.error_history = [float('nan'), 0.5]

        assert net.mean_epoch_error() == pytest.approx(0.75)
        assert net.error_history == []

    def test_train_reduces_error(self, rng):
        """Should lower the loss on a single positive target."""
        samples = [Sample.of([1, 1], [1])]
        net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=2, learn_rate=0.5, rng=rng)
        net.build(samples).set_weights(0.1)

        first = net.train_epoch()
        last = net.train(iterations=20, log_every=10)

        assert last < first

    def test_train_step_does_not_learn(self, xor_samples, rng):
        """Should measure one random sample without touching the weights."""
        net = FeedForwardNetwork(rng=rng).build(xor_samples)
        before = _weights(net)

        loss = net.train_step(np.random.default_rng(1))

        assert loss == net.error
        assert loss >= 0
        assert 0 <= net.current_index < len(xor_samples)
        assert _weights(net) == before

    def test_train_step_without_samples(self, rng):
        with pytest.raises(EvaluationError):
            FeedForwardNetwork(rng=rng).train_step()


class TestPrediction:
    """Tests for prediction helpers and one-hot decoding."""

    def test_one_hot_tie_goes_right(self):
        """Should pick the right-most maximum on a tie."""
        assert one_hot_decode([0.2, 0.9, 0.9]) == [0, 0, 1]

    def test_one_hot_non_positive_selects_first(self):
        assert one_hot_decode([-0.5, -0.1, 0.0]) == [1, 0, 0]

    def test_one_hot_single_max(self):
        assert one_hot_decode([0.1, 0.7, 0.3]) == [0, 1, 0]

    def test_classification_predict_rounds(self, tiny_net):
        """Should round each output to 0 or 1."""
        assert tiny_net.predict([0, 0]) == [1.0]

    def test_regression_predict_three_decimals(self, rng):
        samples = [Sample.of([0, 0], [0])]
        net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=2, regression=True, rng=rng)
        net.build(samples).set_weights(1.0)

        assert net.predict([0, 0]) == [0.731]

    def test_predict_raw_precision(self, tiny_net):
        assert tiny_net.predict_raw([0, 0], precision=2) == [0.73]

    @pytest.mark.parametrize("decision,valid", [
        ([1, 0, 0], True),
        ([0, 0, 1], True),
        ([0, 0, 0], False),
        ([1, 1, 0], False),
        ([0.5, 0, 0], False),
        ([1, 0], False),
    ])
    def test_is_valid_decision(self, decision, valid):
        assert is_valid_decision(decision) is valid


class TestAccuracy:
    """Tests for accuracy statistics."""

    def test_percent_formula(self):
        """Should apply the symmetric percent formula."""
        result = AccuracyResult(true_count=3, false_count=1)
        assert result.finalize() == pytest.approx(50.0)

    def test_percent_extremes(self):
        assert AccuracyResult(true_count=4).finalize() == pytest.approx(100.0)
        assert AccuracyResult(false_count=4).finalize() == pytest.approx(-100.0)
        assert AccuracyResult().finalize() == 0.0

    def test_calc_stat_all(self, xor_samples, rng):
        """Should count half of XOR right when every output is 0.5."""
        net = FeedForwardNetwork(hidden_layers=1, hidden_neurons=2, rng=rng).build(xor_samples)
        net.set_weights(0.0)

        result = net.calc_stat_all(xor_samples)

        assert result.true_count == 2
        assert result.false_count == 2
        assert result.percent == 0.0
        assert net.accuracy(0.0)
        assert not net.accuracy(10.0)

    def test_calc_stat_counts(self, decision_samples, rng):
        """Should make exactly ``count`` one-hot predictions."""
        net = FeedForwardNetwork(rng=rng).build(decision_samples)
        result = net.calc_stat(12, np.random.default_rng(3))

        assert result.true_count + result.false_count == 12

    def test_calc_stat_resets(self, xor_samples, rng):
        net = FeedForwardNetwork(rng=rng).build(xor_samples)
        net.calc_stat_all(xor_samples)
        net.calc_stat_all(xor_samples)

        assert net.result.true_count + net.result.false_count == len(xor_samples)

    def test_calc_stat_regress(self, xor_samples, rng):
        net = FeedForwardNetwork(regression=True, rng=rng).build(xor_samples)
        result = net.calc_stat_regress(xor_samples, 5, np.random.default_rng(4))

        assert result.true_count + result.false_count == 5

    def test_stat_line(self, rng):
        net = FeedForwardNetwork(rng=rng)
        net.result = AccuracyResult(percent=12.5)
        assert net.stat_line() == "accuracy: 12.50%"


class TestMutation:
    """Tests for weight mutation."""

    def test_replaces_exactly_one_weight(self, xor_samples, rng):
        """Should overwrite a single weight with a draw from the range."""
        net = FeedForwardNetwork(hidden_layers=2, hidden_neurons=3, rng=rng).build(xor_samples)
        net.set_weights(1.0)

        assert net.mutate_weight(5.0, 5.0, np.random.default_rng(9))

        weights = _weights(net)
        assert weights.count(5.0) == 1
        assert weights.count(1.0) == len(weights) - 1

    def test_reaches_every_layer(self, xor_samples, rng):
        """Should be able to touch weights in each non-output layer."""
        net = FeedForwardNetwork(hidden_layers=2, hidden_neurons=3, rng=rng).build(xor_samples)
        net.set_weights(1.0)
        mut_rng = np.random.default_rng(11)

        for _ in range(200):
            net.mutate_weight(2.0, 3.0, mut_rng)

        for layer in net.layers[:-1]:
            assert any(w != 1.0 for n in layer for w in n.weights)


class TestTrading:
    """Tests for the trading side-channel."""

    def test_buy_then_sell(self, rng):
        net = FeedForwardNetwork(rng=rng)
        net.reset_trading(1000.0)

        net.operate([0, 1, 0], 100.0)
        assert net.position_open
        assert net.budget == 900.0

        net.operate([0, 1, 0], 90.0)
        assert net.budget == 900.0

        net.operate([0, 0, 1], 150.0)
        assert not net.position_open
        assert net.budget == 1050.0
        assert net.trade_count == 1
        assert net.cumulative_diff == 50.0

    def test_hold_and_unmatched_sell_are_no_ops(self, rng):
        net = FeedForwardNetwork(rng=rng)
        net.reset_trading(500.0)

        net.operate([1, 0, 0], 100.0)
        net.operate([0, 0, 1], 100.0)

        assert net.budget == 500.0
        assert net.trade_count == 0
        assert not net.position_open


class TestCloneAndPersistence:
    """Tests for clone, save and load."""

    def test_clone_is_independent(self, xor_samples, rng):
        net = FeedForwardNetwork(rng=rng).build(xor_samples)
        net.error = 0.2
        net.error_history = [0.3]
        twin = net.clone()

        twin.layers[0][0].weights[0] = 99.0

        assert net.layers[0][0].weights[0] != 99.0
        assert twin.samples is net.samples
        assert twin.error == 1.0
        assert twin.error_history == []
        assert twin.weight_count() == net.weight_count()

    def test_save_and_load(self, xor_samples, rng, tmp_path):
        net = FeedForwardNetwork(hidden_layers=2, hidden_neurons=3, bias=True, rng=rng).build(xor_samples)
        path = tmp_path / "net.json"

        net.save(path)
        loaded = load_network(path, xor_samples)

        assert _weights(loaded) == _weights(net)
        assert loaded.bias
        assert loaded.samples == xor_samples
        assert loaded.feed([1, 0]) == net.feed([1, 0])

    def test_save_empty_path(self, xor_samples, rng):
        net = FeedForwardNetwork(rng=rng).build(xor_samples)
        with pytest.raises(PersistenceError):
            net.save("")

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(PersistenceError):
            load_network(tmp_path / "missing.json")

    def test_load_empty_path(self):
        with pytest.raises(PersistenceError):
            load_network("")

    def test_load_malformed(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            load_network(path)


def test_sigmoid_saturates():
    """Should not overflow on very negative sums."""
    assert sigmoid(-1000.0) == 0.0
    assert math.isclose(sigmoid(0.0), 0.5)
