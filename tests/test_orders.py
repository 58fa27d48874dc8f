"""
Tests for the order simulator and seeding strategies.
"""
import numpy as np
import pytest

from evolution.orders import (
    Order,
    OrderRecord,
    evenly_spaced_order,
    fresh_order,
    random_order,
    seed_percent,
    seed_random_counts,
    seed_window,
    simulate,
    simulate_down,
)
from samples.provider import price_series


class TestSimulate:
    """Tests for replaying alternating buy/sell orders."""

    def test_buy_low_sell_high(self, price_list):
        """Should end at 1050 buying at 100 and selling at 150."""
        result = simulate([2, 5], price_list, 1000.0)

        assert result.final_sum == 1050.0
        assert not result.open_position

    def test_trailing_buy_stays_paid(self, price_list):
        result = simulate([2, 5, 7], price_list, 1000.0)

        assert result.final_sum == 1050.0 - 125.0
        assert result.open_position

    def test_empty_order_keeps_budget(self, price_list):
        assert simulate([], price_list, 1000.0).final_sum == 1000.0

    def test_deterministic_and_read_only(self, price_samples):
        """Should give the same result twice without writing to prices."""
        prices = price_series(price_samples)
        before = prices.copy()

        first = simulate([0, 3, 4, 9], prices, 500.0)
        second = simulate([0, 3, 4, 9], prices, 500.0)

        assert first == second
        np.testing.assert_array_equal(prices, before)

    def test_down_variant_subtracts_every_price(self, price_list):
        assert simulate_down([2, 5], price_list) == -250.0


class TestOrder:
    """Tests for the Order candidate."""

    def test_count_tracks_trades(self):
        order = Order(trades=[1, 4, 7])
        assert order.count == 3

        order.set_trades([2, 3])
        assert order.count == 2

    def test_evaluate_stores_result(self, price_list):
        order = Order(trades=[2, 5])
        total = order.evaluate(price_list, 1000.0)

        assert total == 1050.0
        assert order.running_sum == 1050.0
        assert order.score == 1050.0
        assert not order.open_position

    def test_evaluate_down(self, price_list):
        order = Order(trades=[2, 5])
        assert order.evaluate(price_list, 1000.0, down=True) == -250.0

    @pytest.mark.parametrize("trades,valid", [
        ([0, 3, 9], True),
        ([], True),
        ([3, 3], False),
        ([5, 2], False),
        ([0, 10], False),
        ([-1, 2], False),
    ])
    def test_is_valid(self, trades, valid):
        assert Order(trades=trades).is_valid(10) is valid

    def test_clone_is_independent(self):
        order = Order(trades=[1, 2, 3], running_sum=5.0, score=5.0)
        twin = order.clone()
        twin.trades[0] = 0

        assert order.trades == [1, 2, 3]
        assert twin.score == 5.0

    def test_clone_keeps_open_position(self, price_list):
        """A trailing unmatched buy survives cloning."""
        order = Order(trades=[2, 5, 7])
        order.evaluate(price_list, 1000.0)

        twin = order.clone()

        assert order.open_position is True
        assert twin.open_position is True

    def test_dict_round_trip(self):
        order = Order(trades=[1, 4], running_sum=12.5, open_position=True, score=12.5, spacing=3)
        restored = Order.from_dict(order.to_dict())

        assert restored == order

    def test_record(self):
        record = Order(trades=[1, 4], score=3.0).to_record()

        assert isinstance(record, OrderRecord)
        assert record.to_dict() == {'score': 3.0, 'count': 2, 'trades': [1, 4]}


class TestSeeding:
    """Tests for seeding strategies."""

    def test_evenly_spaced(self):
        order = evenly_spaced_order(3, 10)

        assert order.trades == [0, 3, 6]
        assert order.spacing == 3

    def test_evenly_spaced_clamps_count(self):
        assert evenly_spaced_order(20, 10).trades == list(range(10))
        assert evenly_spaced_order(0, 10).trades == []

    def test_random_order(self, rng):
        order = random_order(4, 10, rng, low=2)

        assert order.count == 4
        assert order.is_valid(10)
        assert min(order.trades) >= 2

    def test_fresh_order(self, rng):
        for _ in range(20):
            order = fresh_order(50, rng)
            assert 1 <= order.count < 50
            assert order.is_valid(50)

    def test_seed_window_even_counts(self):
        """Should build one order per even count around the centre."""
        orders = seed_window(100, perc_by_hours=10, diff_shift=2)

        assert [o.count for o in orders] == [8, 10, 12]
        assert all(o.is_valid(100) for o in orders)

    def test_seed_window_fallback(self):
        orders = seed_window(10, perc_by_hours=0, diff_shift=0)
        assert [o.count for o in orders] == [2]

    def test_seed_random_counts(self, rng):
        orders = seed_random_counts(100, 15, rng)

        assert len(orders) == 15
        assert all(2 <= o.count < 10 for o in orders)
        assert all(o.is_valid(100) for o in orders)

    def test_seed_percent(self, rng):
        order, = seed_percent(100, rng, percent=15)

        assert order.count == 16
        assert min(order.trades) >= 10
        assert order.is_valid(100)
