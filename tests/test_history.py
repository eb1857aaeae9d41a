"""Tests for HistoryAggregator: rolling buffer, seeding, baselines."""

import math

import pytest

from gaswatch.core.baseline import cold_start_baselines
from gaswatch.core.history import (
    HistoryAggregator,
    InvalidSample,
    PriceHistory,
)
from gaswatch.store.persistence import ACCUMULATOR_KEY, MemoryStore, load_state


@pytest.fixture
def aggregator() -> HistoryAggregator:
    return HistoryAggregator()


# ── PriceHistory ─────────────────────────────────────────────────────────────


class TestPriceHistory:
    def test_fifo_trim_on_overflow(self) -> None:
        history = PriceHistory(capacity=3)
        for value in (1.0, 2.0, 3.0, 4.0):
            history.append(value)
        assert history.to_list() == [2.0, 3.0, 4.0]
        assert len(history) == 3

    def test_backfill_uses_earliest_value(self) -> None:
        history = PriceHistory(capacity=5, values=[7.0, 8.0])
        history.backfill()
        assert history.to_list() == [7.0, 7.0, 7.0, 7.0, 8.0]

    def test_backfill_on_empty_is_noop(self) -> None:
        history = PriceHistory(capacity=5)
        history.backfill()
        assert len(history) == 0

    def test_backfill_full_is_noop(self) -> None:
        history = PriceHistory(capacity=2, values=[1.0, 2.0])
        history.backfill()
        assert history.to_list() == [1.0, 2.0]

    def test_tail(self) -> None:
        history = PriceHistory(capacity=10, values=[1.0, 2.0, 3.0])
        assert history.tail(2) == [2.0, 3.0]
        assert history.tail(0) == []
        assert history.tail(50) == [1.0, 2.0, 3.0]

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            PriceHistory(capacity=0)


# ── append_price ─────────────────────────────────────────────────────────────


class TestAppendPrice:
    def test_append_and_latest(self, aggregator: HistoryAggregator) -> None:
        aggregator.append_price(12.5)
        assert aggregator.latest_price == 12.5
        assert aggregator.history_length == 1

    def test_length_never_exceeds_capacity(self) -> None:
        agg = HistoryAggregator(capacity=1440)
        for i in range(2000):
            agg.append_price(float(i))
        assert agg.history_length == 1440
        assert agg.history[0] == 560.0
        assert agg.history[-1] == 1999.0

    def test_zero_is_accepted(self, aggregator: HistoryAggregator) -> None:
        aggregator.append_price(0.0)
        assert aggregator.latest_price == 0.0

    @pytest.mark.parametrize("bad", [-1.0, math.nan, math.inf, -math.inf, "12", None, True])
    def test_invalid_samples_rejected(self, aggregator: HistoryAggregator, bad) -> None:
        with pytest.raises(InvalidSample):
            aggregator.append_price(bad)
        assert aggregator.history_length == 0

    def test_invalid_sample_is_value_error(self, aggregator: HistoryAggregator) -> None:
        with pytest.raises(ValueError):
            aggregator.append_price(-5)


# ── Cold-start seeding ───────────────────────────────────────────────────────


class TestSeedFromBaseFees:
    def test_downsamples_five_blocks_per_minute(self) -> None:
        agg = HistoryAggregator(capacity=10)
        fees = [1.0] * 5 + [2.0] * 5 + [3.0, 3.0]
        assert agg.seed_from_base_fees(fees) is True
        # three minute samples, front padded with the first one
        assert agg.history == [1.0] * 8 + [2.0, 3.0]

    def test_fills_full_capacity(self, aggregator: HistoryAggregator) -> None:
        aggregator.seed_from_base_fees([10.0] * 1025)
        assert aggregator.history_length == 1440

    def test_skipped_when_history_present(self, aggregator: HistoryAggregator) -> None:
        aggregator.append_price(20.0)
        assert aggregator.seed_from_base_fees([1.0] * 100) is False
        assert aggregator.history == [20.0]

    def test_skipped_for_single_block(self, aggregator: HistoryAggregator) -> None:
        assert aggregator.seed_from_base_fees([5.0]) is False
        assert aggregator.history_length == 0


# ── Baselines ────────────────────────────────────────────────────────────────


class TestAccumulateBaseline:
    def test_no_baselines_before_evidence(self, aggregator: HistoryAggregator) -> None:
        assert not aggregator.has_baselines

    def test_slot_becomes_mean_of_samples(self, aggregator: HistoryAggregator) -> None:
        aggregator.accumulate_baseline([10.0, 20.0], slot_index=5)
        aggregator.accumulate_baseline([30.0], slot_index=5)
        table = aggregator.baseline_table()
        # representatives 15 and 30
        assert table[5] == pytest.approx(22.5)
        assert aggregator.accumulator()[5] == [15.0, 30.0]

    def test_other_slots_keep_cold_start_default(self, aggregator: HistoryAggregator) -> None:
        aggregator.accumulate_baseline([100.0], slot_index=0)
        table = aggregator.baseline_table()
        defaults = cold_start_baselines(15.0)
        assert table[0] == 100.0
        assert table[1:] == defaults[1:]

    def test_representative_uses_last_50_samples(self, aggregator: HistoryAggregator) -> None:
        raw = [1000.0] * 10 + [4.0] * 50
        aggregator.accumulate_baseline(raw, slot_index=3)
        assert aggregator.baseline_table()[3] == pytest.approx(4.0)

    def test_accumulator_trimmed_to_capacity(self) -> None:
        agg = HistoryAggregator(accumulator_capacity=100)
        for i in range(150):
            agg.accumulate_baseline([float(i)], slot_index=10)
        samples = agg.accumulator()[10]
        assert len(samples) == 100
        assert samples[0] == 50.0
        assert agg.baseline_table()[10] == pytest.approx(sum(range(50, 150)) / 100)

    def test_invalid_slot_rejected(self, aggregator: HistoryAggregator) -> None:
        with pytest.raises(ValueError):
            aggregator.accumulate_baseline([1.0], slot_index=168)
        with pytest.raises(ValueError):
            aggregator.accumulate_baseline([1.0], slot_index=-1)

    def test_empty_samples_noop(self, aggregator: HistoryAggregator) -> None:
        aggregator.accumulate_baseline([], slot_index=1)
        assert not aggregator.has_baselines

    def test_cold_start_table_tracks_recent_median(self, aggregator: HistoryAggregator) -> None:
        for _ in range(60):
            aggregator.append_price(30.0)
        assert aggregator.baseline_table() == cold_start_baselines(30.0)

    def test_cold_start_table_floor(self, aggregator: HistoryAggregator) -> None:
        aggregator.append_price(1.0)
        assert aggregator.baseline_table() == cold_start_baselines(8.0)


class TestColdStartBaselines:
    def test_shape(self) -> None:
        table = cold_start_baselines(20.0)
        assert len(table) == 168
        assert all(v > 0 for v in table)

    def test_weekday_afternoon_busier_than_night(self) -> None:
        table = cold_start_baselines(20.0)
        tuesday = 2
        assert table[tuesday * 24 + 17] > table[tuesday * 24 + 4]

    def test_weekend_cheaper_than_weekday(self) -> None:
        table = cold_start_baselines(20.0)
        assert table[0 * 24 + 17] < table[3 * 24 + 17]

    def test_deterministic(self) -> None:
        assert cold_start_baselines(12.0) == cold_start_baselines(12.0)


# ── Derived metrics & averages ───────────────────────────────────────────────


class TestDerived:
    def test_average_gwei_requires_full_period(self, aggregator: HistoryAggregator) -> None:
        for _ in range(100):
            aggregator.append_price(10.0)
        assert aggregator.average_gwei(101) is None
        assert aggregator.average_gwei(100) == pytest.approx(10.0)

    def test_high_duration_uses_threshold(self) -> None:
        agg = HistoryAggregator(elevated_threshold=20.0)
        for value in (25.0, 10.0, 21.0, 22.0):
            agg.append_price(value)
        assert agg.high_duration() == 2

    def test_spike_percent(self, aggregator: HistoryAggregator) -> None:
        for _ in range(29):
            aggregator.append_price(10.0)
        aggregator.append_price(20.0)
        assert aggregator.spike_percent() == 100


class TestRestore:
    def test_restore_round_trip(self, aggregator: HistoryAggregator) -> None:
        table = [float(i) for i in range(168)]
        aggregator.restore(history=[1.0, 2.0], baselines=table, accumulator={3: [4.0]})
        assert aggregator.history == [1.0, 2.0]
        assert aggregator.baseline_table() == table
        assert aggregator.accumulator() == {3: [4.0]}

    def test_restore_trims_history_to_capacity(self) -> None:
        agg = HistoryAggregator(capacity=3)
        agg.restore(history=[1.0, 2.0, 3.0, 4.0])
        assert agg.history == [2.0, 3.0, 4.0]

    def test_restored_evidence_without_table_is_rebuilt(self, aggregator: HistoryAggregator) -> None:
        store = MemoryStore()
        store.set(ACCUMULATOR_KEY, b'{"7": [42.0, 44.0]}')
        state = load_state(store)
        aggregator.restore(baselines=state.hourly_baselines, accumulator=state.accumulator)

        aggregator.accumulate_baseline([10.0], slot_index=0)
        table = aggregator.baseline_table()
        assert table[7] == pytest.approx(43.0)
        assert table[0] == pytest.approx(10.0)
        assert table[1] == cold_start_baselines(15.0)[1]

    def test_restore_ignores_wrong_size_table(self, aggregator: HistoryAggregator) -> None:
        aggregator.restore(baselines=[1.0] * 24)
        assert not aggregator.has_baselines
