"""
Unit tests for the per-bin profile accumulator.
"""

import json
import math
import random
import unittest

from poly_profile.algorithms.accumulator import BinAccumulator, ErrorMode


class TestBinAccumulator(unittest.TestCase):
    """Test cases for BinAccumulator."""

    def test_init(self):
        """Test the initial empty state."""
        acc = BinAccumulator(bin_number=3)
        self.assertEqual(acc.bin_number, 3)
        self.assertEqual(acc.error_mode, ErrorMode.SPREAD)
        self.assertEqual(acc.sum_weight, 0.0)
        self.assertEqual(acc.entry_count, 0)
        self.assertEqual(acc.average, 0.0)
        self.assertEqual(acc.error, 0.0)
        self.assertEqual(acc.effective_entries, 0.0)
        self.assertFalse(acc.changed)

        # String modes are accepted
        acc = BinAccumulator(error_mode="mean")
        self.assertEqual(acc.error_mode, ErrorMode.MEAN_ERROR)

        with self.assertRaises(ValueError):
            BinAccumulator(error_mode="bogus")

    def test_fill_updates_sums_only(self):
        """Fill adds to the moment sums without touching derived values."""
        acc = BinAccumulator()
        acc.fill(2.0, 3.0)

        self.assertEqual(acc.sum_weight, 3.0)
        self.assertEqual(acc.sum_weighted_value, 6.0)
        self.assertEqual(acc.sum_weight_squared, 9.0)
        self.assertEqual(acc.sum_weighted_value_squared, 12.0)
        self.assertEqual(acc.entry_count, 1)

        # Derived values only move on update()
        self.assertEqual(acc.average, 0.0)
        acc.update()
        self.assertEqual(acc.average, 2.0)
        self.assertTrue(acc.changed)

    def test_aliases(self):
        """Histogram-style accessors mirror the moment sums."""
        acc = BinAccumulator()
        acc.fill(4.0, 0.5)
        self.assertEqual(acc.entries, acc.sum_weight)
        self.assertEqual(acc.entries_vw, acc.sum_weighted_value)
        self.assertEqual(acc.entries_w2, acc.sum_weight_squared)
        self.assertEqual(acc.entries_wv2, acc.sum_weighted_value_squared)

    def test_unit_weight_average_is_mean(self):
        """With unit weights the average is the arithmetic mean."""
        rng = random.Random(42)
        values = [rng.uniform(-50, 50) for _ in range(500)]

        acc = BinAccumulator()
        for v in values:
            acc.fill(v)
        acc.update()

        self.assertAlmostEqual(acc.average, sum(values) / len(values), places=9)
        self.assertEqual(acc.entry_count, len(values))
        self.assertAlmostEqual(acc.effective_entries, len(values), places=6)

    def test_spread_error(self):
        """SPREAD mode reports the population standard deviation."""
        values = [1.0, 2.0, 3.0, 4.0]
        acc = BinAccumulator(error_mode=ErrorMode.SPREAD)
        for v in values:
            acc.fill(v)
        acc.update()

        mean = sum(values) / len(values)
        std = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
        self.assertAlmostEqual(acc.average, 2.5)
        self.assertAlmostEqual(acc.error, std)

    def test_mean_error(self):
        """MEAN_ERROR mode divides the spread by sqrt(effective entries)."""
        values = [1.0, 2.0, 3.0, 4.0]
        acc = BinAccumulator(error_mode=ErrorMode.MEAN_ERROR)
        for v in values:
            acc.fill(v)
        acc.update()

        spread = math.sqrt(1.25)
        self.assertAlmostEqual(acc.error, spread / 2.0)

    def test_weighted_effective_entries(self):
        """Effective entries follow (Σw)² / Σw²."""
        acc = BinAccumulator()
        acc.fill(1.0, 1.0)
        acc.fill(1.0, 3.0)
        self.assertAlmostEqual(acc.effective_entries, 16.0 / 10.0)

    def test_error_mode_switch_is_retroactive(self):
        """Changing the mode affects the error on the next update."""
        acc = BinAccumulator()
        for v in [0.0, 10.0]:
            acc.fill(v)
        acc.update()
        self.assertAlmostEqual(acc.error, 5.0)

        acc.error_mode = ErrorMode.MEAN_ERROR
        acc.update()
        self.assertAlmostEqual(acc.error, 5.0 / math.sqrt(2.0))

    def test_negative_variance_is_clamped(self):
        """Cancellation noise never produces NaN errors."""
        acc = BinAccumulator()
        for _ in range(10):
            acc.fill(0.1, 0.1)
        acc.update()

        self.assertFalse(math.isnan(acc.error))
        self.assertGreaterEqual(acc.error, 0.0)
        self.assertAlmostEqual(acc.error, 0.0, places=6)

        # Force a clearly negative proxy
        acc = BinAccumulator.from_dict(
            {"sumw": 1.0, "sumvw": 2.0, "sumw2": 1.0, "sumwv2": 3.0}
        )
        acc.update()
        self.assertEqual(acc.error, 0.0)

    def test_zero_weight_freezes_average(self):
        """Average keeps its last value when Σw returns to zero."""
        acc = BinAccumulator()
        acc.fill(5.0, 1.0)
        acc.update()
        self.assertEqual(acc.average, 5.0)

        acc.fill(7.0, -1.0)
        acc.update()
        self.assertEqual(acc.sum_weight, 0.0)
        self.assertEqual(acc.average, 5.0)
        self.assertFalse(math.isnan(acc.error))

    def test_update_idempotent(self):
        """Two updates in a row give identical results."""
        acc = BinAccumulator(error_mode=ErrorMode.MEAN_ERROR)
        for v, w in [(1.0, 2.0), (3.0, 0.5), (-2.0, 1.5)]:
            acc.fill(v, w)
        acc.update()
        first = acc.query()
        acc.update()
        self.assertEqual(acc.query(), first)

    def test_merge(self):
        """Merging adds the moment sums but not the entry count."""
        a = BinAccumulator()
        a.fill(10.0)
        b = BinAccumulator()
        b.fill(20.0)
        b.fill(30.0)

        result = a.merge(b)
        self.assertIs(result, a)
        self.assertEqual(a.sum_weight, 3.0)
        self.assertEqual(a.sum_weighted_value, 60.0)
        self.assertEqual(a.entry_count, 1)

        # Derived values wait for update()
        self.assertEqual(a.average, 0.0)
        a.update()
        self.assertAlmostEqual(a.average, 20.0)

        with self.assertRaises(TypeError):
            a.merge("not an accumulator")

    def test_merge_matches_single_stream(self):
        """Merged halves equal one accumulator fed the whole stream."""
        rng = random.Random(7)
        samples = [(rng.gauss(0, 3), rng.uniform(0.1, 2)) for _ in range(200)]

        whole = BinAccumulator(error_mode=ErrorMode.MEAN_ERROR)
        first = BinAccumulator(error_mode=ErrorMode.MEAN_ERROR)
        second = BinAccumulator(error_mode=ErrorMode.MEAN_ERROR)
        for i, (v, w) in enumerate(samples):
            whole.fill(v, w)
            (first if i % 2 else second).fill(v, w)

        first.merge(second)
        whole.update()
        first.update()
        self.assertAlmostEqual(first.average, whole.average, places=9)
        self.assertAlmostEqual(first.error, whole.error, places=9)

    def test_clear_stats(self):
        """ClearStats zeroes sums and derived values."""
        acc = BinAccumulator()
        acc.fill(3.0)
        acc.fill(5.0)
        acc.update()
        acc.content = acc.average

        acc.clear_stats()
        acc.update()
        self.assertEqual(acc.sum_weight, 0.0)
        self.assertEqual(acc.sum_weighted_value_squared, 0.0)
        self.assertEqual(acc.average, 0.0)
        self.assertEqual(acc.error, 0.0)
        self.assertEqual(acc.entries, 0.0)
        self.assertEqual(acc.entry_count, 0)

        # Display value is separate
        self.assertEqual(acc.content, 4.0)
        acc.clear()
        self.assertEqual(acc.content, 0.0)

    def test_changed_flag(self):
        """Content writes and updates raise the changed flag."""
        acc = BinAccumulator()
        acc.content = 1.0
        self.assertTrue(acc.changed)
        acc.changed = False
        acc.update()
        self.assertTrue(acc.changed)

    def test_serialization(self):
        """Test serialization and deserialization."""
        acc = BinAccumulator(bin_number=2, error_mode=ErrorMode.MEAN_ERROR)
        for v in [1.0, 2.0, 6.0]:
            acc.fill(v, 2.0)
        acc.update()
        acc.content = acc.average

        data = acc.to_dict()
        self.assertEqual(data["type"], "BinAccumulator")
        self.assertEqual(data["bin_number"], 2)
        self.assertEqual(data["error_mode"], "mean")
        self.assertEqual(data["items_processed"], 3)

        restored = BinAccumulator.deserialize(acc.serialize())
        self.assertEqual(restored.bin_number, 2)
        self.assertEqual(restored.error_mode, ErrorMode.MEAN_ERROR)
        self.assertEqual(restored.sum_weight, acc.sum_weight)
        self.assertEqual(restored.entry_count, 3)
        self.assertEqual(restored.query(), acc.query())
        self.assertEqual(restored.content, acc.content)

        # Binary form round-trips through the same JSON payload
        restored = BinAccumulator.deserialize(acc.serialize("binary"), "binary")
        self.assertEqual(restored.to_dict(), json.loads(json.dumps(data)))

        with self.assertRaises(ValueError):
            acc.serialize("xml")

        with self.assertRaises(ValueError):
            BinAccumulator.deserialize(acc.serialize(), "xml")

    def test_get_stats(self):
        """Stats include the derived values."""
        acc = BinAccumulator(bin_number=1)
        acc.fill(2.0)
        acc.update()
        stats = acc.get_stats()
        self.assertEqual(stats["type"], "BinAccumulator")
        self.assertEqual(stats["items_processed"], 1)
        self.assertEqual(stats["average"], 2.0)
        self.assertEqual(stats["entries"], 1.0)


if __name__ == "__main__":
    unittest.main()
