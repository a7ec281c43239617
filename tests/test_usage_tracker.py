import unittest

from fakes import FakeClock

from pulsewire.enrichment.usage import UsageTracker


class TestUsageTracker(unittest.TestCase):
    def test_samples_expire_after_window(self):
        clock = FakeClock()
        tracker = UsageTracker(60.0, clock=clock)
        tracker.record(40)
        clock.sleep(30)
        tracker.record(10)
        self.assertEqual(tracker.tokens_used(), 50)
        self.assertEqual(tracker.requests_used(), 2)

        clock.sleep(30)
        self.assertEqual(tracker.tokens_used(), 10)
        self.assertEqual(tracker.requests_used(), 1)

    def test_seconds_until_reset_tracks_oldest_sample(self):
        clock = FakeClock()
        tracker = UsageTracker(60.0, clock=clock)
        self.assertEqual(tracker.seconds_until_reset(), 0.0)
        tracker.record(5)
        clock.sleep(15)
        self.assertAlmostEqual(tracker.seconds_until_reset(), 45.0)

    def test_negative_cost_is_clamped(self):
        tracker = UsageTracker(60.0, clock=FakeClock())
        tracker.record(-3)
        self.assertEqual(tracker.tokens_used(), 0)
        self.assertEqual(tracker.requests_used(), 1)

    def test_rejects_non_positive_window(self):
        with self.assertRaises(ValueError):
            UsageTracker(0)


if __name__ == "__main__":
    unittest.main()
