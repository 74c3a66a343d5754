import sqlite3
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from screener.core.submission_rate_limit import (  # noqa: E402
    FixedWindowRateLimiter,
    InMemoryCounterStore,
    RateLimitEntry,
    SqliteCounterStore,
    SubmissionRateLimitExceeded,
    client_key_from_headers,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedWindowRateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = FixedWindowRateLimiter(
            InMemoryCounterStore(),
            limit=5,
            window_seconds=3600,
            clock=self.clock,
        )

    def test_allows_limit_then_rejects_with_retry_after(self):
        for expected_remaining in (4, 3, 2, 1, 0):
            decision = self.limiter.hit("203.0.113.7")
            self.assertTrue(decision.allowed)
            self.assertEqual(decision.remaining, expected_remaining)

        self.clock.advance(600.2)
        with self.assertRaises(SubmissionRateLimitExceeded) as ctx:
            self.limiter.hit("203.0.113.7")
        self.assertEqual(ctx.exception.retry_after, 3000)

    def test_rejected_hits_do_not_extend_the_window(self):
        for _ in range(5):
            self.limiter.hit("client")
        for _ in range(3):
            self.assertFalse(self.limiter.check("client").allowed)

        entry = self.limiter.store.get("client")
        self.assertEqual(entry.count, 5)
        self.assertEqual(entry.window_start, 1_000.0)

    def test_window_resets_after_it_elapses(self):
        for _ in range(5):
            self.limiter.hit("client")
        self.clock.advance(3600)

        decision = self.limiter.hit("client")
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 4)
        self.assertEqual(self.limiter.store.get("client").count, 1)

    def test_retry_after_is_at_least_one_second(self):
        for _ in range(5):
            self.limiter.hit("client")
        self.clock.advance(3599.9)
        decision = self.limiter.check("client")
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 1)

    def test_keys_are_counted_independently(self):
        for _ in range(5):
            self.limiter.hit("first")
        self.assertTrue(self.limiter.check("second").allowed)

    def test_purge_evicts_expired_entries(self):
        self.limiter.hit("old")
        self.clock.advance(3601)
        self.limiter.hit("fresh")

        self.assertEqual(self.limiter.purge_expired(), 1)
        self.assertIsNone(self.limiter.store.get("old"))
        self.assertIsNotNone(self.limiter.store.get("fresh"))


class SqliteCounterStoreTests(unittest.TestCase):
    def test_counters_are_shared_through_the_database_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = str(Path(tmp) / "limits.db")
            clock = FakeClock()
            first = FixedWindowRateLimiter(SqliteCounterStore(db_path), limit=2, window_seconds=60, clock=clock)
            second = FixedWindowRateLimiter(SqliteCounterStore(db_path), limit=2, window_seconds=60, clock=clock)

            first.hit("client")
            second.hit("client")
            with self.assertRaises(SubmissionRateLimitExceeded):
                first.hit("client")

            first.store.clear()
            self.assertTrue(second.check("client").allowed)

    def test_transaction_holds_the_write_lock_against_other_connections(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = str(Path(tmp) / "limits.db")
            store = SqliteCounterStore(db_path)
            other = sqlite3.connect(db_path, timeout=0, isolation_level=None)
            try:
                with store.transaction():
                    store.set("client", RateLimitEntry(count=1, window_start=0.0), 60)
                    with self.assertRaises(sqlite3.OperationalError):
                        other.execute("BEGIN IMMEDIATE")
                other.execute("BEGIN IMMEDIATE")
                other.execute("ROLLBACK")
            finally:
                other.close()

    def test_failed_transaction_rolls_back(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = SqliteCounterStore(str(Path(tmp) / "limits.db"))
            with self.assertRaises(RuntimeError):
                with store.transaction():
                    store.set("client", RateLimitEntry(count=3, window_start=0.0), 60)
                    raise RuntimeError("boom")
            self.assertIsNone(store.get("client"))


class ClientKeyTests(unittest.TestCase):
    def test_forwarded_for_first_entry_wins(self):
        headers = {"x-forwarded-for": "198.51.100.4, 10.0.0.1", "x-real-ip": "10.0.0.2"}
        self.assertEqual(client_key_from_headers(headers), "198.51.100.4")

    def test_real_ip_is_used_without_forwarded_for(self):
        self.assertEqual(client_key_from_headers({"x-real-ip": "10.0.0.2"}), "10.0.0.2")

    def test_fingerprint_fallback_is_stable(self):
        headers = {"user-agent": "Mozilla/5.0", "accept-language": "en-US"}
        key = client_key_from_headers(headers)
        self.assertTrue(key.startswith("unknown-"))
        self.assertEqual(len(key), len("unknown-") + 12)
        self.assertEqual(key, client_key_from_headers(dict(headers)))
        self.assertNotEqual(key, client_key_from_headers({"user-agent": "curl/8.0"}))


if __name__ == "__main__":
    unittest.main()
