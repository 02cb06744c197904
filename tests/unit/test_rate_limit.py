"""Unit tests for the rate limit store."""

from agora.api.middleware.rate_limit import InMemoryRateLimitStore


class TestInMemoryRateLimitStore:
    """Fixed-window counting."""

    def test_allows_up_to_limit(self):
        store = InMemoryRateLimitStore()
        results = [store.check_and_incr("redeem", "10.0.0.1", 3, 60) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_scopes_and_identifiers_are_independent(self):
        store = InMemoryRateLimitStore()
        assert store.check_and_incr("redeem", "10.0.0.1", 1, 60)
        assert not store.check_and_incr("redeem", "10.0.0.1", 1, 60)
        assert store.check_and_incr("redeem", "10.0.0.2", 1, 60)
        assert store.check_and_incr("api", "10.0.0.1", 1, 60)

    def test_window_expiry(self):
        store = InMemoryRateLimitStore()
        assert store.check_and_incr("api", "p1", 1, 0)
        # A zero-second window is always expired
        assert store.check_and_incr("api", "p1", 1, 0)

    def test_clear(self):
        store = InMemoryRateLimitStore()
        store.check_and_incr("api", "p1", 1, 60)
        store.clear()
        assert store.check_and_incr("api", "p1", 1, 60)
