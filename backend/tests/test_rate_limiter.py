from feedauth.services.rate_limiter import InMemoryRateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_limit_reached_within_window():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)

    for expected_remaining in (2, 1, 0):
        decision = limiter.hit("login:1.2.3.4", limit=3, window_seconds=60)
        assert decision.allowed is True
        assert decision.remaining == expected_remaining

    blocked = limiter.hit("login:1.2.3.4", limit=3, window_seconds=60)
    assert blocked.allowed is False
    assert blocked.retry_after == 60


def test_sliding_window_frees_slots_as_hits_age_out():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    limiter.hit("k", 2, 60)
    clock.now += 30
    limiter.hit("k", 2, 60)

    clock.now += 20
    blocked = limiter.hit("k", 2, 60)
    assert blocked.allowed is False
    assert blocked.retry_after == 10

    clock.now += 11
    assert limiter.allow("k", 2, 60) is True


def test_keys_are_independent_and_reset():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    assert limiter.allow("a", 1, 60) is True
    assert limiter.allow("a", 1, 60) is False
    assert limiter.allow("b", 1, 60) is True

    limiter.reset("a")
    assert limiter.remaining("a", 1, 60) == 1
    assert limiter.allow("a", 1, 60) is True


def test_prune_drops_idle_buckets():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)
    limiter.hit("short", 5, 10)
    limiter.hit("long", 5, 600)

    clock.now += 60
    assert limiter.prune() == 1
    assert limiter.remaining("long", 5, 600) == 4
