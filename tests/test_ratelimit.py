from datetime import timedelta

from researcher_hut.core.ratelimit import SlidingWindowRateLimiter


def make_limiter(clock):
    return SlidingWindowRateLimiter(max_requests=3, window=timedelta(minutes=5), clock=clock)


def test_fourth_hit_in_window_is_rejected(clock):
    limiter = make_limiter(clock)
    assert [limiter.hit("a@x.com") for _ in range(4)] == [True, True, True, False]


def test_window_slides(clock):
    limiter = make_limiter(clock)
    limiter.hit("a@x.com")
    clock.advance(minutes=2)
    limiter.hit("a@x.com")
    limiter.hit("a@x.com")
    assert not limiter.hit("a@x.com")

    # the first hit leaves the window; one slot frees up
    clock.advance(minutes=3)
    assert limiter.hit("a@x.com")
    assert not limiter.hit("a@x.com")


def test_keys_are_independent(clock):
    limiter = make_limiter(clock)
    for _ in range(3):
        limiter.hit("a@x.com")
    assert not limiter.hit("a@x.com")
    assert limiter.hit("b@x.com")


def test_reset_clears_counters(clock):
    limiter = make_limiter(clock)
    for _ in range(3):
        limiter.hit("a@x.com")
    limiter.reset()
    assert limiter.hit("a@x.com")


def test_idle_keys_are_dropped(clock):
    limiter = make_limiter(clock)
    for i in range(50):
        limiter.hit(f"user{i}@x.com")
    assert len(limiter) == 50

    clock.advance(hours=1)
    assert limiter.hit("other@x.com")
    assert len(limiter) == 1
