from servicekit import RetryConfig, sleep_time


def _no_jitter(a, b):
    return 0.0


def _max_jitter(a, b):
    return b


def test_delay_grows_until_cap():
    cfg = RetryConfig(min_delay=0.5, max_delay=5.0)
    delays = [sleep_time(n, cfg, rand=_no_jitter) for n in range(8)]
    assert delays[:3] == [1.0, 1.5, 2.5]
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert delays[-1] == 5.0  # noqa: PLR2004


def test_delay_never_below_min_delay():
    cfg = RetryConfig(min_delay=0.5, max_delay=0.6)
    for n in range(10):
        assert sleep_time(n, cfg, rand=_max_jitter) >= cfg.min_delay


def test_jitter_takes_at_most_a_quarter():
    cfg = RetryConfig(min_delay=0.5, max_delay=5.0)
    assert sleep_time(10, cfg, rand=_max_jitter) == 3.75  # noqa: PLR2004
    for _ in range(50):
        d = sleep_time(3, cfg)
        assert 3.375 <= d <= 4.5  # noqa: PLR2004


def test_normal_sleep_is_zero():
    assert sleep_time(4, RetryConfig(), use_normal_sleep=True) == 0.0


def test_large_retry_counts_stay_capped():
    assert sleep_time(10_000, RetryConfig(), rand=_no_jitter) == 5.0  # noqa: PLR2004
