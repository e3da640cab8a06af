import time

from app.services.rate_limiter import check_rate_limit, reset_rate_limits


def test_blocks_after_limit_within_window():
    results = [check_rate_limit("submit_envelope_a", 3, 60) for _ in range(4)]
    assert results == [True, True, True, False]


def test_new_window_allows_again():
    for _ in range(2):
        assert check_rate_limit("submit_envelope_a", 2, 1)
    assert not check_rate_limit("submit_envelope_a", 2, 1)

    time.sleep(1.1)
    assert check_rate_limit("submit_envelope_a", 2, 1)


def test_keys_are_independent():
    assert check_rate_limit("submit_envelope_a", 1, 60)
    assert not check_rate_limit("submit_envelope_a", 1, 60)
    assert check_rate_limit("submit_envelope_b", 1, 60)


def test_reset_clears_counters():
    assert check_rate_limit("submit_envelope_a", 1, 60)
    assert not check_rate_limit("submit_envelope_a", 1, 60)
    reset_rate_limits()
    assert check_rate_limit("submit_envelope_a", 1, 60)
