"""Tests for the account-creation limiter."""

from casewizard.core.rate_limit import AccountCreationLimiter


def test_limiter_blocks_after_window_is_exhausted():
    limiter = AccountCreationLimiter("2/minute")

    assert limiter.allow("ana@example.com")
    assert limiter.allow("ana@example.com")
    assert not limiter.allow("ana@example.com")


def test_limits_are_tracked_per_key():
    limiter = AccountCreationLimiter("1/minute")

    assert limiter.allow("ana@example.com")
    assert limiter.allow("ben@example.com")
    assert limiter.remaining("ana@example.com") == 0


def test_instances_do_not_share_state():
    first = AccountCreationLimiter("1/minute")
    second = AccountCreationLimiter("1/minute")

    assert first.allow("ana@example.com")
    assert second.allow("ana@example.com")


def test_reset_clears_attempts():
    limiter = AccountCreationLimiter("1/minute")
    limiter.allow("ana@example.com")

    limiter.reset()

    assert limiter.allow("ana@example.com")
