import pytest

from processing.token_budget import TokenWindow, estimate_tokens


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a" * 7) == 2
    assert estimate_tokens("a" * 8) == 3


def test_empty_window_admits_oversized_batch():
    window = TokenWindow.open(0.0, limit=100)

    admission = window.admit(500, now=1.0)

    assert not admission.must_wait
    assert admission.window.consumed == 0


def test_admits_within_limit_and_records():
    window = TokenWindow.open(0.0, limit=100).record(40)

    admission = window.admit(60, now=5.0)

    assert not admission.must_wait
    assert admission.window.record(60).consumed == 100


def test_denied_admission_waits_for_fresh_window():
    window = TokenWindow.open(0.0, limit=100, length=62.0, margin=2.0).record(80)

    admission = window.admit(30, now=10.0)

    assert admission.must_wait
    assert admission.wait_seconds == pytest.approx(54.0)
    assert admission.window.consumed == 0
    assert admission.window.started_at == pytest.approx(64.0)


def test_window_rolls_over_after_its_length():
    window = TokenWindow.open(0.0, limit=100, length=62.0).record(90)

    admission = window.admit(50, now=62.0)

    assert not admission.must_wait
    assert admission.window.consumed == 0
    assert admission.window.started_at == 62.0


def test_record_ignores_negative_usage():
    assert TokenWindow.open(0.0).record(-5).consumed == 0


def test_consumed_never_exceeds_limit_before_an_admitted_call():
    costs = [900, 1500, 2000, 3000, 400, 5000, 100, 2500, 2500, 2500, 700]
    window = TokenWindow.open(0.0, limit=5600, length=62.0, margin=2.0)
    now = 0.0

    for cost in costs:
        admission = window.admit(cost, now)
        if admission.must_wait:
            now += admission.wait_seconds
            assert admission.window.consumed == 0
        window = admission.window
        assert window.consumed == 0 or window.consumed + cost <= window.limit
        window = window.record(cost)
        now += 3.0
