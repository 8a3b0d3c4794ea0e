from __future__ import annotations

from progressive_bench.capture.termination import CaptureState, TerminationPolicy


def _policy(started_at_ms: float = 0) -> TerminationPolicy:
    return TerminationPolicy(quiet_period_ms=700, max_capture_ms=12000, started_at_ms=started_at_ms)


def test_converges_after_quiet_period_once_complete() -> None:
    policy = _policy()
    assert policy.observe(100, changed=True, image_complete=False) is CaptureState.SAMPLING
    assert policy.observe(500, changed=False, image_complete=True) is CaptureState.SAMPLING
    assert policy.observe(800, changed=False, image_complete=True) is CaptureState.SAMPLING
    assert policy.observe(801, changed=False, image_complete=True) is CaptureState.CONVERGED
    assert policy.done


def test_quiet_alone_is_not_enough_without_completion() -> None:
    policy = _policy()
    for now in range(100, 11000, 100):
        assert policy.observe(now, changed=False, image_complete=False) is CaptureState.SAMPLING
    assert policy.observe(12000, changed=False, image_complete=False) is CaptureState.TIMED_OUT


def test_visual_change_restarts_quiet_period() -> None:
    policy = _policy()
    policy.observe(100, changed=True, image_complete=True)
    policy.observe(700, changed=True, image_complete=True)
    assert policy.observe(1300, changed=False, image_complete=True) is CaptureState.SAMPLING
    assert policy.observe(1401, changed=False, image_complete=True) is CaptureState.CONVERGED


def test_end_states_are_terminal() -> None:
    policy = _policy()
    assert policy.check_deadline(12000) is CaptureState.TIMED_OUT
    assert policy.observe(12100, changed=False, image_complete=True) is CaptureState.TIMED_OUT


def test_deadline_is_relative_to_start() -> None:
    policy = _policy(started_at_ms=5000)
    assert policy.check_deadline(16999) is CaptureState.SAMPLING
    assert policy.check_deadline(17000) is CaptureState.TIMED_OUT
