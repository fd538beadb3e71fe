from __future__ import annotations

from guildsync.sync.outcome import OutcomeStatus, SyncOutcome, combine


def test_constructors() -> None:
    assert SyncOutcome.ok().is_ok
    assert SyncOutcome.skipped("no guild").is_skipped
    warning = SyncOutcome.warning("boom", retryable=True)
    assert warning.is_warning
    assert warning.retryable


def test_str() -> None:
    assert str(SyncOutcome.ok()) == "ok"
    assert str(SyncOutcome.skipped("no guild")) == "skipped(no guild)"


def test_combine_empty_is_skipped() -> None:
    result = combine([])
    assert result.is_skipped
    assert result.reason == "nothing to do"


def test_combine_warning_wins_and_joins_reasons() -> None:
    result = combine([
        SyncOutcome.ok(),
        SyncOutcome.warning("grant Admin: 403"),
        SyncOutcome.skipped("x"),
        SyncOutcome.warning("revoke Medlem: 503", retryable=True),
    ])
    assert result.status == OutcomeStatus.WARNING
    assert result.reason == "grant Admin: 403; revoke Medlem: 503"
    assert result.retryable


def test_combine_warning_not_retryable_when_no_part_is() -> None:
    result = combine([SyncOutcome.warning("a"), SyncOutcome.warning("b")])
    assert not result.retryable


def test_combine_all_skipped() -> None:
    result = combine([SyncOutcome.skipped("a"), SyncOutcome.skipped("b")])
    assert result.is_skipped
    assert result.reason == "a; b"


def test_combine_ok_when_anything_applied() -> None:
    assert combine([SyncOutcome.skipped("a"), SyncOutcome.ok()]).is_ok
