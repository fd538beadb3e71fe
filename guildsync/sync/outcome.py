# =============================================================================
# File: guildsync/sync/outcome.py
# Description: Explicit result type for reconciliations
# =============================================================================
"""
Every reconciler returns a ``SyncOutcome`` instead of raising or silently
returning ``None``:

- ``OK``: Discord now matches the event
- ``WARNING``: partially applied or abandoned; ``retryable`` marks transient
  failures that are parked in the dead-letter list
- ``SKIPPED``: nothing to do (no guild linked, no posting, duplicate delivery)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class OutcomeStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SyncOutcome:
    status: OutcomeStatus
    reason: str = ""
    retryable: bool = False

    @classmethod
    def ok(cls, reason: str = "") -> SyncOutcome:
        return cls(OutcomeStatus.OK, reason)

    @classmethod
    def warning(cls, reason: str, retryable: bool = False) -> SyncOutcome:
        return cls(OutcomeStatus.WARNING, reason, retryable)

    @classmethod
    def skipped(cls, reason: str) -> SyncOutcome:
        return cls(OutcomeStatus.SKIPPED, reason)

    @property
    def is_ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def is_warning(self) -> bool:
        return self.status == OutcomeStatus.WARNING

    @property
    def is_skipped(self) -> bool:
        return self.status == OutcomeStatus.SKIPPED

    def __str__(self) -> str:
        return f"{self.status.value}({self.reason})" if self.reason else self.status.value


def combine(outcomes: Iterable[SyncOutcome]) -> SyncOutcome:
    """
    Fold several outcomes into one.

    Any warning wins (reasons joined, retryable if any part is). Otherwise
    the result is OK if anything was applied, and SKIPPED only when every
    part was skipped.
    """
    outcomes = list(outcomes)
    if not outcomes:
        return SyncOutcome.skipped("nothing to do")

    warnings = [o for o in outcomes if o.is_warning]
    if warnings:
        return SyncOutcome.warning(
            "; ".join(o.reason for o in warnings if o.reason),
            retryable=any(o.retryable for o in warnings),
        )

    if all(o.is_skipped for o in outcomes):
        return SyncOutcome.skipped("; ".join(o.reason for o in outcomes if o.reason))

    return SyncOutcome.ok()
