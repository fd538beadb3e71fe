# =============================================================================
# File: guildsync/sync/models.py
# Description: Correlation records, web-app read models and result types
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from guildsync.sync.outcome import SyncOutcome, combine


# =============================================================================
# Enums
# =============================================================================

class ChannelKind(str, Enum):
    """The four channels every synced project gets"""
    GENERAL = "general"
    TASKS = "tasks"
    FILES = "files"
    ACTIVITY = "activity"

    @property
    def name_suffix(self) -> Optional[str]:
        return CHANNEL_NAME_SUFFIXES.get(self)


CHANNEL_NAME_SUFFIXES: Dict[ChannelKind, str] = {
    ChannelKind.TASKS: "uppgifter",
    ChannelKind.FILES: "filer",
    ChannelKind.ACTIVITY: "aktivitet",
}


class PermissionAction(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"


class GatewayErrorKind(str, Enum):
    """Normalized Discord failure classes"""
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    INVALID = "invalid"
    CIRCUIT_OPEN = "circuit_open"

    @property
    def is_transient(self) -> bool:
        return self in (GatewayErrorKind.RATE_LIMITED, GatewayErrorKind.TRANSIENT, GatewayErrorKind.CIRCUIT_OPEN)


# =============================================================================
# Correlation Records
# =============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TenantChatLink:
    tenant_id: str
    guild_id: str
    linked_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ProjectChannelLink:
    project_id: str
    kind: ChannelKind
    channel_id: str
    guild_id: str
    archived: bool = False


@dataclass(frozen=True)
class TaskPostingLink:
    task_id: str
    message_id: str
    channel_id: str


@dataclass(frozen=True)
class CategoryLink:
    tenant_id: str
    category_id: str
    external_category_id: str
    name: str
    category_type: Optional[str] = None


# =============================================================================
# Web-App Read Models
# =============================================================================

@dataclass(frozen=True)
class TenantRecord:
    id: str
    name: str


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    tenant_id: str
    name: str
    status: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class TaskRecord:
    id: str
    project_id: str
    title: str
    project_name: Optional[str] = None
    tenant_id: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[date] = None
    assignees: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    tenant_id: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class ProjectMemberRecord:
    user_id: str
    name: str
    discord_user_id: Optional[str] = None


@dataclass(frozen=True)
class CategorySpec:
    """A desired category as sent in category-sync / category-created"""
    id: str
    name: str
    type: Optional[str] = None
    discord_category_id: Optional[str] = None


# =============================================================================
# Gateway Results
# =============================================================================

@dataclass(frozen=True)
class GatewayResult:
    """Normalized result of one Discord call"""
    success: bool
    external_id: Optional[str] = None
    name: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[GatewayErrorKind] = None

    @classmethod
    def ok(cls, external_id: Optional[str] = None, name: Optional[str] = None) -> GatewayResult:
        return cls(True, external_id=external_id, name=name)

    @classmethod
    def fail(cls, kind: GatewayErrorKind, error: str) -> GatewayResult:
        return cls(False, error=error, kind=kind)

    @property
    def not_found(self) -> bool:
        return self.kind == GatewayErrorKind.NOT_FOUND

    @property
    def transient(self) -> bool:
        return self.kind is not None and self.kind.is_transient

    def to_warning(self, action: str) -> SyncOutcome:
        return SyncOutcome.warning(f"{action}: {self.error}", retryable=self.transient)


@dataclass(frozen=True)
class MemberRolesResult:
    """Roles a guild member currently holds, by name"""
    success: bool
    roles: Dict[str, str] = field(default_factory=dict)
    in_guild: bool = True
    error: Optional[str] = None
    kind: Optional[GatewayErrorKind] = None


# =============================================================================
# Reconciler Reports
# =============================================================================

@dataclass
class ChannelSetResult:
    """Outcome of ensure_project_channels"""
    project_id: str
    channels: Dict[ChannelKind, str] = field(default_factory=dict)
    created: List[ChannelKind] = field(default_factory=list)
    repaired: List[ChannelKind] = field(default_factory=list)
    reused: List[ChannelKind] = field(default_factory=list)
    outcomes: List[SyncOutcome] = field(default_factory=list)

    @property
    def outcome(self) -> SyncOutcome:
        if not self.outcomes:
            return SyncOutcome.ok()
        return combine(self.outcomes)

    @property
    def complete(self) -> bool:
        return all(kind in self.channels for kind in ChannelKind)


@dataclass
class CategorySyncReport:
    outcomes: Dict[str, SyncOutcome] = field(default_factory=dict)

    @property
    def outcome(self) -> SyncOutcome:
        return combine(self.outcomes.values())


@dataclass
class FanoutResult:
    channel: SyncOutcome
    direct: Optional[SyncOutcome] = None

    @property
    def outcome(self) -> SyncOutcome:
        # Direct-message failures never degrade the channel result
        return self.channel


@dataclass
class SetupReport:
    tenant_id: str
    guild_id: str
    succeeded: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str, str]] = field(default_factory=list)  # (project_id, name, reason)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)
