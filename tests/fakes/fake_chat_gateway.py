# =============================================================================
# File: tests/fakes/fake_chat_gateway.py
# Description: Fake implementation of ChatGatewayPort for unit testing
# Pattern: Ports & Adapters - Fake/Stub adapter
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from guildsync.sync.cards import MessageCard
from guildsync.sync.models import (
    GatewayErrorKind,
    GatewayResult,
    MemberRolesResult,
    PermissionAction,
)


@dataclass
class FakeChannel:
    """Channel or category living in a fake guild."""
    id: str
    guild_id: str
    name: str
    parent_id: Optional[str] = None
    topic: Optional[str] = None
    private: bool = True
    is_category: bool = False
    overwrites: Dict[str, bool] = field(default_factory=dict)  # user_id -> read_only


@dataclass
class FakeMessage:
    id: str
    channel_id: str
    card: MessageCard


@dataclass
class CallRecord:
    """Record of a method call for verification."""
    method: str
    args: tuple
    kwargs: Dict[str, Any]
    result: Any = None


@dataclass
class _Failure:
    kind: GatewayErrorKind
    error: str
    when: Optional[Callable[..., bool]] = None
    remaining: Optional[int] = None


class FakeChatGateway:
    """
    Fake implementation of ChatGatewayPort for unit testing.

    Keeps guilds, channels, messages and roles in memory and follows the
    same success rules as DiscordGateway: deleting something that is
    already gone succeeds, granting a role twice succeeds.

    Usage:
        gateway = FakeChatGateway()
        gateway.add_guild("g1")

        reconciler = ChannelLifecycleReconciler(gateway, store, web_app)
        await reconciler.ensure_project_channels("t1", "p1", "Villa")

        assert gateway.get_call_count("ensure_channel") == 4
    """

    def __init__(self):
        # In-memory storage
        self.guilds: Dict[str, str] = {}  # guild_id -> name
        self.members: Dict[str, Set[str]] = {}  # guild_id -> user ids
        self.users: Dict[str, str] = {}  # user_id -> display name
        self.channels: Dict[str, FakeChannel] = {}
        self.messages: Dict[str, FakeMessage] = {}
        self.pins: Set[str] = set()
        self.roles: Dict[str, Dict[str, str]] = {}  # guild_id -> name -> role_id
        self.role_colors: Dict[str, Optional[int]] = {}  # role_id -> color
        self.member_roles: Dict[Tuple[str, str], Set[str]] = {}  # (guild_id, user_id) -> role ids
        self.direct_messages: List[Tuple[str, MessageCard]] = []

        # Call tracking
        self._calls: List[CallRecord] = []

        # Configurable failures
        self._failures: Dict[str, _Failure] = {}

        self._next_id = 1000

    # =========================================================================
    # Test Setup Methods
    # =========================================================================

    def add_guild(self, guild_id: str, name: str = "Testservern") -> None:
        self.guilds[guild_id] = name
        self.members.setdefault(guild_id, set())
        self.roles.setdefault(guild_id, {})

    def add_member(self, guild_id: str, user_id: str, name: Optional[str] = None) -> None:
        self.add_guild(guild_id, self.guilds.get(guild_id, "Testservern"))
        self.members[guild_id].add(user_id)
        self.users[user_id] = name or f"user-{user_id}"

    def add_channel(self, guild_id: str, name: str, is_category: bool = False,
                    parent_id: Optional[str] = None) -> str:
        channel_id = self._new_id()
        self.channels[channel_id] = FakeChannel(
            id=channel_id, guild_id=guild_id, name=name, parent_id=parent_id, is_category=is_category,
        )
        return channel_id

    def give_role(self, guild_id: str, user_id: str, role_name: str) -> str:
        """Create the role when needed and hand it to the member."""
        role_id = self._role(guild_id, role_name, None)
        self.member_roles.setdefault((guild_id, user_id), set()).add(role_id)
        return role_id

    def remove_channel(self, channel_id: str) -> None:
        """Simulate a channel deleted by someone in the Discord client."""
        self.channels.pop(channel_id, None)

    def configure_failure(
        self,
        method: str,
        kind: GatewayErrorKind = GatewayErrorKind.TRANSIENT,
        error: str = "simulated failure",
        when: Optional[Callable[..., bool]] = None,
        times: Optional[int] = None,
    ) -> None:
        """
        Make ``method`` return a failed GatewayResult.

        ``when`` receives the call arguments and narrows the failure to
        matching calls; ``times`` limits how often it fires.
        """
        self._failures[method] = _Failure(kind, error, when, times)

    def clear_failure(self, method: str) -> None:
        self._failures.pop(method, None)

    def clear(self) -> None:
        """Reset all state between tests."""
        self.guilds.clear()
        self.members.clear()
        self.users.clear()
        self.channels.clear()
        self.messages.clear()
        self.pins.clear()
        self.roles.clear()
        self.role_colors.clear()
        self.member_roles.clear()
        self.direct_messages.clear()
        self._calls.clear()
        self._failures.clear()
        self._next_id = 1000

    # =========================================================================
    # Test Verification Methods
    # =========================================================================

    def was_called(self, method: str) -> bool:
        return any(c.method == method for c in self._calls)

    def get_call_count(self, method: str) -> int:
        return sum(1 for c in self._calls if c.method == method)

    def get_calls(self, method: str) -> List[CallRecord]:
        return [c for c in self._calls if c.method == method]

    def get_last_call(self, method: str) -> Optional[CallRecord]:
        calls = self.get_calls(method)
        return calls[-1] if calls else None

    def get_all_calls(self) -> List[CallRecord]:
        return self._calls.copy()

    def text_channels(self, guild_id: Optional[str] = None) -> List[FakeChannel]:
        return [
            c for c in self.channels.values()
            if not c.is_category and (guild_id is None or c.guild_id == guild_id)
        ]

    def categories(self, guild_id: Optional[str] = None) -> List[FakeChannel]:
        return [
            c for c in self.channels.values()
            if c.is_category and (guild_id is None or c.guild_id == guild_id)
        ]

    def messages_in(self, channel_id: str) -> List[FakeMessage]:
        return [m for m in self.messages.values() if m.channel_id == channel_id]

    def role_names_of(self, guild_id: str, user_id: str) -> Set[str]:
        by_id = {role_id: name for name, role_id in self.roles.get(guild_id, {}).items()}
        return {by_id[r] for r in self.member_roles.get((guild_id, user_id), set()) if r in by_id}

    # =========================================================================
    # Channels & Categories
    # =========================================================================

    async def ensure_channel(self, guild_id, name, parent_id=None, topic=None, private=True) -> GatewayResult:
        self._record_call("ensure_channel", guild_id, name, parent_id=parent_id, topic=topic, private=private)
        failed = self._check_failure("ensure_channel", guild_id, name)
        if failed:
            return failed
        if guild_id not in self.guilds:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Guild")

        for channel in self.text_channels(guild_id):
            if channel.name.lower() == name.lower() and channel.parent_id == parent_id:
                return GatewayResult.ok(channel.id, channel.name)

        channel_id = self._new_id()
        self.channels[channel_id] = FakeChannel(
            id=channel_id, guild_id=guild_id, name=name, parent_id=parent_id, topic=topic, private=private,
        )
        return GatewayResult.ok(channel_id, name)

    async def ensure_category(self, guild_id, name) -> GatewayResult:
        self._record_call("ensure_category", guild_id, name)
        failed = self._check_failure("ensure_category", guild_id, name)
        if failed:
            return failed
        if guild_id not in self.guilds:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Guild")

        for category in self.categories(guild_id):
            if category.name.lower() == name.lower():
                return GatewayResult.ok(category.id, category.name)
        category_id = self.add_channel(guild_id, name, is_category=True)
        return GatewayResult.ok(category_id, name)

    async def fetch_channel(self, channel_id) -> GatewayResult:
        self._record_call("fetch_channel", channel_id)
        failed = self._check_failure("fetch_channel", channel_id)
        if failed:
            return failed
        channel = self.channels.get(channel_id)
        if channel is None:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Channel")
        return GatewayResult.ok(channel.id, channel.name)

    async def rename_channel(self, channel_id, name) -> GatewayResult:
        self._record_call("rename_channel", channel_id, name)
        failed = self._check_failure("rename_channel", channel_id, name)
        if failed:
            return failed
        channel = self.channels.get(channel_id)
        if channel is None:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Channel")
        channel.name = name
        return GatewayResult.ok(channel.id, name)

    async def archive_channel(self, channel_id, archive_category_id) -> GatewayResult:
        self._record_call("archive_channel", channel_id, archive_category_id)
        failed = self._check_failure("archive_channel", channel_id, archive_category_id)
        if failed:
            return failed
        channel = self.channels.get(channel_id)
        if channel is None:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Channel")
        channel.parent_id = archive_category_id
        channel.overwrites = {user_id: True for user_id in channel.overwrites}
        return GatewayResult.ok(channel.id, channel.name)

    async def delete_channel(self, channel_id) -> GatewayResult:
        self._record_call("delete_channel", channel_id)
        failed = self._check_failure("delete_channel", channel_id)
        if failed:
            return failed
        self.channels.pop(channel_id, None)
        return GatewayResult.ok(channel_id)

    # =========================================================================
    # Permissions
    # =========================================================================

    async def set_permission(self, channel_id, user_id, action, read_only=False) -> GatewayResult:
        self._record_call("set_permission", channel_id, user_id, action, read_only=read_only)
        failed = self._check_failure("set_permission", channel_id, user_id, action)
        if failed:
            return failed
        channel = self.channels.get(channel_id)
        if channel is None:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Channel")
        if action == PermissionAction.GRANT:
            channel.overwrites[user_id] = read_only
        else:
            channel.overwrites.pop(user_id, None)
        return GatewayResult.ok(channel_id)

    # =========================================================================
    # Messages
    # =========================================================================

    async def post_message(self, channel_id, card) -> GatewayResult:
        self._record_call("post_message", channel_id, card)
        failed = self._check_failure("post_message", channel_id, card)
        if failed:
            return failed
        if channel_id not in self.channels:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Channel")
        message_id = self._new_id()
        self.messages[message_id] = FakeMessage(message_id, channel_id, card)
        return GatewayResult.ok(message_id)

    async def delete_message(self, channel_id, message_id) -> GatewayResult:
        self._record_call("delete_message", channel_id, message_id)
        failed = self._check_failure("delete_message", channel_id, message_id)
        if failed:
            return failed
        self.messages.pop(message_id, None)
        self.pins.discard(message_id)
        return GatewayResult.ok(message_id)

    async def pin_message(self, channel_id, message_id) -> GatewayResult:
        self._record_call("pin_message", channel_id, message_id)
        failed = self._check_failure("pin_message", channel_id, message_id)
        if failed:
            return failed
        message = self.messages.get(message_id)
        if message is None or message.channel_id != channel_id:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Message")
        self.pins.add(message_id)
        return GatewayResult.ok(message_id)

    async def send_direct_message(self, user_id, card) -> GatewayResult:
        self._record_call("send_direct_message", user_id, card)
        failed = self._check_failure("send_direct_message", user_id, card)
        if failed:
            return failed
        self.direct_messages.append((user_id, card))
        return GatewayResult.ok(self._new_id())

    # =========================================================================
    # Roles
    # =========================================================================

    async def ensure_role(self, guild_id, name, color=None) -> GatewayResult:
        self._record_call("ensure_role", guild_id, name, color=color)
        failed = self._check_failure("ensure_role", guild_id, name)
        if failed:
            return failed
        return GatewayResult.ok(self._role(guild_id, name, color), name)

    async def grant_role(self, guild_id, user_id, role_id) -> GatewayResult:
        self._record_call("grant_role", guild_id, user_id, role_id)
        failed = self._check_failure("grant_role", guild_id, user_id, role_id)
        if failed:
            return failed
        if user_id not in self.members.get(guild_id, set()):
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Member")
        self.member_roles.setdefault((guild_id, user_id), set()).add(role_id)
        return GatewayResult.ok(role_id)

    async def revoke_role(self, guild_id, user_id, role_id) -> GatewayResult:
        self._record_call("revoke_role", guild_id, user_id, role_id)
        failed = self._check_failure("revoke_role", guild_id, user_id, role_id)
        if failed:
            return failed
        self.member_roles.get((guild_id, user_id), set()).discard(role_id)
        return GatewayResult.ok(role_id)

    async def fetch_member_roles(self, guild_id, user_id) -> MemberRolesResult:
        self._record_call("fetch_member_roles", guild_id, user_id)
        failed = self._check_failure("fetch_member_roles", guild_id, user_id)
        if failed:
            return MemberRolesResult(False, error=failed.error, kind=failed.kind)
        if user_id not in self.members.get(guild_id, set()):
            return MemberRolesResult(False, in_guild=False, error="Unknown Member", kind=GatewayErrorKind.NOT_FOUND)

        by_id = {role_id: name for name, role_id in self.roles.get(guild_id, {}).items()}
        held = self.member_roles.get((guild_id, user_id), set())
        return MemberRolesResult(True, roles={by_id[r]: r for r in held if r in by_id})

    # =========================================================================
    # Lookups
    # =========================================================================

    async def fetch_user(self, user_id) -> GatewayResult:
        self._record_call("fetch_user", user_id)
        failed = self._check_failure("fetch_user", user_id)
        if failed:
            return failed
        if user_id not in self.users:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown User")
        return GatewayResult.ok(user_id, self.users[user_id])

    async def fetch_guild(self, guild_id) -> GatewayResult:
        self._record_call("fetch_guild", guild_id)
        failed = self._check_failure("fetch_guild", guild_id)
        if failed:
            return failed
        if guild_id not in self.guilds:
            return GatewayResult.fail(GatewayErrorKind.NOT_FOUND, "Unknown Guild")
        return GatewayResult.ok(guild_id, self.guilds[guild_id])

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    def _role(self, guild_id: str, name: str, color: Optional[int]) -> str:
        guild_roles = self.roles.setdefault(guild_id, {})
        if name not in guild_roles:
            guild_roles[name] = self._new_id()
            self.role_colors[guild_roles[name]] = color
        return guild_roles[name]

    def _record_call(self, method: str, *args, **kwargs) -> None:
        self._calls.append(CallRecord(method=method, args=args, kwargs=kwargs))

    def _check_failure(self, method: str, *args) -> Optional[GatewayResult]:
        failure = self._failures.get(method)
        if failure is None:
            return None
        if failure.when is not None and not failure.when(*args):
            return None
        if failure.remaining is not None:
            if failure.remaining <= 0:
                return None
            failure.remaining -= 1
        return GatewayResult.fail(failure.kind, failure.error)
