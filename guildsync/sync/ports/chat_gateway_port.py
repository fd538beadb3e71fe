# =============================================================================
# File: guildsync/sync/ports/chat_gateway_port.py
# Description: Port interface for Discord guild operations
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Protocol, Optional, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from guildsync.sync.cards import MessageCard
    from guildsync.sync.models import GatewayResult, MemberRolesResult, PermissionAction


@runtime_checkable
class ChatGatewayPort(Protocol):
    """
    Port: Chat Gateway

    Defined by: Sync Domain
    Implemented by: DiscordGateway (guildsync/infra/discord/gateway.py)

    Every method returns a normalized result instead of raising. Operations
    whose target is already in the desired state report success.

    Categories:
    - Channels & categories (6 methods)
    - Permissions (1 method)
    - Messages (4 methods)
    - Roles (4 methods)
    - Lookups (2 methods)

    Total: 17 methods
    """

    # =========================================================================
    # Channels & Categories (6 methods)
    # =========================================================================

    async def ensure_channel(
        self,
        guild_id: str,
        name: str,
        parent_id: Optional[str] = None,
        topic: Optional[str] = None,
        private: bool = True,
    ) -> 'GatewayResult':
        """
        Create a text channel.

        Private channels deny ``@everyone`` ViewChannel.

        Returns:
            GatewayResult with ``external_id`` = channel id
        """
        ...

    async def ensure_category(self, guild_id: str, name: str) -> 'GatewayResult':
        """Return the category with this name, creating it when absent."""
        ...

    async def fetch_channel(self, channel_id: str) -> 'GatewayResult':
        """Look up a channel or category. ``name`` carries its current name."""
        ...

    async def rename_channel(self, channel_id: str, name: str) -> 'GatewayResult':
        ...

    async def archive_channel(self, channel_id: str, archive_category_id: str) -> 'GatewayResult':
        """
        Move a channel under the archive category and make every member
        overwrite read-only. The channel is never deleted.
        """
        ...

    async def delete_channel(self, channel_id: str) -> 'GatewayResult':
        """Delete a channel or category. A missing target is success."""
        ...

    # =========================================================================
    # Permissions (1 method)
    # =========================================================================

    async def set_permission(
        self,
        channel_id: str,
        user_id: str,
        action: 'PermissionAction',
        read_only: bool = False,
    ) -> 'GatewayResult':
        """
        Grant sets View/Send/ReadHistory/AttachFiles for the member (only
        View/ReadHistory when ``read_only``). Revoke removes the overwrite.
        An unknown member is success.
        """
        ...

    # =========================================================================
    # Messages (4 methods)
    # =========================================================================

    async def post_message(self, channel_id: str, card: 'MessageCard') -> 'GatewayResult':
        """Returns GatewayResult with ``external_id`` = message id"""
        ...

    async def delete_message(self, channel_id: str, message_id: str) -> 'GatewayResult':
        """A message that is already gone is success."""
        ...

    async def pin_message(self, channel_id: str, message_id: str) -> 'GatewayResult':
        ...

    async def send_direct_message(self, user_id: str, card: 'MessageCard') -> 'GatewayResult':
        ...

    # =========================================================================
    # Roles (4 methods)
    # =========================================================================

    async def ensure_role(self, guild_id: str, name: str, color: Optional[int] = None) -> 'GatewayResult':
        """Return the role with this name, creating it when absent."""
        ...

    async def grant_role(self, guild_id: str, user_id: str, role_id: str) -> 'GatewayResult':
        ...

    async def revoke_role(self, guild_id: str, user_id: str, role_id: str) -> 'GatewayResult':
        ...

    async def fetch_member_roles(self, guild_id: str, user_id: str) -> 'MemberRolesResult':
        """Roles the member holds, by name. ``in_guild`` is False for non-members."""
        ...

    # =========================================================================
    # Lookups (2 methods)
    # =========================================================================

    async def fetch_user(self, user_id: str) -> 'GatewayResult':
        """``name`` carries the user's display name"""
        ...

    async def fetch_guild(self, guild_id: str) -> 'GatewayResult':
        """Succeeds only when the bot is a member. ``name`` carries the guild name."""
        ...


# =============================================================================
# EOF
# =============================================================================
