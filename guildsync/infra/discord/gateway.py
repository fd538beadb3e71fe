# =============================================================================
# File: guildsync/infra/discord/gateway.py
# Description: ChatGatewayPort implementation on top of discord.py
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Union

import discord

from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.config.reliability_config import ReliabilityConfigs, get_reliability_settings
from guildsync.infra.discord.errors import classify_discord_error, describe_discord_error
from guildsync.infra.discord.rendering import message_kwargs
from guildsync.infra.metrics.sync_metrics import record_gateway_call
from guildsync.infra.reliability.circuit_breaker import CircuitBreaker, get_circuit_breaker
from guildsync.infra.reliability.rate_limiter import RateLimiter
from guildsync.sync.cards import MessageCard
from guildsync.sync.models import (
    GatewayErrorKind,
    GatewayResult,
    MemberRolesResult,
    PermissionAction,
)

log = get_logger("guildsync.discord.gateway")

GUILD_TEXT_CHANNEL = Union[discord.TextChannel, discord.CategoryChannel]


def _member_overwrite(read_only: bool) -> discord.PermissionOverwrite:
    if read_only:
        return discord.PermissionOverwrite(
            view_channel=True, read_message_history=True, send_messages=False, attach_files=False,
        )
    return discord.PermissionOverwrite(
        view_channel=True, send_messages=True, read_message_history=True, attach_files=True,
    )


class DiscordGateway:
    """
    Discord adapter (Hexagonal Architecture).

    Every call goes through the same envelope: circuit breaker check, token
    bucket, per-request timeout, then exception translation into a
    ``GatewayResult``. Nothing here raises discord.py exceptions upward.

    Usage:
        gateway = DiscordGateway(client)
        result = await gateway.ensure_channel(guild_id, "kv-hornet-uppgifter")
        if result.success:
            channel_id = result.external_id
    """

    def __init__(
        self,
        client: discord.Client,
        config: Optional[DiscordConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.client = client
        self.config = config or get_discord_config()
        self._breaker = circuit_breaker or get_circuit_breaker(
            "discord_api", ReliabilityConfigs.discord_circuit_breaker()
        )
        settings = get_reliability_settings()
        if rate_limiter is None and settings.enable_rate_limiting:
            rate_limiter = RateLimiter("discord_api", ReliabilityConfigs.discord_rate_limiter())
        self._limiter = rate_limiter
        self._use_breaker = settings.enable_circuit_breakers

    # =========================================================================
    # Call Envelope
    # =========================================================================

    async def _execute(self, operation: str, action: Callable[[], Awaitable[GatewayResult]]) -> GatewayResult:
        if self._use_breaker and not self._breaker.can_execute():
            record_gateway_call(operation, GatewayErrorKind.CIRCUIT_OPEN.value)
            return GatewayResult.fail(GatewayErrorKind.CIRCUIT_OPEN, f"{operation}: Discord circuit open")

        if self._limiter is not None:
            await self._limiter.wait_and_acquire()

        try:
            result = await asyncio.wait_for(action(), self.config.request_timeout_seconds)
        except (discord.DiscordException, asyncio.TimeoutError, OSError) as e:
            kind = classify_discord_error(e)
            if kind.is_transient and self._use_breaker:
                await self._breaker.record_failure(str(e))
            record_gateway_call(operation, kind.value)
            message = describe_discord_error(e)
            if kind == GatewayErrorKind.NOT_FOUND:
                log.debug(f"Discord {operation}: not found ({message})")
            else:
                log.warning(f"Discord {operation} failed [{kind.value}]: {message}")
            return GatewayResult.fail(kind, message)

        if self._use_breaker:
            await self._breaker.record_success()
        record_gateway_call(operation, "success")
        return result

    async def _guild(self, guild_id: str) -> discord.Guild:
        guild = self.client.get_guild(int(guild_id))
        if guild is None:
            guild = await self.client.fetch_guild(int(guild_id))
        return guild

    async def _channel(self, channel_id: str) -> discord.abc.GuildChannel:
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            channel = await self.client.fetch_channel(int(channel_id))
        return channel

    async def _messageable(self, channel_id: str) -> discord.TextChannel:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise discord.InvalidData(f"Channel {channel_id} is not text based")
        return channel

    # =========================================================================
    # Channels & Categories
    # =========================================================================

    async def ensure_channel(
        self,
        guild_id: str,
        name: str,
        parent_id: Optional[str] = None,
        topic: Optional[str] = None,
        private: bool = True,
    ) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            category = None
            if parent_id:
                parent = await self._channel(parent_id)
                category = parent if isinstance(parent, discord.CategoryChannel) else None

            parent_key = category.id if category is not None else None
            for channel in await guild.fetch_channels():
                if (isinstance(channel, discord.TextChannel)
                        and channel.name.lower() == name.lower()
                        and channel.category_id == parent_key):
                    log.debug(f"Reusing channel #{channel.name} ({channel.id}) in guild {guild_id}")
                    return GatewayResult.ok(str(channel.id), channel.name)

            overwrites = {}
            if private:
                overwrites[guild.default_role] = discord.PermissionOverwrite(view_channel=False)
                if guild.me is not None:
                    overwrites[guild.me] = _member_overwrite(read_only=False)

            channel = await guild.create_text_channel(
                name, category=category, topic=topic, overwrites=overwrites, reason="Project sync",
            )
            log.info(f"Created channel #{channel.name} ({channel.id}) in guild {guild_id}")
            return GatewayResult.ok(str(channel.id), channel.name)

        return await self._execute("ensure_channel", action)

    async def ensure_category(self, guild_id: str, name: str) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            channels = await guild.fetch_channels()
            for channel in channels:
                if isinstance(channel, discord.CategoryChannel) and channel.name.lower() == name.lower():
                    return GatewayResult.ok(str(channel.id), channel.name)
            category = await guild.create_category(name, reason="Category sync")
            log.info(f"Created category '{name}' ({category.id}) in guild {guild_id}")
            return GatewayResult.ok(str(category.id), category.name)

        return await self._execute("ensure_category", action)

    async def fetch_channel(self, channel_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            # Always hit the API; the cache can still hold deleted channels
            channel = await self.client.fetch_channel(int(channel_id))
            return GatewayResult.ok(str(channel.id), getattr(channel, "name", None))

        return await self._execute("fetch_channel", action)

    async def rename_channel(self, channel_id: str, name: str) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._channel(channel_id)
            if channel.name != name:
                await channel.edit(name=name, reason="Category sync")
            return GatewayResult.ok(channel_id, name)

        return await self._execute("rename_channel", action)

    async def archive_channel(self, channel_id: str, archive_category_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._channel(channel_id)
            category = await self._channel(archive_category_id)
            if not isinstance(category, discord.CategoryChannel):
                raise discord.InvalidData(f"{archive_category_id} is not a category")

            overwrites = dict(channel.overwrites)
            for target in list(overwrites):
                if isinstance(target, discord.Member) and target != channel.guild.me:
                    overwrites[target] = _member_overwrite(read_only=True)
            await channel.edit(category=category, overwrites=overwrites, reason="Project archived")
            return GatewayResult.ok(channel_id, channel.name)

        return await self._execute("archive_channel", action)

    async def delete_channel(self, channel_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._channel(channel_id)
            await channel.delete(reason="Removed in web app")
            return GatewayResult.ok(channel_id)

        result = await self._execute("delete_channel", action)
        return GatewayResult.ok(channel_id) if result.not_found else result

    # =========================================================================
    # Permissions
    # =========================================================================

    async def set_permission(
        self,
        channel_id: str,
        user_id: str,
        action: PermissionAction,
        read_only: bool = False,
    ) -> GatewayResult:
        async def run() -> GatewayResult:
            channel = await self._channel(channel_id)
            try:
                member = channel.guild.get_member(int(user_id)) or await channel.guild.fetch_member(int(user_id))
            except discord.NotFound:
                log.info(f"User {user_id} is not in guild {channel.guild.id}, nothing to {action.value}")
                return GatewayResult.ok(channel_id)

            if action == PermissionAction.GRANT:
                await channel.set_permissions(member, overwrite=_member_overwrite(read_only),
                                              reason="Project member added")
            elif member in channel.overwrites:
                await channel.set_permissions(member, overwrite=None, reason="Project member removed")
            return GatewayResult.ok(channel_id)

        return await self._execute(f"set_permission_{action.value}", run)

    # =========================================================================
    # Messages
    # =========================================================================

    async def post_message(self, channel_id: str, card: MessageCard) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._messageable(channel_id)
            kwargs = message_kwargs(card)
            message = await channel.send(**kwargs)
            if "view" in kwargs:
                kwargs["view"].stop()
            return GatewayResult.ok(str(message.id))

        return await self._execute("post_message", action)

    async def delete_message(self, channel_id: str, message_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._messageable(channel_id)
            await channel.get_partial_message(int(message_id)).delete()
            return GatewayResult.ok(message_id)

        result = await self._execute("delete_message", action)
        return GatewayResult.ok(message_id) if result.not_found else result

    async def pin_message(self, channel_id: str, message_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            channel = await self._messageable(channel_id)
            await channel.get_partial_message(int(message_id)).pin(reason="Project sync")
            return GatewayResult.ok(message_id)

        return await self._execute("pin_message", action)

    async def send_direct_message(self, user_id: str, card: MessageCard) -> GatewayResult:
        async def action() -> GatewayResult:
            user = self.client.get_user(int(user_id)) or await self.client.fetch_user(int(user_id))
            kwargs = message_kwargs(card)
            message = await user.send(**kwargs)
            if "view" in kwargs:
                kwargs["view"].stop()
            return GatewayResult.ok(str(message.id))

        return await self._execute("send_direct_message", action)

    # =========================================================================
    # Roles
    # =========================================================================

    async def ensure_role(self, guild_id: str, name: str, color: Optional[int] = None) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            roles = await guild.fetch_roles()
            existing = discord.utils.get(roles, name=name)
            if existing is not None:
                return GatewayResult.ok(str(existing.id), existing.name)
            role = await guild.create_role(
                name=name, colour=discord.Colour(color or 0), mentionable=False, reason="Role sync",
            )
            log.info(f"Created role '{name}' ({role.id}) in guild {guild_id}")
            return GatewayResult.ok(str(role.id), role.name)

        return await self._execute("ensure_role", action)

    async def grant_role(self, guild_id: str, user_id: str, role_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(int(user_id))
            if any(r.id == int(role_id) for r in member.roles):
                return GatewayResult.ok(role_id)
            await member.add_roles(discord.Object(id=int(role_id)), reason="Role sync")
            return GatewayResult.ok(role_id)

        return await self._execute("grant_role", action)

    async def revoke_role(self, guild_id: str, user_id: str, role_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(int(user_id))
            if not any(r.id == int(role_id) for r in member.roles):
                return GatewayResult.ok(role_id)
            await member.remove_roles(discord.Object(id=int(role_id)), reason="Role sync")
            return GatewayResult.ok(role_id)

        return await self._execute("revoke_role", action)

    async def fetch_member_roles(self, guild_id: str, user_id: str) -> MemberRolesResult:
        holder = {}

        async def action() -> GatewayResult:
            guild = await self._guild(guild_id)
            member = await guild.fetch_member(int(user_id))
            holder.update({r.name: str(r.id) for r in member.roles if not r.is_default()})
            return GatewayResult.ok(user_id)

        result = await self._execute("fetch_member_roles", action)
        if result.success:
            return MemberRolesResult(True, roles=holder)
        if result.not_found:
            return MemberRolesResult(False, in_guild=False, error=result.error, kind=result.kind)
        return MemberRolesResult(False, error=result.error, kind=result.kind)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def fetch_user(self, user_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            user = await self.client.fetch_user(int(user_id))
            return GatewayResult.ok(str(user.id), user.display_name)

        return await self._execute("fetch_user", action)

    async def fetch_guild(self, guild_id: str) -> GatewayResult:
        async def action() -> GatewayResult:
            guild = await self.client.fetch_guild(int(guild_id))
            return GatewayResult.ok(str(guild.id), guild.name)

        return await self._execute("fetch_guild", action)
