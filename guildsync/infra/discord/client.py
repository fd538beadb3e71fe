# =============================================================================
# File: guildsync/infra/discord/client.py
# Description: discord.Client setup, /setup command and connection lifecycle
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Optional, TYPE_CHECKING

import discord
from discord import app_commands

from guildsync.common.exceptions.exceptions import ConfigurationError
from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.config.reliability_config import ReliabilityConfigs
from guildsync.infra.reliability.retry import mark_permanent, retry_async

if TYPE_CHECKING:
    from guildsync.infra.discord.interactions import InteractionBridge

log = get_logger("guildsync.discord.client")

READY_TIMEOUT_SECONDS = 60.0


def build_intents(config: DiscordConfig) -> discord.Intents:
    intents = discord.Intents.none()
    intents.guilds = True
    intents.members = config.enable_members_intent
    return intents


class GuildSyncClient(discord.Client):
    """
    Bot client. Component clicks and modal submits go to the attached
    InteractionBridge; the only application command is /setup.
    """

    def __init__(self, config: Optional[DiscordConfig] = None):
        self.config = config or get_discord_config()
        super().__init__(intents=build_intents(self.config))
        self.tree = app_commands.CommandTree(self)
        self.bridge: Optional['InteractionBridge'] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._register_commands()

    def _register_commands(self) -> None:
        @self.tree.command(name="setup", description="Koppla projekt till Discord-kanaler")
        @app_commands.guild_only()
        async def setup(interaction: discord.Interaction) -> None:
            if self.bridge is None:
                await interaction.response.send_message("Boten startar fortfarande.", ephemeral=True)
                return
            await self.bridge.on_setup_command(interaction)

    def attach_bridge(self, bridge: 'InteractionBridge') -> None:
        self.bridge = bridge

    async def setup_hook(self) -> None:
        synced = await self.tree.sync()
        log.info(f"Application commands synced: {[c.name for c in synced]}")

    async def on_ready(self) -> None:
        log.info(f"Discord client ready as {self.user} in {len(self.guilds)} guilds")

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        # Slash commands are handled by the CommandTree
        if self.bridge is None or interaction.type == discord.InteractionType.application_command:
            return
        await self.bridge.on_interaction(interaction)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_background(self, ready_timeout: float = READY_TIMEOUT_SECONDS) -> None:
        """Log in (with retry), connect the gateway in a task and wait for READY."""
        if not self.config.has_token():
            raise ConfigurationError("DISCORD_TOKEN is not set")

        async def _login() -> None:
            try:
                await self.login(self.config.token.get_secret_value())
            except discord.LoginFailure as e:
                raise mark_permanent(e)

        await retry_async(_login, retry_config=ReliabilityConfigs.discord_login_retry(), context="Discord login")
        self._connect_task = asyncio.create_task(self.connect(reconnect=True), name="discord-gateway")
        await asyncio.wait_for(self.wait_until_ready(), timeout=ready_timeout)

    async def shutdown(self) -> None:
        if not self.is_closed():
            await self.close()
        if self._connect_task is not None:
            await asyncio.gather(self._connect_task, return_exceptions=True)
            self._connect_task = None
        log.info("Discord client closed")
